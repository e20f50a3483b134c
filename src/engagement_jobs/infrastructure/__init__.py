"""Infrastructure layer public API."""

from engagement_jobs.infrastructure.generation_api import (
    GenerationApiClient,
    GenerationApiError,
)
from engagement_jobs.infrastructure.handlers import (
    ApiGenerationHandler,
    MaintenanceCleanupHandler,
)
from engagement_jobs.infrastructure.notifications import (
    MqttNotifier,
    NoopNotifier,
    WebhookNotifier,
)
from engagement_jobs.infrastructure.scheduling import DispatcherTicker
from engagement_jobs.infrastructure.stores import InMemoryStoreAdapter, PostgresStoreAdapter

__all__ = [
    "ApiGenerationHandler",
    "DispatcherTicker",
    "GenerationApiClient",
    "GenerationApiError",
    "InMemoryStoreAdapter",
    "MaintenanceCleanupHandler",
    "MqttNotifier",
    "NoopNotifier",
    "PostgresStoreAdapter",
    "WebhookNotifier",
]
