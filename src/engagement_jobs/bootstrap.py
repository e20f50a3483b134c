"""Application bootstrap/wiring."""

import logging

from engagement_jobs.application.services import (
    CircuitBreaker,
    Dispatcher,
    DistributedLock,
    HandlerRegistry,
    JobExecutor,
    JobRuntime,
    JobStore,
    StatusTracker,
)
from engagement_jobs.config import Settings, StoreBackend
from engagement_jobs.domain.circuits import CircuitBreakerConfig
from engagement_jobs.domain.ports import Notifier, StoreAdapter
from engagement_jobs.domain.retry_policy import RetryPolicy, RetryPolicyClass
from engagement_jobs.infrastructure.generation_api import GenerationApiClient
from engagement_jobs.infrastructure.handlers import (
    API_GENERATION_JOB_TYPE,
    MAINTENANCE_CLEANUP_JOB_TYPE,
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

logger = logging.getLogger(__name__)


def _build_store(settings: Settings) -> StoreAdapter:
    if settings.store_backend == StoreBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "ENGAGEMENT_JOBS_POSTGRES_DSN is required when "
                "ENGAGEMENT_JOBS_STORE_BACKEND=postgres."
            )
        return PostgresStoreAdapter(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
    return InMemoryStoreAdapter()


def _build_notifier(settings: Settings) -> Notifier:
    if settings.notifications_mqtt_enabled:
        if settings.notifications_mqtt_host is None:
            raise ValueError(
                "ENGAGEMENT_JOBS_NOTIFICATIONS_MQTT_HOST is required when "
                "ENGAGEMENT_JOBS_NOTIFICATIONS_MQTT_ENABLED=true."
            )
        return MqttNotifier(
            node_id=settings.node_id,
            broker_host=settings.notifications_mqtt_host,
            broker_port=settings.notifications_mqtt_port,
            topic_prefix=settings.notifications_mqtt_topic_prefix,
            qos=settings.notifications_mqtt_qos,
            username=settings.notifications_mqtt_username,
            password=settings.notifications_mqtt_password,
        )
    if settings.notification_webhook_url:
        return WebhookNotifier(
            url=settings.notification_webhook_url,
            node_id=settings.node_id,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return NoopNotifier()


def _build_retry_policies(settings: Settings) -> dict[RetryPolicyClass, RetryPolicy]:
    return {
        RetryPolicyClass.DEFAULT: RetryPolicy(
            max_attempts=settings.retry_default_max_attempts,
            base_delay=settings.retry_default_base_delay_seconds,
            backoff_multiplier=settings.retry_default_backoff_multiplier,
        ),
        RetryPolicyClass.NETWORK: RetryPolicy(
            max_attempts=settings.retry_network_max_attempts,
            base_delay=settings.retry_network_base_delay_seconds,
            backoff_multiplier=settings.retry_network_backoff_multiplier,
        ),
        RetryPolicyClass.DATABASE: RetryPolicy(
            max_attempts=settings.retry_database_max_attempts,
            base_delay=settings.retry_database_base_delay_seconds,
            backoff_multiplier=settings.retry_database_backoff_multiplier,
        ),
    }


def _build_generation_client(settings: Settings) -> GenerationApiClient | None:
    if settings.generation_api_url is None:
        return None
    if not settings.generation_api_key:
        logger.warning(
            "ENGAGEMENT_JOBS_GENERATION_API_URL is set but "
            "ENGAGEMENT_JOBS_GENERATION_API_KEY is missing. "
            "The '%s' handler will not be registered.",
            API_GENERATION_JOB_TYPE,
        )
        return None
    return GenerationApiClient(
        base_url=settings.generation_api_url,
        api_key=settings.generation_api_key,
        site_url=settings.generation_site_url,
        timeout_seconds=settings.generation_api_timeout_seconds,
    )


def _register_default_handlers(runtime: JobRuntime, settings: Settings) -> None:
    runtime.register_handler(
        MAINTENANCE_CLEANUP_JOB_TYPE,
        MaintenanceCleanupHandler(runtime.run_maintenance),
    )
    generation_client = _build_generation_client(settings)
    if generation_client is not None:
        runtime.register_handler(API_GENERATION_JOB_TYPE, ApiGenerationHandler(generation_client))


def build_job_runtime(settings: Settings, store: StoreAdapter | None = None) -> JobRuntime:
    """Compose the job runtime graph."""

    store = store if store is not None else _build_store(settings)
    notifier = _build_notifier(settings)

    job_store = JobStore(store, dedupe_window_seconds=settings.dedupe_window_seconds)
    lock = DistributedLock(
        store,
        max_retries=settings.lock_acquire_retries,
        retry_delay_seconds=settings.lock_retry_delay_seconds,
    )
    registry = HandlerRegistry()
    circuit_breaker = CircuitBreaker(
        default_config=CircuitBreakerConfig(
            failure_threshold=settings.circuit_failure_threshold,
            timeout_seconds=settings.circuit_timeout_seconds,
        ),
        on_open=notifier.notify_circuit_opened,
    )
    status_tracker = StatusTracker(
        job_store,
        cache_ttl_seconds=settings.status_cache_ttl_seconds,
    )
    executor = JobExecutor(
        job_store,
        registry,
        status_tracker,
        retry_policies=_build_retry_policies(settings),
        job_retry_classes=settings.job_retry_classes,
        circuit_breaker=circuit_breaker,
        monitored_services=settings.monitored_job_services,
        notifier=notifier,
        job_timeout_seconds=settings.job_timeout_seconds,
    )
    dispatcher = Dispatcher(
        job_store,
        lock,
        executor,
        lock_name=settings.dispatcher_lock_name,
        lock_ttl_seconds=settings.dispatcher_lock_ttl_seconds,
        lock_acquire_retries=settings.lock_acquire_retries,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        worker_pool_size=settings.worker_pool_size,
        stalled_after_seconds=(
            settings.job_timeout_seconds + settings.stalled_job_grace_seconds
        ),
    )
    runtime = JobRuntime(
        job_store=job_store,
        lock=lock,
        registry=registry,
        circuit_breaker=circuit_breaker,
        status_tracker=status_tracker,
        executor=executor,
        dispatcher=dispatcher,
        retention_seconds=settings.retention_days * 86400.0,
        stats_window_seconds=settings.stats_window_seconds,
        notifier=notifier,
    )
    if settings.scheduler_enabled:
        runtime.attach_trigger(
            DispatcherTicker(
                runtime.run_tick,
                runtime.sweep,
                interval_seconds=settings.dispatcher_interval_seconds,
                sweep_interval_seconds=settings.retention_sweep_interval_seconds,
            )
        )

    _register_default_handlers(runtime, settings)
    return runtime


__all__ = ["build_job_runtime"]
