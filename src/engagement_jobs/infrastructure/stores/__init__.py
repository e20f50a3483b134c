"""Store adapter implementations."""

from engagement_jobs.infrastructure.stores.in_memory_store import InMemoryStoreAdapter
from engagement_jobs.infrastructure.stores.postgres_store import PostgresStoreAdapter

__all__ = ["InMemoryStoreAdapter", "PostgresStoreAdapter"]
