"""Application settings."""

import json
from enum import StrEnum
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from engagement_jobs.domain.retry_policy import RetryPolicyClass


class StoreBackend(StrEnum):
    """Available persistence adapters for jobs and locks."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Engagement Jobs"
    api_prefix: str = ""
    node_id: str = "jobs-local"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"
    store_backend: StoreBackend = StoreBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10
    scheduler_enabled: bool = True
    dispatcher_interval_seconds: float = 60.0
    max_concurrent_jobs: int = 3
    worker_pool_size: int = 1
    dispatcher_lock_name: str = "dispatcher"
    dispatcher_lock_ttl_seconds: float = 300.0
    lock_acquire_retries: int = 3
    lock_retry_delay_seconds: float = 0.1
    job_timeout_seconds: float = 300.0
    stalled_job_grace_seconds: float = 60.0
    retention_days: float = 7.0
    retention_sweep_interval_seconds: float = 3600.0
    stats_window_seconds: float = 86400.0
    dedupe_window_seconds: float = 3600.0
    status_cache_ttl_seconds: float = 2.0
    retry_default_max_attempts: int = 3
    retry_default_base_delay_seconds: float = 60.0
    retry_default_backoff_multiplier: float = 2.0
    retry_network_max_attempts: int = 5
    retry_network_base_delay_seconds: float = 30.0
    retry_network_backoff_multiplier: float = 1.5
    retry_database_max_attempts: int = 3
    retry_database_base_delay_seconds: float = 120.0
    retry_database_backoff_multiplier: float = 2.5
    job_retry_classes: Annotated[dict[str, RetryPolicyClass], NoDecode] = Field(
        default_factory=lambda: {"api_generation": RetryPolicyClass.NETWORK}
    )
    circuit_failure_threshold: int = 5
    circuit_timeout_seconds: float = 60.0
    monitored_job_services: Annotated[dict[str, str], NoDecode] = Field(
        default_factory=lambda: {"api_generation": "generation_api"}
    )
    generation_api_url: str | None = None
    generation_api_key: str | None = None
    generation_api_timeout_seconds: float = 30.0
    generation_site_url: str | None = None
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 10.0
    notifications_mqtt_enabled: bool = False
    notifications_mqtt_host: str | None = None
    notifications_mqtt_port: int = 1883
    notifications_mqtt_username: str | None = None
    notifications_mqtt_password: str | None = None
    notifications_mqtt_topic_prefix: str = "engagement/jobs"
    notifications_mqtt_qos: int = 0

    @field_validator("job_retry_classes", "monitored_job_services", mode="before")
    @classmethod
    def parse_csv_mapping(cls, value: object) -> object:
        """Support `type:value,type:value` env var values in addition to JSON objects."""

        if not isinstance(value, str):
            return value
        stripped = value.strip()
        if stripped.startswith("{"):
            return json.loads(stripped)

        mapping: dict[str, str] = {}
        for item in stripped.split(","):
            if not item.strip():
                continue
            key, separator, mapped = item.partition(":")
            if not separator or not key.strip() or not mapped.strip():
                raise ValueError(f"Expected 'key:value' pairs, got '{item.strip()}'.")
            mapping[key.strip()] = mapped.strip()
        return mapping

    @model_validator(mode="after")
    def validate_runtime_settings(self) -> "Settings":
        """Ensure backend-specific and numeric settings are valid."""

        if self.store_backend == StoreBackend.POSTGRES and not self.postgres_dsn:
            raise ValueError(
                "ENGAGEMENT_JOBS_POSTGRES_DSN is required when "
                "ENGAGEMENT_JOBS_STORE_BACKEND=postgres."
            )
        if self.postgres_pool_min_size < 1:
            raise ValueError("ENGAGEMENT_JOBS_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError(
                "ENGAGEMENT_JOBS_POSTGRES_POOL_MAX_SIZE must be >= "
                "ENGAGEMENT_JOBS_POSTGRES_POOL_MIN_SIZE."
            )
        if self.notifications_mqtt_enabled and not self.notifications_mqtt_host:
            raise ValueError(
                "ENGAGEMENT_JOBS_NOTIFICATIONS_MQTT_HOST is required when "
                "ENGAGEMENT_JOBS_NOTIFICATIONS_MQTT_ENABLED=true."
            )
        if self.notifications_mqtt_port < 1:
            raise ValueError("ENGAGEMENT_JOBS_NOTIFICATIONS_MQTT_PORT must be >= 1.")
        if self.notifications_mqtt_qos not in {0, 1, 2}:
            raise ValueError("ENGAGEMENT_JOBS_NOTIFICATIONS_MQTT_QOS must be one of 0, 1, 2.")
        if self.dispatcher_interval_seconds <= 0:
            raise ValueError("ENGAGEMENT_JOBS_DISPATCHER_INTERVAL_SECONDS must be > 0.")
        if self.max_concurrent_jobs < 1:
            raise ValueError("ENGAGEMENT_JOBS_MAX_CONCURRENT_JOBS must be >= 1.")
        if self.worker_pool_size < 1:
            raise ValueError("ENGAGEMENT_JOBS_WORKER_POOL_SIZE must be >= 1.")
        if self.worker_pool_size > self.max_concurrent_jobs:
            raise ValueError(
                "ENGAGEMENT_JOBS_WORKER_POOL_SIZE must be <= "
                "ENGAGEMENT_JOBS_MAX_CONCURRENT_JOBS."
            )
        if self.dispatcher_lock_ttl_seconds <= 0:
            raise ValueError("ENGAGEMENT_JOBS_DISPATCHER_LOCK_TTL_SECONDS must be > 0.")
        if self.lock_acquire_retries < 1:
            raise ValueError("ENGAGEMENT_JOBS_LOCK_ACQUIRE_RETRIES must be >= 1.")
        if self.lock_retry_delay_seconds < 0:
            raise ValueError("ENGAGEMENT_JOBS_LOCK_RETRY_DELAY_SECONDS must be >= 0.")
        if self.job_timeout_seconds <= 0:
            raise ValueError("ENGAGEMENT_JOBS_JOB_TIMEOUT_SECONDS must be > 0.")
        if self.stalled_job_grace_seconds < 0:
            raise ValueError("ENGAGEMENT_JOBS_STALLED_JOB_GRACE_SECONDS must be >= 0.")
        if self.retention_days <= 0:
            raise ValueError("ENGAGEMENT_JOBS_RETENTION_DAYS must be > 0.")
        if self.retention_sweep_interval_seconds <= 0:
            raise ValueError("ENGAGEMENT_JOBS_RETENTION_SWEEP_INTERVAL_SECONDS must be > 0.")
        if self.stats_window_seconds <= 0:
            raise ValueError("ENGAGEMENT_JOBS_STATS_WINDOW_SECONDS must be > 0.")
        for policy_class in RetryPolicyClass:
            prefix = f"retry_{policy_class.value}"
            if getattr(self, f"{prefix}_max_attempts") < 1:
                raise ValueError(f"ENGAGEMENT_JOBS_{prefix.upper()}_MAX_ATTEMPTS must be >= 1.")
            if getattr(self, f"{prefix}_base_delay_seconds") < 0:
                raise ValueError(
                    f"ENGAGEMENT_JOBS_{prefix.upper()}_BASE_DELAY_SECONDS must be >= 0."
                )
            if getattr(self, f"{prefix}_backoff_multiplier") < 1:
                raise ValueError(
                    f"ENGAGEMENT_JOBS_{prefix.upper()}_BACKOFF_MULTIPLIER must be >= 1."
                )
        if self.circuit_failure_threshold < 1:
            raise ValueError("ENGAGEMENT_JOBS_CIRCUIT_FAILURE_THRESHOLD must be >= 1.")
        if self.circuit_timeout_seconds <= 0:
            raise ValueError("ENGAGEMENT_JOBS_CIRCUIT_TIMEOUT_SECONDS must be > 0.")
        if self.generation_api_timeout_seconds <= 0:
            raise ValueError("ENGAGEMENT_JOBS_GENERATION_API_TIMEOUT_SECONDS must be > 0.")
        return self

    model_config = SettingsConfigDict(env_prefix="ENGAGEMENT_JOBS_", extra="ignore")


__all__ = ["Settings", "StoreBackend"]
