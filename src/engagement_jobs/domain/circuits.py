"""Circuit breaker state types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """State of one protected dependency."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(slots=True, frozen=True)
class CircuitBreakerConfig:
    """Trip threshold and cooldown for one dependency."""

    failure_threshold: int = 5
    timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1.")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0.")


@dataclass(slots=True, frozen=True)
class CircuitBreakerStatus:
    """Read-only snapshot of one circuit."""

    service_id: str
    state: CircuitState
    failure_count: int
    failure_threshold: int
    last_failure_at: datetime | None
    next_attempt_at: datetime | None
    seconds_until_retry: float
    has_fallback: bool


__all__ = ["CircuitBreakerConfig", "CircuitBreakerStatus", "CircuitState"]
