"""Retry policy classes and backoff math."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum


class RetryPolicyClass(StrEnum):
    """Named retry profiles selectable per job type."""

    DEFAULT = "default"
    NETWORK = "network"
    DATABASE = "database"


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Attempt ceiling and exponential backoff parameters."""

    max_attempts: int = 3
    base_delay: float = 60.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0.")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1.")

    def configure(self, **overrides: float) -> RetryPolicy:
        """Return a copy with selected fields replaced."""

        return replace(self, **overrides)  # type: ignore[arg-type]


DEFAULT_RETRY_POLICIES: dict[RetryPolicyClass, RetryPolicy] = {
    RetryPolicyClass.DEFAULT: RetryPolicy(max_attempts=3, base_delay=60.0, backoff_multiplier=2.0),
    RetryPolicyClass.NETWORK: RetryPolicy(max_attempts=5, base_delay=30.0, backoff_multiplier=1.5),
    RetryPolicyClass.DATABASE: RetryPolicy(
        max_attempts=3, base_delay=120.0, backoff_multiplier=2.5
    ),
}


def delay(attempt: int, policy: RetryPolicy) -> float:
    """Return seconds to wait before retrying after `attempt` (1-indexed) failed."""

    if attempt < 1:
        raise ValueError("attempt is 1-indexed.")
    return policy.base_delay * policy.backoff_multiplier ** (attempt - 1)


def should_retry(attempt: int, policy: RetryPolicy) -> bool:
    """Return whether another attempt is allowed after `attempt` attempts."""

    return attempt < policy.max_attempts


__all__ = [
    "DEFAULT_RETRY_POLICIES",
    "RetryPolicy",
    "RetryPolicyClass",
    "delay",
    "should_retry",
]
