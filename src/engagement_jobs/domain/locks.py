"""Distributed lock records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class LockRecord:
    """Lock row as persisted in the locks table."""

    key: str
    owner_token: str
    expires_at: datetime
    acquired_at: datetime
    host: str | None = None
    process_id: int | None = None

    def is_expired(self, now: datetime) -> bool:
        """A lock is dead once its expiry has passed, regardless of owner."""

        return self.expires_at <= now


@dataclass(slots=True, frozen=True)
class LockInfo:
    """Administrative snapshot of one lock."""

    key: str
    owner_token: str
    host: str | None
    process_id: int | None
    acquired_at: datetime
    expires_at: datetime
    is_expired: bool
    remaining_seconds: float


__all__ = ["LockInfo", "LockRecord"]
