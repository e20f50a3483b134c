"""Store-backed named mutual exclusion with expiry."""

from __future__ import annotations

import asyncio
import logging
import os
import random
import socket
from collections.abc import Mapping
from datetime import timedelta
from typing import Any
from uuid import uuid4

from engagement_jobs.domain.errors import DuplicateKeyError
from engagement_jobs.domain.locks import LockInfo, LockRecord
from engagement_jobs.domain.ports import StoreAdapter
from engagement_jobs.domain.predicates import GreaterThan, LessEqual

LOCKS_TABLE = "locks"
_DEFAULT_TTL_SECONDS = 300.0
_DEFAULT_MAX_RETRIES = 10
_DEFAULT_RETRY_DELAY_SECONDS = 0.1

logger = logging.getLogger(__name__)


class DistributedLock:
    """Lock rows keyed by resource name; ownership is proven by token."""

    def __init__(
        self,
        store: StoreAdapter,
        *,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = _DEFAULT_RETRY_DELAY_SECONDS,
        host: str | None = None,
        process_id: int | None = None,
    ) -> None:
        self._store = store
        self._max_retries = max(max_retries, 1)
        self._retry_delay_seconds = max(retry_delay_seconds, 0.0)
        self._host = host if host is not None else socket.gethostname()
        self._process_id = process_id if process_id is not None else os.getpid()

    @staticmethod
    def new_token() -> str:
        """Return a fresh owner token for one acquisition attempt."""

        return uuid4().hex

    async def acquire(
        self,
        name: str,
        owner_token: str,
        ttl: float = _DEFAULT_TTL_SECONDS,
        *,
        max_retries: int | None = None,
    ) -> bool:
        """Try to take `name` for `ttl` seconds.

        Returns False when a live lock is held elsewhere after all retries;
        callers treat that as "skip this cycle".
        """

        attempts = self._max_retries if max_retries is None else max(max_retries, 1)
        for attempt in range(1, attempts + 1):
            if await self._try_acquire(name, owner_token, ttl):
                return True
            if attempt < attempts and self._retry_delay_seconds > 0:
                backoff = self._retry_delay_seconds * attempt
                await asyncio.sleep(random.uniform(backoff * 0.5, backoff * 1.5))

        logger.debug("Lock '%s' still held after %s attempts.", name, attempts)
        return False

    async def release(self, name: str, owner_token: str) -> bool:
        """Delete the lock only if `owner_token` still owns it."""

        deleted = await self._store.delete(LOCKS_TABLE, {"key": name, "owner_token": owner_token})
        if deleted == 0:
            logger.warning("Lock '%s' was not released: token no longer owns it.", name)
        return deleted > 0

    async def extend(self, name: str, owner_token: str, additional_ttl: float) -> bool:
        """Push a live lock's expiry forward by `additional_ttl` seconds."""

        now = self._store.now()
        record = await self._read(name)
        if record is None or record.owner_token != owner_token or record.is_expired(now):
            return False

        affected = await self._store.update(
            LOCKS_TABLE,
            {"key": name, "owner_token": owner_token, "expires_at": record.expires_at},
            {"expires_at": record.expires_at + timedelta(seconds=max(additional_ttl, 0.0))},
        )
        return affected == 1

    async def renew(self, name: str, owner_token: str, ttl: float) -> bool:
        """Reset a live lock's expiry to `ttl` seconds from now."""

        now = self._store.now()
        record = await self._read(name)
        if record is None or record.owner_token != owner_token or record.is_expired(now):
            return False

        affected = await self._store.update(
            LOCKS_TABLE,
            {"key": name, "owner_token": owner_token, "expires_at": record.expires_at},
            {"expires_at": now + timedelta(seconds=max(ttl, 0.0))},
        )
        return affected == 1

    async def is_locked(self, name: str) -> bool:
        """Return whether a non-expired lock row exists for `name`."""

        rows = await self._store.select(
            LOCKS_TABLE,
            {"key": name, "expires_at": GreaterThan(self._store.now())},
            limit=1,
        )
        return bool(rows)

    async def get_info(self, name: str) -> LockInfo | None:
        """Return a snapshot of the lock row, live or expired."""

        record = await self._read(name)
        if record is None:
            return None
        now = self._store.now()
        return LockInfo(
            key=record.key,
            owner_token=record.owner_token,
            host=record.host,
            process_id=record.process_id,
            acquired_at=record.acquired_at,
            expires_at=record.expires_at,
            is_expired=record.is_expired(now),
            remaining_seconds=max((record.expires_at - now).total_seconds(), 0.0),
        )

    async def cleanup_expired(self) -> int:
        """Delete dead lock rows and return how many were removed."""

        deleted = await self._store.delete(
            LOCKS_TABLE,
            {"expires_at": LessEqual(self._store.now())},
        )
        if deleted:
            logger.info("Removed %s expired lock rows.", deleted)
        return deleted

    async def _try_acquire(self, name: str, owner_token: str, ttl: float) -> bool:
        now = self._store.now()
        fields = {
            "owner_token": owner_token,
            "expires_at": now + timedelta(seconds=max(ttl, 0.0)),
            "acquired_at": now,
            "host": self._host,
            "process_id": self._process_id,
        }
        try:
            await self._store.insert(LOCKS_TABLE, {"key": name, **fields})
            return True
        except DuplicateKeyError:
            pass

        existing = await self._read(name)
        if existing is None or not existing.is_expired(now):
            return False

        # Both owner and expiry must still match what was read, so only one of
        # several concurrent takeovers can win.
        affected = await self._store.update(
            LOCKS_TABLE,
            {
                "key": name,
                "owner_token": existing.owner_token,
                "expires_at": existing.expires_at,
            },
            fields,
        )
        if affected != 1:
            return False

        logger.info(
            "Took over expired lock '%s' previously held by %s (pid %s).",
            name,
            existing.host or "unknown host",
            existing.process_id,
        )
        return True

    async def _read(self, name: str) -> LockRecord | None:
        rows = await self._store.select(LOCKS_TABLE, {"key": name}, limit=1)
        if not rows:
            return None
        return self._to_record(rows[0])

    def _to_record(self, row: Mapping[str, Any]) -> LockRecord:
        process_id = row.get("process_id")
        return LockRecord(
            key=str(row["key"]),
            owner_token=str(row["owner_token"]),
            expires_at=row["expires_at"],
            acquired_at=row["acquired_at"],
            host=row.get("host"),
            process_id=int(process_id) if process_id is not None else None,
        )


__all__ = ["DistributedLock", "LOCKS_TABLE"]
