"""In-memory store adapter for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from engagement_jobs.domain.errors import DuplicateKeyError, StorageError
from engagement_jobs.domain.predicates import Ordering, Predicate, SortDirection, matches
from engagement_jobs.domain.ports import StoreAdapter

_PRIMARY_KEYS = {
    "jobs": "id",
    "locks": "key",
}


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class InMemoryStoreAdapter(StoreAdapter):
    """Dict-backed tables guarded by one asyncio lock."""

    def __init__(
        self,
        clock: Callable[[], datetime] = _utc_now,
        primary_keys: Mapping[str, str] | None = None,
    ) -> None:
        self._clock = clock
        self._primary_keys = dict(primary_keys or _PRIMARY_KEYS)
        self._tables: dict[str, dict[str, dict[str, Any]]] = {
            table: {} for table in self._primary_keys
        }
        self._lock = asyncio.Lock()

    def now(self) -> datetime:
        return self._clock()

    async def insert(self, table: str, row: Mapping[str, Any]) -> str:
        """Insert a copy of `row`; raise `DuplicateKeyError` on key collision."""

        rows = self._table(table)
        key_column = self._primary_keys[table]
        key = row.get(key_column)
        if key is None:
            raise StorageError(f"Row for table '{table}' is missing '{key_column}'.")

        async with self._lock:
            if key in rows:
                raise DuplicateKeyError(f"Duplicate key '{key}' in table '{table}'.")
            rows[str(key)] = copy.deepcopy(dict(row))
        return str(key)

    async def update(
        self,
        table: str,
        predicate: Predicate,
        fields: Mapping[str, Any],
    ) -> int:
        rows = self._table(table)
        affected = 0
        async with self._lock:
            for row in rows.values():
                if matches(row, predicate):
                    row.update(copy.deepcopy(dict(fields)))
                    affected += 1
        return affected

    async def select(
        self,
        table: str,
        predicate: Predicate,
        order: Ordering = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._table(table)
        async with self._lock:
            selected = [copy.deepcopy(row) for row in rows.values() if matches(row, predicate)]

        # Stable sorts applied from the least significant key.
        for column, direction in reversed(list(order)):
            selected.sort(
                key=lambda row: _sort_key(row.get(column)),
                reverse=SortDirection(direction) is SortDirection.DESC,
            )
        if limit is not None:
            selected = selected[: max(limit, 0)]
        return selected

    async def delete(self, table: str, predicate: Predicate) -> int:
        rows = self._table(table)
        async with self._lock:
            doomed = [key for key, row in rows.items() if matches(row, predicate)]
            for key in doomed:
                del rows[key]
        return len(doomed)

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        rows = self._tables.get(table)
        if rows is None:
            raise StorageError(f"Unknown table '{table}'.")
        return rows


def _sort_key(value: Any) -> tuple[bool, Any]:
    # NULLs sort last, matching PostgreSQL's ascending default.
    return (value is None, value if value is not None else 0)


__all__ = ["InMemoryStoreAdapter"]
