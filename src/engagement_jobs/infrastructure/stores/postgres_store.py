"""PostgreSQL store adapter for jobs and locks."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from engagement_jobs.domain.errors import DuplicateKeyError, StorageError
from engagement_jobs.domain.predicates import (
    Condition,
    GreaterEqual,
    GreaterThan,
    In,
    IsNull,
    LessEqual,
    LessThan,
    NotIn,
    Ordering,
    Predicate,
    SortDirection,
)
from engagement_jobs.domain.ports import StoreAdapter

_TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "jobs": (
        "id",
        "type",
        "payload",
        "priority",
        "attempts",
        "status",
        "progress",
        "message",
        "dedupe_key",
        "scheduled_at",
        "created_at",
        "updated_at",
        "started_at",
        "completed_at",
    ),
    "locks": (
        "key",
        "owner_token",
        "expires_at",
        "acquired_at",
        "host",
        "process_id",
    ),
}
_PRIMARY_KEYS = {"jobs": "id", "locks": "key"}
_JSON_COLUMNS = {"jobs": frozenset({"payload"})}

_COMPARISON_OPERATORS: dict[type[Condition], str] = {
    LessThan: "<",
    LessEqual: "<=",
    GreaterThan: ">",
    GreaterEqual: ">=",
}


class PostgresStoreAdapter(StoreAdapter):
    """Store adapter backed by PostgreSQL through an asyncpg pool."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    def now(self) -> datetime:
        return datetime.now(tz=UTC)

    async def insert(self, table: str, row: Mapping[str, Any]) -> str:
        """Insert one row; primary-key collisions raise `DuplicateKeyError`."""

        columns = self._checked_columns(table, row.keys())
        placeholders = [
            self._placeholder(table, column, index)
            for index, column in enumerate(columns, start=1)
        ]
        params = [self._encode(table, column, row[column]) for column in columns]
        key_column = _PRIMARY_KEYS[table]
        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)}) RETURNING {key_column}"
        )

        pool = await self._get_pool()
        try:
            key = await pool.fetchval(query, *params)
        except asyncpg.UniqueViolationError as exc:
            raise DuplicateKeyError(
                f"Duplicate key '{row.get(key_column)}' in table '{table}'."
            ) from exc
        except (asyncpg.PostgresError, OSError) as exc:
            raise StorageError(f"INSERT into {table} failed: {exc}") from exc
        return str(key)

    async def update(
        self,
        table: str,
        predicate: Predicate,
        fields: Mapping[str, Any],
    ) -> int:
        columns = self._checked_columns(table, fields.keys())
        if not columns:
            return 0
        assignments = [
            f"{column} = {self._placeholder(table, column, index)}"
            for index, column in enumerate(columns, start=1)
        ]
        params = [self._encode(table, column, fields[column]) for column in columns]
        where_sql, where_params = self._compile_where(table, predicate, start=len(params) + 1)
        query = f"UPDATE {table} SET {', '.join(assignments)}{where_sql}"

        result = await self._execute(query, *params, *where_params)
        return self._affected_rows(result)

    async def select(
        self,
        table: str,
        predicate: Predicate,
        order: Ordering = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        columns = _TABLE_COLUMNS[self._checked_table(table)]
        where_sql, params = self._compile_where(table, predicate)
        query = f"SELECT {', '.join(columns)} FROM {table}{where_sql}"
        if order:
            terms = []
            for column, direction in order:
                self._checked_columns(table, [column])
                terms.append(f"{column} {SortDirection(direction).value.upper()}")
            query += f" ORDER BY {', '.join(terms)}"
        if limit is not None:
            params.append(max(limit, 0))
            query += f" LIMIT ${len(params)}"

        pool = await self._get_pool()
        try:
            rows = await pool.fetch(query, *params)
        except (asyncpg.PostgresError, OSError) as exc:
            raise StorageError(f"SELECT from {table} failed: {exc}") from exc
        return [self._decode_row(table, row) for row in rows]

    async def delete(self, table: str, predicate: Predicate) -> int:
        where_sql, params = self._compile_where(table, predicate)
        result = await self._execute(f"DELETE FROM {table}{where_sql}", *params)
        return self._affected_rows(result)

    async def close(self) -> None:
        """Close the pool if one was opened."""

        async with self._pool_lock:
            pool = self._pool
            self._pool = None
        if pool is not None:
            await pool.close()

    async def _execute(self, query: str, *params: Any) -> str:
        pool = await self._get_pool()
        try:
            return await pool.execute(query, *params)
        except (asyncpg.PostgresError, OSError) as exc:
            raise StorageError(f"{query.split(' ', 1)[0]} failed: {exc}") from exc

    def _compile_where(
        self,
        table: str,
        predicate: Predicate,
        start: int = 1,
    ) -> tuple[str, list[Any]]:
        """Translate a predicate mapping into a WHERE clause with positional params."""

        self._checked_columns(table, predicate.keys())
        clauses: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${start + len(params) - 1}"

        for column, expected in predicate.items():
            if expected is None or isinstance(expected, IsNull):
                clauses.append(f"{column} IS NULL")
            elif isinstance(expected, In):
                if not expected.values:
                    clauses.append("FALSE")
                    continue
                values = [self._encode(table, column, value) for value in expected.values]
                clauses.append(f"{column} = ANY({bind(values)})")
            elif isinstance(expected, NotIn):
                if not expected.values:
                    continue
                values = [self._encode(table, column, value) for value in expected.values]
                clauses.append(f"NOT ({column} = ANY({bind(values)}))")
            elif isinstance(expected, Condition):
                operator = _COMPARISON_OPERATORS.get(type(expected))
                if operator is None:
                    raise StorageError(f"Unsupported predicate term {expected!r}.")
                bound = self._encode(table, column, expected.bound)  # type: ignore[attr-defined]
                clauses.append(f"{column} {operator} {bind(bound)}")
            else:
                clauses.append(f"{column} = {bind(self._encode(table, column, expected))}")

        if not clauses:
            return "", params
        return f" WHERE {' AND '.join(clauses)}", params

    def _placeholder(self, table: str, column: str, index: int) -> str:
        if column in _JSON_COLUMNS.get(table, ()):
            return f"${index}::jsonb"
        return f"${index}"

    def _encode(self, table: str, column: str, value: Any) -> Any:
        if column in _JSON_COLUMNS.get(table, ()) and value is not None:
            return json.dumps(value)
        if isinstance(value, Enum):
            return value.value
        return value

    def _decode_row(self, table: str, row: asyncpg.Record) -> dict[str, Any]:
        decoded = dict(row)
        for column in _JSON_COLUMNS.get(table, ()):
            value = decoded.get(column)
            if isinstance(value, str):
                decoded[column] = json.loads(value)
        return decoded

    def _affected_rows(self, status: str) -> int:
        # asyncpg returns command tags such as "UPDATE 3" or "DELETE 0".
        try:
            return int(status.rsplit(" ", 1)[-1])
        except (AttributeError, ValueError):
            return 0

    def _checked_table(self, table: str) -> str:
        if table not in _TABLE_COLUMNS:
            raise StorageError(f"Unknown table '{table}'.")
        return table

    def _checked_columns(self, table: str, columns: Any) -> list[str]:
        allowed = _TABLE_COLUMNS[self._checked_table(table)]
        checked = list(columns)
        unknown = [column for column in checked if column not in allowed]
        if unknown:
            raise StorageError(f"Unknown columns for table '{table}': {', '.join(unknown)}.")
        return checked

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                try:
                    pool = await asyncpg.create_pool(
                        dsn=self._dsn,
                        min_size=self._min_pool_size,
                        max_size=self._max_pool_size,
                    )
                    await self._ensure_schema(pool)
                except (asyncpg.PostgresError, OSError) as exc:
                    raise StorageError(f"Failed to connect to PostgreSQL: {exc}") from exc
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                payload JSONB NOT NULL DEFAULT '{}'::jsonb,
                priority INTEGER NOT NULL DEFAULT 10,
                attempts INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                progress INTEGER NOT NULL DEFAULT 0,
                message TEXT,
                dedupe_key TEXT,
                scheduled_at TIMESTAMPTZ NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ
            );
            CREATE INDEX IF NOT EXISTS idx_jobs_ready
                ON jobs (status, priority, scheduled_at);
            CREATE INDEX IF NOT EXISTS idx_jobs_created_at
                ON jobs (created_at);
            CREATE INDEX IF NOT EXISTS idx_jobs_dedupe_key
                ON jobs (dedupe_key)
                WHERE dedupe_key IS NOT NULL;
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS locks (
                key TEXT PRIMARY KEY,
                owner_token TEXT NOT NULL,
                expires_at TIMESTAMPTZ NOT NULL,
                acquired_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                host TEXT,
                process_id INTEGER
            );
            CREATE INDEX IF NOT EXISTS idx_locks_expires_at
                ON locks (expires_at);
            """
        )


__all__ = ["PostgresStoreAdapter"]
