"""Expiring key-value storage backends.

Every write carries a time-to-live. Expired entries read as missing; they are
not eagerly deleted, a later write to the same key simply replaces them.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from typing import Any
from typing import Callable
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects import sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from friendle.web.models import KVEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60 * 24 * 365

Clock = Callable[[], datetime]

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(
        self, key: str, value: str, ttl_seconds: int | None = DEFAULT_TTL_SECONDS
    ) -> None: ...


async def get_json(store: KeyValueStore, key: str) -> Any:
    """Read and decode a JSON value, or ``None`` when the key is missing."""
    raw = await store.get(key)
    if raw is None:
        return None
    return json.loads(raw)


async def put_json(
    store: KeyValueStore, key: str, value: Any, ttl_seconds: int | None = DEFAULT_TTL_SECONDS
) -> None:
    await store.put(key, json.dumps(value, ensure_ascii=False), ttl_seconds)


class SQLKeyValueStore:
    """Key-value store over the ``kv_entries`` table.

    Writes go through the caller's session; committing is left to the session
    owner (``get_db_session`` commits at the end of each request).
    """

    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self.session = session
        self._clock = clock or _utcnow

    async def get(self, key: str) -> str | None:
        result = await self.session.execute(
            select(KVEntry.value, KVEntry.expires_at).where(KVEntry.key == key)
        )
        row = result.one_or_none()
        if row is None:
            return None
        if row.expires_at is not None and _as_utc(row.expires_at) <= self._clock():
            return None
        return row.value

    async def put(
        self, key: str, value: str, ttl_seconds: int | None = DEFAULT_TTL_SECONDS
    ) -> None:
        """Insert or replace ``key`` in a single statement.

        Concurrent first writes to the same key resolve to last-writer-wins
        instead of a unique-key violation.
        """
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds else None

        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise ValueError(f"Unsupported database dialect for key-value store: {dialect}")

        stmt = insert(KVEntry).values(
            key=key, value=value, expires_at=expires_at, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={
                "value": stmt.excluded.value,
                "expires_at": stmt.excluded.expires_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)


class MemoryKeyValueStore:
    """In-process store used by tests and single-process local runs."""

    def __init__(self, clock: Clock | None = None):
        self._data: dict[str, tuple[str, datetime | None]] = {}
        self._clock = clock or _utcnow

    async def get(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            return None
        return value

    async def put(
        self, key: str, value: str, ttl_seconds: int | None = DEFAULT_TTL_SECONDS
    ) -> None:
        expires_at = self._clock() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._data[key] = (value, expires_at)

    def keys(self) -> list[str]:
        return list(self._data)
