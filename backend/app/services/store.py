"""Key-value store backends for persisted coverage cells.

Every backend offers single-key get/put/delete and prefix listing with no
cross-key transactions. Writes can be made conditional on the version token
returned by the last read, which is how concurrent merges to the same cell
avoid clobbering each other.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import get_settings
from app.coverage.errors import BudgetExceeded, StorageUnavailable
from app.database import async_session_maker, utc_now
from app.models import KVEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredValue:
    """A value read from the store with its version token."""

    value: Any
    version: int


class KeyValueStore(ABC):
    """Minimal async key-value contract used by the merge coordinator.

    ``put(..., if_version=v)`` only writes when the stored version is still
    ``v``; ``if_version=0`` means the key must not exist yet. Backends that
    cannot honour this set ``conditional_writes`` to False and treat every
    put as unconditional.
    """

    conditional_writes: bool = True

    @abstractmethod
    async def get(self, key: str) -> StoredValue | None:
        """Read a key, or None when it is absent."""

    @abstractmethod
    async def put(self, key: str, value: Any, if_version: int | None = None) -> bool:
        """Write a key. Returns False when a conditional write lost a race."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns False when it did not exist."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """List keys starting with ``prefix`` in ascending order."""


class MemoryStore(KeyValueStore):
    """Process-local store for development and tests.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._data: dict[str, StoredValue] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> StoredValue | None:
        async with self._lock:
            stored = self._data.get(key)
            if stored is None:
                return None
            return StoredValue(copy.deepcopy(stored.value), stored.version)

    async def put(self, key: str, value: Any, if_version: int | None = None) -> bool:
        async with self._lock:
            current = self._data.get(key)
            current_version = current.version if current else 0
            if if_version is not None and if_version != current_version:
                return False
            self._data[key] = StoredValue(copy.deepcopy(value), current_version + 1)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def list_keys(self, prefix: str = "") -> list[str]:
        async with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class SqlKeyValueStore(KeyValueStore):
    """Store backed by the ``kv_entries`` table.

    Each operation uses its own short-lived session so a cell's read and
    write are never held open across unrelated work.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, key: str) -> StoredValue | None:
        try:
            async with self._session_maker() as db:
                result = await db.execute(select(KVEntry).where(KVEntry.key == key))
                entry = result.scalar()
                if entry is None:
                    return None
                return StoredValue(entry.value, entry.version)
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailable(f"get {key} failed: {e}") from e

    async def put(self, key: str, value: Any, if_version: int | None = None) -> bool:
        try:
            async with self._session_maker() as db:
                if if_version == 0:
                    return await self._insert(db, key, value)
                if if_version is not None:
                    result = await db.execute(
                        update(KVEntry)
                        .where(KVEntry.key == key, KVEntry.version == if_version)
                        .values(value=value, version=if_version + 1, updated_at=utc_now())
                        .execution_options(synchronize_session=False)
                    )
                    await db.commit()
                    return result.rowcount == 1

                result = await db.execute(
                    update(KVEntry)
                    .where(KVEntry.key == key)
                    .values(value=value, version=KVEntry.version + 1, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    await db.commit()
                    return True
                return await self._insert(db, key, value)
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailable(f"put {key} failed: {e}") from e

    async def _insert(self, db: AsyncSession, key: str, value: Any) -> bool:
        db.add(KVEntry(key=key, value=value, version=1))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.debug(f"Insert of {key} lost to a concurrent writer")
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            async with self._session_maker() as db:
                result = await db.execute(
                    delete(KVEntry)
                    .where(KVEntry.key == key)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                return result.rowcount > 0
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailable(f"delete {key} failed: {e}") from e

    async def list_keys(self, prefix: str = "") -> list[str]:
        try:
            async with self._session_maker() as db:
                result = await db.execute(
                    select(KVEntry.key)
                    .where(KVEntry.key.startswith(prefix, autoescape=True))
                    .order_by(KVEntry.key)
                )
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailable(f"list {prefix!r} failed: {e}") from e


class BudgetedStore(KeyValueStore):
    """Wrap a store and cap the number of operations one request may issue."""

    def __init__(self, inner: KeyValueStore, max_ops: int):
        self._inner = inner
        self.max_ops = max_ops
        self.ops_used = 0

    @property
    def conditional_writes(self) -> bool:  # type: ignore[override]
        return self._inner.conditional_writes

    @property
    def remaining(self) -> int:
        return max(self.max_ops - self.ops_used, 0)

    def _spend(self) -> None:
        if self.ops_used >= self.max_ops:
            raise BudgetExceeded(f"store operation budget of {self.max_ops} exhausted")
        self.ops_used += 1

    async def get(self, key: str) -> StoredValue | None:
        self._spend()
        return await self._inner.get(key)

    async def put(self, key: str, value: Any, if_version: int | None = None) -> bool:
        self._spend()
        return await self._inner.put(key, value, if_version=if_version)

    async def delete(self, key: str) -> bool:
        self._spend()
        return await self._inner.delete(key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        self._spend()
        return await self._inner.list_keys(prefix)


@lru_cache
def get_store() -> KeyValueStore:
    """Get the configured store backend (cached for the process)."""
    settings = get_settings()
    if settings.store_backend == "memory":
        logger.warning("Using in-memory cell store; data is lost on restart")
        return MemoryStore()
    return SqlKeyValueStore(async_session_maker)
