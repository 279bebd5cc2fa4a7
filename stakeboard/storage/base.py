"""Key-value store interface.

Settlement logic never talks to storage directly; the settlement service
and the API work against this interface so the store can be swapped
(Redis in production, in-process memory for tests and local runs).

Values are JSON-serializable records. Keys are namespaced by the store's
prefix.
"""

from __future__ import annotations

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog

from stakeboard.exceptions import LockUnavailableError

logger = structlog.get_logger(__name__)


@dataclass
class WriteBatch:
    """Writes applied together by KeyValueStore.commit(): all of them or none."""

    sets: list[tuple[str, Any]] = field(default_factory=list)
    appends: list[tuple[str, list[Any]]] = field(default_factory=list)
    set_adds: list[tuple[str, str]] = field(default_factory=list)

    def set(self, key: str, value: Any) -> WriteBatch:
        self.sets.append((key, value))
        return self

    def append(self, key: str, values: Iterable[Any]) -> WriteBatch:
        values = list(values)
        if values:
            self.appends.append((key, values))
        return self

    def add_to_set(self, key: str, member: str) -> WriteBatch:
        self.set_adds.append((key, member))
        return self


class KeyValueStore(ABC):
    """Async key-value store for JSON records."""

    def __init__(self, key_prefix: str = "stakeboard"):
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value, or None if missing."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any existing one."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key if it exists."""

    @abstractmethod
    async def get_many(self, keys: list[str]) -> list[Any | None]:
        """Read several keys in one atomic operation."""

    @abstractmethod
    async def append(self, key: str, values: Iterable[Any]) -> None:
        """Atomically append values to a list."""

    @abstractmethod
    async def get_list(self, key: str) -> list[Any]:
        """Get all values of a list (empty if missing)."""

    @abstractmethod
    async def add_to_set(self, key: str, member: str) -> bool:
        """Add a member to a set. Returns True if it was not already present."""

    @abstractmethod
    async def get_set(self, key: str) -> set[str]:
        """Get all members of a set (empty if missing)."""

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """Apply every write in the batch atomically."""

    @abstractmethod
    def lock(
        self,
        name: str,
        timeout: float,
        blocking_timeout: float,
    ):
        """
        Async context manager holding an exclusive named lock.

        Args:
            name: Lock name
            timeout: Seconds after which a held lock expires
            blocking_timeout: Seconds to wait for the lock

        Raises:
            LockUnavailableError: lock not acquired within blocking_timeout
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Check the store is reachable."""

    async def close(self) -> None:
        """Release any connections."""


class MemoryKeyValueStore(KeyValueStore):
    """
    In-process store.

    Values are round-tripped through JSON on write so anything stored here
    would also be storable in Redis.
    """

    def __init__(self, key_prefix: str = "stakeboard"):
        super().__init__(key_prefix)
        self._data: dict[str, Any] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @staticmethod
    def _freeze(value: Any) -> Any:
        return json.loads(json.dumps(value))

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(self._key(key)))

    async def set(self, key: str, value: Any) -> None:
        self._data[self._key(key)] = self._freeze(value)

    async def delete(self, key: str) -> None:
        self._data.pop(self._key(key), None)

    async def get_many(self, keys: list[str]) -> list[Any | None]:
        return [copy.deepcopy(self._data.get(self._key(k))) for k in keys]

    async def append(self, key: str, values: Iterable[Any]) -> None:
        items = self._data.setdefault(self._key(key), [])
        items.extend(self._freeze(v) for v in values)

    async def get_list(self, key: str) -> list[Any]:
        return copy.deepcopy(self._data.get(self._key(key), []))

    async def add_to_set(self, key: str, member: str) -> bool:
        members = self._data.setdefault(self._key(key), [])
        if member in members:
            return False
        members.append(member)
        return True

    async def get_set(self, key: str) -> set[str]:
        return set(self._data.get(self._key(key), []))

    async def commit(self, batch: WriteBatch) -> None:
        # Encode everything first so a bad value leaves the store untouched
        sets = [(self._key(k), self._freeze(v)) for k, v in batch.sets]
        appends = [
            (self._key(k), [self._freeze(v) for v in values])
            for k, values in batch.appends
        ]
        set_adds = [(self._key(k), str(member)) for k, member in batch.set_adds]

        for key, value in sets:
            self._data[key] = value
        for key, values in appends:
            self._data.setdefault(key, []).extend(values)
        for key, member in set_adds:
            members = self._data.setdefault(key, [])
            if member not in members:
                members.append(member)

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        timeout: float,
        blocking_timeout: float,
    ) -> AsyncIterator[None]:
        lock = self._locks.setdefault(self._key(f"lock:{name}"), asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=blocking_timeout)
        except asyncio.TimeoutError as e:
            raise LockUnavailableError(f"lock {name} is held") from e
        try:
            yield
        finally:
            lock.release()

    async def ping(self) -> bool:
        return True
