"""Redis-backed key-value store.

Records are stored as JSON strings. Lists map to Redis lists, sets to
Redis sets, and locks use redis-py's token lock (SET NX with expiry) so a
crashed settlement cannot hold a group forever. Batched writes go through a
MULTI/EXEC pipeline.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import LockError, RedisError

from stakeboard.exceptions import LockUnavailableError
from stakeboard.storage.base import KeyValueStore, WriteBatch

logger = structlog.get_logger(__name__)


class RedisKeyValueStore(KeyValueStore):
    """KeyValueStore on top of a redis.asyncio client."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "stakeboard"):
        """
        Initialize the store.

        Args:
            redis_client: Redis client (decode_responses=True)
            key_prefix: Redis key prefix
        """
        super().__init__(key_prefix)
        self.redis = redis_client

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "stakeboard") -> "RedisKeyValueStore":
        return cls(redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    @staticmethod
    def _load(raw: str | None) -> Any | None:
        return json.loads(raw) if raw is not None else None

    async def get(self, key: str) -> Any | None:
        return self._load(await self.redis.get(self._key(key)))

    async def set(self, key: str, value: Any) -> None:
        await self.redis.set(self._key(key), json.dumps(value))

    async def delete(self, key: str) -> None:
        await self.redis.delete(self._key(key))

    async def get_many(self, keys: list[str]) -> list[Any | None]:
        if not keys:
            return []
        # MGET reads every key in one command, so no write can land in between
        raw = await self.redis.mget([self._key(k) for k in keys])
        return [self._load(r) for r in raw]

    async def append(self, key: str, values: Iterable[Any]) -> None:
        encoded = [json.dumps(v) for v in values]
        if encoded:
            await self.redis.rpush(self._key(key), *encoded)

    async def get_list(self, key: str) -> list[Any]:
        raw = await self.redis.lrange(self._key(key), 0, -1)
        return [json.loads(r) for r in raw]

    async def add_to_set(self, key: str, member: str) -> bool:
        return bool(await self.redis.sadd(self._key(key), member))

    async def get_set(self, key: str) -> set[str]:
        return set(await self.redis.smembers(self._key(key)))

    async def commit(self, batch: WriteBatch) -> None:
        encoded_sets = [(self._key(k), json.dumps(v)) for k, v in batch.sets]
        encoded_appends = [
            (self._key(k), [json.dumps(v) for v in values])
            for k, values in batch.appends
        ]
        async with self.redis.pipeline(transaction=True) as pipe:
            for key, value in encoded_sets:
                pipe.set(key, value)
            for key, values in encoded_appends:
                pipe.rpush(key, *values)
            for key, member in batch.set_adds:
                pipe.sadd(self._key(key), member)
            await pipe.execute()

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        timeout: float,
        blocking_timeout: float,
    ) -> AsyncIterator[None]:
        lock = self.redis.lock(
            self._key(f"lock:{name}"),
            timeout=timeout,
            blocking_timeout=blocking_timeout,
        )
        if not await lock.acquire():
            raise LockUnavailableError(f"lock {name} is held")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("lock_expired_before_release", name=name, timeout=timeout)

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.error("redis_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()
