"""Persistence for Stakeboard."""

from stakeboard.storage.base import KeyValueStore, MemoryKeyValueStore, WriteBatch
from stakeboard.storage.redis_store import RedisKeyValueStore
from stakeboard.storage.repository import BettingRepository

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "WriteBatch",
    "RedisKeyValueStore",
    "BettingRepository",
]
