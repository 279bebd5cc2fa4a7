"""FastAPI dependencies for Stakeboard."""

from collections.abc import AsyncGenerator

from fastapi import Depends

from stakeboard.config import get_settings
from stakeboard.services.settlement.service import SettlementService
from stakeboard.storage import BettingRepository, KeyValueStore, RedisKeyValueStore


async def get_store() -> AsyncGenerator[KeyValueStore, None]:
    """Get key-value store dependency."""
    settings = get_settings()
    store = RedisKeyValueStore.from_url(settings.redis_url, key_prefix=settings.key_prefix)
    try:
        yield store
    finally:
        await store.close()


def get_repository(store: KeyValueStore = Depends(get_store)) -> BettingRepository:
    """Get repository dependency."""
    return BettingRepository(store)


def get_settlement_service(
    store: KeyValueStore = Depends(get_store),
) -> SettlementService:
    """Get settlement service dependency."""
    return SettlementService(store)
