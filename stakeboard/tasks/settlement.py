"""Settlement tasks.

Drive the settlement service on a schedule. Each group settles under its
own lock, so a group that is busy (settling from the API, say) is skipped
and picked up on the next run.
"""

import asyncio
from datetime import datetime, timezone

import structlog

from stakeboard.config import get_settings
from stakeboard.exceptions import SettlementInProgressError
from stakeboard.services.settlement.service import SettlementService
from stakeboard.storage import RedisKeyValueStore
from stakeboard.tasks import celery_app

logger = structlog.get_logger(__name__)


def _run(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(bind=True, soft_time_limit=240, time_limit=300)
def settle_due_periods(self):
    """
    Scheduled: Hourly at :05

    For each group:
    1. Skip if no weekly/monthly period closes today
    2. Skip if that period already settled today
    3. Settle it from one snapshot of member portfolios
    """
    return _run(_settle_due_periods_async(self))


async def _settle_due_periods_async(task):
    """Async implementation of calendar settlement."""
    settings = get_settings()
    started_at = datetime.now(timezone.utc)
    stats = {"groups_checked": 0, "periods_settled": 0, "groups_busy": 0, "errors": 0}

    store = RedisKeyValueStore.from_url(settings.redis_url, key_prefix=settings.key_prefix)
    service = SettlementService(store)
    try:
        for group_id in await service.repository.list_group_ids():
            stats["groups_checked"] += 1
            try:
                result = await service.settle_if_due(group_id, now=started_at)
            except SettlementInProgressError:
                stats["groups_busy"] += 1
                logger.info("group_busy_skipped", group_id=group_id)
                continue
            except Exception as e:
                stats["errors"] += 1
                logger.error(
                    "period_settlement_failed",
                    group_id=group_id,
                    error=str(e),
                    task_id=task.request.id,
                )
                continue
            if result is not None:
                stats["periods_settled"] += 1
    finally:
        await store.close()

    logger.info(
        "settle_due_periods_complete",
        **stats,
        duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
    )
    return stats


@celery_app.task(bind=True, soft_time_limit=240, time_limit=300)
def settle_finished_games(self):
    """
    Scheduled: Every 15 minutes

    Settle every group game whose end date has passed and that has not
    been settled yet.
    """
    return _run(_settle_finished_games_async(self))


async def _settle_finished_games_async(task):
    """Async implementation of group game settlement."""
    settings = get_settings()
    started_at = datetime.now(timezone.utc)
    stats = {"games_checked": 0, "games_settled": 0, "groups_busy": 0, "errors": 0}

    store = RedisKeyValueStore.from_url(settings.redis_url, key_prefix=settings.key_prefix)
    service = SettlementService(store)
    try:
        for group_id in await service.repository.list_group_ids():
            for game_id in await service.repository.list_game_ids(group_id):
                stats["games_checked"] += 1
                try:
                    result = await service.settle_game(group_id, game_id, now=started_at)
                except SettlementInProgressError:
                    stats["groups_busy"] += 1
                    break
                except Exception as e:
                    stats["errors"] += 1
                    logger.error(
                        "game_settlement_failed",
                        group_id=group_id,
                        game_id=game_id,
                        error=str(e),
                        task_id=task.request.id,
                    )
                    continue
                if result is not None:
                    stats["games_settled"] += 1
    finally:
        await store.close()

    logger.info(
        "settle_finished_games_complete",
        **stats,
        duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
    )
    return stats
