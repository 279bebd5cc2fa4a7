"""Portfolio revaluation task.

Re-projects every stored portfolio onto the latest prices. Prices are
written to the store by the external market feed; this task only reads
them. Each portfolio is read, revalued and written back under its user's
portfolio lock, the same lock a resubmission takes, so a revaluation can
never overwrite a newer submission.
"""

import asyncio
from datetime import datetime, timezone

import structlog

from stakeboard.config import get_settings
from stakeboard.exceptions import LockUnavailableError, ValuationError
from stakeboard.services.valuation import revalue_portfolio
from stakeboard.storage import BettingRepository, RedisKeyValueStore
from stakeboard.tasks import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=50, time_limit=55)
def revalue_portfolios(self):
    """
    Scheduled: Every minute

    For each portfolio:
    1. Take the user's portfolio lock and read the current submission
    2. Mark positions to the latest prices
    3. Store the revalued portfolio
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_revalue_portfolios_async(self))
    finally:
        loop.close()


async def _revalue_portfolios_async(task):
    """Async implementation of portfolio revaluation."""
    settings = get_settings()
    started_at = datetime.now(timezone.utc)
    stats = {"portfolios_revalued": 0, "invalid_prices": 0, "portfolios_busy": 0}

    store = RedisKeyValueStore.from_url(settings.redis_url, key_prefix=settings.key_prefix)
    repository = BettingRepository(store)
    try:
        prices = await repository.get_prices()
        if not prices:
            logger.info("revaluation_skipped_no_prices")
            return stats

        for user_id in await repository.list_portfolio_user_ids():
            try:
                async with repository.portfolio_lock(
                    user_id,
                    timeout=settings.settlement_lock_timeout,
                    blocking_timeout=settings.settlement_lock_blocking_timeout,
                ):
                    portfolio = await repository.get_portfolio(user_id)
                    if portfolio is None:
                        continue
                    revalued = revalue_portfolio(portfolio, prices, now=started_at)
                    await repository.save_portfolio(revalued)
            except LockUnavailableError:
                # Being resubmitted; picked up on the next run
                stats["portfolios_busy"] += 1
                continue
            except ValuationError as e:
                stats["invalid_prices"] += 1
                logger.warning(
                    "revaluation_rejected",
                    user_id=user_id,
                    error=str(e),
                    task_id=task.request.id,
                )
                continue
            stats["portfolios_revalued"] += 1
    finally:
        await store.close()

    logger.info(
        "revalue_portfolios_complete",
        **stats,
        duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
    )
    return stats
