"""Settlement service.

Runs the pure settlement chain against persisted state:

- takes the per-group lock so two settlements of one group never interleave
- reads every member's valuation in one atomic multi-key read
- settles, then commits the period, notification, history entries and the
  idempotency marker (processed game or last-settled date) in one write

Status transitions (period paid, payment acknowledged) go through the same
lock so they cannot race a settlement of the same group.
"""

from dataclasses import replace
from datetime import date, datetime

import structlog

from stakeboard.config import PeriodType, get_settings
from stakeboard.exceptions import (
    LockUnavailableError,
    RecordNotFoundError,
    SettlementInProgressError,
)
from stakeboard.services.ledger import (
    UserBettingStats,
    aggregate_user_stats,
    record_betting_history,
)
from stakeboard.services.payouts import PayoutDistributor
from stakeboard.services.settlement.orchestrator import (
    SettlementResult,
    acknowledge_payment,
    build_game_participants,
    build_portfolio_participants,
    get_active_period_type,
    mark_period_paid,
    resolve_game_period_type,
    settle_period,
)
from stakeboard.services.settlement.records import BettingPeriod, PayoutNotification
from stakeboard.serialization import utcnow
from stakeboard.storage import BettingRepository, KeyValueStore

logger = structlog.get_logger(__name__)


class SettlementService:
    """Settle groups and track payout status against a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        distributor: PayoutDistributor | None = None,
        lock_timeout: float | None = None,
        lock_blocking_timeout: float | None = None,
    ):
        """
        Initialize the service.

        Args:
            store: Key-value store holding groups, portfolios and results
            distributor: Payout policy (defaults to defaults.yaml)
            lock_timeout: Seconds before a held group lock expires
            lock_blocking_timeout: Seconds to wait for a busy group lock
        """
        settings = get_settings()
        self.repository = BettingRepository(store)
        self.store = store
        self.distributor = distributor
        self.lock_timeout = lock_timeout or settings.settlement_lock_timeout
        self.lock_blocking_timeout = (
            lock_blocking_timeout
            if lock_blocking_timeout is not None
            else settings.settlement_lock_blocking_timeout
        )

    def _group_lock(self, group_id: str):
        return self.store.lock(
            f"settlement:{group_id}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_blocking_timeout,
        )

    async def _persist(
        self,
        result: SettlementResult,
        group_name: str,
        *,
        processed_game_id: str | None = None,
        settled_on: date | None = None,
    ) -> None:
        await self.repository.record_settlement(
            result.period,
            result.notification,
            record_betting_history(result.period, group_name),
            processed_game_id=processed_game_id,
            settled_on=settled_on,
        )

    async def settle_group(
        self,
        group_id: str,
        period_type: PeriodType,
        *,
        start_date: datetime | None = None,
        now: datetime | None = None,
        once_per_day: bool = False,
    ) -> SettlementResult | None:
        """
        Settle a portfolio period for a group.

        Args:
            once_per_day: Skip if this period type already settled on now's
                date. Checked under the group lock.

        Returns:
            SettlementResult, or None if betting is disabled, the period type
            is not enabled for the group, no member has a portfolio, or
            (with once_per_day) the period already settled today

        Raises:
            RecordNotFoundError: unknown group
            SettlementInProgressError: another settlement holds the group
        """
        now = now or utcnow()
        try:
            async with self._group_lock(group_id):
                group = await self.repository.get_group(group_id)
                if group is None:
                    raise RecordNotFoundError(f"group {group_id} not found")
                if not group.betting_enabled or not group.betting.period_enabled(period_type):
                    logger.info(
                        "settlement_skipped_not_enabled",
                        group_id=group_id,
                        period_type=period_type.value,
                    )
                    return None

                if once_per_day:
                    last = await self.repository.get_last_settled(group_id, period_type)
                    if last == now.date():
                        logger.debug(
                            "settlement_skipped_already_settled",
                            group_id=group_id,
                            period_type=period_type.value,
                        )
                        return None

                # One read for every member: the snapshot cannot shift underneath us
                users = await self.repository.get_users(group.member_ids)
                portfolios = await self.repository.get_portfolios(group.member_ids)
                snapshot = build_portfolio_participants(group.member_ids, users, portfolios)

                result = settle_period(
                    group,
                    snapshot.participants,
                    period_type,
                    start_date=start_date,
                    end_date=now,
                    now=now,
                    distributor=self.distributor,
                )
                if result is None:
                    return None

                result = replace(result, skipped=snapshot.skipped)
                await self._persist(result, group.name, settled_on=now.date())
        except LockUnavailableError as e:
            raise SettlementInProgressError(f"group {group_id} is being settled") from e

        logger.info(
            "settlement_completed",
            group_id=group_id,
            period_id=result.period.id,
            skipped=len(result.skipped),
        )
        return result

    async def settle_game(
        self,
        group_id: str,
        game_id: str,
        *,
        now: datetime | None = None,
    ) -> SettlementResult | None:
        """
        Settle a finished group game.

        A game settles at most once; later calls return None.

        Raises:
            RecordNotFoundError: unknown group or game
            SettlementInProgressError: another settlement holds the group
        """
        now = now or utcnow()
        try:
            async with self._group_lock(group_id):
                group = await self.repository.get_group(group_id)
                game = await self.repository.get_game(game_id)
                if group is None:
                    raise RecordNotFoundError(f"group {group_id} not found")
                if game is None or game.group_id != group_id:
                    raise RecordNotFoundError(f"game {game_id} not found in group {group_id}")

                if now < game.end_date:
                    logger.debug("game_not_finished", game_id=game_id)
                    return None
                if await self.repository.is_game_processed(game_id):
                    logger.debug("game_already_settled", game_id=game_id)
                    return None
                if not group.betting_enabled:
                    return None

                users = await self.repository.get_users(group.member_ids)
                pick_sets = await self.repository.get_pick_sets(game_id, group.member_ids)
                snapshot = build_game_participants(
                    group.member_ids, users, pick_sets, game.required_picks
                )

                period_type = resolve_game_period_type(
                    group.betting, game.start_date, game.end_date
                )
                result = settle_period(
                    group,
                    snapshot.participants,
                    period_type,
                    game_id=game_id,
                    start_date=game.start_date,
                    end_date=game.end_date,
                    now=now,
                    distributor=self.distributor,
                )
                if result is None:
                    return None

                result = replace(result, skipped=snapshot.skipped)
                await self._persist(result, group.name, processed_game_id=game_id)
        except LockUnavailableError as e:
            raise SettlementInProgressError(f"group {group_id} is being settled") from e

        logger.info(
            "game_settlement_completed",
            group_id=group_id,
            game_id=game_id,
            period_id=result.period.id,
        )
        return result

    async def settle_if_due(
        self,
        group_id: str,
        now: datetime | None = None,
    ) -> SettlementResult | None:
        """Settle a group's calendar period if one closes today and has not settled yet."""
        now = now or utcnow()
        group = await self.repository.get_group(group_id)
        if group is None:
            raise RecordNotFoundError(f"group {group_id} not found")

        period_type = get_active_period_type(group.betting, now)
        if period_type is None:
            return None

        return await self.settle_group(group_id, period_type, now=now, once_per_day=True)

    async def mark_paid(
        self,
        group_id: str,
        period_id: str,
        now: datetime | None = None,
    ) -> BettingPeriod:
        """Move a period to paid."""
        try:
            async with self._group_lock(group_id):
                period = await self.repository.get_period(period_id)
                if period is None or period.group_id != group_id:
                    raise RecordNotFoundError(f"period {period_id} not found in group {group_id}")
                paid = mark_period_paid(period, now)
                await self.repository.update_period(paid)
        except LockUnavailableError as e:
            raise SettlementInProgressError(f"group {group_id} is being settled") from e

        logger.info("period_marked_paid", group_id=group_id, period_id=period_id)
        return paid

    async def acknowledge(
        self,
        notification_id: str,
        user_id: str,
    ) -> PayoutNotification:
        """Acknowledge one member's payment on a notification."""
        notification = await self.repository.get_notification(notification_id)
        if notification is None:
            raise RecordNotFoundError(f"notification {notification_id} not found")

        try:
            async with self._group_lock(notification.group_id):
                # Re-read under the lock
                notification = await self.repository.get_notification(notification_id)
                updated = acknowledge_payment(notification, user_id)
                await self.repository.update_notification(updated)
        except LockUnavailableError as e:
            raise SettlementInProgressError(
                f"group {notification.group_id} is being settled"
            ) from e

        logger.info(
            "payment_acknowledged",
            notification_id=notification_id,
            user_id=user_id,
            fully_acknowledged=updated.fully_acknowledged,
        )
        return updated

    async def user_stats(self, user_id: str) -> UserBettingStats:
        """Aggregate a user's betting history."""
        history = await self.repository.get_history(user_id)
        groups = await self.repository.get_groups({e.group_id for e in history})
        return aggregate_user_stats(user_id, history, groups)
