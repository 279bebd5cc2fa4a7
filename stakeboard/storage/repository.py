"""Betting repository.

Maps Stakeboard records onto store keys:

    group:{id}                      GroupConfig
    group-index                     set of group ids
    user:{id}                       UserProfile
    portfolio:{user_id}             Portfolio (latest submission)
    portfolio-index                 set of user ids with a portfolio
    game:{id}                       GroupGame
    games:{group_id}                set of game ids
    game-picks:{game_id}:{user_id}  GamePickSet
    period:{id}                     BettingPeriod
    periods:{group_id}              list of period ids, oldest first
    notification:{id}               PayoutNotification
    notifications:{group_id}        list of notification ids
    history:{user_id}               list of BettingHistoryEntry (append-only)
    processed-games                 set of settled game ids
    last-settled:{group_id}:{type}  ISO date of the last calendar settlement
    prices                          {symbol: price}
"""

from collections.abc import Iterable
from datetime import date
from typing import Any

from stakeboard.config import GroupConfig, PeriodType
from stakeboard.services.ledger import BettingHistoryEntry
from stakeboard.services.settlement.records import (
    BettingPeriod,
    GamePickSet,
    GroupGame,
    PayoutNotification,
    UserProfile,
)
from stakeboard.services.valuation import Portfolio
from stakeboard.storage.base import KeyValueStore, WriteBatch


class BettingRepository:
    """Typed access to Stakeboard records in a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # Groups

    async def get_group(self, group_id: str) -> GroupConfig | None:
        data = await self.store.get(f"group:{group_id}")
        return GroupConfig.from_dict(data) if data else None

    async def save_group(self, group: GroupConfig) -> None:
        await self.store.set(f"group:{group.id}", group.to_dict())
        await self.store.add_to_set("group-index", group.id)

    async def list_group_ids(self) -> list[str]:
        return sorted(await self.store.get_set("group-index"))

    async def get_groups(self, group_ids: Iterable[str]) -> dict[str, GroupConfig]:
        ids = list(group_ids)
        rows = await self.store.get_many([f"group:{gid}" for gid in ids])
        return {gid: GroupConfig.from_dict(row) for gid, row in zip(ids, rows) if row}

    # Users

    async def save_user(self, user: UserProfile) -> None:
        await self.store.set(f"user:{user.id}", user.to_dict())

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, UserProfile]:
        ids = list(user_ids)
        rows = await self.store.get_many([f"user:{uid}" for uid in ids])
        return {uid: UserProfile.from_dict(row) for uid, row in zip(ids, rows) if row}

    # Portfolios

    async def save_portfolio(self, portfolio: Portfolio) -> None:
        await self.store.set(f"portfolio:{portfolio.user_id}", portfolio.to_dict())
        await self.store.add_to_set("portfolio-index", portfolio.user_id)

    async def get_portfolio(self, user_id: str) -> Portfolio | None:
        data = await self.store.get(f"portfolio:{user_id}")
        return Portfolio.from_dict(data) if data else None

    async def get_portfolios(self, user_ids: Iterable[str]) -> dict[str, Portfolio]:
        """Read several portfolios in one atomic store operation."""
        ids = list(user_ids)
        rows = await self.store.get_many([f"portfolio:{uid}" for uid in ids])
        return {uid: Portfolio.from_dict(row) for uid, row in zip(ids, rows) if row}

    def portfolio_lock(self, user_id: str, timeout: float, blocking_timeout: float):
        """Exclusive lock over one user's portfolio record."""
        return self.store.lock(
            f"portfolio:{user_id}", timeout=timeout, blocking_timeout=blocking_timeout
        )

    async def list_portfolio_user_ids(self) -> list[str]:
        return sorted(await self.store.get_set("portfolio-index"))

    # Group games

    async def save_game(self, game: GroupGame) -> None:
        await self.store.set(f"game:{game.id}", game.to_dict())
        await self.store.add_to_set(f"games:{game.group_id}", game.id)

    async def get_game(self, game_id: str) -> GroupGame | None:
        data = await self.store.get(f"game:{game_id}")
        return GroupGame.from_dict(data) if data else None

    async def list_game_ids(self, group_id: str) -> list[str]:
        return sorted(await self.store.get_set(f"games:{group_id}"))

    async def save_pick_set(self, pick_set: GamePickSet) -> None:
        await self.store.set(
            f"game-picks:{pick_set.game_id}:{pick_set.user_id}", pick_set.to_dict()
        )

    async def get_pick_sets(
        self,
        game_id: str,
        user_ids: Iterable[str],
    ) -> dict[str, GamePickSet]:
        """Read every member's picks in one atomic store operation."""
        ids = list(user_ids)
        rows = await self.store.get_many([f"game-picks:{game_id}:{uid}" for uid in ids])
        return {uid: GamePickSet.from_dict(row) for uid, row in zip(ids, rows) if row}

    async def is_game_processed(self, game_id: str) -> bool:
        return game_id in await self.store.get_set("processed-games")

    # Periods

    async def update_period(self, period: BettingPeriod) -> None:
        await self.store.set(f"period:{period.id}", period.to_dict())

    async def get_period(self, period_id: str) -> BettingPeriod | None:
        data = await self.store.get(f"period:{period_id}")
        return BettingPeriod.from_dict(data) if data else None

    async def list_periods(self, group_id: str) -> list[BettingPeriod]:
        ids = await self.store.get_list(f"periods:{group_id}")
        rows = await self.store.get_many([f"period:{pid}" for pid in ids])
        return [BettingPeriod.from_dict(row) for row in rows if row]

    async def get_last_settled(self, group_id: str, period_type: PeriodType) -> date | None:
        value = await self.store.get(f"last-settled:{group_id}:{period_type.value}")
        return date.fromisoformat(value) if value else None

    # Notifications

    async def update_notification(self, notification: PayoutNotification) -> None:
        await self.store.set(f"notification:{notification.id}", notification.to_dict())

    async def get_notification(self, notification_id: str) -> PayoutNotification | None:
        data = await self.store.get(f"notification:{notification_id}")
        return PayoutNotification.from_dict(data) if data else None

    async def list_notifications(self, group_id: str) -> list[PayoutNotification]:
        ids = await self.store.get_list(f"notifications:{group_id}")
        rows = await self.store.get_many([f"notification:{nid}" for nid in ids])
        return [PayoutNotification.from_dict(row) for row in rows if row]

    # Settlement results

    async def record_settlement(
        self,
        period: BettingPeriod,
        notification: PayoutNotification,
        history: Iterable[BettingHistoryEntry],
        *,
        processed_game_id: str | None = None,
        settled_on: date | None = None,
    ) -> None:
        """
        Write one settlement in a single atomic commit.

        The idempotency marker (processed game, or last-settled date for
        calendar periods) lands together with the period, so a failed write
        never leaves a period that a later run would settle again.
        """
        batch = WriteBatch()
        batch.set(f"period:{period.id}", period.to_dict())
        batch.append(f"periods:{period.group_id}", [period.id])
        batch.set(f"notification:{notification.id}", notification.to_dict())
        batch.append(f"notifications:{notification.group_id}", [notification.id])
        by_user: dict[str, list[dict[str, Any]]] = {}
        for entry in history:
            by_user.setdefault(entry.user_id, []).append(entry.to_dict())
        for user_id, rows in by_user.items():
            batch.append(f"history:{user_id}", rows)
        if processed_game_id is not None:
            batch.add_to_set("processed-games", processed_game_id)
        if settled_on is not None:
            batch.set(
                f"last-settled:{period.group_id}:{period.period_type.value}",
                settled_on.isoformat(),
            )
        await self.store.commit(batch)

    # History

    async def get_history(self, user_id: str) -> list[BettingHistoryEntry]:
        rows = await self.store.get_list(f"history:{user_id}")
        return [BettingHistoryEntry.from_dict(row) for row in rows]

    # Prices

    async def get_prices(self) -> dict[str, float]:
        data = await self.store.get("prices") or {}
        return {symbol: float(price) for symbol, price in data.items()}

    async def set_prices(self, prices: dict[str, float]) -> None:
        await self.store.set("prices", {s: float(p) for s, p in prices.items()})
