"""Tests for the settlement service against the in-process store."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from stakeboard.config import PayoutStructure, PeriodType
from stakeboard.exceptions import (
    InvalidStatusTransitionError,
    RecordNotFoundError,
    SettlementInProgressError,
)
from stakeboard.services.settlement import GamePickSet, GroupGame, UserProfile
from stakeboard.services.settlement.service import SettlementService
from stakeboard.services.valuation import (
    AllocationRequest,
    GamePick,
    build_portfolio,
    revalue_portfolio,
)
from stakeboard.storage import BettingRepository, MemoryKeyValueStore

SUNDAY = datetime(2024, 3, 3, 18, 0, tzinfo=timezone.utc)

# Each member holds one symbol; closing prices decide the order
HOLDINGS = {"alice": "AAA", "bob": "BBB", "carol": "CCC", "dave": "DDD"}
OPEN_PRICES = {"AAA": 100.0, "BBB": 100.0, "CCC": 100.0, "DDD": 100.0}
CLOSE_PRICES = {"AAA": 104.0, "BBB": 112.0, "CCC": 97.0, "DDD": 107.0}


class FailingCommitStore(MemoryKeyValueStore):
    """Memory store whose next commit fails before writing anything."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.fail_next_commit = True

    async def commit(self, batch):
        if self.fail_next_commit:
            self.fail_next_commit = False
            raise ConnectionError("store went away")
        await super().commit(batch)


async def _seed(repository, group, holdings=HOLDINGS):
    await repository.save_group(group)
    for user_id in group.member_ids:
        await repository.save_user(UserProfile(id=user_id, username=user_id.title()))
    for user_id, symbol in holdings.items():
        portfolio = build_portfolio(
            user_id, [AllocationRequest(symbol, 100)], OPEN_PRICES, initial_value=10000
        )
        await repository.save_portfolio(revalue_portfolio(portfolio, CLOSE_PRICES))


class TestSettleGroup:
    """Test SettlementService.settle_group."""

    def setup_method(self):
        self.now = SUNDAY

    def _service(self, store, **kwargs):
        return SettlementService(store, lock_blocking_timeout=0.05, **kwargs)

    @pytest.mark.asyncio
    async def test_settles_and_persists(self, memory_store, make_group):
        service = self._service(memory_store)
        await _seed(service.repository, make_group())

        result = await service.settle_group("g1", PeriodType.MONTHLY, now=self.now)

        assert result.period.winner.user_id == "bob"
        assert result.period.total_pot == Decimal("40.00")
        assert [s.user_id for s in result.period.standings] == ["bob", "dave", "alice", "carol"]

        repository = service.repository
        periods = await repository.list_periods("g1")
        assert [p.id for p in periods] == [result.period.id]
        assert await repository.get_notification(result.notification.id) == result.notification
        assert len(await repository.get_history("carol")) == 1
        assert await repository.get_last_settled("g1", PeriodType.MONTHLY) == self.now.date()

    @pytest.mark.asyncio
    async def test_members_without_portfolio_skipped(self, memory_store, make_group):
        service = self._service(memory_store)
        await _seed(
            service.repository,
            make_group(),
            holdings={"alice": "AAA", "bob": "BBB"},
        )

        result = await service.settle_group("g1", PeriodType.MONTHLY, now=self.now)

        assert result.skipped == ("carol", "dave")
        assert result.period.total_pot == Decimal("20.00")
        assert len(result.period.standings) == 2

    @pytest.mark.asyncio
    async def test_nobody_to_rank(self, memory_store, make_group):
        service = self._service(memory_store)
        await _seed(service.repository, make_group(), holdings={})

        assert await service.settle_group("g1", PeriodType.MONTHLY, now=self.now) is None
        assert await service.repository.list_periods("g1") == []

    @pytest.mark.asyncio
    async def test_disabled_period_type(self, memory_store, make_group):
        service = self._service(memory_store)
        await _seed(service.repository, make_group())

        assert await service.settle_group("g1", PeriodType.WEEKLY, now=self.now) is None

    @pytest.mark.asyncio
    async def test_unknown_group(self, memory_store):
        service = self._service(memory_store)
        with pytest.raises(RecordNotFoundError):
            await service.settle_group("missing", PeriodType.MONTHLY)

    @pytest.mark.asyncio
    async def test_concurrent_settlement_rejected(self, memory_store, make_group):
        service = self._service(memory_store)
        await _seed(service.repository, make_group())

        async with memory_store.lock("settlement:g1", timeout=60, blocking_timeout=1):
            with pytest.raises(SettlementInProgressError):
                await service.settle_group("g1", PeriodType.MONTHLY, now=self.now)

        assert await service.repository.list_periods("g1") == []

    @pytest.mark.asyncio
    async def test_degraded_structure(self, memory_store, make_group):
        service = self._service(memory_store)
        await _seed(service.repository, make_group(structure=PayoutStructure.TOP_5))

        result = await service.settle_group("g1", PeriodType.SEASON, now=self.now)
        assert result.payout.degraded
        assert result.period.notices == ("insufficient_participants",)


class TestSettleIfDue:
    """Test calendar-driven settlement."""

    @pytest.mark.asyncio
    async def test_weekly_on_sunday_once(self, memory_store, make_group):
        service = SettlementService(memory_store, lock_blocking_timeout=0.05)
        await _seed(service.repository, make_group(weekly_enabled=True))

        first = await service.settle_if_due("g1", now=SUNDAY)
        second = await service.settle_if_due("g1", now=SUNDAY + timedelta(hours=1))

        assert first.period.period_type is PeriodType.WEEKLY
        assert second is None

    @pytest.mark.asyncio
    async def test_concurrent_calls_settle_once(self, memory_store, make_group):
        service = SettlementService(memory_store, lock_blocking_timeout=1)
        await _seed(service.repository, make_group(weekly_enabled=True))

        results = await asyncio.gather(
            service.settle_if_due("g1", now=SUNDAY),
            service.settle_if_due("g1", now=SUNDAY + timedelta(seconds=1)),
        )

        assert len([r for r in results if r is not None]) == 1
        assert len(await service.repository.list_periods("g1")) == 1

    @pytest.mark.asyncio
    async def test_failed_write_leaves_period_due(self, make_group):
        store = FailingCommitStore(key_prefix="test")
        service = SettlementService(store, lock_blocking_timeout=0.05)
        await _seed(service.repository, make_group(weekly_enabled=True))

        with pytest.raises(ConnectionError):
            await service.settle_if_due("g1", now=SUNDAY)

        repository = service.repository
        assert await repository.list_periods("g1") == []
        assert await repository.list_notifications("g1") == []
        assert await repository.get_history("alice") == []
        assert await repository.get_last_settled("g1", PeriodType.WEEKLY) is None

        retry = await service.settle_if_due("g1", now=SUNDAY + timedelta(minutes=5))
        assert retry is not None
        assert len(await repository.list_periods("g1")) == 1

    @pytest.mark.asyncio
    async def test_nothing_due(self, memory_store, make_group):
        service = SettlementService(memory_store)
        await _seed(service.repository, make_group())

        wednesday = datetime(2024, 3, 6, tzinfo=timezone.utc)
        assert await service.settle_if_due("g1", now=wednesday) is None


class TestSettleGame:
    """Test group game settlement."""

    def setup_method(self):
        self.start = datetime(2024, 3, 1, tzinfo=timezone.utc)
        self.end = self.start + timedelta(days=7)

    async def _seed_game(self, repository, group):
        await repository.save_group(group)
        for user_id in group.member_ids:
            await repository.save_user(UserProfile(id=user_id, username=user_id.title()))
        await repository.save_game(
            GroupGame(id="game1", group_id="g1", start_date=self.start, end_date=self.end)
        )
        closes = {"alice": 101.0, "bob": 120.0, "carol": 90.0}
        for user_id, close in closes.items():
            picks = tuple(GamePick(f"S{i}", 100.0, close) for i in range(3))
            await repository.save_pick_set(
                GamePickSet(user_id=user_id, game_id="game1", picks=picks, submitted_at=self.start)
            )

    @pytest.mark.asyncio
    async def test_settles_once_after_end(self, memory_store, make_group):
        service = SettlementService(memory_store)
        await self._seed_game(service.repository, make_group(weekly_enabled=True))

        assert await service.settle_game("g1", "game1", now=self.end - timedelta(hours=1)) is None

        result = await service.settle_game("g1", "game1", now=self.end + timedelta(hours=1))
        assert result.period.game_id == "game1"
        assert result.period.period_type is PeriodType.WEEKLY
        assert result.period.winner.user_id == "bob"
        assert result.skipped == ("dave",)
        assert result.period.total_pot == Decimal("30.00")

        again = await service.settle_game("g1", "game1", now=self.end + timedelta(days=1))
        assert again is None
        assert len(await service.repository.list_periods("g1")) == 1

    @pytest.mark.asyncio
    async def test_failed_write_does_not_mark_game_processed(self, make_group):
        store = FailingCommitStore(key_prefix="test")
        service = SettlementService(store)
        await self._seed_game(service.repository, make_group(weekly_enabled=True))

        with pytest.raises(ConnectionError):
            await service.settle_game("g1", "game1", now=self.end + timedelta(hours=1))

        repository = service.repository
        assert not await repository.is_game_processed("game1")
        assert await repository.list_periods("g1") == []
        assert await repository.get_history("bob") == []

        result = await service.settle_game("g1", "game1", now=self.end + timedelta(hours=2))
        assert result.period.game_id == "game1"
        assert len(await repository.list_periods("g1")) == 1

    @pytest.mark.asyncio
    async def test_unknown_game(self, memory_store, make_group):
        service = SettlementService(memory_store)
        await service.repository.save_group(make_group())
        with pytest.raises(RecordNotFoundError):
            await service.settle_game("g1", "nope")


class TestStatusUpdates:
    """Test paid and acknowledged updates through the service."""

    @pytest.mark.asyncio
    async def test_mark_paid(self, memory_store, make_group):
        service = SettlementService(memory_store)
        await _seed(service.repository, make_group())
        result = await service.settle_group("g1", PeriodType.MONTHLY, now=SUNDAY)

        paid = await service.mark_paid("g1", result.period.id)
        stored = await service.repository.get_period(result.period.id)
        assert paid.payout_status.value == "paid"
        assert stored == paid

        with pytest.raises(InvalidStatusTransitionError):
            await service.mark_paid("g1", result.period.id)

    @pytest.mark.asyncio
    async def test_mark_paid_unknown_period(self, memory_store):
        service = SettlementService(memory_store)
        with pytest.raises(RecordNotFoundError):
            await service.mark_paid("g1", "missing")

    @pytest.mark.asyncio
    async def test_acknowledge(self, memory_store, make_group):
        service = SettlementService(memory_store)
        await _seed(service.repository, make_group())
        result = await service.settle_group("g1", PeriodType.MONTHLY, now=SUNDAY)

        updated = await service.acknowledge(result.notification.id, "carol")
        stored = await service.repository.get_notification(result.notification.id)
        assert stored == updated
        assert not updated.fully_acknowledged

    @pytest.mark.asyncio
    async def test_user_stats(self, memory_store, make_group):
        service = SettlementService(memory_store)
        await _seed(service.repository, make_group())
        await service.settle_group("g1", PeriodType.MONTHLY, now=SUNDAY)

        winner = await service.user_stats("bob")
        loser = await service.user_stats("carol")
        assert winner.net_profit == Decimal("40.00")
        assert loser.net_profit == Decimal("-10.00")
        assert winner.by_group["g1"].group_name == "Trading Floor"

        nobody = await service.user_stats("zed")
        assert nobody.total_games == 0
