"""Unit tests for the key-value stores and the betting repository."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import LockError, RedisError

from stakeboard.config import PeriodType
from stakeboard.exceptions import LockUnavailableError
from stakeboard.services.settlement import UserProfile
from stakeboard.services.valuation import AllocationRequest, build_portfolio
from stakeboard.storage import (
    BettingRepository,
    MemoryKeyValueStore,
    RedisKeyValueStore,
    WriteBatch,
)


class TestMemoryKeyValueStore:
    """Test the in-process store."""

    @pytest.mark.asyncio
    async def test_get_set_delete(self, memory_store):
        await memory_store.set("k", {"a": 1})
        assert await memory_store.get("k") == {"a": 1}

        await memory_store.delete("k")
        assert await memory_store.get("k") is None

    @pytest.mark.asyncio
    async def test_values_are_copies(self, memory_store):
        value = {"items": [1]}
        await memory_store.set("k", value)
        value["items"].append(2)

        stored = await memory_store.get("k")
        stored["items"].append(3)
        assert await memory_store.get("k") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_get_many_keeps_order(self, memory_store):
        await memory_store.set("a", 1)
        await memory_store.set("c", 3)
        assert await memory_store.get_many(["c", "b", "a"]) == [3, None, 1]

    @pytest.mark.asyncio
    async def test_lists_and_sets(self, memory_store):
        await memory_store.append("l", [1, 2])
        await memory_store.append("l", [3])
        assert await memory_store.get_list("l") == [1, 2, 3]
        assert await memory_store.get_list("missing") == []

        assert await memory_store.add_to_set("s", "x") is True
        assert await memory_store.add_to_set("s", "x") is False
        assert await memory_store.get_set("s") == {"x"}

    @pytest.mark.asyncio
    async def test_lock_contention(self, memory_store):
        async with memory_store.lock("g1", timeout=5, blocking_timeout=1):
            with pytest.raises(LockUnavailableError):
                async with memory_store.lock("g1", timeout=5, blocking_timeout=0.01):
                    pass

        # released afterwards
        async with memory_store.lock("g1", timeout=5, blocking_timeout=0.01):
            pass

    @pytest.mark.asyncio
    async def test_locks_are_per_name(self, memory_store):
        async with memory_store.lock("g1", timeout=5, blocking_timeout=1):
            async with memory_store.lock("g2", timeout=5, blocking_timeout=0.01):
                pass

    @pytest.mark.asyncio
    async def test_commit_applies_every_write(self, memory_store):
        await memory_store.add_to_set("s", "x")
        batch = WriteBatch().set("k", {"a": 1}).append("l", [1, 2]).append("l", [3])
        batch.add_to_set("s", "x").add_to_set("s", "y")

        await memory_store.commit(batch)

        assert await memory_store.get("k") == {"a": 1}
        assert await memory_store.get_list("l") == [1, 2, 3]
        assert await memory_store.get_set("s") == {"x", "y"}

    @pytest.mark.asyncio
    async def test_commit_is_all_or_nothing(self, memory_store):
        batch = WriteBatch().set("k", 1).append("l", [1]).set("bad", object())

        with pytest.raises(TypeError):
            await memory_store.commit(batch)

        assert await memory_store.get("k") is None
        assert await memory_store.get_list("l") == []

    def test_empty_append_not_batched(self):
        assert WriteBatch().append("l", []).appends == []

    @pytest.mark.asyncio
    async def test_ping(self, memory_store):
        assert await memory_store.ping()


class TestRedisKeyValueStore:
    """Test the Redis store against a mocked client."""

    def setup_method(self):
        self.client = MagicMock()
        self.client.get = AsyncMock(return_value=json.dumps({"a": 1}))
        self.client.set = AsyncMock()
        self.client.mget = AsyncMock(return_value=[json.dumps(1), None])
        self.client.rpush = AsyncMock()
        self.client.sadd = AsyncMock(return_value=1)
        self.client.ping = AsyncMock(return_value=True)
        self.store = RedisKeyValueStore(self.client, key_prefix="sb")

    @pytest.mark.asyncio
    async def test_keys_are_prefixed_and_json_encoded(self):
        await self.store.set("group:g1", {"id": "g1"})
        self.client.set.assert_awaited_once_with("sb:group:g1", json.dumps({"id": "g1"}))

        assert await self.store.get("group:g1") == {"a": 1}
        self.client.get.assert_awaited_once_with("sb:group:g1")

    @pytest.mark.asyncio
    async def test_get_many_uses_one_mget(self):
        assert await self.store.get_many(["a", "b"]) == [1, None]
        self.client.mget.assert_awaited_once_with(["sb:a", "sb:b"])

    @pytest.mark.asyncio
    async def test_append_skips_empty(self):
        await self.store.append("l", [])
        self.client.rpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_commit_uses_one_transaction(self):
        pipe = MagicMock()
        pipe.__aenter__.return_value = pipe
        pipe.execute = AsyncMock(return_value=[True, 2, 1])
        self.client.pipeline = MagicMock(return_value=pipe)

        batch = WriteBatch().set("period:p1", {"id": "p1"}).append("periods:g1", ["p1"])
        await self.store.commit(batch.add_to_set("processed-games", "game1"))

        self.client.pipeline.assert_called_once_with(transaction=True)
        pipe.set.assert_called_once_with("sb:period:p1", json.dumps({"id": "p1"}))
        pipe.rpush.assert_called_once_with("sb:periods:g1", json.dumps("p1"))
        pipe.sadd.assert_called_once_with("sb:processed-games", "game1")
        pipe.execute.assert_awaited_once()
        self.client.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_commit_encodes_before_queueing(self):
        pipe = MagicMock()
        self.client.pipeline = MagicMock(return_value=pipe)

        with pytest.raises(TypeError):
            await self.store.commit(WriteBatch().set("k", object()))
        self.client.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_not_acquired(self):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=False)
        self.client.lock = MagicMock(return_value=lock)

        with pytest.raises(LockUnavailableError):
            async with self.store.lock("settlement:g1", timeout=60, blocking_timeout=1):
                pass

    @pytest.mark.asyncio
    async def test_lock_expired_before_release(self):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=True)
        lock.release = AsyncMock(side_effect=LockError("expired"))
        self.client.lock = MagicMock(return_value=lock)

        async with self.store.lock("settlement:g1", timeout=60, blocking_timeout=1):
            pass
        self.client.lock.assert_called_once_with(
            "sb:lock:settlement:g1", timeout=60, blocking_timeout=1
        )

    @pytest.mark.asyncio
    async def test_ping_failure(self):
        self.client.ping = AsyncMock(side_effect=RedisError("down"))
        assert await self.store.ping() is False


class TestBettingRepository:
    """Test record mapping onto the store."""

    def setup_method(self):
        self.store = MemoryKeyValueStore()
        self.repository = BettingRepository(self.store)

    @pytest.mark.asyncio
    async def test_group_round_trip(self, make_group):
        group = make_group()
        await self.repository.save_group(group)

        assert await self.repository.get_group("g1") == group
        assert await self.repository.list_group_ids() == ["g1"]
        assert await self.repository.get_group("nope") is None

    @pytest.mark.asyncio
    async def test_portfolios_latest_submission_wins(self):
        prices = {"AAA": 10.0}
        first = build_portfolio("alice", [AllocationRequest("AAA", 100)], prices)
        second = build_portfolio("alice", [AllocationRequest("AAA", 100)], prices)
        await self.repository.save_portfolio(first)
        await self.repository.save_portfolio(second)

        assert (await self.repository.get_portfolio("alice")).id == second.id
        assert await self.repository.list_portfolio_user_ids() == ["alice"]
        assert set(await self.repository.get_portfolios(["alice", "bob"])) == {"alice"}

    @pytest.mark.asyncio
    async def test_users(self):
        await self.repository.save_user(UserProfile(id="alice", username="Alice"))
        users = await self.repository.get_users(["alice", "bob"])
        assert users == {"alice": UserProfile(id="alice", username="Alice")}

    @pytest.mark.asyncio
    async def test_record_settlement(self, make_group, four_participants):
        from stakeboard.services.ledger import record_betting_history
        from stakeboard.services.settlement import settle_period

        now = datetime(2024, 4, 1, tzinfo=timezone.utc)
        assert not await self.repository.is_game_processed("game1")
        assert await self.repository.get_last_settled("g1", PeriodType.MONTHLY) is None

        result = settle_period(make_group(), four_participants, PeriodType.MONTHLY, now=now)
        await self.repository.record_settlement(
            result.period,
            result.notification,
            record_betting_history(result.period),
            processed_game_id="game1",
            settled_on=now.date(),
        )

        assert [p.id for p in await self.repository.list_periods("g1")] == [result.period.id]
        assert await self.repository.list_notifications("g1") == [result.notification]
        assert len(await self.repository.get_history("bob")) == 1
        assert await self.repository.is_game_processed("game1")
        assert await self.repository.get_last_settled("g1", PeriodType.MONTHLY) == now.date()

    @pytest.mark.asyncio
    async def test_prices(self):
        await self.repository.set_prices({"AAA": 12, "BTC": 42000.5})
        assert await self.repository.get_prices() == {"AAA": 12.0, "BTC": 42000.5}

    @pytest.mark.asyncio
    async def test_history_appends_per_user(self, make_group, four_participants):
        from stakeboard.services.ledger import record_betting_history
        from stakeboard.services.settlement import settle_period

        for day in (1, 8):
            now = datetime(2024, 4, day, tzinfo=timezone.utc)
            result = settle_period(make_group(), four_participants, PeriodType.MONTHLY, now=now)
            await self.repository.record_settlement(
                result.period, result.notification, record_betting_history(result.period)
            )

        history = await self.repository.get_history("carol")
        assert len(history) == 2
        assert history[0].amount_lost == 10
        assert history[0].timestamp < history[1].timestamp
        assert await self.repository.get_history("nobody") == []
