"""Pytest configuration and fixtures for Stakeboard tests."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest


@pytest.fixture
def settled_at():
    """A fixed settlement time (a Sunday)."""
    return datetime(2024, 3, 3, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_group():
    """Factory for groups with betting enabled."""
    from stakeboard.config import BettingSettings, GroupConfig, PayoutStructure

    def _make(
        member_ids=("alice", "bob", "carol", "dave"),
        entry_fee="10.00",
        structure=PayoutStructure.WINNER_TAKE_ALL,
        enabled=True,
        **betting_overrides,
    ):
        return GroupConfig(
            id="g1",
            name="Trading Floor",
            member_ids=tuple(member_ids),
            betting=BettingSettings(
                enabled=enabled,
                entry_fee=Decimal(entry_fee),
                payout_structure=structure,
                **betting_overrides,
            ),
        )

    return _make


@pytest.fixture
def four_participants():
    """Four members with distinct returns, listed out of rank order."""
    from stakeboard.services.leaderboard import Participant

    return [
        Participant(user_id="alice", username="Alice", return_percent=4.2, return_value=420.0),
        Participant(user_id="bob", username="Bob", return_percent=12.5, return_value=1250.0),
        Participant(user_id="carol", username="Carol", return_percent=-3.0, return_value=-300.0),
        Participant(user_id="dave", username="Dave", return_percent=7.1, return_value=710.0),
    ]


@pytest.fixture
def memory_store():
    """Empty in-process key-value store."""
    from stakeboard.storage import MemoryKeyValueStore

    return MemoryKeyValueStore(key_prefix="test")
