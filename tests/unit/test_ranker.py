"""Unit tests for leaderboard ranking."""

from operator import attrgetter

import pytest

from stakeboard.services.leaderboard import Participant, rank_standings


class TestRankStandings:
    """Test ordering and rank assignment."""

    def test_orders_best_first(self, four_participants):
        standings = rank_standings(four_participants)

        assert [s.user_id for s in standings] == ["bob", "dave", "alice", "carol"]
        assert [s.rank for s in standings] == [1, 2, 3, 4]

    def test_ranks_are_contiguous(self, four_participants):
        standings = rank_standings(four_participants)
        assert sorted(s.rank for s in standings) == list(range(1, len(four_participants) + 1))

    def test_non_increasing_metric(self, four_participants):
        standings = rank_standings(four_participants)
        percents = [s.return_percent for s in standings]
        assert percents == sorted(percents, reverse=True)

    def test_ties_keep_input_order(self):
        participants = [
            Participant(user_id="x", return_percent=5.0),
            Participant(user_id="y", return_percent=9.0),
            Participant(user_id="z", return_percent=5.0),
        ]
        first = rank_standings(participants)
        second = rank_standings(participants)

        assert [s.user_id for s in first] == ["y", "x", "z"]
        assert first == second

    def test_custom_metric(self, four_participants):
        standings = rank_standings(
            four_participants, metric=lambda p: -p.return_value
        )
        assert standings[0].user_id == "carol"

    def test_attrgetter_metric(self, four_participants):
        standings = rank_standings(four_participants, metric=attrgetter("return_value"))
        assert standings[0].user_id == "bob"

    def test_empty(self):
        assert rank_standings([]) == []

    def test_nan_metric_rejected(self):
        with pytest.raises(ValueError):
            rank_standings([Participant(user_id="x", return_percent=float("nan"))])

    def test_display_fields_carried(self, four_participants):
        standings = rank_standings(four_participants)
        assert standings[0].username == "Bob"
        assert standings[0].return_value == 1250.0
