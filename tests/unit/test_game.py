"""Unit tests for group game pick scoring."""

import pytest

from stakeboard.exceptions import InvalidPickCountError, InvalidPriceError
from stakeboard.services.valuation import (
    GamePick,
    revalue_game_picks,
    score_game_picks,
    value_game_pick,
)


def _pick(symbol, entry, current):
    return GamePick(symbol=symbol, entry_price=entry, current_price=current)


class TestGamePicks:
    """Test pick valuation and the mean-return score."""

    def test_value_game_pick(self):
        pick = value_game_pick(_pick("AAA", 50, 55))
        assert pick.return_value == pytest.approx(5)
        assert pick.return_percent == pytest.approx(10)

    def test_score_is_mean_percent(self):
        picks = [_pick("AAA", 100, 110), _pick("BBB", 10, 9), _pick("CCC", 4, 5)]
        score = score_game_picks(picks, required_picks=3)

        # (10 - 10 + 25) / 3
        assert score.total_return_percent == pytest.approx(25 / 3)
        assert score.total_return_value == pytest.approx(10 - 1 + 1)
        assert len(score.picks) == 3

    def test_wrong_pick_count_rejected(self):
        with pytest.raises(InvalidPickCountError):
            score_game_picks([_pick("AAA", 1, 1)], required_picks=3)

    def test_default_required_picks_is_three(self):
        picks = [_pick("AAA", 1, 1), _pick("BBB", 1, 1)]
        with pytest.raises(InvalidPickCountError):
            score_game_picks(picks)

    def test_zero_entry_price_rejected(self):
        with pytest.raises(InvalidPriceError):
            value_game_pick(_pick("AAA", 0, 1))

    def test_revalue_keeps_unknown_symbols(self):
        picks = [_pick("AAA", 10, 10), _pick("BBB", 20, 20)]
        revalued = revalue_game_picks(picks, {"AAA": 12})

        assert revalued[0].current_price == 12
        assert revalued[0].return_percent == pytest.approx(20)
        assert revalued[1].current_price == 20
        assert revalued[1].return_percent == 0
