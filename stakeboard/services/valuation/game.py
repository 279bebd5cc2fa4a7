"""Group game valuation.

The group game is the short variant of the contest: each member picks
exactly three assets, and their score is the mean percent return of those
picks. Unlike portfolios there is no allocation or initial value, each pick
is measured per unit from its entry price.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence

from stakeboard.config import get_defaults
from stakeboard.exceptions import InvalidPickCountError
from stakeboard.services.valuation.engine import AssetType, check_prices

DEFAULT_REQUIRED_PICKS = 3


@dataclass(frozen=True)
class GamePick:
    """One asset picked for a group game."""

    symbol: str
    entry_price: float
    current_price: float
    asset_type: AssetType = AssetType.STOCK
    name: str = ""
    return_value: float = 0.0
    return_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "asset_type": self.asset_type.value,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "return_value": self.return_value,
            "return_percent": self.return_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GamePick":
        return cls(
            symbol=data["symbol"],
            name=data.get("name", ""),
            asset_type=AssetType(data.get("asset_type", AssetType.STOCK.value)),
            entry_price=float(data["entry_price"]),
            current_price=float(data["current_price"]),
            return_value=float(data.get("return_value", 0.0)),
            return_percent=float(data.get("return_percent", 0.0)),
        )


@dataclass(frozen=True)
class GameScore:
    """Score of one member's pick set."""

    total_return_percent: float
    total_return_value: float
    picks: tuple[GamePick, ...]


def get_required_picks() -> int:
    game = get_defaults().get("group_game", {})
    return int(game.get("required_picks", DEFAULT_REQUIRED_PICKS))


def value_game_pick(pick: GamePick) -> GamePick:
    """Derive the per-unit return of a pick."""
    check_prices(pick.symbol, pick.entry_price, pick.current_price)
    return_value = pick.current_price - pick.entry_price
    return_percent = return_value / pick.entry_price * 100
    return replace(pick, return_value=return_value, return_percent=return_percent)


def score_game_picks(
    picks: Sequence[GamePick],
    required_picks: int | None = None,
) -> GameScore:
    """
    Score a pick set as the mean percent return across its picks.

    Raises:
        InvalidPickCountError: the set does not hold exactly required_picks
    """
    if required_picks is None:
        required_picks = get_required_picks()
    if len(picks) != required_picks:
        raise InvalidPickCountError(
            f"expected exactly {required_picks} picks, got {len(picks)}"
        )

    valued = tuple(value_game_pick(p) for p in picks)
    return GameScore(
        total_return_percent=math.fsum(p.return_percent for p in valued) / len(valued),
        total_return_value=math.fsum(p.return_value for p in valued),
        picks=valued,
    )


def revalue_game_picks(
    picks: Sequence[GamePick],
    prices: Mapping[str, float],
) -> tuple[GamePick, ...]:
    """Mark picks to the latest prices; unknown symbols keep their last price."""
    return tuple(
        value_game_pick(
            replace(p, current_price=float(prices.get(p.symbol, p.current_price)))
        )
        for p in picks
    )
