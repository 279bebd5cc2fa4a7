"""Valuation module for Stakeboard."""

from stakeboard.services.valuation.engine import (
    AllocationRequest,
    AssetType,
    Portfolio,
    PortfolioValuation,
    Position,
    build_portfolio,
    calculate_portfolio_value,
    revalue_portfolio,
    value_position,
)
from stakeboard.services.valuation.game import (
    GamePick,
    GameScore,
    revalue_game_picks,
    score_game_picks,
    value_game_pick,
)

__all__ = [
    "AllocationRequest",
    "AssetType",
    "Portfolio",
    "PortfolioValuation",
    "Position",
    "build_portfolio",
    "calculate_portfolio_value",
    "revalue_portfolio",
    "value_position",
    "GamePick",
    "GameScore",
    "revalue_game_picks",
    "score_game_picks",
    "value_game_pick",
]
