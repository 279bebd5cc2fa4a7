"""Betting ledger and statistics for Stakeboard."""

from stakeboard.services.ledger.history import BettingHistoryEntry, record_betting_history
from stakeboard.services.ledger.stats import (
    GroupBreakdown,
    PeriodTypeBreakdown,
    UserBettingStats,
    aggregate_user_stats,
)

__all__ = [
    "BettingHistoryEntry",
    "record_betting_history",
    "GroupBreakdown",
    "PeriodTypeBreakdown",
    "UserBettingStats",
    "aggregate_user_stats",
]
