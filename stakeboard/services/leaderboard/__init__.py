"""Leaderboard module for Stakeboard."""

from stakeboard.services.leaderboard.ranker import (
    Participant,
    Standing,
    rank_standings,
    return_percent,
)

__all__ = ["Participant", "Standing", "rank_standings", "return_percent"]
