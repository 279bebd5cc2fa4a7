"""Per-user betting statistics.

A pure fold over a user's history entries. Nothing is cached or carried
between calls: the same entries always produce the same stats.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping

from stakeboard.config import GroupConfig, PeriodType
from stakeboard.services.ledger.history import BettingHistoryEntry
from stakeboard.serialization import money_to_str

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class PeriodTypeBreakdown:
    wins: int = 0
    losses: int = 0
    net: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {"wins": self.wins, "losses": self.losses, "net": money_to_str(self.net)}


@dataclass(frozen=True)
class GroupBreakdown:
    group_name: str
    wins: int = 0
    losses: int = 0
    net: Decimal = ZERO
    games_played: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_name": self.group_name,
            "wins": self.wins,
            "losses": self.losses,
            "net": money_to_str(self.net),
            "games_played": self.games_played,
        }


@dataclass(frozen=True)
class UserBettingStats:
    """Summary of a user's betting record across all groups."""

    user_id: str
    total_winnings: Decimal = ZERO
    total_losses: Decimal = ZERO
    net_profit: Decimal = ZERO
    total_games: int = 0
    games_won: int = 0
    win_rate: float = 0.0
    average_rank: float = 0.0
    best_rank: int = 0
    by_period_type: dict[PeriodType, PeriodTypeBreakdown] = field(default_factory=dict)
    by_group: dict[str, GroupBreakdown] = field(default_factory=dict)
    history: tuple[BettingHistoryEntry, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_winnings": money_to_str(self.total_winnings),
            "total_losses": money_to_str(self.total_losses),
            "net_profit": money_to_str(self.net_profit),
            "total_games": self.total_games,
            "games_won": self.games_won,
            "win_rate": self.win_rate,
            "average_rank": self.average_rank,
            "best_rank": self.best_rank,
            "by_period_type": {
                period_type.value: breakdown.to_dict()
                for period_type, breakdown in self.by_period_type.items()
            },
            "by_group": {
                group_id: breakdown.to_dict()
                for group_id, breakdown in self.by_group.items()
            },
            "history": [entry.to_dict() for entry in self.history],
        }


def _group_name(
    entry: BettingHistoryEntry,
    group_directory: Mapping[str, GroupConfig | str],
) -> str:
    group = group_directory.get(entry.group_id)
    if isinstance(group, GroupConfig):
        return group.name
    if isinstance(group, str):
        return group
    return entry.group_name


def aggregate_user_stats(
    user_id: str,
    entries: Iterable[BettingHistoryEntry],
    group_directory: Mapping[str, GroupConfig | str] | None = None,
) -> UserBettingStats:
    """
    Fold a user's history entries into summary statistics.

    Args:
        user_id: User to summarise; entries of other users are ignored
        entries: Betting history entries
        group_directory: Group id -> GroupConfig (or display name). Groups
            missing from it fall back to the name stored on the entry.

    Returns:
        UserBettingStats. With no entries every figure is 0, including
        best_rank.
    """
    group_directory = group_directory or {}
    history = [e for e in entries if e.user_id == user_id]

    by_period_type = {period_type: PeriodTypeBreakdown() for period_type in PeriodType}
    by_group: dict[str, GroupBreakdown] = {}

    for entry in history:
        net = entry.amount_won - entry.amount_lost
        won = int(entry.won)

        current = by_period_type[entry.period_type]
        by_period_type[entry.period_type] = PeriodTypeBreakdown(
            wins=current.wins + won,
            losses=current.losses + (1 - won),
            net=current.net + net,
        )

        group = by_group.get(entry.group_id) or GroupBreakdown(
            group_name=_group_name(entry, group_directory)
        )
        by_group[entry.group_id] = GroupBreakdown(
            group_name=group.group_name,
            wins=group.wins + won,
            losses=group.losses + (1 - won),
            net=group.net + net,
            games_played=group.games_played + 1,
        )

    total_games = len(history)
    games_won = sum(1 for e in history if e.won)
    total_winnings = sum((e.amount_won for e in history), ZERO)
    total_losses = sum((e.amount_lost for e in history), ZERO)

    return UserBettingStats(
        user_id=user_id,
        total_winnings=total_winnings,
        total_losses=total_losses,
        net_profit=total_winnings - total_losses,
        total_games=total_games,
        games_won=games_won,
        win_rate=games_won / total_games * 100 if total_games else 0.0,
        average_rank=sum(e.rank for e in history) / total_games if total_games else 0.0,
        best_rank=min((e.rank for e in history), default=0),
        by_period_type=by_period_type,
        by_group=by_group,
        history=tuple(sorted(history, key=lambda e: (e.timestamp, e.id), reverse=True)),
    )
