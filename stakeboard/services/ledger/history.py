"""Betting history.

One append-only entry per (user, settled period). Entries are written once
at settlement and never updated; statistics are always re-derived from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from stakeboard.config import PeriodType
from stakeboard.services.settlement.records import BettingPeriod
from stakeboard.serialization import (
    datetime_from_str,
    datetime_to_str,
    money_to_str,
    to_money,
)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BettingHistoryEntry:
    """A user's outcome in one settled period."""

    id: str
    user_id: str
    group_id: str
    period_id: str
    period_type: PeriodType
    timestamp: datetime
    rank: int
    total_participants: int
    return_percent: float
    return_value: float
    amount_won: Decimal = field(default=ZERO)
    amount_lost: Decimal = field(default=ZERO)
    won: bool = False
    group_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "group_id": self.group_id,
            "group_name": self.group_name,
            "period_id": self.period_id,
            "period_type": self.period_type.value,
            "timestamp": datetime_to_str(self.timestamp),
            "rank": self.rank,
            "total_participants": self.total_participants,
            "amount_won": money_to_str(self.amount_won),
            "amount_lost": money_to_str(self.amount_lost),
            "won": self.won,
            "return_percent": self.return_percent,
            "return_value": self.return_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BettingHistoryEntry":
        amount_won = to_money(data.get("amount_won") or "0")
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            group_id=data["group_id"],
            group_name=data.get("group_name", ""),
            period_id=data["period_id"],
            period_type=PeriodType(data["period_type"]),
            timestamp=datetime_from_str(data["timestamp"]),
            rank=int(data["rank"]),
            total_participants=int(data["total_participants"]),
            amount_won=amount_won,
            amount_lost=to_money(data.get("amount_lost") or "0"),
            won=bool(data.get("won", amount_won > 0)),
            return_percent=float(data["return_percent"]),
            return_value=float(data["return_value"]),
        )


def record_betting_history(
    period: BettingPeriod,
    group_name: str = "",
) -> list[BettingHistoryEntry]:
    """
    Create one history entry per standing of a settled period.

    Winners (every rank bound to a payout tier) record their tier payout as
    amount_won, even when a tiny pot rounds it to 0.00; everyone else
    records the entry fee they owe as amount_lost.
    """
    payouts = {w.user_id: w.payout for w in period.winner_payouts}
    timestamp = period.created_at or period.end_date
    total = len(period.standings)

    return [
        BettingHistoryEntry(
            id=f"{period.id}-{standing.user_id}",
            user_id=standing.user_id,
            group_id=period.group_id,
            group_name=group_name,
            period_id=period.id,
            period_type=period.period_type,
            timestamp=timestamp,
            rank=standing.rank,
            total_participants=total,
            amount_won=payouts.get(standing.user_id, ZERO),
            amount_lost=ZERO if standing.user_id in payouts else standing.amount_owed,
            won=standing.user_id in payouts,
            return_percent=standing.return_percent,
            return_value=standing.return_value,
        )
        for standing in period.standings
    ]
