"""Leaderboard ranking.

Orders participants by a return metric, best first, and assigns ranks
1..N. Ties keep their input order (Python's sort is stable), so the same
input always produces the same ranking.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal
from operator import attrgetter
from typing import Any, Callable, Iterable

from stakeboard.serialization import money_to_str, to_money


@dataclass(frozen=True)
class Participant:
    """A group member with a computed valuation, ready to be ranked."""

    user_id: str
    return_percent: float
    return_value: float = 0.0
    username: str = ""
    avatar: str = ""


@dataclass(frozen=True)
class Standing:
    """One participant's ranked position within a settlement."""

    user_id: str
    rank: int
    return_percent: float
    return_value: float = 0.0
    username: str = ""
    avatar: str = ""
    amount_owed: Decimal = field(default_factory=lambda: Decimal("0.00"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "avatar": self.avatar,
            "rank": self.rank,
            "return_percent": self.return_percent,
            "return_value": self.return_value,
            "amount_owed": money_to_str(self.amount_owed),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Standing":
        return cls(
            user_id=data["user_id"],
            username=data.get("username", ""),
            avatar=data.get("avatar", ""),
            rank=int(data["rank"]),
            return_percent=float(data["return_percent"]),
            return_value=float(data.get("return_value", 0.0)),
            amount_owed=to_money(data.get("amount_owed", "0")),
        )


MetricSelector = Callable[[Participant], float]

return_percent: MetricSelector = attrgetter("return_percent")


def rank_standings(
    participants: Iterable[Participant],
    metric: MetricSelector = return_percent,
) -> list[Standing]:
    """
    Rank participants by metric, highest first.

    Args:
        participants: Participants to rank
        metric: Selects the comparable value from a participant

    Returns:
        Standings with ranks 1..N; equal metrics keep their input order

    Raises:
        ValueError: a metric is NaN (it has no place in the order)
    """
    scored = []
    for participant in participants:
        value = float(metric(participant))
        if math.isnan(value):
            raise ValueError(f"metric for {participant.user_id} is NaN")
        scored.append((value, participant))

    # reverse=True keeps equal keys in input order
    scored.sort(key=lambda item: item[0], reverse=True)

    return [
        Standing(
            user_id=participant.user_id,
            username=participant.username,
            avatar=participant.avatar,
            rank=index + 1,
            return_percent=participant.return_percent,
            return_value=participant.return_value,
        )
        for index, (_, participant) in enumerate(scored)
    ]
