"""Settlement records.

Plain, serializable records produced by settlement. A BettingPeriod and
its PayoutNotification are immutable once created; status transitions
return new records (see orchestrator.mark_period_paid and
orchestrator.acknowledge_payment).
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from stakeboard.config import PayoutStructure, PeriodType
from stakeboard.services.leaderboard import Standing
from stakeboard.services.valuation import GamePick
from stakeboard.serialization import (
    datetime_from_str,
    datetime_to_str,
    money_to_str,
    to_money,
)

NOTICE_INSUFFICIENT_PARTICIPANTS = "insufficient_participants"


class PayoutStatus(str, Enum):
    """Period payout lifecycle: pending -> paid."""
    PENDING = "pending"
    PAID = "paid"


class PaymentStatus(str, Enum):
    """Member payment lifecycle: pending -> acknowledged."""
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"


@dataclass(frozen=True)
class UserProfile:
    """Display fields for a player."""

    id: str
    username: str = ""
    avatar: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username, "avatar": self.avatar}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        return cls(
            id=data["id"],
            username=data.get("username", ""),
            avatar=data.get("avatar", ""),
        )


@dataclass(frozen=True)
class WinnerPayout:
    """A payout tier bound to the standing at that rank."""

    user_id: str
    rank: int
    percentage: Decimal
    payout: Decimal
    username: str = ""
    avatar: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "avatar": self.avatar,
            "rank": self.rank,
            "percentage": float(self.percentage),
            "payout": money_to_str(self.payout),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WinnerPayout":
        return cls(
            user_id=data["user_id"],
            username=data.get("username", ""),
            avatar=data.get("avatar", ""),
            rank=int(data["rank"]),
            percentage=Decimal(str(data["percentage"])),
            payout=to_money(data["payout"]),
        )


@dataclass(frozen=True)
class BettingPeriod:
    """The settled outcome of one betting window for a group."""

    id: str
    group_id: str
    period_type: PeriodType
    start_date: datetime
    end_date: datetime
    entry_fee: Decimal
    total_pot: Decimal
    payout_structure: PayoutStructure
    applied_structure: PayoutStructure
    standings: tuple[Standing, ...]
    winner_payouts: tuple[WinnerPayout, ...]
    payout_status: PayoutStatus = PayoutStatus.PENDING
    game_id: str | None = None
    notices: tuple[str, ...] = ()
    created_at: datetime | None = None
    paid_at: datetime | None = None

    @property
    def winner(self) -> WinnerPayout:
        """Rank 1 payout."""
        return self.winner_payouts[0]

    @property
    def winner_ids(self) -> frozenset[str]:
        return frozenset(w.user_id for w in self.winner_payouts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "game_id": self.game_id,
            "period_type": self.period_type.value,
            "start_date": datetime_to_str(self.start_date),
            "end_date": datetime_to_str(self.end_date),
            "entry_fee": money_to_str(self.entry_fee),
            "total_pot": money_to_str(self.total_pot),
            "payout_structure": self.payout_structure.value,
            "applied_structure": self.applied_structure.value,
            "standings": [s.to_dict() for s in self.standings],
            "winner_payouts": [w.to_dict() for w in self.winner_payouts],
            "payout_status": self.payout_status.value,
            "notices": list(self.notices),
            "created_at": datetime_to_str(self.created_at),
            "paid_at": datetime_to_str(self.paid_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BettingPeriod":
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            game_id=data.get("game_id"),
            period_type=PeriodType(data["period_type"]),
            start_date=datetime_from_str(data["start_date"]),
            end_date=datetime_from_str(data["end_date"]),
            entry_fee=to_money(data["entry_fee"]),
            total_pot=to_money(data["total_pot"]),
            payout_structure=PayoutStructure(data["payout_structure"]),
            applied_structure=PayoutStructure(data["applied_structure"]),
            standings=tuple(Standing.from_dict(s) for s in data["standings"]),
            winner_payouts=tuple(
                WinnerPayout.from_dict(w) for w in data["winner_payouts"]
            ),
            payout_status=PayoutStatus(data.get("payout_status", PayoutStatus.PENDING.value)),
            notices=tuple(data.get("notices", ())),
            created_at=datetime_from_str(data.get("created_at")),
            paid_at=datetime_from_str(data.get("paid_at")),
        )


@dataclass(frozen=True)
class MemberPayment:
    """What one non-winning member owes for a period."""

    user_id: str
    amount_owed: Decimal
    payment_status: PaymentStatus = PaymentStatus.PENDING
    username: str = ""
    avatar: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "avatar": self.avatar,
            "amount_owed": money_to_str(self.amount_owed),
            "payment_status": self.payment_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemberPayment":
        return cls(
            user_id=data["user_id"],
            username=data.get("username", ""),
            avatar=data.get("avatar", ""),
            amount_owed=to_money(data["amount_owed"]),
            payment_status=PaymentStatus(
                data.get("payment_status", PaymentStatus.PENDING.value)
            ),
        )


@dataclass(frozen=True)
class PayoutNotification:
    """Tells a group who won a period and who owes what."""

    id: str
    group_id: str
    group_name: str
    period_id: str
    period_type: PeriodType
    winner_id: str
    total_payout: Decimal
    member_payments: tuple[MemberPayment, ...]
    created_at: datetime
    winner_username: str = ""
    winner_avatar: str = ""

    @property
    def fully_acknowledged(self) -> bool:
        return all(
            p.payment_status is PaymentStatus.ACKNOWLEDGED for p in self.member_payments
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "group_name": self.group_name,
            "period_id": self.period_id,
            "period_type": self.period_type.value,
            "winner_id": self.winner_id,
            "winner_username": self.winner_username,
            "winner_avatar": self.winner_avatar,
            "total_payout": money_to_str(self.total_payout),
            "member_payments": [p.to_dict() for p in self.member_payments],
            "created_at": datetime_to_str(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PayoutNotification":
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            group_name=data.get("group_name", ""),
            period_id=data["period_id"],
            period_type=PeriodType(data["period_type"]),
            winner_id=data["winner_id"],
            winner_username=data.get("winner_username", ""),
            winner_avatar=data.get("winner_avatar", ""),
            total_payout=to_money(data["total_payout"]),
            member_payments=tuple(
                MemberPayment.from_dict(p) for p in data.get("member_payments", [])
            ),
            created_at=datetime_from_str(data["created_at"]),
        )


@dataclass(frozen=True)
class GroupGame:
    """A short pick-three contest within a group."""

    id: str
    group_id: str
    start_date: datetime
    end_date: datetime
    name: str = ""
    required_picks: int = 3

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "name": self.name,
            "start_date": datetime_to_str(self.start_date),
            "end_date": datetime_to_str(self.end_date),
            "required_picks": self.required_picks,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroupGame":
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            name=data.get("name", ""),
            start_date=datetime_from_str(data["start_date"]),
            end_date=datetime_from_str(data["end_date"]),
            required_picks=int(data.get("required_picks", 3)),
        )


@dataclass(frozen=True)
class GamePickSet:
    """One member's picks for a group game."""

    user_id: str
    game_id: str
    picks: tuple[GamePick, ...]
    submitted_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "game_id": self.game_id,
            "picks": [p.to_dict() for p in self.picks],
            "submitted_at": datetime_to_str(self.submitted_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GamePickSet":
        return cls(
            user_id=data["user_id"],
            game_id=data["game_id"],
            picks=tuple(GamePick.from_dict(p) for p in data.get("picks", [])),
            submitted_at=datetime_from_str(data["submitted_at"]),
        )
