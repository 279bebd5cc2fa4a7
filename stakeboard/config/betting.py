"""Group betting configuration.

Defines the closed sets of period types and payout structures, and the
per-group settings that settlement reads. Entry fees are real currency
amounts in the game's ledger but no money ever moves through this system.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from stakeboard.exceptions import InvalidBettingConfigError
from stakeboard.serialization import money_to_str, to_money


class PeriodType(str, Enum):
    """Betting window lengths."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SEASON = "season"


class PayoutStructure(str, Enum):
    """How a period's pot is split between the top finishers."""
    WINNER_TAKE_ALL = "winner-take-all"
    TOP_3 = "top-3"
    TOP_5 = "top-5"


@dataclass(frozen=True)
class BettingSettings:
    """Betting configuration for one group."""
    enabled: bool = False
    entry_fee: Decimal = Decimal("10.00")
    payout_structure: PayoutStructure = PayoutStructure.WINNER_TAKE_ALL
    weekly_enabled: bool = False
    monthly_enabled: bool = True
    season_enabled: bool = True

    def __post_init__(self):
        if not isinstance(self.entry_fee, Decimal):
            raise InvalidBettingConfigError(
                f"entry_fee must be a Decimal, got {type(self.entry_fee).__name__}"
            )
        if self.entry_fee <= 0:
            raise InvalidBettingConfigError(
                f"entry_fee must be positive, got {self.entry_fee}"
            )
        if not isinstance(self.payout_structure, PayoutStructure):
            raise InvalidBettingConfigError(
                f"unknown payout structure {self.payout_structure!r}"
            )

    def period_enabled(self, period_type: PeriodType) -> bool:
        if period_type is PeriodType.WEEKLY:
            return self.weekly_enabled
        if period_type is PeriodType.MONTHLY:
            return self.monthly_enabled
        if period_type is PeriodType.SEASON:
            return self.season_enabled
        raise InvalidBettingConfigError(f"unknown period type {period_type!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "entry_fee": money_to_str(self.entry_fee),
            "payout_structure": self.payout_structure.value,
            "weekly_enabled": self.weekly_enabled,
            "monthly_enabled": self.monthly_enabled,
            "season_enabled": self.season_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BettingSettings":
        try:
            structure = PayoutStructure(
                data.get("payout_structure", PayoutStructure.WINNER_TAKE_ALL.value)
            )
        except ValueError as e:
            raise InvalidBettingConfigError(str(e)) from e
        return cls(
            enabled=bool(data.get("enabled", False)),
            entry_fee=to_money(data.get("entry_fee", "10.00")),
            payout_structure=structure,
            weekly_enabled=bool(data.get("weekly_enabled", False)),
            monthly_enabled=bool(data.get("monthly_enabled", True)),
            season_enabled=bool(data.get("season_enabled", True)),
        )


@dataclass(frozen=True)
class GroupConfig:
    """A group of players and its betting settings."""
    id: str
    name: str
    member_ids: tuple[str, ...] = field(default_factory=tuple)
    betting: BettingSettings | None = None

    @property
    def betting_enabled(self) -> bool:
        return self.betting is not None and self.betting.enabled

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "member_ids": list(self.member_ids),
            "betting": self.betting.to_dict() if self.betting else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroupConfig":
        betting = data.get("betting")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            member_ids=tuple(data.get("member_ids", ())),
            betting=BettingSettings.from_dict(betting) if betting else None,
        )
