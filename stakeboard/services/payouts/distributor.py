"""Tiered payout distribution.

Splits a period's pot between the top finishers according to the group's
payout structure:

    winner-take-all  (min 1 participant)   100
    top-3            (min 3 participants)  60 / 25 / 15
    top-5            (min 5 participants)  40 / 25 / 15 / 12 / 8

A structure whose minimum is not met degrades to winner-take-all. The
degrade is reported on the result (requested vs applied structure) so the
caller can disclose it; it is never a silent substitution.

Rounding: every tier below rank 1 is rounded down to the cent and rank 1
takes the remainder, so payouts always sum exactly to the pot.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from functools import lru_cache
from typing import Any

import structlog

from stakeboard.config import PayoutStructure, get_defaults
from stakeboard.exceptions import InvalidPayoutRequestError
from stakeboard.serialization import CENT, money_to_str, to_money

logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PayoutTier:
    """One share of the pot."""

    rank: int
    percentage: Decimal
    payout: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "percentage": float(self.percentage),
            "payout": money_to_str(self.payout),
        }


@dataclass(frozen=True)
class PayoutResult:
    """Payout tiers plus the structure actually applied."""

    total_pot: Decimal
    requested_structure: PayoutStructure
    applied_structure: PayoutStructure
    participant_count: int
    tiers: tuple[PayoutTier, ...]

    @property
    def degraded(self) -> bool:
        """True when the requested structure needed more participants."""
        return self.requested_structure is not self.applied_structure

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_pot": money_to_str(self.total_pot),
            "requested_structure": self.requested_structure.value,
            "applied_structure": self.applied_structure.value,
            "participant_count": self.participant_count,
            "degraded": self.degraded,
            "tiers": [t.to_dict() for t in self.tiers],
        }


@dataclass(frozen=True)
class StructurePolicy:
    """Minimum participant count and percentage split for one structure."""

    min_participants: int
    split: tuple[Decimal, ...]


class PayoutDistributor:
    """
    Turn a pot into payout tiers.

    The policy table comes from the `payouts` section of defaults.yaml
    unless a config dict is passed in.
    """

    def __init__(self, config: dict[str, Any] | None = None):
        """
        Initialize the distributor.

        Args:
            config: Optional payouts configuration. If not provided,
                   loads from defaults.yaml
        """
        if config is None:
            config = self._load_default_config()

        self.config = config
        self.policies = self._parse_policies(config.get("structures", {}))

        self._validate_config()

    def _load_default_config(self) -> dict[str, Any]:
        """Load payouts config from defaults.yaml."""
        payouts = get_defaults().get("payouts")
        if payouts:
            return payouts
        return self._get_fallback_config()

    def _get_fallback_config(self) -> dict[str, Any]:
        """Fallback configuration if defaults.yaml not found."""
        return {
            "structures": {
                "winner-take-all": {"min_participants": 1, "split": [100]},
                "top-3": {"min_participants": 3, "split": [60, 25, 15]},
                "top-5": {"min_participants": 5, "split": [40, 25, 15, 12, 8]},
            }
        }

    @staticmethod
    def _parse_policies(
        structures: dict[str, Any],
    ) -> dict[PayoutStructure, StructurePolicy]:
        policies = {}
        for name, params in structures.items():
            policies[PayoutStructure(name)] = StructurePolicy(
                min_participants=int(params["min_participants"]),
                split=tuple(Decimal(str(p)) for p in params["split"]),
            )
        return policies

    def _validate_config(self) -> None:
        """Every structure must be defined, sum to 100 and fit its minimum."""
        for structure in PayoutStructure:
            if structure not in self.policies:
                raise ValueError(f"Missing payout structure: {structure.value}")

        for structure, policy in self.policies.items():
            if sum(policy.split) != HUNDRED:
                raise ValueError(
                    f"Payout split for {structure.value} sums to {sum(policy.split)}, not 100"
                )
            if any(p <= 0 for p in policy.split):
                raise ValueError(f"Payout split for {structure.value} has a non-positive tier")
            if policy.min_participants < len(policy.split):
                raise ValueError(
                    f"{structure.value} pays {len(policy.split)} ranks but only "
                    f"requires {policy.min_participants} participants"
                )

        fallback = self.policies[PayoutStructure.WINNER_TAKE_ALL]
        if fallback.min_participants != 1 or len(fallback.split) != 1:
            raise ValueError("winner-take-all must pay a single rank from one participant")

    def resolve_structure(
        self,
        structure: PayoutStructure,
        participant_count: int,
    ) -> PayoutStructure:
        """Requested structure, or winner-take-all if too few participants."""
        if participant_count >= self.policies[structure].min_participants:
            return structure
        return PayoutStructure.WINNER_TAKE_ALL

    def calculate(
        self,
        total_pot: Decimal | int | float | str,
        structure: PayoutStructure | str,
        participant_count: int,
    ) -> PayoutResult:
        """
        Calculate payout tiers for a pot.

        Args:
            total_pot: Entry fee × participant count
            structure: Requested payout structure
            participant_count: Number of ranked participants

        Returns:
            PayoutResult whose tier percentages sum to 100 and payouts to the pot

        Raises:
            InvalidPayoutRequestError: negative pot or no participants
        """
        try:
            structure = PayoutStructure(structure)
        except ValueError as e:
            raise InvalidPayoutRequestError(str(e)) from e

        pot = to_money(total_pot)
        if pot < 0:
            raise InvalidPayoutRequestError(f"total pot must not be negative, got {pot}")
        if participant_count < 1:
            raise InvalidPayoutRequestError(
                f"need at least one participant, got {participant_count}"
            )

        applied = self.resolve_structure(structure, participant_count)
        if applied is not structure:
            logger.warning(
                "payout_structure_degraded",
                requested=structure.value,
                applied=applied.value,
                participants=participant_count,
                required=self.policies[structure].min_participants,
            )

        split = self.policies[applied].split
        lower_tiers = [
            (pot * pct / HUNDRED).quantize(CENT, rounding=ROUND_DOWN)
            for pct in split[1:]
        ]
        # Rank 1 takes the rounding remainder
        first = pot - sum(lower_tiers, Decimal("0.00"))
        payouts = [first, *lower_tiers]

        tiers = tuple(
            PayoutTier(rank=index + 1, percentage=pct, payout=payout)
            for index, (pct, payout) in enumerate(zip(split, payouts))
        )

        logger.debug(
            "payouts_calculated",
            pot=str(pot),
            structure=applied.value,
            tiers=len(tiers),
        )

        return PayoutResult(
            total_pot=pot,
            requested_structure=structure,
            applied_structure=applied,
            participant_count=participant_count,
            tiers=tiers,
        )


@lru_cache
def get_distributor() -> PayoutDistributor:
    """Get the cached distributor built from defaults.yaml."""
    return PayoutDistributor()


def calculate_tiered_payouts(
    total_pot: Decimal | int | float | str,
    structure: PayoutStructure | str,
    participant_count: int,
) -> PayoutResult:
    """Calculate payout tiers with the default policy table."""
    return get_distributor().calculate(total_pot, structure, participant_count)
