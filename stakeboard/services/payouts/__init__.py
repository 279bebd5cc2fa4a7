"""Payouts module for Stakeboard."""

from stakeboard.services.payouts.distributor import (
    PayoutDistributor,
    PayoutResult,
    PayoutTier,
    calculate_tiered_payouts,
    get_distributor,
)

__all__ = [
    "PayoutDistributor",
    "PayoutResult",
    "PayoutTier",
    "calculate_tiered_payouts",
    "get_distributor",
]
