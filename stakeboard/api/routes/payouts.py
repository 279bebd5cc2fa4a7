"""Payout preview endpoints."""

from decimal import Decimal

from fastapi import APIRouter, Query
from pydantic import BaseModel

from stakeboard.config import PayoutStructure
from stakeboard.services.payouts import calculate_tiered_payouts

router = APIRouter(prefix="/api/payouts", tags=["payouts"])


class PayoutTierItem(BaseModel):
    """One payout tier."""

    rank: int
    percentage: float
    payout: Decimal


class PayoutPreviewResponse(BaseModel):
    """Payout preview response."""

    total_pot: Decimal
    requested_structure: PayoutStructure
    applied_structure: PayoutStructure
    participant_count: int
    degraded: bool
    tiers: list[PayoutTierItem]


@router.get("/preview", response_model=PayoutPreviewResponse)
async def preview_payouts(
    total_pot: Decimal = Query(..., ge=0, description="Pot to split"),
    structure: PayoutStructure = Query(
        PayoutStructure.WINNER_TAKE_ALL, description="Requested payout structure"
    ),
    participants: int = Query(..., ge=1, description="Number of ranked participants"),
):
    """
    Preview how a pot would be split.

    `degraded` is true when the structure needs more participants than
    given and winner-take-all was applied instead.
    """
    result = calculate_tiered_payouts(total_pot, structure, participants)
    return PayoutPreviewResponse(
        total_pot=result.total_pot,
        requested_structure=result.requested_structure,
        applied_structure=result.applied_structure,
        participant_count=result.participant_count,
        degraded=result.degraded,
        tiers=[
            PayoutTierItem(rank=t.rank, percentage=float(t.percentage), payout=t.payout)
            for t in result.tiers
        ],
    )
