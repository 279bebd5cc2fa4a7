"""User betting statistics endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from stakeboard.api.dependencies import get_settlement_service
from stakeboard.services.settlement.service import SettlementService

router = APIRouter(prefix="/api/users", tags=["stats"])


@router.get("/{user_id}/betting-stats")
async def betting_stats(
    user_id: str,
    service: SettlementService = Depends(get_settlement_service),
) -> dict[str, Any]:
    """
    Aggregate a user's betting history.

    A user with no history gets all-zero stats rather than a 404.
    """
    stats = await service.user_stats(user_id)
    return stats.to_dict()
