"""Settlement, period and payment endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from stakeboard.api.dependencies import get_repository, get_settlement_service
from stakeboard.config import PeriodType
from stakeboard.exceptions import RecordNotFoundError
from stakeboard.services.settlement.orchestrator import SettlementResult
from stakeboard.services.settlement.service import SettlementService
from stakeboard.storage import BettingRepository

router = APIRouter(prefix="/api", tags=["settlements"])


class SettlementRequest(BaseModel):
    """Settle a calendar period now."""

    period_type: PeriodType
    start_date: datetime | None = None


class SettlementResponse(BaseModel):
    """Outcome of a settlement request.

    `settled` is false when nothing was settled (betting disabled, period
    type disabled, nobody to rank, or the game already settled).
    """

    settled: bool
    degraded: bool = False
    skipped: list[str] = []
    period: dict[str, Any] | None = None
    notification: dict[str, Any] | None = None


def _to_response(result: SettlementResult | None) -> SettlementResponse:
    if result is None:
        return SettlementResponse(settled=False)
    return SettlementResponse(
        settled=True,
        degraded=result.payout.degraded,
        skipped=list(result.skipped),
        period=result.period.to_dict(),
        notification=result.notification.to_dict(),
    )


@router.post("/groups/{group_id}/settlements", response_model=SettlementResponse)
async def settle_group(
    group_id: str,
    request: SettlementRequest,
    service: SettlementService = Depends(get_settlement_service),
):
    """
    Settle a group's period from the current portfolio valuations.

    Returns 409 while another settlement of the same group is running.
    """
    result = await service.settle_group(
        group_id, request.period_type, start_date=request.start_date
    )
    return _to_response(result)


@router.post(
    "/groups/{group_id}/games/{game_id}/settlement",
    response_model=SettlementResponse,
)
async def settle_game(
    group_id: str,
    game_id: str,
    service: SettlementService = Depends(get_settlement_service),
):
    """Settle a finished group game. A game settles at most once."""
    result = await service.settle_game(group_id, game_id)
    return _to_response(result)


@router.get("/groups/{group_id}/periods")
async def list_periods(
    group_id: str,
    repository: BettingRepository = Depends(get_repository),
) -> list[dict[str, Any]]:
    """List a group's settled periods, newest first."""
    if await repository.get_group(group_id) is None:
        raise RecordNotFoundError(f"group {group_id} not found")
    periods = await repository.list_periods(group_id)
    return [p.to_dict() for p in reversed(periods)]


@router.post("/groups/{group_id}/periods/{period_id}/paid")
async def mark_period_paid(
    group_id: str,
    period_id: str,
    service: SettlementService = Depends(get_settlement_service),
) -> dict[str, Any]:
    """Mark a period's payout as paid."""
    period = await service.mark_paid(group_id, period_id)
    return period.to_dict()


@router.get("/groups/{group_id}/notifications")
async def list_notifications(
    group_id: str,
    repository: BettingRepository = Depends(get_repository),
) -> list[dict[str, Any]]:
    """List a group's payout notifications, newest first."""
    if await repository.get_group(group_id) is None:
        raise RecordNotFoundError(f"group {group_id} not found")
    notifications = await repository.list_notifications(group_id)
    return [n.to_dict() for n in reversed(notifications)]


@router.post("/notifications/{notification_id}/payments/{user_id}/acknowledge")
async def acknowledge_payment(
    notification_id: str,
    user_id: str,
    service: SettlementService = Depends(get_settlement_service),
) -> dict[str, Any]:
    """Acknowledge one member's payment."""
    notification = await service.acknowledge(notification_id, user_id)
    return notification.to_dict()
