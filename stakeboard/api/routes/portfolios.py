"""Portfolio API endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from stakeboard.api.dependencies import get_repository
from stakeboard.config import get_settings
from stakeboard.services.valuation import (
    AllocationRequest,
    AssetType,
    Position,
    build_portfolio,
    calculate_portfolio_value,
)
from stakeboard.storage import BettingRepository

router = APIRouter(prefix="/api/portfolios", tags=["portfolios"])


class PositionInput(BaseModel):
    """A position with prices already known."""

    symbol: str
    allocation: float
    entry_price: float
    current_price: float
    asset_type: AssetType = AssetType.STOCK
    name: str = ""


class ValuationRequest(BaseModel):
    """Value an ad-hoc set of positions."""

    positions: list[PositionInput]
    initial_value: float | None = Field(None, description="Defaults to the configured value")


class AllocationInput(BaseModel):
    """One submitted allocation."""

    symbol: str
    allocation: float
    asset_type: AssetType = AssetType.STOCK
    name: str = ""


class PortfolioSubmission(BaseModel):
    """A portfolio submission; entry prices are taken from the price feed."""

    allocations: list[AllocationInput] = Field(..., min_length=1)
    name: str = ""
    period_label: str = ""


@router.post("/valuation")
async def value_positions(request: ValuationRequest) -> dict[str, Any]:
    """Mark positions to their current prices without storing anything."""
    positions = [
        Position(
            symbol=p.symbol,
            name=p.name,
            asset_type=p.asset_type,
            allocation=p.allocation,
            entry_price=p.entry_price,
            current_price=p.current_price,
        )
        for p in request.positions
    ]
    return calculate_portfolio_value(positions, request.initial_value).to_dict()


@router.put("/{user_id}")
async def submit_portfolio(
    user_id: str,
    submission: PortfolioSubmission,
    repository: BettingRepository = Depends(get_repository),
) -> dict[str, Any]:
    """
    Submit (or resubmit) a user's portfolio.

    A resubmission replaces the previous portfolio with a new one entered
    at the latest prices. The write holds the user's portfolio lock so it
    cannot interleave with a revaluation; 409 if the lock stays busy.
    """
    settings = get_settings()
    prices = await repository.get_prices()
    portfolio = build_portfolio(
        user_id,
        [
            AllocationRequest(
                symbol=a.symbol,
                allocation=a.allocation,
                asset_type=a.asset_type,
                name=a.name,
            )
            for a in submission.allocations
        ],
        prices,
        name=submission.name,
        period_label=submission.period_label,
    )
    async with repository.portfolio_lock(
        user_id,
        timeout=settings.settlement_lock_timeout,
        blocking_timeout=settings.settlement_lock_blocking_timeout,
    ):
        await repository.save_portfolio(portfolio)
    return portfolio.to_dict()


@router.get("/{user_id}")
async def get_portfolio(
    user_id: str,
    repository: BettingRepository = Depends(get_repository),
) -> dict[str, Any]:
    """Get a user's current portfolio."""
    portfolio = await repository.get_portfolio(user_id)
    if portfolio is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return portfolio.to_dict()
