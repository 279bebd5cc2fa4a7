"""Portfolio valuation.

Marks allocated model portfolios to current prices.

Every portfolio starts a period with the same fixed initial value. An
allocation of N% buys N% of that value of the asset at its entry price; the
position is then marked to the current price:

    shares       = (allocation / 100 × initial_value) / entry_price
    value        = shares × current_price
    return_value = value − allocation / 100 × initial_value

All functions here are pure. They are called on every price tick, so they
never touch storage and never mutate their inputs - a revalued portfolio is a
new record.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence
from uuid import uuid4

import structlog

from stakeboard.config import get_defaults
from stakeboard.exceptions import InvalidAllocationError, InvalidPriceError
from stakeboard.serialization import datetime_from_str, datetime_to_str, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_INITIAL_VALUE = 10000.0
ALLOCATION_TOTAL = 100.0
ALLOCATION_TOLERANCE = 1e-6


class AssetType(str, Enum):
    """Tradeable asset classes."""
    STOCK = "stock"
    CRYPTO = "crypto"


@dataclass(frozen=True)
class Position:
    """One allocated asset within a portfolio.

    The last four fields are derived by value_position().
    """

    symbol: str
    allocation: float
    entry_price: float
    current_price: float
    asset_type: AssetType = AssetType.STOCK
    name: str = ""

    shares: float = 0.0
    value: float = 0.0
    return_value: float = 0.0
    return_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "asset_type": self.asset_type.value,
            "allocation": self.allocation,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "shares": self.shares,
            "value": self.value,
            "return_value": self.return_value,
            "return_percent": self.return_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        return cls(
            symbol=data["symbol"],
            name=data.get("name", ""),
            asset_type=AssetType(data.get("asset_type", AssetType.STOCK.value)),
            allocation=float(data["allocation"]),
            entry_price=float(data["entry_price"]),
            current_price=float(data["current_price"]),
            shares=float(data.get("shares", 0.0)),
            value=float(data.get("value", 0.0)),
            return_value=float(data.get("return_value", 0.0)),
            return_percent=float(data.get("return_percent", 0.0)),
        )


@dataclass(frozen=True)
class PortfolioValuation:
    """Aggregate valuation of a set of positions."""

    current_value: float
    total_return: float
    total_return_percent: float
    positions: tuple[Position, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_value": self.current_value,
            "total_return": self.total_return,
            "total_return_percent": self.total_return_percent,
            "positions": [p.to_dict() for p in self.positions],
        }


@dataclass(frozen=True)
class Portfolio:
    """A user's submitted allocations for a period, marked to market."""

    id: str
    user_id: str
    positions: tuple[Position, ...]
    initial_value: float
    current_value: float
    total_return: float
    total_return_percent: float
    last_updated: datetime
    created_at: datetime
    name: str = ""
    period_label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "period_label": self.period_label,
            "positions": [p.to_dict() for p in self.positions],
            "initial_value": self.initial_value,
            "current_value": self.current_value,
            "total_return": self.total_return,
            "total_return_percent": self.total_return_percent,
            "last_updated": datetime_to_str(self.last_updated),
            "created_at": datetime_to_str(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Portfolio":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            name=data.get("name", ""),
            period_label=data.get("period_label", ""),
            positions=tuple(Position.from_dict(p) for p in data.get("positions", [])),
            initial_value=float(data["initial_value"]),
            current_value=float(data["current_value"]),
            total_return=float(data["total_return"]),
            total_return_percent=float(data["total_return_percent"]),
            last_updated=datetime_from_str(data["last_updated"]),
            created_at=datetime_from_str(data["created_at"]),
        )


@dataclass(frozen=True)
class AllocationRequest:
    """A submitted allocation, before prices are attached."""

    symbol: str
    allocation: float
    asset_type: AssetType = AssetType.STOCK
    name: str = ""


def get_initial_value() -> float:
    """Initial portfolio value from defaults.yaml, or the built-in default."""
    valuation = get_defaults().get("valuation", {})
    return float(valuation.get("initial_portfolio_value", DEFAULT_INITIAL_VALUE))


def check_prices(symbol: str, entry_price: float, current_price: float) -> None:
    if not math.isfinite(entry_price) or entry_price <= 0:
        raise InvalidPriceError(
            f"{symbol}: entry price must be positive, got {entry_price}"
        )
    if not math.isfinite(current_price) or current_price < 0:
        raise InvalidPriceError(
            f"{symbol}: current price must be non-negative, got {current_price}"
        )


def _check_initial_value(initial_value: float) -> None:
    if not math.isfinite(initial_value) or initial_value <= 0:
        raise InvalidAllocationError(
            f"initial value must be positive, got {initial_value}"
        )


def value_position(position: Position, initial_value: float) -> Position:
    """
    Derive shares, value and return figures for one position.

    Args:
        position: Position with allocation and prices set
        initial_value: The portfolio's fixed initial value

    Returns:
        A copy of the position with the derived fields filled in

    Raises:
        InvalidPriceError: entry price <= 0 or current price < 0
        InvalidAllocationError: allocation outside 0-100
    """
    check_prices(position.symbol, position.entry_price, position.current_price)
    if not 0 <= position.allocation <= ALLOCATION_TOTAL:
        raise InvalidAllocationError(
            f"{position.symbol}: allocation must be within 0-100, got {position.allocation}"
        )

    cost_basis = position.allocation / 100 * initial_value
    shares = cost_basis / position.entry_price
    value = shares * position.current_price
    return_value = value - cost_basis
    # Zero allocation contributes nothing
    return_percent = return_value / cost_basis * 100 if cost_basis else 0.0

    return replace(
        position,
        shares=shares,
        value=value,
        return_value=return_value,
        return_percent=return_percent,
    )


def calculate_portfolio_value(
    positions: Iterable[Position],
    initial_value: float | None = None,
) -> PortfolioValuation:
    """
    Value a set of positions against a fixed initial value.

    Allocations are assumed to already sum to 100 (enforced on submission
    by build_portfolio).

    Args:
        positions: Positions with allocation, entry and current prices
        initial_value: Fixed initial value. Defaults to the configured value.

    Returns:
        PortfolioValuation with aggregate figures and valued positions
    """
    if initial_value is None:
        initial_value = get_initial_value()
    _check_initial_value(initial_value)

    valued = tuple(value_position(p, initial_value) for p in positions)
    current_value = math.fsum(p.value for p in valued)
    total_return = current_value - initial_value
    total_return_percent = total_return / initial_value * 100

    return PortfolioValuation(
        current_value=current_value,
        total_return=total_return,
        total_return_percent=total_return_percent,
        positions=valued,
    )


def build_portfolio(
    user_id: str,
    allocations: Sequence[AllocationRequest],
    prices: Mapping[str, float],
    *,
    initial_value: float | None = None,
    name: str = "",
    period_label: str = "",
    now: datetime | None = None,
) -> Portfolio:
    """
    Create a new portfolio from submitted allocations.

    Entry prices are the current prices at submission. Resubmitting creates
    a new portfolio (new id) which supersedes the old one.

    Raises:
        InvalidAllocationError: duplicate symbols or allocations not summing to 100
        InvalidPriceError: a symbol has no price, or a non-positive one
    """
    if initial_value is None:
        initial_value = get_initial_value()
    _check_initial_value(initial_value)

    symbols = [a.symbol for a in allocations]
    if len(set(symbols)) != len(symbols):
        raise InvalidAllocationError("each symbol may only be allocated once")

    total = math.fsum(a.allocation for a in allocations)
    if abs(total - ALLOCATION_TOTAL) > ALLOCATION_TOLERANCE:
        raise InvalidAllocationError(f"allocations must sum to 100, got {total}")

    positions = []
    for request in allocations:
        if request.symbol not in prices:
            raise InvalidPriceError(f"{request.symbol}: no current price available")
        price = float(prices[request.symbol])
        positions.append(
            Position(
                symbol=request.symbol,
                name=request.name,
                asset_type=request.asset_type,
                allocation=float(request.allocation),
                entry_price=price,
                current_price=price,
            )
        )

    valuation = calculate_portfolio_value(positions, initial_value)
    now = now or utcnow()

    logger.debug(
        "portfolio_built",
        user_id=user_id,
        positions=len(positions),
        initial_value=initial_value,
    )

    return Portfolio(
        id=str(uuid4()),
        user_id=user_id,
        name=name,
        period_label=period_label,
        positions=valuation.positions,
        initial_value=initial_value,
        current_value=valuation.current_value,
        total_return=valuation.total_return,
        total_return_percent=valuation.total_return_percent,
        last_updated=now,
        created_at=now,
    )


def revalue_portfolio(
    portfolio: Portfolio,
    prices: Mapping[str, float],
    now: datetime | None = None,
) -> Portfolio:
    """
    Re-project a portfolio onto the latest prices.

    Symbols missing from the price map keep their last known price.
    """
    repriced = [
        replace(p, current_price=float(prices.get(p.symbol, p.current_price)))
        for p in portfolio.positions
    ]
    valuation = calculate_portfolio_value(repriced, portfolio.initial_value)

    return replace(
        portfolio,
        positions=valuation.positions,
        current_value=valuation.current_value,
        total_return=valuation.total_return,
        total_return_percent=valuation.total_return_percent,
        last_updated=now or utcnow(),
    )
