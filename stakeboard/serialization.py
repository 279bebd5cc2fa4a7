"""Helpers for turning records into JSON-compatible values and back."""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce a number or numeric string to a Decimal quantized to cents."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_str(value: Decimal) -> str:
    return str(to_money(value))


def datetime_to_str(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def datetime_from_str(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are treated as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
