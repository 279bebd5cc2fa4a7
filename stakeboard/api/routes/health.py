"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from stakeboard.api.dependencies import get_store
from stakeboard.storage import KeyValueStore

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime


class ReadyCheck(BaseModel):
    """Individual readiness check."""

    status: str
    message: str | None = None


class ReadyResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    checks: dict[str, ReadyCheck]


@router.get("/health", response_model=HealthResponse)
async def health():
    """
    Basic health check.

    Returns healthy if the service is running.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/ready", response_model=ReadyResponse)
async def ready(store: KeyValueStore = Depends(get_store)):
    """Readiness check for the key-value store."""
    if await store.ping():
        checks = {"store": ReadyCheck(status="ok")}
    else:
        checks = {"store": ReadyCheck(status="error", message="store unreachable")}

    return ReadyResponse(
        ready=all(c.status == "ok" for c in checks.values()),
        checks=checks,
    )
