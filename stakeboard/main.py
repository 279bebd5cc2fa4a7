"""Stakeboard FastAPI application.

Settlement engine for group portfolio and pick games: valuation,
leaderboards, tiered payouts and the betting ledger.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stakeboard import __version__
from stakeboard.api.routes import health, payouts, portfolios, settlements, stats
from stakeboard.config import get_settings
from stakeboard.exceptions import (
    InvalidBettingConfigError,
    InvalidPayoutRequestError,
    InvalidStatusTransitionError,
    LockUnavailableError,
    PaymentNotFoundError,
    RecordNotFoundError,
    SettlementInProgressError,
    StakeboardError,
    ValuationError,
)

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS = (
    (ValuationError, 400),
    (InvalidPayoutRequestError, 400),
    (InvalidBettingConfigError, 400),
    (RecordNotFoundError, 404),
    (PaymentNotFoundError, 404),
    (SettlementInProgressError, 409),
    (InvalidStatusTransitionError, 409),
    (LockUnavailableError, 409),
)


def status_for(exc: StakeboardError) -> int:
    """HTTP status for a domain error."""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("starting_stakeboard", version=__version__)
    yield
    logger.info("shutting_down_stakeboard")


# Create FastAPI application
app = FastAPI(
    title="Stakeboard",
    description="Settlement engine for group portfolio and pick games",
    version=__version__,
    lifespan=lifespan,
)

# Include API routers
app.include_router(health.router)
app.include_router(payouts.router)
app.include_router(portfolios.router)
app.include_router(settlements.router)
app.include_router(stats.router)


# Error handlers
@app.exception_handler(StakeboardError)
async def domain_error_handler(request: Request, exc: StakeboardError):
    """Map domain errors onto HTTP status codes."""
    status_code = status_for(exc)
    # KeyError subclasses repr their message; use the raw argument
    detail = exc.args[0] if exc.args else type(exc).__name__
    if status_code >= 500:
        logger.error("server_error", path=request.url.path, error=str(detail))
    else:
        logger.info(
            "request_rejected",
            path=request.url.path,
            status_code=status_code,
            error=type(exc).__name__,
        )
    return JSONResponse(status_code=status_code, content={"detail": str(detail)})
