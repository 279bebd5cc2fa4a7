"""Settlement module for Stakeboard.

The async SettlementService lives in stakeboard.services.settlement.service
and is imported from there, since it depends on the storage layer.
"""

from stakeboard.services.settlement.orchestrator import (
    ParticipantSnapshot,
    SettlementResult,
    acknowledge_payment,
    build_game_participants,
    build_portfolio_participants,
    create_payout_notification,
    get_active_period_type,
    mark_period_paid,
    resolve_game_period_type,
    settle_period,
)
from stakeboard.services.settlement.records import (
    BettingPeriod,
    GamePickSet,
    GroupGame,
    MemberPayment,
    PaymentStatus,
    PayoutNotification,
    PayoutStatus,
    UserProfile,
    WinnerPayout,
)

__all__ = [
    "ParticipantSnapshot",
    "SettlementResult",
    "acknowledge_payment",
    "build_game_participants",
    "build_portfolio_participants",
    "create_payout_notification",
    "get_active_period_type",
    "mark_period_paid",
    "resolve_game_period_type",
    "settle_period",
    "BettingPeriod",
    "GamePickSet",
    "GroupGame",
    "MemberPayment",
    "PaymentStatus",
    "PayoutNotification",
    "PayoutStatus",
    "UserProfile",
    "WinnerPayout",
]
