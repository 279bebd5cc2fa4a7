"""Period settlement.

Turns one snapshot of a group's valuations into a BettingPeriod and a
PayoutNotification:

1. Rank participants by return percent (stable tie-break)
2. Pot = entry fee × number of ranked participants; split it into tiers
3. Bind each tier to the standing at that rank
4. Non-winners owe the entry fee, winners owe nothing
5. Emit the period (pending) and the notification (payments pending)

Members without a valuation are left out of the standings. A group with
nobody left to rank settles to None rather than raising.

Everything here is pure. Locking and the atomic snapshot read are the
caller's job (see service.SettlementService).
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

import structlog

from stakeboard.config import GroupConfig, PeriodType, get_defaults
from stakeboard.config.betting import BettingSettings
from stakeboard.exceptions import (
    InvalidStatusTransitionError,
    PaymentNotFoundError,
)
from stakeboard.services.leaderboard import (
    Participant,
    rank_standings,
)
from stakeboard.services.payouts import PayoutDistributor, PayoutResult, get_distributor
from stakeboard.services.settlement.records import (
    NOTICE_INSUFFICIENT_PARTICIPANTS,
    BettingPeriod,
    GamePickSet,
    MemberPayment,
    PaymentStatus,
    PayoutNotification,
    PayoutStatus,
    UserProfile,
    WinnerPayout,
)
from stakeboard.services.valuation import Portfolio, score_game_picks
from stakeboard.services.valuation.game import get_required_picks
from stakeboard.serialization import utcnow

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")

DEFAULT_WEEKLY_MAX_DAYS = 8
DEFAULT_MONTHLY_MAX_DAYS = 31


@dataclass(frozen=True)
class ParticipantSnapshot:
    """Participants built from one read, plus the members left out."""

    participants: tuple[Participant, ...]
    skipped: tuple[str, ...] = ()


@dataclass(frozen=True)
class SettlementResult:
    """Everything one settlement produced."""

    period: BettingPeriod
    notification: PayoutNotification
    payout: PayoutResult
    skipped: tuple[str, ...] = field(default_factory=tuple)


def build_portfolio_participants(
    member_ids: Iterable[str],
    users: Mapping[str, UserProfile],
    portfolios: Mapping[str, Portfolio],
) -> ParticipantSnapshot:
    """
    Build participants for a portfolio (season / quarter) settlement.

    Members without a profile or a portfolio are skipped.
    """
    participants = []
    skipped = []
    for user_id in member_ids:
        user = users.get(user_id)
        portfolio = portfolios.get(user_id)
        if user is None or portfolio is None:
            logger.info("member_skipped_missing_valuation", user_id=user_id)
            skipped.append(user_id)
            continue
        participants.append(
            Participant(
                user_id=user_id,
                username=user.username,
                avatar=user.avatar,
                return_percent=portfolio.total_return_percent,
                return_value=portfolio.total_return,
            )
        )
    return ParticipantSnapshot(participants=tuple(participants), skipped=tuple(skipped))


def build_game_participants(
    member_ids: Iterable[str],
    users: Mapping[str, UserProfile],
    pick_sets: Mapping[str, GamePickSet],
    required_picks: int | None = None,
) -> ParticipantSnapshot:
    """
    Build participants for a group game settlement.

    A member's metric is the mean percent return of their picks. Members
    without a profile, or without exactly the required number of picks,
    are skipped.
    """
    if required_picks is None:
        required_picks = get_required_picks()

    participants = []
    skipped = []
    for user_id in member_ids:
        user = users.get(user_id)
        pick_set = pick_sets.get(user_id)
        if user is None or pick_set is None or len(pick_set.picks) != required_picks:
            logger.info(
                "member_skipped_missing_valuation",
                user_id=user_id,
                picks=len(pick_set.picks) if pick_set else 0,
            )
            skipped.append(user_id)
            continue
        score = score_game_picks(pick_set.picks, required_picks)
        participants.append(
            Participant(
                user_id=user_id,
                username=user.username,
                avatar=user.avatar,
                return_percent=score.total_return_percent,
                return_value=score.total_return_value,
            )
        )
    return ParticipantSnapshot(participants=tuple(participants), skipped=tuple(skipped))


def settle_period(
    group: GroupConfig,
    participants: Sequence[Participant],
    period_type: PeriodType,
    *,
    game_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    now: datetime | None = None,
    distributor: PayoutDistributor | None = None,
) -> SettlementResult | None:
    """
    Settle one betting period for a group.

    Args:
        group: Group with betting settings
        participants: One snapshot of members with valuations
        period_type: Weekly, monthly or season
        game_id: Set when settling a group game
        start_date: Start of the betting window (defaults to now)
        end_date: End of the betting window (defaults to now)
        now: Settlement time
        distributor: Payout policy (defaults to defaults.yaml)

    Returns:
        SettlementResult, or None when betting is disabled or nobody has a
        valuation
    """
    if not group.betting_enabled:
        logger.debug("settlement_skipped_betting_disabled", group_id=group.id)
        return None

    # Take our own copy so the ranking cannot see later changes to the input
    participants = tuple(participants)
    if not participants:
        logger.info("settlement_noop_empty_group", group_id=group.id)
        return None

    settings: BettingSettings = group.betting
    distributor = distributor or get_distributor()
    now = now or utcnow()

    ranked = rank_standings(participants)
    total_pot = settings.entry_fee * len(ranked)
    payout = distributor.calculate(total_pot, settings.payout_structure, len(ranked))

    winner_payouts = tuple(
        WinnerPayout(
            user_id=ranked[tier.rank - 1].user_id,
            username=ranked[tier.rank - 1].username,
            avatar=ranked[tier.rank - 1].avatar,
            rank=tier.rank,
            percentage=tier.percentage,
            payout=tier.payout,
        )
        for tier in payout.tiers
    )
    winner_ids = {w.user_id for w in winner_payouts}

    standings = tuple(
        replace(s, amount_owed=ZERO if s.user_id in winner_ids else settings.entry_fee)
        for s in ranked
    )

    notices = (NOTICE_INSUFFICIENT_PARTICIPANTS,) if payout.degraded else ()

    period = BettingPeriod(
        id=f"{group.id}-{period_type.value}-{int(now.timestamp() * 1000)}",
        group_id=group.id,
        game_id=game_id,
        period_type=period_type,
        start_date=start_date or now,
        end_date=end_date or now,
        entry_fee=settings.entry_fee,
        total_pot=payout.total_pot,
        payout_structure=payout.requested_structure,
        applied_structure=payout.applied_structure,
        standings=standings,
        winner_payouts=winner_payouts,
        payout_status=PayoutStatus.PENDING,
        notices=notices,
        created_at=now,
    )

    notification = create_payout_notification(period, group, now=now)

    logger.info(
        "period_settled",
        group_id=group.id,
        period_id=period.id,
        period_type=period_type.value,
        participants=len(standings),
        total_pot=str(period.total_pot),
        winner_id=period.winner.user_id,
        structure=payout.applied_structure.value,
        degraded=payout.degraded,
    )

    return SettlementResult(period=period, notification=notification, payout=payout)


def create_payout_notification(
    period: BettingPeriod,
    group: GroupConfig,
    now: datetime | None = None,
) -> PayoutNotification:
    """List every non-winner's payment as pending."""
    winner_ids = period.winner_ids
    member_payments = tuple(
        MemberPayment(
            user_id=s.user_id,
            username=s.username,
            avatar=s.avatar,
            amount_owed=s.amount_owed,
            payment_status=PaymentStatus.PENDING,
        )
        for s in period.standings
        if s.user_id not in winner_ids
    )
    winner = period.winner
    return PayoutNotification(
        id=f"payout-{period.id}",
        group_id=group.id,
        group_name=group.name,
        period_id=period.id,
        period_type=period.period_type,
        winner_id=winner.user_id,
        winner_username=winner.username,
        winner_avatar=winner.avatar,
        total_payout=period.total_pot,
        member_payments=member_payments,
        created_at=now or utcnow(),
    )


def mark_period_paid(period: BettingPeriod, now: datetime | None = None) -> BettingPeriod:
    """
    Move a period from pending to paid.

    Raises:
        InvalidStatusTransitionError: period already paid
    """
    if period.payout_status is not PayoutStatus.PENDING:
        raise InvalidStatusTransitionError(
            f"period {period.id} is {period.payout_status.value}, cannot mark paid"
        )
    return replace(period, payout_status=PayoutStatus.PAID, paid_at=now or utcnow())


def acknowledge_payment(
    notification: PayoutNotification,
    user_id: str,
) -> PayoutNotification:
    """
    Mark one member's payment as acknowledged.

    Acknowledging twice returns an equal notification.

    Raises:
        PaymentNotFoundError: the user owes nothing on this notification
    """
    if not any(p.user_id == user_id for p in notification.member_payments):
        raise PaymentNotFoundError(
            f"no payment for user {user_id} on notification {notification.id}"
        )
    return replace(
        notification,
        member_payments=tuple(
            replace(p, payment_status=PaymentStatus.ACKNOWLEDGED)
            if p.user_id == user_id
            else p
            for p in notification.member_payments
        ),
    )


def get_active_period_type(
    settings: BettingSettings | None,
    today: date | datetime | None = None,
) -> PeriodType | None:
    """
    Period type due for settlement today.

    Weekly periods close on Sundays, monthly periods on the 1st.
    Season periods close when their game ends, never on a calendar day.
    """
    if settings is None or not settings.enabled:
        return None
    today = today or utcnow()

    if settings.weekly_enabled and today.weekday() == 6:
        return PeriodType.WEEKLY
    if settings.monthly_enabled and today.day == 1:
        return PeriodType.MONTHLY
    return None


def resolve_game_period_type(
    settings: BettingSettings,
    start_date: datetime,
    end_date: datetime,
) -> PeriodType:
    """Classify a finished group game by its length."""
    periods = get_defaults().get("periods", {})
    weekly_max = timedelta(days=periods.get("weekly_max_days", DEFAULT_WEEKLY_MAX_DAYS))
    monthly_max = timedelta(days=periods.get("monthly_max_days", DEFAULT_MONTHLY_MAX_DAYS))

    duration = end_date - start_date
    if settings.weekly_enabled and duration <= weekly_max:
        return PeriodType.WEEKLY
    if settings.monthly_enabled and duration <= monthly_max:
        return PeriodType.MONTHLY
    return PeriodType.SEASON
