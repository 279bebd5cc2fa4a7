"""Exception hierarchy for Stakeboard.

Only programmer-error class inputs raise. Normal edge cases (ties, members
without a valuation, undersized groups, empty groups) are reported through
return values instead.
"""


class StakeboardError(Exception):
    """Base class for all Stakeboard errors."""


class ValuationError(StakeboardError, ValueError):
    """Invalid input to the valuation calculator."""


class InvalidPriceError(ValuationError):
    """Entry price <= 0 or current price < 0."""


class InvalidAllocationError(ValuationError):
    """Allocation outside 0-100, allocations not summing to 100, or bad initial value."""


class InvalidPickCountError(ValuationError):
    """Group game pick set does not hold the required number of picks."""


class InvalidPayoutRequestError(StakeboardError, ValueError):
    """Negative pot or fewer than one participant."""


class InvalidBettingConfigError(StakeboardError, ValueError):
    """Group betting settings cannot be used for settlement."""


class InvalidStatusTransitionError(StakeboardError):
    """Requested payout status transition is not allowed."""


class PaymentNotFoundError(StakeboardError, KeyError):
    """Notification has no member payment for the given user."""


class RecordNotFoundError(StakeboardError, KeyError):
    """A persisted record does not exist."""


class SettlementInProgressError(StakeboardError):
    """Another settlement holds the group lock."""


class LockUnavailableError(StakeboardError):
    """A store lock could not be acquired in time."""
