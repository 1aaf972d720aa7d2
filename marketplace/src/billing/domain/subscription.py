"""
Subscription Domain Entity

Represents a user's subscription and the billing-cycle state machine that
drives playground credit resets.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional


class SubscriptionStatus(str, Enum):
    """Possible subscription statuses."""
    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class SubscriptionSignal(str, Enum):
    """Billing signals the period handler reacts to."""
    CREATED = "subscription_created"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "subscription_cancelled"


# Signal -> (statuses it may fire from, resulting status)
TRANSITIONS: Dict[SubscriptionSignal, tuple] = {
    SubscriptionSignal.CREATED: (
        frozenset({SubscriptionStatus.NONE, SubscriptionStatus.CANCELLED}),
        SubscriptionStatus.ACTIVE,
    ),
    SubscriptionSignal.PAYMENT_SUCCEEDED: (
        frozenset(SubscriptionStatus),
        SubscriptionStatus.ACTIVE,
    ),
    SubscriptionSignal.PAYMENT_FAILED: (
        frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE}),
        SubscriptionStatus.PAST_DUE,
    ),
    SubscriptionSignal.CANCELLED: (
        frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE}),
        SubscriptionStatus.CANCELLED,
    ),
}


def next_status(current: SubscriptionStatus, signal: SubscriptionSignal) -> Optional[SubscriptionStatus]:
    """
    Resulting status for ``signal`` fired from ``current``.

    Returns:
        The new status, or None when the signal does not apply in ``current``
    """
    allowed_from, target = TRANSITIONS[signal]
    if current not in allowed_from:
        return None
    return target


def allowed_signals(current: SubscriptionStatus) -> FrozenSet[SubscriptionSignal]:
    return frozenset(
        signal for signal, (allowed_from, _) in TRANSITIONS.items()
        if current in allowed_from
    )


@dataclass
class Subscription:
    """
    Represents a user's subscription.

    Attributes:
        user_id: Owner of the subscription
        package_id: Package from the catalog (e.g., 'pro')
        status: Current subscription status
        provider_subscription_id: External subscription ID from Stripe
        provider_customer_id: External customer ID from Stripe
        current_period_start: Start of current billing period
        current_period_end: End of current billing period
        cancelled_at: When the subscription was cancelled (if applicable)
    """
    user_id: str
    package_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.NONE
    provider_subscription_id: Optional[str] = None
    provider_customer_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    metadata: Dict = field(default_factory=dict)

    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED

    @classmethod
    def from_model(cls, row) -> 'Subscription':
        return cls(
            user_id=row.user_id,
            package_id=row.package_id,
            status=SubscriptionStatus(row.status),
            provider_subscription_id=row.provider_subscription_id,
            provider_customer_id=row.provider_customer_id,
            current_period_start=row.current_period_start,
            current_period_end=row.current_period_end,
            cancelled_at=row.cancelled_at,
        )

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'package_id': self.package_id,
            'status': self.status.value,
            'provider_subscription_id': self.provider_subscription_id,
            'provider_customer_id': self.provider_customer_id,
            'current_period_start': self.current_period_start.isoformat() if self.current_period_start else None,
            'current_period_end': self.current_period_end.isoformat() if self.current_period_end else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
