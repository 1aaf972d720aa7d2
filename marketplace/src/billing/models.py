"""Billing models for user credits, subscriptions and processed billing events."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.common.model import Base, JSONType, TimeZone, id_key


class UserCredit(Base):
    """Dual-bucket credit ledger, one row per user."""

    __tablename__ = 'user_credits'
    __table_args__ = (
        sa.Index('ix_user_credits_user_id_is_active', 'user_id', 'is_active'),
        sa.CheckConstraint('playground_credits >= 0', name='ck_user_credits_playground_non_negative'),
        sa.CheckConstraint('api_credits >= 0', name='ck_user_credits_api_non_negative'),
        {'comment': 'Dual-bucket credit ledger, one row per user'},
    )

    id: Mapped[id_key] = mapped_column(init=False)

    user_id: Mapped[str] = mapped_column(sa.String(64), unique=True, index=True, comment='Owning user id')

    # Playground credits: re-allocated at every subscription period start
    playground_credits: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default='0', comment='Playground allocation for the current period'
    )
    playground_credits_used_current_period: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default='0', comment='Playground credits used this period'
    )
    playground_credits_last_reset: Mapped[datetime | None] = mapped_column(
        TimeZone, default=None, comment='Last playground usage reset'
    )
    playground_credits_next_reset: Mapped[datetime | None] = mapped_column(
        TimeZone, default=None, comment='End of the current billing period'
    )

    # API credits: persistent balance
    api_credits: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default='0', comment='Persistent API credit balance'
    )
    api_credits_used_total: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default='0', comment='Lifetime API credits used'
    )

    # Legacy single balance, kept equal to total available credits
    balance: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default='0', comment='Legacy total balance'
    )

    is_active: Mapped[bool] = mapped_column(default=True, comment='Inactive accounts are treated as missing')

    # ``metadata`` is reserved on declarative classes
    credit_metadata: Mapped[dict] = mapped_column(
        'metadata', JSONType, default_factory=dict, comment='Audit annotations'
    )


class UserSubscription(Base):
    """Subscription state per user, driven by billing webhooks."""

    __tablename__ = 'user_subscriptions'

    id: Mapped[id_key] = mapped_column(init=False)

    user_id: Mapped[str] = mapped_column(sa.String(64), unique=True, index=True, comment='Owning user id')
    package_id: Mapped[str | None] = mapped_column(sa.String(32), default=None, comment='Catalog package id')
    status: Mapped[str] = mapped_column(sa.String(16), default='none', comment='none/active/past_due/cancelled')
    provider_subscription_id: Mapped[str | None] = mapped_column(
        sa.String(255), default=None, index=True, comment='Stripe subscription id'
    )
    provider_customer_id: Mapped[str | None] = mapped_column(
        sa.String(255), default=None, comment='Stripe customer id'
    )
    current_period_start: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
    current_period_end: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
    cancelled_at: Mapped[datetime | None] = mapped_column(TimeZone, default=None)


class ProcessedBillingEvent(Base):
    """Billing signals already applied, keyed by provider event id."""

    __tablename__ = 'billing_events'

    event_id: Mapped[str] = mapped_column(sa.String(255), primary_key=True, comment='Provider event id')
    event_type: Mapped[str] = mapped_column(sa.String(64), comment='Billing signal type')
    user_id: Mapped[str | None] = mapped_column(sa.String(64), default=None, index=True)
    status: Mapped[str] = mapped_column(sa.String(16), default='processing', comment='processing/completed/failed')
    error: Mapped[str | None] = mapped_column(sa.Text, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(TimeZone, default=None)
