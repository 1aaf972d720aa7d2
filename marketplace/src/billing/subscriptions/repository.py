"""
Subscription persistence for the ``user_subscriptions`` table.
"""

from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.src.billing.domain.subscription import Subscription
from marketplace.src.billing.models import UserSubscription


class SubscriptionRepository:

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> Callable[[], AsyncSession]:
        if self._session_factory is None:
            from marketplace.database.db import async_db_session
            self._session_factory = async_db_session
        return self._session_factory

    async def get(self, user_id: str) -> Optional[Subscription]:
        async with self.session_factory() as session:
            row = await session.scalar(select(UserSubscription).where(UserSubscription.user_id == user_id))
            return Subscription.from_model(row) if row else None

    async def get_by_provider_subscription_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        async with self.session_factory() as session:
            row = await session.scalar(
                select(UserSubscription).where(
                    UserSubscription.provider_subscription_id == provider_subscription_id
                )
            )
            return Subscription.from_model(row) if row else None

    async def save(self, subscription: Subscription) -> Subscription:
        """Insert or update the user's subscription row."""
        async with self.session_factory() as session:
            async with session.begin():
                row = await session.scalar(
                    select(UserSubscription)
                    .where(UserSubscription.user_id == subscription.user_id)
                    .with_for_update()
                )
                if row is None:
                    row = UserSubscription(user_id=subscription.user_id)
                    session.add(row)

                row.package_id = subscription.package_id
                row.status = subscription.status.value
                row.provider_subscription_id = subscription.provider_subscription_id
                row.provider_customer_id = subscription.provider_customer_id
                row.current_period_start = subscription.current_period_start
                row.current_period_end = subscription.current_period_end
                row.cancelled_at = subscription.cancelled_at
        return subscription


subscription_repository = SubscriptionRepository()
