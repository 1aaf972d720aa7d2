"""
Subscription Period Handler

Translates billing signals into credit ledger operations and keeps the
per-user subscription state machine:

    none --created/payment--> active --payment_failed--> past_due
                              active --cancelled-------> cancelled
    past_due | cancelled --payment_succeeded--> active

Every signal carries the provider event id; an id that was already applied
(or is being applied) is skipped, so redelivered webhooks are harmless.
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from marketplace.src.billing.credits.manager import CreditManagementService, credit_management_service
from marketplace.src.billing.domain.subscription import (
    Subscription,
    SubscriptionSignal,
    SubscriptionStatus,
    next_status,
)
from marketplace.src.billing.shared.config import get_package_by_id
from marketplace.src.billing.shared.exceptions import SubscriptionError
from marketplace.src.billing.subscriptions.event_log import BillingEventLog, billing_event_log
from marketplace.src.billing.subscriptions.repository import SubscriptionRepository, subscription_repository
from marketplace.src.billing.subscriptions.user_initialization import ensure_user_initialized
from marketplace.utils.timezone import timezone

logger = logging.getLogger(__name__)


class SubscriptionPeriodHandler:

    def __init__(
        self,
        credit_service: Optional[CreditManagementService] = None,
        subscriptions: Optional[SubscriptionRepository] = None,
        event_log: Optional[BillingEventLog] = None,
    ):
        self.credit_service = credit_service or credit_management_service
        self.subscriptions = subscriptions or subscription_repository
        self.event_log = event_log or billing_event_log

    async def _process_once(
        self,
        event_id: Optional[str],
        signal: SubscriptionSignal,
        user_id: str,
        action: Callable[[], Awaitable[bool]],
    ) -> bool:
        """
        Run ``action`` unless ``event_id`` was already handled.

        Returns:
            True if the action ran and changed state
        """
        if event_id is None:
            logger.debug(f"[PERIOD] {signal.value} for user {user_id} without event id, not deduplicated")
            return await action()

        can_process, reason = await self.event_log.check_and_mark_processing(event_id, signal.value, user_id)
        if not can_process:
            logger.info(f"[PERIOD] Skipping {signal.value} event {event_id} for user {user_id}: {reason}")
            return False

        try:
            applied = await action()
        except Exception as e:
            logger.error(f"[PERIOD] Failed to apply {signal.value} event {event_id} for user {user_id}: {e}", exc_info=True)
            await self.event_log.mark_failed(event_id, str(e))
            raise

        await self.event_log.mark_completed(event_id)
        return applied

    async def _current(self, user_id: str) -> Subscription:
        return await self.subscriptions.get(user_id) or Subscription(user_id=user_id)

    # =========================================================================
    # SIGNALS
    # =========================================================================

    async def handle_payment_succeeded(
        self,
        event_id: Optional[str],
        user_id: str,
        package_id: str,
        period_start: datetime,
        period_end: datetime,
        provider_subscription_id: Optional[str] = None,
        provider_customer_id: Optional[str] = None,
    ) -> bool:
        """
        A billing cycle was paid: the subscription becomes active and the
        playground allocation is reset to the package's monthly credits.
        """
        package = get_package_by_id(package_id)
        if package is None:
            raise SubscriptionError(
                message=f"Package '{package_id}' not found",
                code="PACKAGE_NOT_FOUND",
                subscription_id=provider_subscription_id,
            )

        async def apply() -> bool:
            # paid before ever authenticating
            await ensure_user_initialized(user_id, self.credit_service, self.subscriptions)

            subscription = await self._current(user_id)
            subscription.status = next_status(subscription.status, SubscriptionSignal.PAYMENT_SUCCEEDED)

            await self.credit_service.handle_subscription_period_start(
                user_id=user_id,
                package_id=package.id,
                package_name=package.name,
                monthly_credits=package.monthly_credits,
                period_start=period_start,
                period_end=period_end,
            )

            subscription.package_id = package.id
            subscription.current_period_start = period_start
            subscription.current_period_end = period_end
            subscription.cancelled_at = None
            if provider_subscription_id:
                subscription.provider_subscription_id = provider_subscription_id
            if provider_customer_id:
                subscription.provider_customer_id = provider_customer_id
            await self.subscriptions.save(subscription)

            logger.info(f"[PERIOD] ✅ User {user_id} active on {package.name} until {period_end.isoformat()}")
            return True

        return await self._process_once(event_id, SubscriptionSignal.PAYMENT_SUCCEEDED, user_id, apply)

    async def handle_subscription_cancelled(
        self,
        event_id: Optional[str],
        user_id: str,
        package_id: Optional[str] = None,
    ) -> bool:
        """
        The subscription ended: playground credits drop to 0, API credits
        stay. A cancellation without an active or past-due subscription is a
        no-op.
        """
        async def apply() -> bool:
            subscription = await self._current(user_id)
            new_status = next_status(subscription.status, SubscriptionSignal.CANCELLED)
            if new_status is None:
                logger.info(
                    f"[PERIOD] Ignoring cancellation for user {user_id} in status {subscription.status.value}"
                )
                return False

            await self.credit_service.handle_subscription_cancellation(
                user_id, package_id or subscription.package_id
            )

            subscription.status = new_status
            subscription.cancelled_at = timezone.now()
            await self.subscriptions.save(subscription)

            logger.info(f"[PERIOD] ✅ Subscription cancelled for user {user_id}")
            return True

        return await self._process_once(event_id, SubscriptionSignal.CANCELLED, user_id, apply)

    async def handle_payment_failed(self, event_id: Optional[str], user_id: str) -> bool:
        """A cycle payment failed: active becomes past_due. Credits are untouched."""
        async def apply() -> bool:
            subscription = await self._current(user_id)
            new_status = next_status(subscription.status, SubscriptionSignal.PAYMENT_FAILED)
            if new_status is None:
                logger.info(
                    f"[PERIOD] Ignoring payment failure for user {user_id} in status {subscription.status.value}"
                )
                return False

            subscription.status = new_status
            await self.subscriptions.save(subscription)
            logger.warning(f"[PERIOD] Payment failed for user {user_id}, subscription past due")
            return True

        return await self._process_once(event_id, SubscriptionSignal.PAYMENT_FAILED, user_id, apply)

    async def handle_subscription_created(
        self,
        event_id: Optional[str],
        user_id: str,
        package_id: str,
        provider_subscription_id: Optional[str] = None,
        provider_customer_id: Optional[str] = None,
        provider_status: Optional[str] = None,
    ) -> bool:
        """
        Record a new subscription. Credits are granted by the first
        successful payment, not here.
        """
        if get_package_by_id(package_id) is None:
            raise SubscriptionError(
                message=f"Package '{package_id}' not found",
                code="PACKAGE_NOT_FOUND",
                subscription_id=provider_subscription_id,
            )

        async def apply() -> bool:
            subscription = await self._current(user_id)
            subscription.package_id = package_id
            subscription.provider_subscription_id = provider_subscription_id
            subscription.provider_customer_id = provider_customer_id or subscription.provider_customer_id

            if provider_status in (None, SubscriptionStatus.ACTIVE.value):
                new_status = next_status(subscription.status, SubscriptionSignal.CREATED)
                if new_status is not None:
                    subscription.status = new_status
                    subscription.cancelled_at = None

            await self.subscriptions.save(subscription)
            logger.info(
                f"[PERIOD] Recorded subscription {provider_subscription_id} ({package_id}) for user {user_id}, "
                f"status {subscription.status.value}"
            )
            return True

        return await self._process_once(event_id, SubscriptionSignal.CREATED, user_id, apply)


subscription_period_handler = SubscriptionPeriodHandler()
