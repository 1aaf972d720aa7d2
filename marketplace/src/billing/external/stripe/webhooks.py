"""
Stripe Webhook Service

Verifies Stripe webhook signatures and translates billing events into
subscription period signals. Deduplication happens in the period handler,
keyed by the Stripe event id (the invoice id for payment events, since
``invoice.paid`` and ``invoice.payment_succeeded`` describe the same payment).
"""

import logging
from calendar import monthrange
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import stripe

from fastapi import HTTPException, Request

from marketplace.core.conf import settings
from marketplace.src.billing.shared.config import get_package_by_id, get_package_by_price_id
from marketplace.src.billing.shared.exceptions import BillingError, WebhookError
from marketplace.src.billing.subscriptions.period_handler import (
    SubscriptionPeriodHandler,
    subscription_period_handler,
)
from marketplace.utils.timezone import timezone

logger = logging.getLogger(__name__)

# Invoices that open a new billing period
PERIOD_BILLING_REASONS = ('subscription_create', 'subscription_cycle', 'subscription_update')


def _get(obj: Any, *path: str, default: Any = None) -> Any:
    """Nested lookup over Stripe objects / dicts."""
    for key in path:
        if obj is None:
            return default
        try:
            obj = obj[key]
        except (KeyError, IndexError, TypeError):
            return default
    return default if obj is None else obj


def _first_line(invoice: Any) -> Any:
    lines = _get(invoice, 'lines', 'data', default=[])
    return lines[0] if lines else None


def add_one_month(moment: datetime) -> datetime:
    year = moment.year + (moment.month // 12)
    month = moment.month % 12 + 1
    day = min(moment.day, monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class WebhookService:
    """
    Central service for processing Stripe webhooks.

    Responsibilities:
    - Verify webhook signatures
    - Resolve the user and package an event refers to
    - Route events to the subscription period handler

    Usage:
        webhook_service = WebhookService()
        result = await webhook_service.process_stripe_webhook(request)
    """

    def __init__(self, period_handler: Optional[SubscriptionPeriodHandler] = None):
        self.period_handler = period_handler or subscription_period_handler
        stripe.api_key = settings.STRIPE_SECRET_KEY

    def construct_event(self, payload: bytes, sig_header: Optional[str]):
        """
        Verify the signature and parse the event.

        Raises:
            HTTPException: missing/invalid signature, invalid payload or
                webhook secret not configured
        """
        if not sig_header:
            raise HTTPException(status_code=400, detail="Missing stripe-signature header")

        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("[WEBHOOK] STRIPE_WEBHOOK_SECRET not configured")
            raise HTTPException(status_code=500, detail="Webhook secret not configured")

        try:
            return stripe.Webhook.construct_event(
                payload,
                sig_header,
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"[WEBHOOK] Invalid signature: {e}")
            raise HTTPException(status_code=400, detail="Invalid webhook signature")
        except ValueError as e:
            logger.warning(f"[WEBHOOK] Invalid payload: {e}")
            raise HTTPException(status_code=400, detail="Invalid payload")

    async def process_stripe_webhook(self, request: Request) -> Dict[str, Any]:
        """
        Process an incoming Stripe webhook.

        Raises:
            HTTPException: bad signature/payload (400) or processing failure
                (500, so Stripe redelivers)
        """
        payload = await request.body()
        event = self.construct_event(payload, request.headers.get('stripe-signature'))

        try:
            handled = await self.handle_event(event)
        except BillingError as e:
            logger.error(f"[WEBHOOK] Failed to process {event['type']} ({event['id']}): {e.message}")
            raise HTTPException(status_code=500, detail=e.to_dict())
        except Exception as e:
            logger.error(f"[WEBHOOK] Error processing {event['type']} ({event['id']}): {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Webhook processing failed")

        return {'status': 'success', 'event_id': event['id'], 'handled': handled}

    async def handle_event(self, event) -> bool:
        """
        Route a verified event.

        Returns:
            True if the event changed subscription or credit state
        """
        event_type = event['type']
        obj = _get(event, 'data', 'object', default={})
        logger.info(f"[WEBHOOK] Processing event type: {event_type} (ID: {event['id']})")

        if event_type in ('invoice.paid', 'invoice.payment_succeeded'):
            return await self._handle_invoice_paid(event, obj)
        elif event_type == 'invoice.payment_failed':
            return await self._handle_invoice_payment_failed(event, obj)
        elif event_type == 'customer.subscription.created':
            return await self._handle_subscription_created(event, obj)
        elif event_type == 'customer.subscription.deleted':
            return await self._handle_subscription_deleted(event, obj)
        else:
            logger.debug(f"[WEBHOOK] Unhandled event type: {event_type}")
            return False

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    @staticmethod
    def _invoice_subscription_id(invoice: Any) -> Optional[str]:
        return (
            _get(invoice, 'subscription')
            or _get(invoice, 'parent', 'subscription_details', 'subscription')
            or _get(_first_line(invoice), 'subscription')
        )

    @staticmethod
    def _invoice_metadata(invoice: Any) -> Dict[str, Any]:
        return (
            _get(invoice, 'subscription_details', 'metadata')
            or _get(invoice, 'parent', 'subscription_details', 'metadata')
            or _get(_first_line(invoice), 'metadata')
            or {}
        )

    async def _resolve_owner(
        self,
        metadata: Dict[str, Any],
        subscription_id: Optional[str],
        price_id: Optional[str],
    ) -> Tuple[Optional[str], Optional[str]]:
        """(user_id, package_id) from metadata, the price, or the stored subscription."""
        user_id = _get(metadata, 'user_id')
        package_id = _get(metadata, 'package_id')

        if not package_id and price_id:
            package = get_package_by_price_id(price_id)
            package_id = package.id if package else None

        if (not user_id or not package_id) and subscription_id:
            stored = await self.period_handler.subscriptions.get_by_provider_subscription_id(subscription_id)
            if stored:
                user_id = user_id or stored.user_id
                package_id = package_id or stored.package_id

        return user_id, package_id

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _handle_invoice_paid(self, event, invoice) -> bool:
        billing_reason = _get(invoice, 'billing_reason')
        if billing_reason not in PERIOD_BILLING_REASONS:
            logger.info(f"[WEBHOOK] Invoice {_get(invoice, 'id')} ({billing_reason}) does not start a period")
            return False

        line = _first_line(invoice)
        subscription_id = self._invoice_subscription_id(invoice)
        user_id, package_id = await self._resolve_owner(
            self._invoice_metadata(invoice),
            subscription_id,
            _get(line, 'price', 'id') or _get(line, 'pricing', 'price_details', 'price'),
        )
        if not user_id or not package_id or get_package_by_id(package_id) is None:
            raise WebhookError(
                message="Cannot resolve user/package for paid invoice",
                event_id=event['id'],
                event_type=event['type'],
            )

        period_start_ts = _get(line, 'period', 'start')
        period_end_ts = _get(line, 'period', 'end')
        if period_start_ts and period_end_ts:
            period_start = timezone.from_timestamp(period_start_ts)
            period_end = timezone.from_timestamp(period_end_ts)
        else:
            period_start = timezone.now()
            period_end = add_one_month(period_start)

        return await self.period_handler.handle_payment_succeeded(
            event_id=f"invoice:{_get(invoice, 'id') or event['id']}",
            user_id=user_id,
            package_id=package_id,
            period_start=period_start,
            period_end=period_end,
            provider_subscription_id=subscription_id,
            provider_customer_id=_get(invoice, 'customer'),
        )

    async def _handle_invoice_payment_failed(self, event, invoice) -> bool:
        user_id, _ = await self._resolve_owner(
            self._invoice_metadata(invoice),
            self._invoice_subscription_id(invoice),
            None,
        )
        if not user_id:
            logger.warning(f"[WEBHOOK] Payment failed for unknown subscriber (event {event['id']})")
            return False
        return await self.period_handler.handle_payment_failed(event['id'], user_id)

    async def _handle_subscription_created(self, event, subscription) -> bool:
        items = _get(subscription, 'items', 'data', default=[])
        user_id, package_id = await self._resolve_owner(
            _get(subscription, 'metadata', default={}),
            _get(subscription, 'id'),
            _get(items[0], 'price', 'id') if items else None,
        )
        if not user_id or not package_id:
            logger.warning(f"[WEBHOOK] Subscription {_get(subscription, 'id')} has no user/package metadata")
            return False

        return await self.period_handler.handle_subscription_created(
            event_id=event['id'],
            user_id=user_id,
            package_id=package_id,
            provider_subscription_id=_get(subscription, 'id'),
            provider_customer_id=_get(subscription, 'customer'),
            provider_status=_get(subscription, 'status'),
        )

    async def _handle_subscription_deleted(self, event, subscription) -> bool:
        user_id, package_id = await self._resolve_owner(
            _get(subscription, 'metadata', default={}),
            _get(subscription, 'id'),
            None,
        )
        if not user_id:
            logger.warning(f"[WEBHOOK] Deleted subscription {_get(subscription, 'id')} has no known owner")
            return False

        return await self.period_handler.handle_subscription_cancelled(event['id'], user_id, package_id)


webhook_service = WebhookService()
