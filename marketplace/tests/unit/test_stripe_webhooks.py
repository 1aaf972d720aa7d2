"""
Unit tests for the Stripe webhook service.

Tests cover:
- Signature verification against a real HMAC-signed payload
- Routing of invoice and subscription events to the period handler
- Owner resolution from metadata, price ids and stored subscriptions
"""

import hashlib
import hmac
import json
import time

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import HTTPException

from marketplace.core.conf import settings
from marketplace.src.billing.domain.subscription import Subscription
from marketplace.src.billing.external.stripe.webhooks import WebhookService, add_one_month
from marketplace.src.billing.shared.exceptions import WebhookError

WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_request(payload: bytes, signature: str = None):
    request = MagicMock()
    request.body = AsyncMock(return_value=payload)
    request.headers = {'stripe-signature': signature} if signature else {}
    return request


def invoice_event(event_type="invoice.paid", billing_reason="subscription_cycle", metadata=None):
    return {
        'id': 'evt_invoice_1',
        'type': event_type,
        'data': {'object': {
            'id': 'in_123',
            'customer': 'cus_1',
            'subscription': 'sub_1',
            'billing_reason': billing_reason,
            'subscription_details': {'metadata': metadata if metadata is not None else {'user_id': 'user-1', 'package_id': 'pro'}},
            'lines': {'data': [{
                'price': {'id': 'price_pro_monthly'},
                'period': {'start': 1790812800, 'end': 1793491200},
            }]},
        }},
    }


@pytest.fixture
def period_handler():
    handler = AsyncMock()
    handler.subscriptions = AsyncMock()
    handler.subscriptions.get_by_provider_subscription_id.return_value = None
    return handler


@pytest.fixture
def service(period_handler):
    return WebhookService(period_handler=period_handler)


class TestSignatureVerification:

    @pytest.mark.asyncio
    async def test_valid_signature_is_processed(self, service):
        payload = json.dumps({'id': 'evt_1', 'object': 'event', 'type': 'customer.updated', 'data': {'object': {}}}).encode()

        with patch.object(settings, 'STRIPE_WEBHOOK_SECRET', WEBHOOK_SECRET), \
                patch.object(service, 'handle_event', AsyncMock(return_value=False)) as handle_event:
            result = await service.process_stripe_webhook(make_request(payload, sign(payload)))

        assert result == {'status': 'success', 'event_id': 'evt_1', 'handled': False}
        assert handle_event.call_args.args[0]['type'] == 'customer.updated'

    @pytest.mark.asyncio
    async def test_invalid_signature(self, service):
        payload = b'{"id": "evt_1", "object": "event", "type": "invoice.paid"}'

        with patch.object(settings, 'STRIPE_WEBHOOK_SECRET', WEBHOOK_SECRET):
            with pytest.raises(HTTPException) as exc_info:
                await service.process_stripe_webhook(make_request(payload, sign(payload, secret="whsec_other")))

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_signature_header(self, service):
        with pytest.raises(HTTPException) as exc_info:
            await service.process_stripe_webhook(make_request(b'{}'))

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_secret_not_configured(self, service):
        with patch.object(settings, 'STRIPE_WEBHOOK_SECRET', ''):
            with pytest.raises(HTTPException) as exc_info:
                await service.process_stripe_webhook(make_request(b'{}', 't=1,v1=abc'))

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_processing_failure_returns_500(self, service):
        payload = json.dumps({'id': 'evt_1', 'object': 'event', 'type': 'invoice.paid', 'data': {'object': {}}}).encode()

        with patch.object(settings, 'STRIPE_WEBHOOK_SECRET', WEBHOOK_SECRET), \
                patch.object(service, 'handle_event', AsyncMock(side_effect=RuntimeError("db down"))):
            with pytest.raises(HTTPException) as exc_info:
                await service.process_stripe_webhook(make_request(payload, sign(payload)))

        assert exc_info.value.status_code == 500


class TestInvoiceEvents:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", ["invoice.paid", "invoice.payment_succeeded"])
    async def test_paid_invoice_starts_period(self, service, period_handler, event_type):
        period_handler.handle_payment_succeeded.return_value = True

        assert await service.handle_event(invoice_event(event_type)) is True

        kwargs = period_handler.handle_payment_succeeded.call_args.kwargs
        assert kwargs['event_id'] == 'invoice:in_123'
        assert kwargs['user_id'] == 'user-1'
        assert kwargs['package_id'] == 'pro'
        assert kwargs['period_start'] == datetime.fromtimestamp(1790812800, tz=timezone.utc)
        assert kwargs['period_end'] == datetime.fromtimestamp(1793491200, tz=timezone.utc)
        assert kwargs['provider_subscription_id'] == 'sub_1'
        assert kwargs['provider_customer_id'] == 'cus_1'

    @pytest.mark.asyncio
    async def test_non_period_invoice_is_ignored(self, service, period_handler):
        assert await service.handle_event(invoice_event(billing_reason="manual")) is False

        period_handler.handle_payment_succeeded.assert_not_called()

    @pytest.mark.asyncio
    async def test_owner_resolved_from_stored_subscription(self, service, period_handler):
        period_handler.subscriptions.get_by_provider_subscription_id.return_value = Subscription(
            user_id="user-7", package_id="basic"
        )

        await service.handle_event(invoice_event(metadata={}))

        period_handler.subscriptions.get_by_provider_subscription_id.assert_awaited_with('sub_1')
        kwargs = period_handler.handle_payment_succeeded.call_args.kwargs
        assert (kwargs['user_id'], kwargs['package_id']) == ("user-7", "basic")

    @pytest.mark.asyncio
    async def test_unresolvable_invoice_raises(self, service, period_handler):
        with pytest.raises(WebhookError):
            await service.handle_event(invoice_event(metadata={}))

        period_handler.handle_payment_succeeded.assert_not_called()

    @pytest.mark.asyncio
    async def test_payment_failed(self, service, period_handler):
        period_handler.handle_payment_failed.return_value = True

        assert await service.handle_event(invoice_event("invoice.payment_failed"))

        period_handler.handle_payment_failed.assert_awaited_once_with('evt_invoice_1', 'user-1')


class TestSubscriptionEvents:

    @pytest.mark.asyncio
    async def test_subscription_created(self, service, period_handler):
        event = {
            'id': 'evt_sub_created',
            'type': 'customer.subscription.created',
            'data': {'object': {
                'id': 'sub_1',
                'customer': 'cus_1',
                'status': 'active',
                'metadata': {'user_id': 'user-1', 'package_id': 'basic'},
                'items': {'data': [{'price': {'id': 'price_basic'}}]},
            }},
        }

        await service.handle_event(event)

        period_handler.handle_subscription_created.assert_awaited_once_with(
            event_id='evt_sub_created',
            user_id='user-1',
            package_id='basic',
            provider_subscription_id='sub_1',
            provider_customer_id='cus_1',
            provider_status='active',
        )

    @pytest.mark.asyncio
    async def test_subscription_deleted(self, service, period_handler):
        event = {
            'id': 'evt_sub_deleted',
            'type': 'customer.subscription.deleted',
            'data': {'object': {'id': 'sub_1', 'metadata': {'user_id': 'user-1', 'package_id': 'pro'}}},
        }

        await service.handle_event(event)

        period_handler.handle_subscription_cancelled.assert_awaited_once_with('evt_sub_deleted', 'user-1', 'pro')

    @pytest.mark.asyncio
    async def test_unhandled_event_type(self, service, period_handler):
        assert await service.handle_event({'id': 'evt_x', 'type': 'charge.refunded', 'data': {'object': {}}}) is False

        assert period_handler.method_calls == []


class TestAddOneMonth:

    @pytest.mark.parametrize("moment,expected", [
        (datetime(2026, 1, 31, tzinfo=timezone.utc), datetime(2026, 2, 28, tzinfo=timezone.utc)),
        (datetime(2026, 12, 15, tzinfo=timezone.utc), datetime(2027, 1, 15, tzinfo=timezone.utc)),
    ])
    def test_clamps_to_month_end(self, moment, expected):
        assert add_one_month(moment) == expected


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
