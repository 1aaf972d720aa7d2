"""
Unit tests for SubscriptionPeriodHandler.

Tests cover:
- Event-id deduplication through the billing event log
- State machine driven no-ops
- Failure marking
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from marketplace.src.billing.domain.subscription import Subscription, SubscriptionStatus
from marketplace.src.billing.shared.exceptions import SubscriptionError
from marketplace.src.billing.subscriptions.period_handler import SubscriptionPeriodHandler

PERIOD_START = datetime(2026, 10, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 11, 1, tzinfo=timezone.utc)


@pytest.fixture
def credit_service():
    return AsyncMock()


@pytest.fixture
def subscriptions():
    repo = AsyncMock()
    repo.get.return_value = None
    return repo


@pytest.fixture
def event_log():
    log = AsyncMock()
    log.check_and_mark_processing.return_value = (True, "Processing")
    return log


@pytest.fixture
def handler(credit_service, subscriptions, event_log):
    return SubscriptionPeriodHandler(credit_service=credit_service, subscriptions=subscriptions, event_log=event_log)


class TestPaymentSucceeded:

    @pytest.mark.asyncio
    async def test_resets_playground_to_package_credits(self, handler, credit_service, subscriptions, event_log):
        applied = await handler.handle_payment_succeeded(
            "invoice:in_1", "user-1", "pro", PERIOD_START, PERIOD_END, provider_subscription_id="sub_1"
        )

        assert applied is True
        kwargs = credit_service.handle_subscription_period_start.call_args.kwargs
        assert kwargs['monthly_credits'] == 400
        assert kwargs['period_end'] == PERIOD_END

        saved = subscriptions.save.call_args.args[0]
        assert saved.status == SubscriptionStatus.ACTIVE
        assert saved.package_id == "pro"
        assert saved.provider_subscription_id == "sub_1"
        event_log.mark_completed.assert_awaited_once_with("invoice:in_1")

    @pytest.mark.asyncio
    async def test_duplicate_event_is_skipped(self, handler, credit_service, event_log):
        event_log.check_and_mark_processing.return_value = (False, "Event already processed")

        applied = await handler.handle_payment_succeeded("invoice:in_1", "user-1", "pro", PERIOD_START, PERIOD_END)

        assert applied is False
        credit_service.handle_subscription_period_start.assert_not_called()
        event_log.mark_completed.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_package(self, handler, event_log):
        with pytest.raises(SubscriptionError) as exc_info:
            await handler.handle_payment_succeeded("evt_1", "user-1", "platinum", PERIOD_START, PERIOD_END)

        assert exc_info.value.code == "PACKAGE_NOT_FOUND"
        event_log.check_and_mark_processing.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_marks_event_failed(self, handler, credit_service, event_log):
        credit_service.handle_subscription_period_start.side_effect = RuntimeError("ledger down")

        with pytest.raises(RuntimeError):
            await handler.handle_payment_succeeded("evt_1", "user-1", "pro", PERIOD_START, PERIOD_END)

        event_log.mark_failed.assert_awaited_once_with("evt_1", "ledger down")
        event_log.mark_completed.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_event_id_skips_dedup(self, handler, credit_service, event_log):
        assert await handler.handle_payment_succeeded(None, "user-1", "basic", PERIOD_START, PERIOD_END)

        event_log.check_and_mark_processing.assert_not_called()
        credit_service.handle_subscription_period_start.assert_awaited_once()


class TestCancellation:

    @pytest.mark.asyncio
    async def test_active_subscription_is_cancelled(self, handler, credit_service, subscriptions):
        subscriptions.get.return_value = Subscription(user_id="user-1", package_id="pro", status=SubscriptionStatus.ACTIVE)

        assert await handler.handle_subscription_cancelled("evt_2", "user-1") is True

        credit_service.handle_subscription_cancellation.assert_awaited_once_with("user-1", "pro")
        saved = subscriptions.save.call_args.args[0]
        assert saved.status == SubscriptionStatus.CANCELLED
        assert saved.cancelled_at is not None

    @pytest.mark.asyncio
    async def test_cancel_without_subscription_is_a_no_op(self, handler, credit_service, subscriptions, event_log):
        assert await handler.handle_subscription_cancelled("evt_2", "user-1") is False

        credit_service.handle_subscription_cancellation.assert_not_called()
        subscriptions.save.assert_not_called()
        event_log.mark_completed.assert_awaited_once_with("evt_2")


class TestPaymentFailed:

    @pytest.mark.asyncio
    async def test_active_becomes_past_due(self, handler, credit_service, subscriptions):
        subscriptions.get.return_value = Subscription(user_id="user-1", package_id="basic", status=SubscriptionStatus.ACTIVE)

        assert await handler.handle_payment_failed("evt_3", "user-1") is True

        assert subscriptions.save.call_args.args[0].status == SubscriptionStatus.PAST_DUE
        credit_service.assert_not_called()
        assert credit_service.method_calls == []


class TestSubscriptionCreated:

    @pytest.mark.asyncio
    async def test_records_subscription_without_granting_credits(self, handler, credit_service, subscriptions):
        assert await handler.handle_subscription_created(
            "evt_4", "user-1", "ultimate", provider_subscription_id="sub_9", provider_status="active"
        )

        saved = subscriptions.save.call_args.args[0]
        assert saved.status == SubscriptionStatus.ACTIVE
        assert saved.package_id == "ultimate"
        assert credit_service.method_calls == []

    @pytest.mark.asyncio
    async def test_incomplete_subscription_stays_inactive(self, handler, subscriptions):
        await handler.handle_subscription_created(
            "evt_5", "user-1", "basic", provider_subscription_id="sub_9", provider_status="incomplete"
        )

        assert subscriptions.save.call_args.args[0].status == SubscriptionStatus.NONE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
