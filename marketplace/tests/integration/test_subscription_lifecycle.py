"""
Integration tests for the subscription billing cycle against SQLite.

Tests cover:
- Period start resets playground credits to the package allocation
- Redelivered events are applied once
- Cancellation keeps API credits and usage history
- Billing event log status flow
- First-use initialization on the free package
"""

import pytest
from datetime import datetime, timedelta, timezone

from marketplace.src.billing.domain.credit_account import CreditSource, CreditType
from marketplace.src.billing.domain.credit_operations import CreditDeductionRequest, CreditRefillRequest
from marketplace.src.billing.domain.subscription import SubscriptionStatus
from marketplace.src.billing.shared.events import CREDIT_CREATED, CREDIT_DEDUCTED, CREDIT_RESET
from marketplace.src.billing.subscriptions.event_log import BillingEventLog
from marketplace.src.billing.subscriptions.user_initialization import ensure_user_initialized

PERIOD_START = datetime(2026, 10, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 11, 1, tzinfo=timezone.utc)


class TestBillingCycle:

    @pytest.mark.asyncio
    async def test_period_start_shape(self, credit_service, period_handler, subscriptions):
        await credit_service.create_user_credits("user-1", 5, 20)

        assert await period_handler.handle_payment_succeeded(
            "invoice:in_1", "user-1", "pro", PERIOD_START, PERIOD_END, provider_subscription_id="sub_1"
        )

        balance = await credit_service.get_credit_balance("user-1")
        assert balance.playground_credits == 400
        assert balance.playground_credits_used_current_period == 0
        assert balance.playground_credits_next_reset == PERIOD_END
        assert balance.api_credits == 20

        subscription = await subscriptions.get("user-1")
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.package_id == "pro"
        assert subscription.current_period_end == PERIOD_END
        assert (await subscriptions.get_by_provider_subscription_id("sub_1")).user_id == "user-1"

    @pytest.mark.asyncio
    async def test_payment_for_user_without_account_initializes_it(self, credit_service, period_handler, subscriptions):
        assert await credit_service.get_credit_balance("new-user") is None

        assert await period_handler.handle_payment_succeeded(
            "invoice:in_new", "new-user", "basic", PERIOD_START, PERIOD_END
        )

        balance = await credit_service.get_credit_balance("new-user")
        assert balance.playground_credits == 175
        assert balance.api_credits == 0
        assert balance.playground_credits_next_reset == PERIOD_END
        subscription = await subscriptions.get("new-user")
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.package_id == "basic"
        status = await period_handler.event_log.get_event_status("invoice:in_new")
        assert status['status'] == "completed"

    @pytest.mark.asyncio
    async def test_redelivered_payment_does_not_reset_twice(self, credit_service, period_handler):
        await credit_service.create_user_credits("user-1")
        await period_handler.handle_payment_succeeded("invoice:in_1", "user-1", "basic", PERIOD_START, PERIOD_END)
        await credit_service.deduct_credits(CreditDeductionRequest(user_id="user-1", amount=30))

        applied = await period_handler.handle_payment_succeeded(
            "invoice:in_1", "user-1", "basic", PERIOD_START, PERIOD_END
        )

        assert applied is False
        balance = await credit_service.get_credit_balance("user-1")
        assert balance.playground_credits_used_current_period == 30
        assert balance.available_playground_credits == 145

    @pytest.mark.asyncio
    async def test_next_period_resets_usage(self, credit_service, period_handler):
        await credit_service.create_user_credits("user-1")
        await period_handler.handle_payment_succeeded("invoice:in_1", "user-1", "basic", PERIOD_START, PERIOD_END)
        await credit_service.deduct_credits(CreditDeductionRequest(user_id="user-1", amount=100))

        next_end = datetime(2026, 12, 1, tzinfo=timezone.utc)
        assert await period_handler.handle_payment_succeeded("invoice:in_2", "user-1", "basic", PERIOD_END, next_end)

        balance = await credit_service.get_credit_balance("user-1")
        assert balance.available_playground_credits == 175
        assert balance.playground_credits_next_reset == next_end

    @pytest.mark.asyncio
    async def test_cancellation_keeps_api_credits(self, credit_service, period_handler, subscriptions):
        await credit_service.create_user_credits("user-1")
        await period_handler.handle_payment_succeeded("invoice:in_1", "user-1", "pro", PERIOD_START, PERIOD_END)
        await credit_service.refill_credits(CreditRefillRequest(
            user_id="user-1", source=CreditSource.API_PURCHASE, api_credits=50
        ))
        await credit_service.deduct_credits(
            CreditDeductionRequest(user_id="user-1", amount=60, credit_type=CreditType.PLAYGROUND)
        )

        assert await period_handler.handle_subscription_cancelled("evt_cancel", "user-1")

        report = await credit_service.get_credit_usage_report("user-1")
        assert report.playground_credits_allocated == 0
        assert report.playground_credits_used == 60
        assert report.playground_credits_remaining == 0
        assert report.api_credits_remaining == 50
        assert report.current_period_end is None
        assert (await subscriptions.get("user-1")).status == SubscriptionStatus.CANCELLED

        # a second cancellation from another event is a no-op
        assert await period_handler.handle_subscription_cancelled("evt_cancel_2", "user-1") is False

    @pytest.mark.asyncio
    async def test_payment_failure_then_recovery(self, credit_service, period_handler, subscriptions):
        await credit_service.create_user_credits("user-1")
        await period_handler.handle_payment_succeeded("invoice:in_1", "user-1", "basic", PERIOD_START, PERIOD_END)

        assert await period_handler.handle_payment_failed("evt_failed", "user-1")
        assert (await subscriptions.get("user-1")).status == SubscriptionStatus.PAST_DUE
        assert (await credit_service.get_credit_balance("user-1")).playground_credits == 175

        await period_handler.handle_payment_succeeded("invoice:in_2", "user-1", "basic", PERIOD_START, PERIOD_END)
        assert (await subscriptions.get("user-1")).status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_events_published(self, credit_service, period_handler, event_bus, recorded_events):
        await credit_service.create_user_credits("user-1")
        await period_handler.handle_payment_succeeded("invoice:in_1", "user-1", "basic", PERIOD_START, PERIOD_END)
        await credit_service.deduct_credits(CreditDeductionRequest(user_id="user-1", amount=3))
        await event_bus.drain()

        assert [e.name for e in recorded_events] == [CREDIT_CREATED, CREDIT_RESET, CREDIT_DEDUCTED]


class TestBillingEventLog:

    @pytest.mark.asyncio
    async def test_status_flow(self, session_factory):
        event_log = BillingEventLog(session_factory)

        assert await event_log.check_and_mark_processing("evt_1", "payment_succeeded", "user-1") == (True, "Processing")
        assert await event_log.check_and_mark_processing("evt_1", "payment_succeeded") == (
            False, "Event currently being processed"
        )

        await event_log.mark_failed("evt_1", "ledger down")
        assert (await event_log.get_event_status("evt_1"))['status'] == "failed"
        assert await event_log.check_and_mark_processing("evt_1", "payment_succeeded") == (True, "Retrying")

        await event_log.mark_completed("evt_1")
        status = await event_log.get_event_status("evt_1")
        assert status['status'] == "completed"
        assert status['completed_at'] is not None
        assert await event_log.check_and_mark_processing("evt_1", "payment_succeeded") == (
            False, "Event already processed"
        )

    @pytest.mark.asyncio
    async def test_stuck_processing_is_retried(self, session_factory):
        event_log = BillingEventLog(session_factory)
        await event_log.check_and_mark_processing("evt_1", "payment_succeeded")

        later = datetime.now(timezone.utc) + timedelta(minutes=10)
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("marketplace.src.billing.subscriptions.event_log.timezone.now", lambda: later)
            assert await event_log.check_and_mark_processing("evt_1", "payment_succeeded") == (True, "Retrying")

    @pytest.mark.asyncio
    async def test_unknown_event(self, session_factory):
        event_log = BillingEventLog(session_factory)

        assert await event_log.get_event_status("evt_missing") is None
        assert await event_log.mark_completed("evt_missing") is False


class TestUserInitialization:

    @pytest.mark.asyncio
    async def test_first_use_grants_free_package(self, credit_service, subscriptions):
        assert await ensure_user_initialized("user-1", credit_service, subscriptions) is True
        assert await ensure_user_initialized("user-1", credit_service, subscriptions) is False

        balance = await credit_service.get_credit_balance("user-1")
        assert balance.playground_credits == 5
        assert balance.api_credits == 0
        subscription = await subscriptions.get("user-1")
        assert subscription.package_id == "free"
        assert subscription.status == SubscriptionStatus.NONE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
