"""Tests for the in-process credit event bus."""

import asyncio

import pytest

from marketplace.src.billing.shared.events import CREDIT_DEDUCTED, CREDIT_REFILLED, CreditEvent, CreditEventBus


class TestCreditEventBus:

    @pytest.mark.asyncio
    async def test_publish_reaches_named_and_wildcard_handlers(self):
        bus = CreditEventBus()
        seen = []

        async def on_deducted(event):
            seen.append(("named", event.name))

        async def on_any(event):
            seen.append(("any", event.name))

        bus.subscribe(CREDIT_DEDUCTED, on_deducted)
        bus.subscribe(CreditEventBus.WILDCARD, on_any)

        assert bus.publish(CreditEvent(CREDIT_DEDUCTED, "user-1", {"amount": 5})) == 2
        assert bus.publish(CreditEvent(CREDIT_REFILLED, "user-1")) == 1
        await bus.drain()

        assert sorted(seen) == [("any", CREDIT_DEDUCTED), ("any", CREDIT_REFILLED), ("named", CREDIT_DEDUCTED)]

    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_handlers(self):
        bus = CreditEventBus()
        release = asyncio.Event()
        finished = []

        async def slow(event):
            await release.wait()
            finished.append(event.user_id)

        bus.subscribe(CREDIT_DEDUCTED, slow)
        bus.publish(CreditEvent(CREDIT_DEDUCTED, "user-1"))

        assert finished == []
        release.set()
        await bus.drain()
        assert finished == ["user-1"]

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self):
        bus = CreditEventBus()
        seen = []

        async def broken(event):
            raise RuntimeError("listener down")

        async def healthy(event):
            seen.append(event.name)

        bus.subscribe(CREDIT_DEDUCTED, broken)
        bus.subscribe(CREDIT_DEDUCTED, healthy)
        bus.publish(CreditEvent(CREDIT_DEDUCTED, "user-1"))
        await bus.drain()

        assert seen == [CREDIT_DEDUCTED]

    @pytest.mark.asyncio
    async def test_no_handlers(self):
        bus = CreditEventBus()

        assert bus.publish(CreditEvent(CREDIT_DEDUCTED, "user-1")) == 0

    @pytest.mark.asyncio
    async def test_subscribe_is_idempotent_and_unsubscribe(self):
        bus = CreditEventBus()

        async def handler(event):
            pass

        bus.subscribe(CREDIT_DEDUCTED, handler)
        bus.subscribe(CREDIT_DEDUCTED, handler)
        assert bus.handlers_for(CREDIT_DEDUCTED) == [handler]

        bus.unsubscribe(CREDIT_DEDUCTED, handler)
        assert bus.handlers_for(CREDIT_DEDUCTED) == []

    def test_publish_without_running_loop_drops_event(self):
        bus = CreditEventBus()

        async def handler(event):
            pass

        bus.subscribe(CREDIT_DEDUCTED, handler)

        assert bus.publish(CreditEvent(CREDIT_DEDUCTED, "user-1")) == 0

    def test_event_to_dict_flattens_payload(self):
        event = CreditEvent(CREDIT_DEDUCTED, "user-1", {"amount": 5})

        data = event.to_dict()

        assert data['name'] == CREDIT_DEDUCTED
        assert data['amount'] == 5
        assert 'occurred_at' in data


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
