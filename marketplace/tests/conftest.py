"""Shared fixtures: a file-backed SQLite ledger per test."""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from marketplace.database.db import create_async_engine_and_session, create_tables, drop_tables
from marketplace.src.billing.credits.manager import CreditManagementService
from marketplace.src.billing.credits.store import UserCreditsStore
from marketplace.src.billing.shared.events import CreditEventBus
from marketplace.src.billing.subscriptions.event_log import BillingEventLog
from marketplace.src.billing.subscriptions.period_handler import SubscriptionPeriodHandler
from marketplace.src.billing.subscriptions.repository import SubscriptionRepository


@pytest.fixture(autouse=True)
def cache_invalidation():
    with patch("marketplace.src.billing.credits.manager.invalidate_credit_caches", AsyncMock(return_value=True)) as mock:
        yield mock


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine, factory = create_async_engine_and_session(f"sqlite+aiosqlite:///{tmp_path / 'billing.sqlite3'}")
    await create_tables(engine)
    yield factory
    await drop_tables(engine)
    await engine.dispose()


@pytest.fixture
def event_bus():
    return CreditEventBus()


@pytest.fixture
def store(session_factory):
    return UserCreditsStore(session_factory)


@pytest.fixture
def credit_service(store, event_bus):
    return CreditManagementService(store=store, event_bus=event_bus)


@pytest.fixture
def subscriptions(session_factory):
    return SubscriptionRepository(session_factory)


@pytest.fixture
def period_handler(credit_service, subscriptions, session_factory):
    return SubscriptionPeriodHandler(
        credit_service=credit_service,
        subscriptions=subscriptions,
        event_log=BillingEventLog(session_factory),
    )


@pytest.fixture
def recorded_events(event_bus):
    """Every event published on ``event_bus``, in publish order."""
    events = []

    async def record(event):
        events.append(event)

    event_bus.subscribe(CreditEventBus.WILDCARD, record)
    return events
