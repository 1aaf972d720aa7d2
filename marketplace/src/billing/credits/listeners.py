"""
Default credit event listeners.
"""

import logging

from marketplace.src.billing.shared.events import CreditEvent, CreditEventBus, credit_event_bus

logger = logging.getLogger(__name__)


async def log_credit_event(event: CreditEvent) -> None:
    logger.debug(f"[EVENTS] {event.name} user={event.user_id} payload={event.payload}")


def register_credit_listeners(event_bus: CreditEventBus = credit_event_bus) -> None:
    """Attach the listeners every running app needs."""
    event_bus.subscribe(CreditEventBus.WILDCARD, log_credit_event)
