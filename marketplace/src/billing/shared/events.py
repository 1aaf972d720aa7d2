"""
Credit Event Bus

In-process pub/sub for ledger state changes. Every successful credit
operation publishes a ``CreditEvent``; listeners run as detached tasks so a
slow or failing listener never affects the operation that emitted the event.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Set

from marketplace.utils.timezone import timezone

logger = logging.getLogger(__name__)


CREDIT_DEDUCTED = "credit.deducted"
CREDIT_REFILLED = "credit.refilled"
CREDIT_RESET = "credit.reset"
CREDIT_CREATED = "credit.created"
CREDIT_MIGRATED = "credit.migrated"


@dataclass(frozen=True)
class CreditEvent:
    """A ledger state change, emitted after the change is committed."""
    name: str
    user_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=timezone.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'user_id': self.user_id,
            'occurred_at': self.occurred_at.isoformat(),
            **self.payload,
        }


EventHandler = Callable[[CreditEvent], Awaitable[None]]


class CreditEventBus:
    """
    Fire-and-forget event dispatcher.

    Handlers are registered per event name, or for every event with ``"*"``.
    ``publish`` schedules each handler as its own task and returns at once.
    """

    WILDCARD = "*"

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.setdefault(event_name, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug(f"[EVENTS] Registered handler {getattr(handler, '__name__', handler)} for {event_name}")

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_name: str) -> List[EventHandler]:
        return [
            *self._handlers.get(event_name, []),
            *self._handlers.get(self.WILDCARD, []),
        ]

    def publish(self, event: CreditEvent) -> int:
        """
        Dispatch an event to its handlers.

        Returns:
            Number of handler tasks scheduled
        """
        handlers = self.handlers_for(event.name)
        if not handlers:
            return 0

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[EVENTS] No running loop, dropping {event.name} for user {event.user_id}")
            return 0

        for handler in handlers:
            task = loop.create_task(self._run_handler(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        logger.debug(f"[EVENTS] Published {event.name} for user {event.user_id} to {len(handlers)} handler(s)")
        return len(handlers)

    async def _run_handler(self, handler: EventHandler, event: CreditEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(
                f"[EVENTS] Handler {getattr(handler, '__name__', handler)} failed for {event.name} "
                f"(user {event.user_id}): {e}",
                exc_info=True
            )

    async def drain(self) -> None:
        """Wait for every in-flight handler task to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


credit_event_bus = CreditEventBus()
