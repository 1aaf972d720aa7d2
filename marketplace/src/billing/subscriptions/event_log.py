"""
Billing Event Log

Deduplicates billing signals by provider event id so a redelivered webhook
never applies a period reset or cancellation twice.
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.src.billing.models import ProcessedBillingEvent
from marketplace.utils.timezone import timezone

logger = logging.getLogger(__name__)

# An event still "processing" after this long is assumed abandoned
STUCK_PROCESSING_SECONDS = 300


class BillingEventLog:
    """
    Tracks billing events and their processing status.

    Status flow: processing -> completed | failed. Failed events and events
    stuck in processing may be picked up again by a redelivery.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> Callable[[], AsyncSession]:
        if self._session_factory is None:
            from marketplace.database.db import async_db_session
            self._session_factory = async_db_session
        return self._session_factory

    async def check_and_mark_processing(
        self,
        event_id: str,
        event_type: str,
        user_id: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Check if an event can be processed and mark it as in-progress.

        Returns:
            Tuple of (can_process: bool, reason: str)
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    existing = await session.get(ProcessedBillingEvent, event_id, with_for_update=True)
                    now = timezone.now()

                    if existing is None:
                        session.add(ProcessedBillingEvent(
                            event_id=event_id,
                            event_type=event_type,
                            user_id=user_id,
                        ))
                        return True, "Processing"

                    if existing.status == 'completed':
                        return False, "Event already processed"

                    if existing.status == 'processing':
                        started = existing.updated_time or existing.created_time
                        age = (now - started).total_seconds()
                        if age < STUCK_PROCESSING_SECONDS:
                            return False, "Event currently being processed"
                        logger.warning(f"[EVENT LOG] Event {event_id} stuck in processing, allowing retry")
                    else:
                        logger.info(f"[EVENT LOG] Retrying failed event {event_id}")

                    existing.status = 'processing'
                    existing.error = None
                    existing.updated_time = now
                    return True, "Retrying"
        except IntegrityError:
            # another worker inserted the same event id first
            return False, "Event currently being processed"

    async def mark_completed(self, event_id: str) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    event = await session.get(ProcessedBillingEvent, event_id)
                    if event is None:
                        return False
                    event.status = 'completed'
                    event.completed_at = timezone.now()

            logger.debug(f"[EVENT LOG] Marked event {event_id} as completed")
            return True

        except Exception as e:
            logger.error(f"[EVENT LOG] Error marking event {event_id} completed: {e}")
            return False

    async def mark_failed(self, event_id: str, error_message: str) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    event = await session.get(ProcessedBillingEvent, event_id)
                    if event is None:
                        return False
                    event.status = 'failed'
                    event.error = error_message[:1000]  # Truncate long errors

            logger.warning(f"[EVENT LOG] Marked event {event_id} as failed: {error_message[:100]}")
            return True

        except Exception as e:
            logger.error(f"[EVENT LOG] Error marking event {event_id} failed: {e}")
            return False

    async def get_event_status(self, event_id: str) -> Optional[Dict]:
        async with self.session_factory() as session:
            event = await session.get(ProcessedBillingEvent, event_id)
            if event is None:
                return None
            return {
                'event_id': event.event_id,
                'event_type': event.event_type,
                'user_id': event.user_id,
                'status': event.status,
                'error': event.error,
                'created_at': event.created_time.isoformat() if event.created_time else None,
                'completed_at': event.completed_at.isoformat() if event.completed_at else None,
            }


billing_event_log = BillingEventLog()
