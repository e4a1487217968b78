"""OutboxService: records workflow events for the notification relay.

Events are written in the same transaction as the state change that caused
them. Delivery (email, chat messages) belongs to a separate relay process that
drains PENDING rows and reports back through ``mark_completed`` /
``mark_failed``.
"""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import NotFoundException
from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox

logger = logging.getLogger(__name__)


class OutboxService:
    """Manages the event outbox lifecycle (publish, fetch, mark)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
        schema_version: int = 1,
    ) -> EventOutbox:
        """Create a new event in the outbox with PENDING status."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=EventStatus.PENDING,
            schema_version=schema_version,
        )
        self.session.add(event)
        await self.session.flush()
        logger.debug("Outbox event %s queued for %s/%s", event_type, aggregate_type, aggregate_id)
        return event

    async def get_pending_events(self, batch_size: int = 50) -> list[EventOutbox]:
        """Get pending events ordered by created_at, limited to batch_size."""
        statement = (
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at.asc())
            .limit(batch_size)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def get_events_for_aggregate(
        self, aggregate_type: str, aggregate_id: str
    ) -> list[EventOutbox]:
        """All events ever published for one design approval or quote, oldest first."""
        statement = (
            select(EventOutbox)
            .where(
                EventOutbox.aggregate_type == aggregate_type,
                EventOutbox.aggregate_id == aggregate_id,
            )
            .order_by(EventOutbox.created_at.asc())
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def mark_completed(self, event_id: uuid.UUID) -> None:
        """Set event status to COMPLETED and record processed_at timestamp."""
        statement = (
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=EventStatus.COMPLETED,
                processed_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(statement)
        await self.session.flush()

    async def mark_failed(self, event_id: uuid.UUID, error: str) -> EventOutbox:
        """Record a delivery failure.

        The event goes back to PENDING for another attempt until retry_count
        reaches max_retries, after which it stays FAILED.
        """
        result = await self.session.execute(
            select(EventOutbox).where(EventOutbox.id == event_id)
        )
        event = result.scalar_one_or_none()
        if event is None:
            raise NotFoundException(f"Outbox event {event_id} not found")

        event.retry_count += 1
        event.last_error = error
        if event.retry_count >= event.max_retries:
            event.status = EventStatus.FAILED
            logger.warning(
                "Outbox event %s (%s) failed permanently after %d attempts: %s",
                event.id, event.event_type, event.retry_count, error,
            )
        else:
            event.status = EventStatus.PENDING
        await self.session.flush()
        return event
