"""OutboxService — async writer for outbox events."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox


class OutboxService:
    """Writes events into the outbox inside the caller's transaction.

    Reading and delivering them is OutboxProcessor's job, on the worker side.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
        max_retries: int = 3,
    ) -> EventOutbox:
        """Create a new event in the outbox with PENDING status."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=EventStatus.PENDING,
            retry_count=0,
            max_retries=max_retries,
        )
        self.session.add(event)
        await self.session.flush()
        return event
