"""OutboxProcessor — synchronous batch processor for Celery workers."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, select, update
from sqlalchemy.orm import Session

from src.config import settings
from src.database.engine import sync_engine
from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox
from src.models.processed_event import ProcessedEvent
from src.modules.events.handlers import EventHandlerRegistry

logger = logging.getLogger(__name__)

PROCESSED_EVENT_TTL = timedelta(days=7)
COMPLETED_EVENT_RETENTION = timedelta(days=30)


class OutboxProcessor:
    """Processes pending outbox events using sync sessions (for Celery workers).

    Rows are claimed with SELECT ... FOR UPDATE SKIP LOCKED where the backend
    supports it. Idempotency is tracked in the processed_events table.
    """

    def __init__(self, engine: Engine = sync_engine) -> None:
        self.engine = engine

    def process_batch(self, batch_size: int | None = None) -> dict:
        """Process a batch of pending events.

        Returns dict with 'processed' and 'failed' counts.
        """
        batch_size = batch_size or settings.event_outbox_batch_size
        processed_count = 0
        failed_count = 0

        with Session(self.engine, expire_on_commit=False) as session:
            events = session.scalars(
                select(EventOutbox)
                .where(EventOutbox.status == EventStatus.PENDING)
                .order_by(EventOutbox.created_at.asc())
                .limit(batch_size)
                .with_for_update(skip_locked=True)
            ).all()

            for event in events:
                event_id = event.id
                event_type = event.event_type
                payload = event.payload
                retry_count = event.retry_count
                max_retries = event.max_retries

                try:
                    already_processed = session.scalar(
                        select(ProcessedEvent.id)
                        .where(ProcessedEvent.event_id == event_id)
                        .limit(1)
                    )
                    if already_processed is not None:
                        self._mark_completed(session, event_id)
                        session.commit()
                        processed_count += 1
                        continue

                    # Not committed on its own: a crash rolls back to PENDING
                    session.execute(
                        update(EventOutbox)
                        .where(EventOutbox.id == event_id)
                        .values(status=EventStatus.PROCESSING)
                    )

                    results = EventHandlerRegistry.dispatch(event_type, payload)

                    failures = [r for r in results if not r.ok]
                    if failures:
                        raise RuntimeError("Handler errors: " + "; ".join(
                            f"{r.handler}: {r.error}" for r in failures
                        ))

                    session.add(ProcessedEvent(
                        event_id=event_id,
                        event_type=event_type,
                        handler_name=",".join(r.handler for r in results) or "no_handlers",
                        expires_at=datetime.now(UTC) + PROCESSED_EVENT_TTL,
                    ))
                    self._mark_completed(session, event_id)
                    session.commit()
                    processed_count += 1

                except Exception as exc:
                    session.rollback()
                    logger.exception(
                        "Failed to process event %s (type=%s)", event_id, event_type
                    )

                    new_retry_count = retry_count + 1
                    new_status = (
                        EventStatus.FAILED
                        if new_retry_count >= max_retries
                        else EventStatus.PENDING
                    )
                    session.execute(
                        update(EventOutbox)
                        .where(EventOutbox.id == event_id)
                        .values(
                            status=new_status,
                            retry_count=new_retry_count,
                            last_error=str(exc),
                        )
                    )
                    session.commit()
                    failed_count += 1

        return {"processed": processed_count, "failed": failed_count}

    @staticmethod
    def _mark_completed(session: Session, event_id) -> None:
        session.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(status=EventStatus.COMPLETED, processed_at=datetime.now(UTC))
        )

    def cleanup_expired(self) -> int:
        """Delete expired processed_events and old completed outbox events.

        Returns total number of rows deleted.
        """
        now = datetime.now(UTC)
        total_deleted = 0

        with Session(self.engine) as session:
            result = session.execute(
                delete(ProcessedEvent).where(ProcessedEvent.expires_at < now)
            )
            total_deleted += result.rowcount

            result = session.execute(
                delete(EventOutbox).where(
                    EventOutbox.status == EventStatus.COMPLETED,
                    EventOutbox.processed_at < now - COMPLETED_EVENT_RETENTION,
                )
            )
            total_deleted += result.rowcount

            session.commit()

        logger.info("Cleaned up %d expired event records", total_deleted)
        return total_deleted
