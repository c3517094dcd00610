"""Tests for the transactional outbox — service, notifier, processor, cleanup."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.models.enums import EventStatus, NotificationKind, OrderStatus
from src.models.event_outbox import EventOutbox
from src.models.processed_event import ProcessedEvent
from src.modules.events.handlers import EventHandlerRegistry, HandlerResult
from src.modules.events.outbox_processor import OutboxProcessor
from src.modules.events.outbox_service import OutboxService
from src.modules.notifications.outbox import OutboxNotifier


@pytest.fixture(autouse=True)
def clean_registry():
    EventHandlerRegistry.clear()
    yield
    EventHandlerRegistry.clear()


async def _publish(session_factory, event_type="order.ready", payload=None) -> EventOutbox:
    async with session_factory() as session:
        async with session.begin():
            return await OutboxService(session).publish_event(
                event_type=event_type,
                aggregate_type="order",
                aggregate_id=str(uuid.uuid4()),
                payload=payload or {"order_number": "ORD-1"},
            )


async def _pending_events(session_factory) -> list[EventOutbox]:
    async with session_factory() as session:
        result = await session.execute(
            select(EventOutbox).where(EventOutbox.status == EventStatus.PENDING)
        )
        return list(result.scalars().all())


class TestOutboxService:
    @pytest.mark.asyncio
    async def test_publish_event_creates_pending_event(self, session_factory):
        event = await _publish(session_factory, payload={"order_number": "ORD-7"})

        assert event.id is not None
        assert event.status == EventStatus.PENDING
        assert event.retry_count == 0
        assert event.max_retries == 3
        assert event.payload["order_number"] == "ORD-7"

    @pytest.mark.asyncio
    async def test_publish_event_honours_max_retries(self, session_factory):
        async with session_factory() as session:
            async with session.begin():
                event = await OutboxService(session).publish_event(
                    event_type="order.cancelled",
                    aggregate_type="order",
                    aggregate_id=str(uuid.uuid4()),
                    payload={},
                    max_retries=5,
                )

        stored = await _pending_events(session_factory)
        assert [e.id for e in stored] == [event.id]
        assert stored[0].max_retries == 5


class TestOutboxNotifier:
    @pytest.mark.asyncio
    async def test_notify_queues_order_event(self, session_factory, order_factory):
        order = order_factory(status=OrderStatus.READY)
        notifier = OutboxNotifier(session_factory)

        result = await notifier.notify(order, NotificationKind.READY, {"refund_required": False})

        assert result.queued is True
        assert result.delivered is False
        events = await _pending_events(session_factory)
        assert len(events) == 1
        event = events[0]
        assert event.event_type == "order.ready"
        assert event.aggregate_id == str(order.id)
        assert event.payload["order_number"] == order.order_number
        assert event.payload["email_template"] == "order_ready"
        assert event.payload["webhook_event"] == "order.ready"
        assert event.payload["total_amount"] == "42.50"
        assert event.payload["refund_required"] is False


class TestOutboxProcessor:
    @pytest.mark.asyncio
    async def test_dispatches_and_marks_completed(self, session_factory, sync_test_engine):
        received = []

        def record_payload(payload):
            received.append(payload)

        EventHandlerRegistry.register("order.ready", record_payload)
        event = await _publish(session_factory)

        stats = OutboxProcessor(sync_test_engine).process_batch()

        assert stats == {"processed": 1, "failed": 0}
        assert received == [{"order_number": "ORD-1"}]
        with Session(sync_test_engine) as session:
            stored = session.get(EventOutbox, event.id)
            assert stored.status == EventStatus.COMPLETED
            assert stored.processed_at is not None
            marker = session.query(ProcessedEvent).filter_by(event_id=event.id).one()
            assert marker.handler_name == "record_payload"

    @pytest.mark.asyncio
    async def test_handler_failure_schedules_retry(self, session_factory, sync_test_engine):
        def explode(payload):
            raise ConnectionError("email service down")

        EventHandlerRegistry.register("order.ready", explode)
        event = await _publish(session_factory)

        stats = OutboxProcessor(sync_test_engine).process_batch()

        assert stats == {"processed": 0, "failed": 1}
        with Session(sync_test_engine) as session:
            stored = session.get(EventOutbox, event.id)
            assert stored.status == EventStatus.PENDING
            assert stored.retry_count == 1
            assert "email service down" in stored.last_error

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, session_factory, sync_test_engine):
        def explode(payload):
            raise ConnectionError("webhook timeout")

        EventHandlerRegistry.register("order.ready", explode)
        event = await _publish(session_factory)
        processor = OutboxProcessor(sync_test_engine)

        for _ in range(3):
            processor.process_batch()

        with Session(sync_test_engine) as session:
            stored = session.get(EventOutbox, event.id)
            assert stored.status == EventStatus.FAILED
            assert stored.retry_count == 3

    @pytest.mark.asyncio
    async def test_already_processed_event_is_not_redelivered(
        self, session_factory, sync_test_engine
    ):
        calls = []
        EventHandlerRegistry.register("order.ready", calls.append)
        event = await _publish(session_factory)
        with Session(sync_test_engine) as session:
            session.add(ProcessedEvent(
                event_id=event.id,
                event_type=event.event_type,
                handler_name="append",
                expires_at=datetime.now(UTC) + timedelta(days=1),
            ))
            session.commit()

        stats = OutboxProcessor(sync_test_engine).process_batch()

        assert stats == {"processed": 1, "failed": 0}
        assert calls == []

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, session_factory, sync_test_engine):
        event = await _publish(session_factory)
        now = datetime.now(UTC)
        with Session(sync_test_engine) as session:
            stored = session.get(EventOutbox, event.id)
            stored.status = EventStatus.COMPLETED
            stored.processed_at = now - timedelta(days=40)
            session.add(ProcessedEvent(
                event_id=uuid.uuid4(),
                event_type="order.ready",
                handler_name="send_order_email",
                expires_at=now - timedelta(days=1),
            ))
            session.commit()

        deleted = OutboxProcessor(sync_test_engine).cleanup_expired()

        assert deleted == 2


class TestHandlerRegistry:
    def test_duplicate_registration_is_ignored(self):
        def handler(payload):
            pass

        EventHandlerRegistry.register("order.confirmed", handler)
        EventHandlerRegistry.register("order.confirmed", handler)

        assert EventHandlerRegistry.get_handlers("order.confirmed") == [handler]

    def test_dispatch_reports_errors_per_handler(self):
        def ok(payload):
            pass

        def broken(payload):
            raise ValueError("bad template")

        EventHandlerRegistry.register("order.cancelled", broken)
        EventHandlerRegistry.register("order.cancelled", ok)

        results = EventHandlerRegistry.dispatch("order.cancelled", {})

        assert results == [HandlerResult("broken", "bad template"), HandlerResult("ok")]
        assert results[0].ok is False
        assert results[1].ok is True
