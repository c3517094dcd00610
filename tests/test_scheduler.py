"""Tests for ScheduledTransitionRunner — auto-complete, auto-cancel, start reminders."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.models.enums import NotificationKind, OrderStatus, PaymentStatus, UserRole
from src.modules.order.executor import TransitionExecutor
from src.modules.order.scheduler import ScheduledTransitionRunner


@pytest.fixture
def runner(storage, notifier, clock):
    return ScheduledTransitionRunner(TransitionExecutor(storage, notifier, clock=clock))


class TestAutoComplete:
    @pytest.mark.asyncio
    async def test_ready_order_past_window_is_completed(self, runner, storage, order_factory, now):
        o1 = storage.add(order_factory(
            status=OrderStatus.READY,
            ready_at=now - timedelta(hours=25),
            order_number="O1",
        ))

        summary = await runner.run()

        assert storage.row(o1.id)["status"] == OrderStatus.COMPLETED
        assert storage.row(o1.id)["completed_at"] == now
        assert summary.auto_completed == ["O1"]
        entry = storage.history[0]
        assert entry.actor_role == UserRole.SYSTEM
        assert entry.metadata == {"auto": True, "reason": "24_hour_timeout"}
        assert entry.reason == "Auto-completed after 24 hours"

    @pytest.mark.asyncio
    async def test_recently_ready_order_is_left_alone(self, runner, storage, order_factory, now):
        order = storage.add(order_factory(
            status=OrderStatus.READY, ready_at=now - timedelta(hours=23)
        ))

        summary = await runner.run()

        assert storage.row(order.id)["status"] == OrderStatus.READY
        assert summary.auto_completed == []


class TestAutoCancel:
    @pytest.mark.asyncio
    async def test_unpaid_pending_order_is_cancelled(self, runner, storage, notifier, order_factory, now):
        o2 = storage.add(order_factory(
            payment_status=PaymentStatus.PENDING,
            created_at=now - timedelta(minutes=31),
            order_number="O2",
        ))

        summary = await runner.run()

        row = storage.row(o2.id)
        assert row["status"] == OrderStatus.CANCELLED
        assert row["cancellation_reason"] == "Payment not completed within 30 minutes"
        assert summary.auto_cancelled == ["O2"]
        assert storage.history[0].metadata["reason"] == "payment_timeout"
        _, kind, extra = notifier.calls[0]
        assert kind == NotificationKind.CANCELLED
        assert extra == {"refund_required": False}

    @pytest.mark.asyncio
    async def test_paid_and_fresh_orders_are_not_cancelled(self, runner, storage, order_factory, now):
        paid = storage.add(order_factory(
            payment_status=PaymentStatus.PAID, created_at=now - timedelta(hours=2)
        ))
        fresh = storage.add(order_factory(
            payment_status=PaymentStatus.PENDING, created_at=now - timedelta(minutes=10)
        ))

        summary = await runner.run()

        assert storage.row(paid.id)["status"] == OrderStatus.PENDING
        assert storage.row(fresh.id)["status"] == OrderStatus.PENDING
        assert summary.auto_cancelled == []

    @pytest.mark.asyncio
    async def test_failed_payment_counts_as_unpaid(self, runner, storage, order_factory, now):
        order = storage.add(order_factory(
            payment_status=PaymentStatus.FAILED, created_at=now - timedelta(hours=1)
        ))

        await runner.run_auto_cancel()

        assert storage.row(order.id)["status"] == OrderStatus.CANCELLED


class TestStartReminders:
    @pytest.mark.asyncio
    async def test_reminder_sent_once(self, runner, storage, notifier, order_factory, now):
        order = storage.add(order_factory(
            status=OrderStatus.CONFIRMED,
            confirmed_at=now - timedelta(hours=13),
            order_number="O3",
        ))

        first = await runner.run()
        second = await runner.run()

        assert first.reminders_sent == ["O3"]
        assert second.reminders_sent == []
        assert notifier.kinds == [NotificationKind.START_REMINDER]
        assert storage.row(order.id)["status"] == OrderStatus.CONFIRMED
        assert storage.row(order.id)["start_reminder_sent_at"] == now
        assert storage.history == []

    @pytest.mark.asyncio
    async def test_failed_reminder_is_retried_next_run(
        self, storage, failing_notifier, order_factory, clock, now
    ):
        runner = ScheduledTransitionRunner(TransitionExecutor(storage, failing_notifier, clock=clock))
        order = storage.add(order_factory(
            status=OrderStatus.CONFIRMED, confirmed_at=now - timedelta(hours=13)
        ))

        summary = await runner.run_start_reminders()

        assert summary.reminders_sent == []
        assert summary.errors[0]["rule"] == "start_reminder"
        assert storage.row(order.id)["start_reminder_sent_at"] is None


class TestErrorIsolation:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(
        self, runner, storage, order_factory, now, monkeypatch
    ):
        broken = storage.add(order_factory(
            status=OrderStatus.READY, ready_at=now - timedelta(hours=30), order_number="BROKEN"
        ))
        healthy = storage.add(order_factory(
            status=OrderStatus.READY, ready_at=now - timedelta(hours=26), order_number="OK"
        ))
        real_cas = storage.compare_and_set_status

        async def flaky_cas(order_id, expected_from, updates):
            if order_id == broken.id:
                raise RuntimeError("connection reset")
            return await real_cas(order_id, expected_from, updates)

        monkeypatch.setattr(storage, "compare_and_set_status", flaky_cas)

        summary = await runner.run()

        assert summary.auto_completed == ["OK"]
        assert storage.row(healthy.id)["status"] == OrderStatus.COMPLETED
        assert len(summary.errors) == 1
        assert summary.errors[0]["order_number"] == "BROKEN"
        assert summary.errors[0]["code"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_conflicts_are_collected(self, runner, storage, order_factory, now, monkeypatch):
        storage.add(order_factory(
            status=OrderStatus.READY, ready_at=now - timedelta(hours=30), order_number="RACE"
        ))
        monkeypatch.setattr(storage, "compare_and_set_status", AsyncMock(return_value=False))

        summary = await runner.run()

        assert summary.auto_completed == []
        assert summary.errors[0]["code"] == "TRANSITION_CONFLICT"

    @pytest.mark.asyncio
    async def test_summary_counts(self, runner, storage, order_factory, now):
        storage.add(order_factory(status=OrderStatus.READY, ready_at=now - timedelta(days=2)))
        storage.add(order_factory(
            payment_status=PaymentStatus.PENDING, created_at=now - timedelta(hours=1)
        ))

        summary = (await runner.run()).as_dict()

        assert summary["counts"] == {
            "auto_completed": 1,
            "auto_cancelled": 1,
            "reminders_sent": 0,
            "errors": 0,
        }
