"""Shared fixtures: order factory, in-memory storage, recording notifier, SQLite engines."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.database.base import Base
from src.exceptions import NotificationFailedException
from src.models.enums import DeliveryOption, NotificationKind, OrderStatus, PaymentStatus
from src.models.order import Order
from src.models.order_status_history import OrderStatusHistory
from src.modules.notifications.base import NotificationResult, Notifier
from src.modules.order.storage import OrderStorage, StatusHistoryEntry

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

ORDER_FIELDS = [column.key for column in Order.__table__.columns]


def make_order(
    status: OrderStatus = OrderStatus.PENDING,
    payment_status: PaymentStatus = PaymentStatus.PAID,
    delivery_option: DeliveryOption = DeliveryOption.PICKUP,
    order_number: str | None = None,
    created_at: datetime | None = None,
    **overrides,
) -> Order:
    """Build a transient Order with every column populated."""
    values = {field: None for field in ORDER_FIELDS}
    values.update(
        id=uuid.uuid4(),
        order_number=order_number or f"ORD-{uuid.uuid4().hex[:8].upper()}",
        status=status,
        payment_status=payment_status,
        delivery_option=delivery_option,
        total_amount=Decimal("42.50"),
        customer_id=uuid.uuid4(),
        customer_email="customer@example.com",
        customer_name="Ada Baker",
        created_at=created_at or NOW - timedelta(hours=1),
        updated_at=created_at or NOW - timedelta(hours=1),
    )
    values.update(overrides)
    return Order(**values)


class InMemoryOrderStorage(OrderStorage):
    """OrderStorage over plain dicts with an atomic compare-and-set.

    Every call yields to the event loop once, so concurrent executions
    interleave the way they would against a real database.
    """

    def __init__(self, orders=()) -> None:
        self.rows: dict[uuid.UUID, dict] = {}
        self.history: list[StatusHistoryEntry] = []
        for order in orders:
            self.add(order)

    def add(self, order: Order) -> Order:
        self.rows[order.id] = {field: getattr(order, field) for field in ORDER_FIELDS}
        return order

    def row(self, order_id: uuid.UUID) -> dict:
        return self.rows[order_id]

    def _build(self, row: dict) -> Order:
        return Order(**row)

    async def get(self, order_id):
        await asyncio.sleep(0)
        row = self.rows.get(order_id)
        return self._build(row) if row is not None else None

    async def compare_and_set_status(self, order_id, expected_from, updates):
        await asyncio.sleep(0)
        row = self.rows.get(order_id)
        if row is None or row["status"] != expected_from:
            return False
        row.update(updates)
        return True

    async def append_history(self, entry):
        await asyncio.sleep(0)
        self.history.append(entry)

    async def list_history(self, order_id):
        return [
            OrderStatusHistory(
                id=uuid.uuid4(),
                order_id=entry.order_id,
                previous_status=entry.previous_status,
                new_status=entry.new_status,
                actor_role=entry.actor_role,
                actor_id=entry.actor_id,
                reason=entry.reason,
                metadata_extra=entry.metadata,
                created_at=entry.created_at,
            )
            for entry in self.history
            if entry.order_id == order_id
        ]

    def _select(self, predicate) -> list[Order]:
        return [self._build(row) for row in self.rows.values() if predicate(row)]

    async def query_ready_older_than(self, cutoff):
        return self._select(
            lambda r: r["status"] == OrderStatus.READY
            and r["ready_at"] is not None
            and r["ready_at"] < cutoff
        )

    async def query_unpaid_pending_older_than(self, cutoff):
        return self._select(
            lambda r: r["status"] == OrderStatus.PENDING
            and r["payment_status"] != PaymentStatus.PAID
            and r["created_at"] < cutoff
        )

    async def query_confirmed_unstarted_older_than(self, cutoff):
        return self._select(
            lambda r: r["status"] == OrderStatus.CONFIRMED
            and r["confirmed_at"] is not None
            and r["confirmed_at"] < cutoff
            and r["start_reminder_sent_at"] is None
        )

    async def mark_start_reminder_sent(self, order_id, at):
        self.rows[order_id]["start_reminder_sent_at"] = at


class RecordingNotifier(Notifier):
    """Notifier double that remembers every call and can be told to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[Order, NotificationKind, dict | None]] = []

    async def notify(self, order, kind, extra=None):
        self.calls.append((order, kind, extra))
        if self.fail:
            raise NotificationFailedException(f"{kind.value} delivery failed")
        return NotificationResult(channel="recording", delivered=True)

    @property
    def kinds(self) -> list[NotificationKind]:
        return [kind for _, kind, _ in self.calls]


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def storage() -> InMemoryOrderStorage:
    return InMemoryOrderStorage()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


# ---------------------------------------------------------------------------
# SQLite engines (aiosqlite for async code, pysqlite for the outbox processor)
# ---------------------------------------------------------------------------


@pytest.fixture
def sqlite_path(tmp_path) -> str:
    return str(tmp_path / "orders.db")


@pytest_asyncio.fixture
async def async_test_engine(sqlite_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{sqlite_path}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_test_engine) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    yield async_sessionmaker(async_test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sync_test_engine(async_test_engine, sqlite_path):
    engine = create_engine(f"sqlite:///{sqlite_path}")
    yield engine
    engine.dispose()
