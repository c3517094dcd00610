"""Order persistence behind an abstract interface.

TransitionExecutor and ScheduledTransitionRunner only see ``OrderStorage``;
``SqlAlchemyOrderStorage`` is the production implementation and tests swap in
an in-memory fake.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.database.engine import async_session
from src.models.enums import OrderStatus, PaymentStatus, UserRole
from src.models.order import Order
from src.models.order_status_history import OrderStatusHistory

logger = logging.getLogger(__name__)


@dataclass
class StatusHistoryEntry:
    order_id: uuid.UUID
    previous_status: OrderStatus
    new_status: OrderStatus
    actor_role: UserRole
    actor_id: uuid.UUID | None = None
    reason: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class OrderStorage(ABC):
    """Storage operations needed by the order lifecycle."""

    @abstractmethod
    async def get(self, order_id: uuid.UUID) -> Order | None:
        """Load one order, or None if it does not exist."""
        ...

    @abstractmethod
    async def compare_and_set_status(
        self,
        order_id: uuid.UUID,
        expected_from: OrderStatus,
        updates: dict[str, Any],
    ) -> bool:
        """Apply ``updates`` only if the stored status still equals ``expected_from``.

        Returns True when exactly one row was written.
        """
        ...

    @abstractmethod
    async def append_history(self, entry: StatusHistoryEntry) -> None:
        ...

    @abstractmethod
    async def list_history(self, order_id: uuid.UUID) -> list[OrderStatusHistory]:
        ...

    @abstractmethod
    async def query_ready_older_than(self, cutoff: datetime) -> list[Order]:
        """Orders in ``ready`` whose ``ready_at`` is strictly before ``cutoff``."""
        ...

    @abstractmethod
    async def query_unpaid_pending_older_than(self, cutoff: datetime) -> list[Order]:
        """Pending orders, not paid, created strictly before ``cutoff``."""
        ...

    @abstractmethod
    async def query_confirmed_unstarted_older_than(self, cutoff: datetime) -> list[Order]:
        """Confirmed orders with no start reminder yet, confirmed before ``cutoff``."""
        ...

    @abstractmethod
    async def mark_start_reminder_sent(self, order_id: uuid.UUID, at: datetime) -> None:
        ...


class SqlAlchemyOrderStorage(OrderStorage):
    """OrderStorage over the ``orders`` and ``order_status_history`` tables.

    Each call runs in its own short transaction, so a failed history insert
    never touches an already committed status write.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        batch_size: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.batch_size = batch_size or settings.scheduler_batch_size

    async def get(self, order_id: uuid.UUID) -> Order | None:
        async with self.session_factory() as session:
            return await session.get(Order, order_id)

    async def compare_and_set_status(
        self,
        order_id: uuid.UUID,
        expected_from: OrderStatus,
        updates: dict[str, Any],
    ) -> bool:
        statement = (
            update(Order)
            .where(Order.id == order_id, Order.status == expected_from)
            .values(**updates)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(statement)
        if result.rowcount != 1:
            logger.debug(
                "Compare-and-set missed for order %s (expected %s)", order_id, expected_from
            )
        return result.rowcount == 1

    async def append_history(self, entry: StatusHistoryEntry) -> None:
        row = OrderStatusHistory(
            order_id=entry.order_id,
            previous_status=entry.previous_status,
            new_status=entry.new_status,
            actor_role=entry.actor_role,
            actor_id=entry.actor_id,
            reason=entry.reason,
            metadata_extra=entry.metadata,
            created_at=entry.created_at,
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(row)

    async def list_history(self, order_id: uuid.UUID) -> list[OrderStatusHistory]:
        statement = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at.asc())
        )
        async with self.session_factory() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def _query(self, *criteria, order_by) -> list[Order]:
        statement = select(Order).where(*criteria).order_by(order_by).limit(self.batch_size)
        async with self.session_factory() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def query_ready_older_than(self, cutoff: datetime) -> list[Order]:
        return await self._query(
            Order.status == OrderStatus.READY,
            Order.ready_at.is_not(None),
            Order.ready_at < cutoff,
            order_by=Order.ready_at.asc(),
        )

    async def query_unpaid_pending_older_than(self, cutoff: datetime) -> list[Order]:
        return await self._query(
            Order.status == OrderStatus.PENDING,
            Order.payment_status != PaymentStatus.PAID,
            Order.created_at < cutoff,
            order_by=Order.created_at.asc(),
        )

    async def query_confirmed_unstarted_older_than(self, cutoff: datetime) -> list[Order]:
        return await self._query(
            Order.status == OrderStatus.CONFIRMED,
            Order.confirmed_at.is_not(None),
            Order.confirmed_at < cutoff,
            Order.start_reminder_sent_at.is_(None),
            order_by=Order.confirmed_at.asc(),
        )

    async def mark_start_reminder_sent(self, order_id: uuid.UUID, at: datetime) -> None:
        statement = (
            update(Order)
            .where(Order.id == order_id)
            .values(start_reminder_sent_at=at)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(statement)
