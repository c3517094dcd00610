"""Order model — the bakery order as seen by the lifecycle state machine."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import DeliveryOption, OrderStatus, PaymentStatus


class Order(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Status is written only through TransitionExecutor's compare-and-swap."""

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "orderstatus"),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus, "paymentstatus"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    delivery_option: Mapped[DeliveryOption] = mapped_column(
        enum_type(DeliveryOption, "deliveryoption"),
        nullable=False,
        default=DeliveryOption.PICKUP,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Customer
    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    customer_email: Mapped[str | None] = mapped_column(String(255))
    customer_name: Mapped[str | None] = mapped_column(String(255))

    # Lifecycle timestamps, each set once by the transition that reaches it
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    out_for_delivery_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    start_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Time metrics in minutes
    time_to_confirm: Mapped[int | None] = mapped_column(Integer)
    time_to_ready: Mapped[int | None] = mapped_column(Integer)
    time_to_complete: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_orders_status", "status"),
        Index("ix_orders_customer_id", "customer_id"),
        Index("ix_orders_status_ready_at", "status", "ready_at"),
        Index("ix_orders_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.status}>"
