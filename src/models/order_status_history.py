from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, JSONType, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import OrderStatus, UserRole


class OrderStatusHistory(UUIDPrimaryKeyMixin, Base):
    """Append-only audit log for order status transitions. No updated_at column."""

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id"),
        nullable=False,
    )
    previous_status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "orderstatus"), nullable=False
    )
    new_status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "orderstatus"), nullable=False
    )
    actor_role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "userrole"), nullable=False
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    reason: Mapped[str | None] = mapped_column(Text)
    metadata_extra: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_order_status_history_order_id", "order_id"),
        Index("ix_order_status_history_new_status", "new_status"),
    )
