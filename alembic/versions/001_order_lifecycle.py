"""Order lifecycle tables - orders, status history, event outbox

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns are VARCHAR + CHECK so new statuses only need a constraint change
ORDER_STATUSES = (
    "pending", "confirmed", "in_progress", "ready",
    "out_for_delivery", "delivered", "completed", "cancelled",
)
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
DELIVERY_OPTIONS = ("pickup", "delivery")
USER_ROLES = ("customer", "baker", "owner", "admin", "system")
EVENT_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED")


def _check(column: str, values: tuple[str, ...], name: str) -> sa.CheckConstraint:
    allowed = ", ".join(f"'{v}'" for v in values)
    return sa.CheckConstraint(f"{column} IN ({allowed})", name=name)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # 1. orders
    op.create_table(
        "orders",
        sa.Column("id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("status", sa.String(32), server_default="pending", nullable=False),
        sa.Column("payment_status", sa.String(32), server_default="pending", nullable=False),
        sa.Column("delivery_option", sa.String(32), server_default="pickup", nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("customer_id", UUID(as_uuid=True), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ready_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("out_for_delivery_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("start_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_to_confirm", sa.Integer, nullable=True),
        sa.Column("time_to_ready", sa.Integer, nullable=True),
        sa.Column("time_to_complete", sa.Integer, nullable=True),
        *_timestamps(),
        _check("status", ORDER_STATUSES, "ck_orders_status"),
        _check("payment_status", PAYMENT_STATUSES, "ck_orders_payment_status"),
        _check("delivery_option", DELIVERY_OPTIONS, "ck_orders_delivery_option"),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_status_ready_at", "orders", ["status", "ready_at"])
    op.create_index("ix_orders_status_created_at", "orders", ["status", "created_at"])

    # 2. order_status_history (append-only)
    op.create_table(
        "order_status_history",
        sa.Column("id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("order_id", UUID(as_uuid=True), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("previous_status", sa.String(32), nullable=False),
        sa.Column("new_status", sa.String(32), nullable=False),
        sa.Column("actor_role", sa.String(32), nullable=False),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("metadata_extra", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        _check("previous_status", ORDER_STATUSES, "ck_order_status_history_previous_status"),
        _check("new_status", ORDER_STATUSES, "ck_order_status_history_new_status"),
        _check("actor_role", USER_ROLES, "ck_order_status_history_actor_role"),
    )
    op.create_index("ix_order_status_history_order_id", "order_status_history", ["order_id"])
    op.create_index("ix_order_status_history_new_status", "order_status_history", ["new_status"])

    # 3. event_outbox
    op.create_table(
        "event_outbox",
        sa.Column("id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("event_type", sa.String(255), nullable=False),
        sa.Column("aggregate_type", sa.String(255), nullable=False),
        sa.Column("aggregate_id", sa.String(255), nullable=False),
        sa.Column("payload", JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("status", sa.String(32), server_default="PENDING", nullable=False),
        sa.Column("retry_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("max_retries", sa.Integer, server_default="3", nullable=False),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        _check("status", EVENT_STATUSES, "ck_event_outbox_status"),
    )
    op.create_index("ix_event_outbox_status_created_at", "event_outbox", ["status", "created_at"])
    op.create_index("ix_event_outbox_aggregate", "event_outbox", ["aggregate_type", "aggregate_id"])

    # 4. processed_events
    op.create_table(
        "processed_events",
        sa.Column("id", UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), primary_key=True),
        sa.Column("event_id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("event_type", sa.String(255), nullable=False),
        sa.Column("handler_name", sa.String(255), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_processed_events_expires_at", "processed_events", ["expires_at"])


def downgrade() -> None:
    op.drop_table("processed_events")
    op.drop_table("event_outbox")
    op.drop_table("order_status_history")
    op.drop_table("orders")
