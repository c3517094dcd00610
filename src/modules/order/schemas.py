"""Pydantic v2 schemas for the order transition API."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import DeliveryOption, OrderStatus, PaymentStatus, UserRole

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class OrderTransitionRequest(BaseModel):
    target_status: OrderStatus
    reason: str | None = Field(None, max_length=1000)
    expected_status: OrderStatus | None = None
    metadata: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    delivery_option: DeliveryOption
    total_amount: Decimal
    customer_id: uuid.UUID | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    confirmed_at: datetime | None = None
    ready_at: datetime | None = None
    out_for_delivery_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    time_to_confirm: int | None = None
    time_to_ready: int | None = None
    time_to_complete: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AvailableTransitionsResponse(BaseModel):
    order_id: uuid.UUID
    current_status: OrderStatus
    role: UserRole
    available_transitions: list[OrderStatus]


class NotificationOutcome(BaseModel):
    kind: str | None = None
    channel: str | None = None
    queued: bool = False
    delivered: bool = False
    error: str | None = None


class TransitionResponse(BaseModel):
    previous_status: OrderStatus
    new_status: OrderStatus
    order: OrderResponse
    history_recorded: bool
    notification: NotificationOutcome | None = None


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    previous_status: OrderStatus
    new_status: OrderStatus
    actor_role: UserRole
    actor_id: uuid.UUID | None = None
    reason: str | None = None
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_extra")
    created_at: datetime


class StatusHistoryListResponse(BaseModel):
    items: list[StatusHistoryResponse]
    total: int


class RunSummaryCounts(BaseModel):
    auto_completed: int
    auto_cancelled: int
    reminders_sent: int
    errors: int


class RunSummaryResponse(BaseModel):
    auto_completed: list[str]
    auto_cancelled: list[str]
    reminders_sent: list[str]
    errors: list[dict]
    counts: RunSummaryCounts
