"""Order status sequences, role edges, timestamps, and notification maps."""

from __future__ import annotations

from src.models.enums import DeliveryOption, NotificationKind, OrderStatus, UserRole

# ---------------------------------------------------------------------------
# Canonical forward sequences per delivery option
# ---------------------------------------------------------------------------

ORDER_SEQUENCES: dict[DeliveryOption, tuple[OrderStatus, ...]] = {
    DeliveryOption.PICKUP: (
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.IN_PROGRESS,
        OrderStatus.READY,
        OrderStatus.COMPLETED,
    ),
    DeliveryOption.DELIVERY: (
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.IN_PROGRESS,
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ),
}

# Statuses from which non-privileged roles may still cancel (production not started)
CANCELLABLE_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
})

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})

DEFAULT_PRIVILEGED_ROLES: frozenset[UserRole] = frozenset({
    UserRole.OWNER,
    UserRole.ADMIN,
    UserRole.SYSTEM,
})

# Roles allowed to walk an order forward through production
DEFAULT_STAFF_ROLES: frozenset[UserRole] = frozenset({
    UserRole.BAKER,
})

# ---------------------------------------------------------------------------
# Side-effect tables keyed by the status reached
# ---------------------------------------------------------------------------

STATUS_TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.READY: "ready_at",
    OrderStatus.OUT_FOR_DELIVERY: "out_for_delivery_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

STATUS_NOTIFICATIONS: dict[OrderStatus, NotificationKind] = {
    OrderStatus.CONFIRMED: NotificationKind.CONFIRMED,
    OrderStatus.IN_PROGRESS: NotificationKind.IN_PROGRESS,
    OrderStatus.READY: NotificationKind.READY,
    OrderStatus.OUT_FOR_DELIVERY: NotificationKind.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED: NotificationKind.DELIVERED,
    OrderStatus.COMPLETED: NotificationKind.COMPLETED,
    OrderStatus.CANCELLED: NotificationKind.CANCELLED,
}

# Statuses whose arrival recomputes time_to_confirm / time_to_ready / time_to_complete
METRIC_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
})

EMAIL_TEMPLATES: dict[NotificationKind, str] = {
    NotificationKind.CONFIRMED: "order_confirmation",
    NotificationKind.IN_PROGRESS: "order_started",
    NotificationKind.READY: "order_ready",
    NotificationKind.OUT_FOR_DELIVERY: "order_out_for_delivery",
    NotificationKind.DELIVERED: "order_delivered",
    NotificationKind.COMPLETED: "order_completed",
    NotificationKind.CANCELLED: "order_cancelled",
    NotificationKind.START_REMINDER: "order_start_reminder",
}

WEBHOOK_EVENTS: dict[NotificationKind, str] = {
    NotificationKind.READY: "order.ready",
}

# Kinds addressed to the bakery team rather than the customer
STAFF_NOTIFICATIONS: frozenset[NotificationKind] = frozenset({
    NotificationKind.START_REMINDER,
})

# ---------------------------------------------------------------------------
# Scheduled transitions
# ---------------------------------------------------------------------------

AUTO_COMPLETE_REASON = "Auto-completed after 24 hours"
AUTO_COMPLETE_METADATA_REASON = "24_hour_timeout"
AUTO_CANCEL_REASON = "Payment not completed within 30 minutes"
AUTO_CANCEL_METADATA_REASON = "payment_timeout"

# ---------------------------------------------------------------------------
# Event type strings for the outbox
# ---------------------------------------------------------------------------

EVENT_PREFIX = "order."


def event_type_for(kind: NotificationKind) -> str:
    return f"{EVENT_PREFIX}{kind.value}"
