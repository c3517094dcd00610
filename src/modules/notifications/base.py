"""Abstract notifier and the payload every channel delivers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from src.config import settings
from src.models.enums import NotificationKind
from src.modules.order.constants import EMAIL_TEMPLATES, STAFF_NOTIFICATIONS, WEBHOOK_EVENTS


@dataclass
class NotificationResult:
    channel: str
    delivered: bool = False
    queued: bool = False
    detail: str | None = None


def _value(field: Any) -> Any:
    return getattr(field, "value", field)


def build_notification_payload(
    order: Any,
    kind: NotificationKind,
    extra: dict | None = None,
) -> dict:
    """JSON-safe description of an order event, shared by all channels.

    ``recipient_email`` is the customer for customer-facing kinds and the
    configured staff address for internal ones such as start reminders.
    """
    audience = "staff" if kind in STAFF_NOTIFICATIONS else "customer"
    recipient = (
        settings.notification_staff_email or None
        if audience == "staff"
        else order.customer_email
    )
    payload = {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "kind": kind.value,
        "status": _value(order.status),
        "payment_status": _value(order.payment_status),
        "delivery_option": _value(order.delivery_option),
        "customer_email": order.customer_email,
        "customer_name": order.customer_name,
        "audience": audience,
        "recipient_email": recipient,
        "total_amount": str(order.total_amount) if order.total_amount is not None else None,
        "cancellation_reason": order.cancellation_reason,
        "email_template": EMAIL_TEMPLATES.get(kind),
        "webhook_event": WEBHOOK_EVENTS.get(kind),
        "occurred_at": datetime.now(UTC).isoformat(),
    }
    if extra:
        payload.update(extra)
    return payload


class Notifier(ABC):
    """Delivers "order reached status X" hooks to external channels.

    Implementations raise NotificationFailedException when the notification
    could not be handed off.
    """

    @abstractmethod
    async def notify(
        self,
        order: Any,
        kind: NotificationKind,
        extra: dict | None = None,
    ) -> NotificationResult:
        """Hand off a notification for ``order``."""

    async def close(self) -> None:
        """Release any client resources held by the notifier."""
