# Import all models so SQLAlchemy metadata is populated for Alembic and create_all
from src.models.enums import (
    DeliveryOption,
    EventStatus,
    NotificationKind,
    OrderStatus,
    PaymentStatus,
    TransitionErrorCode,
    UserRole,
)
from src.models.event_outbox import EventOutbox
from src.models.order import Order
from src.models.order_status_history import OrderStatusHistory
from src.models.processed_event import ProcessedEvent

__all__ = [
    "DeliveryOption",
    "EventOutbox",
    "EventStatus",
    "NotificationKind",
    "Order",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentStatus",
    "ProcessedEvent",
    "TransitionErrorCode",
    "UserRole",
]
