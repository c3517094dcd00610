import enum


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    BAKER = "baker"
    OWNER = "owner"
    ADMIN = "admin"
    SYSTEM = "system"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class DeliveryOption(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class NotificationKind(str, enum.Enum):
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    START_REMINDER = "start_reminder"


class TransitionErrorCode(str, enum.Enum):
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    REASON_REQUIRED = "REASON_REQUIRED"
    NOT_READY = "NOT_READY"


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
