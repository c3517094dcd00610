"""Order lifecycle state machine — pure transition decisions.

Nothing in this module performs I/O. Callers hand in the current status, the
requested status, the order record (any object exposing ``status``,
``payment_status``, ``delivery_option`` and ``ready_at``) and the acting role;
the machine answers whether the move is allowed and which side effects it
implies. Persisting the decision is TransitionExecutor's job.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from src.config import settings
from src.models.enums import (
    DeliveryOption,
    NotificationKind,
    OrderStatus,
    PaymentStatus,
    TransitionErrorCode,
    UserRole,
)
from src.modules.order.constants import (
    CANCELLABLE_STATUSES,
    DEFAULT_PRIVILEGED_ROLES,
    DEFAULT_STAFF_ROLES,
    EMAIL_TEMPLATES,
    METRIC_STATUSES,
    ORDER_SEQUENCES,
    STATUS_NOTIFICATIONS,
    STATUS_TIMESTAMP_FIELDS,
    TERMINAL_STATUSES,
    WEBHOOK_EVENTS,
)

_E = TypeVar("_E", bound=enum.Enum)

# Cancellation reason assumed when listing available transitions
_AVAILABILITY_REASON = "availability check"


def _coerce(enum_cls: type[_E], value: Any) -> _E | None:
    """Return ``value`` as a member of ``enum_cls``, or None if it is not one."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RolePolicy:
    """Which roles may do what.

    Privileged roles may perform any transition to a known status, including
    backward moves. Staff roles walk the canonical sequence forward one step
    at a time. Customer roles may only cancel before production starts.
    """

    privileged_roles: frozenset[UserRole] = DEFAULT_PRIVILEGED_ROLES
    staff_roles: frozenset[UserRole] = DEFAULT_STAFF_ROLES
    customer_roles: frozenset[UserRole] = frozenset({UserRole.CUSTOMER})
    cancellable_statuses: frozenset[OrderStatus] = CANCELLABLE_STATUSES

    @classmethod
    def from_settings(cls) -> RolePolicy:
        roles = [_coerce(UserRole, name) for name in settings.privileged_roles_list]
        return cls(privileged_roles=frozenset(r for r in roles if r is not None))

    def is_privileged(self, role: UserRole) -> bool:
        return role in self.privileged_roles


@dataclass(frozen=True)
class TransitionContext:
    role: UserRole | str
    reason: str | None = None
    order_id: uuid.UUID | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SideEffects:
    set_timestamp: str | None = None
    notify: NotificationKind | None = None
    email_type: str | None = None
    webhook_event: str | None = None
    update_metrics: bool = False
    process_refund: bool = False


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    error: str | None = None
    error_code: TransitionErrorCode | None = None
    backwards: bool = False
    side_effects: SideEffects | None = None

    @classmethod
    def reject(
        cls,
        error: str,
        error_code: TransitionErrorCode,
        backwards: bool = False,
    ) -> TransitionResult:
        return cls(valid=False, error=error, error_code=error_code, backwards=backwards)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class OrderStateMachine:
    """Role-scoped, guarded transitions over OrderStatus.

    Every method is deterministic and side-effect free, so the same instance
    can be shared between the API, the scheduler and tests.
    """

    def __init__(self, policy: RolePolicy | None = None) -> None:
        self.policy = policy or RolePolicy()

    # ------------------------------------------------------------------
    # Sequence helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _sequences(delivery_option: DeliveryOption | None) -> list[tuple[OrderStatus, ...]]:
        if delivery_option is None:
            return list(ORDER_SEQUENCES.values())
        return [ORDER_SEQUENCES[delivery_option]]

    def _forward_edges(self, delivery_option: DeliveryOption | None) -> set[tuple[OrderStatus, OrderStatus]]:
        edges: set[tuple[OrderStatus, OrderStatus]] = set()
        for sequence in self._sequences(delivery_option):
            edges.update(zip(sequence, sequence[1:]))
        return edges

    def is_backwards(
        self,
        from_status: OrderStatus,
        to_status: OrderStatus,
        delivery_option: DeliveryOption | None = None,
    ) -> bool:
        """True if ``to_status`` sits earlier than ``from_status`` in a shared sequence."""
        for sequence in self._sequences(delivery_option):
            if from_status in sequence and to_status in sequence:
                return sequence.index(to_status) < sequence.index(from_status)
        return False

    # ------------------------------------------------------------------
    # Role / sequence gate
    # ------------------------------------------------------------------

    def can_transition(
        self,
        from_status: OrderStatus | str,
        to_status: OrderStatus | str,
        role: UserRole | str,
        delivery_option: DeliveryOption | str | None = None,
    ) -> bool:
        """Return whether ``role`` may move an order from ``from_status`` to ``to_status``.

        A status never transitions to itself, whoever asks. Terminal statuses
        are final for everyone but privileged roles. Without a
        ``delivery_option`` staff edges from both the pickup and the delivery
        sequence are accepted.
        """
        source = _coerce(OrderStatus, from_status)
        target = _coerce(OrderStatus, to_status)
        actor = _coerce(UserRole, role)
        if source is None or target is None or actor is None or source == target:
            return False

        if self.policy.is_privileged(actor):
            return True

        if source in TERMINAL_STATUSES:
            return False

        is_early_cancel = (
            target == OrderStatus.CANCELLED and source in self.policy.cancellable_statuses
        )

        if actor in self.policy.customer_roles:
            return is_early_cancel

        if actor in self.policy.staff_roles:
            if is_early_cancel:
                return True
            option = _coerce(DeliveryOption, delivery_option) if delivery_option is not None else None
            return (source, target) in self._forward_edges(option)

        return False

    # ------------------------------------------------------------------
    # Full validation
    # ------------------------------------------------------------------

    def validate_transition(
        self,
        from_status: OrderStatus | str,
        to_status: OrderStatus | str,
        order: Any,
        context: TransitionContext,
    ) -> TransitionResult:
        """Apply the role/sequence gate, then the business-rule guards.

        Guards are unconditional: privileged roles skip the backwards check
        but still need payment before confirming, a reason to cancel, and a
        ready order to complete.
        """
        delivery_option = _coerce(DeliveryOption, getattr(order, "delivery_option", None))

        requested_from = _coerce(OrderStatus, from_status)
        if requested_from is not None and requested_from == _coerce(OrderStatus, to_status):
            return TransitionResult.reject(
                f"Order is already {requested_from.value}", TransitionErrorCode.INVALID_TRANSITION
            )

        if not self.can_transition(from_status, to_status, context.role, delivery_option):
            role_label = getattr(context.role, "value", context.role)
            from_label = getattr(from_status, "value", from_status)
            to_label = getattr(to_status, "value", to_status)
            message = f"{role_label} cannot transition from {from_label} to {to_label}"

            source = _coerce(OrderStatus, from_status)
            target = _coerce(OrderStatus, to_status)
            backwards = (
                source is not None
                and target is not None
                and self.is_backwards(source, target, delivery_option)
            )
            if backwards:
                message += ": backwards transitions are not allowed"
            return TransitionResult.reject(
                message, TransitionErrorCode.INVALID_TRANSITION, backwards=backwards
            )

        source = _coerce(OrderStatus, from_status)
        target = _coerce(OrderStatus, to_status)

        if target == OrderStatus.CONFIRMED:
            if _coerce(PaymentStatus, getattr(order, "payment_status", None)) != PaymentStatus.PAID:
                return TransitionResult.reject(
                    "Payment must be completed before confirming order",
                    TransitionErrorCode.PAYMENT_REQUIRED,
                )

        elif target == OrderStatus.CANCELLED:
            reason = context.reason
            if not isinstance(reason, str) or not reason.strip():
                return TransitionResult.reject(
                    "Cancellation reason is required",
                    TransitionErrorCode.REASON_REQUIRED,
                )

        elif target == OrderStatus.COMPLETED:
            current = _coerce(OrderStatus, getattr(order, "status", None))
            if current != OrderStatus.READY or getattr(order, "ready_at", None) is None:
                return TransitionResult.reject(
                    "Order must be marked as ready before completing",
                    TransitionErrorCode.NOT_READY,
                )

        return TransitionResult(
            valid=True,
            side_effects=self.get_side_effects(source, target, order),
        )

    def get_available_transitions(
        self,
        from_status: OrderStatus | str,
        order: Any,
        role: UserRole | str,
    ) -> list[OrderStatus]:
        """Statuses reachable from ``from_status`` right now, excluding itself.

        Cancellation is listed when the role and state allow it; the reason is
        supplied with the actual request.
        """
        source = _coerce(OrderStatus, from_status)
        available = []
        for target in OrderStatus:
            if target == source:
                continue
            context = TransitionContext(
                role=role,
                reason=_AVAILABILITY_REASON if target == OrderStatus.CANCELLED else None,
            )
            if self.validate_transition(from_status, target, order, context).valid:
                available.append(target)
        return available

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def get_side_effects(
        self,
        from_status: OrderStatus,
        to_status: OrderStatus,
        order: Any = None,
    ) -> SideEffects:
        """Timestamp, notification and refund implications of a valid move.

        Backward moves carry no side effects.
        """
        delivery_option = _coerce(DeliveryOption, getattr(order, "delivery_option", None))
        if from_status == to_status or self.is_backwards(from_status, to_status, delivery_option):
            return SideEffects()

        kind = STATUS_NOTIFICATIONS.get(to_status)
        paid = _coerce(PaymentStatus, getattr(order, "payment_status", None)) == PaymentStatus.PAID
        return SideEffects(
            set_timestamp=STATUS_TIMESTAMP_FIELDS.get(to_status),
            notify=kind,
            email_type=EMAIL_TEMPLATES.get(kind) if kind else None,
            webhook_event=WEBHOOK_EVENTS.get(kind) if kind else None,
            update_metrics=to_status in METRIC_STATUSES,
            process_refund=to_status == OrderStatus.CANCELLED and paid,
        )


# ---------------------------------------------------------------------------
# Time metrics
# ---------------------------------------------------------------------------


def _minutes_between(start: datetime | None, end: datetime | None) -> int | None:
    start, end = _as_utc(start), _as_utc(end)
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 60)


def calculate_time_metrics(order: Any) -> dict[str, int | None]:
    """Minutes spent in each production stage, from the lifecycle timestamps."""
    finished_at = getattr(order, "completed_at", None) or getattr(order, "delivered_at", None)
    return {
        "time_to_confirm": _minutes_between(
            getattr(order, "created_at", None), getattr(order, "confirmed_at", None)
        ),
        "time_to_ready": _minutes_between(
            getattr(order, "confirmed_at", None), getattr(order, "ready_at", None)
        ),
        "time_to_complete": _minutes_between(getattr(order, "ready_at", None), finished_at),
    }
