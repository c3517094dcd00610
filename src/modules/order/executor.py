"""TransitionExecutor — apply validated transitions to storage.

Order of effects is fixed: compare-and-swap status write, then history
append, then notification hand-off. Only the status write can fail the call.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from src.exceptions import (
    AppException,
    InvalidTransitionException,
    NotFoundException,
    OrderNotReadyException,
    PaymentRequiredException,
    ReasonRequiredException,
    TransitionConflictException,
)
from src.models.enums import OrderStatus, TransitionErrorCode, UserRole
from src.models.order import Order
from src.modules.notifications.base import NotificationResult, Notifier
from src.modules.order.state_machine import (
    OrderStateMachine,
    SideEffects,
    TransitionContext,
    TransitionResult,
    calculate_time_metrics,
)
from src.modules.order.storage import OrderStorage, StatusHistoryEntry

logger = logging.getLogger(__name__)

_ERROR_EXCEPTIONS: dict[TransitionErrorCode, type[AppException]] = {
    TransitionErrorCode.PAYMENT_REQUIRED: PaymentRequiredException,
    TransitionErrorCode.REASON_REQUIRED: ReasonRequiredException,
    TransitionErrorCode.NOT_READY: OrderNotReadyException,
}


@dataclass
class TransitionRequest:
    order_id: uuid.UUID
    to_status: OrderStatus
    actor_role: UserRole
    reason: str | None = None
    expected_from: OrderStatus | None = None
    actor_id: uuid.UUID | None = None
    metadata: dict = field(default_factory=dict)


@dataclass
class TransitionOutcome:
    order: Order
    previous_status: OrderStatus
    side_effects: SideEffects
    history_recorded: bool = True
    notification: NotificationResult | None = None
    notification_error: str | None = None


def raise_for_result(result: TransitionResult) -> None:
    """Convert a rejected TransitionResult into the matching domain exception."""
    if result.valid:
        return
    if result.error_code == TransitionErrorCode.INVALID_TRANSITION or result.error_code is None:
        raise InvalidTransitionException(
            result.error or "Invalid transition",
            details=[{"backwards": result.backwards}],
            backwards=result.backwards,
        )
    raise _ERROR_EXCEPTIONS[result.error_code](result.error)


class TransitionExecutor:
    """Runs a single order transition against OrderStorage and a Notifier."""

    def __init__(
        self,
        storage: OrderStorage,
        notifier: Notifier,
        state_machine: OrderStateMachine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.storage = storage
        self.notifier = notifier
        self.state_machine = state_machine or OrderStateMachine()
        self.clock = clock or (lambda: datetime.now(UTC))

    async def execute_request(self, request: TransitionRequest) -> TransitionOutcome:
        return await self.execute(
            request.order_id,
            request.to_status,
            request.actor_role,
            request.reason,
            expected_from=request.expected_from,
            actor_id=request.actor_id,
            metadata=request.metadata,
        )

    async def execute(
        self,
        order_id: uuid.UUID,
        to_status: OrderStatus | str,
        actor_role: UserRole | str,
        reason: str | None = None,
        *,
        expected_from: OrderStatus | None = None,
        actor_id: uuid.UUID | None = None,
        metadata: dict | None = None,
    ) -> TransitionOutcome:
        """Validate and apply one transition.

        Raises NotFoundException, a BusinessRuleException subclass for rejected
        transitions, or TransitionConflictException when the stored status no
        longer matches the one that was validated. Notification failures are
        logged and reported on the outcome, never raised.
        """
        order = await self.storage.get(order_id)
        if order is None:
            raise NotFoundException(f"Order {order_id} not found")

        from_status = OrderStatus(order.status)
        if expected_from is not None and OrderStatus(expected_from) != from_status:
            raise TransitionConflictException(
                f"Order {order.order_number} is {from_status.value}, "
                f"expected {OrderStatus(expected_from).value}",
                details=[{"current_status": from_status.value}],
            )

        context = TransitionContext(
            role=actor_role,
            reason=reason,
            order_id=order_id,
            metadata=metadata or {},
        )
        result = self.state_machine.validate_transition(from_status, to_status, order, context)
        if not result.valid:
            logger.info(
                "Rejected transition for order %s: %s", order.order_number, result.error
            )
        raise_for_result(result)

        target = OrderStatus(to_status)
        role = UserRole(actor_role)
        side_effects = result.side_effects or SideEffects()
        now = self.clock()

        updates = self._build_updates(order, target, side_effects, reason, now)
        if not await self.storage.compare_and_set_status(order_id, from_status, updates):
            logger.warning(
                "Conflict applying %s -> %s on order %s",
                from_status.value, target.value, order.order_number,
            )
            raise TransitionConflictException(
                f"Order {order.order_number} changed status concurrently; reload and retry",
                details=[{"expected_status": from_status.value}],
            )

        logger.info(
            "Order %s transitioned %s -> %s by %s",
            order.order_number, from_status.value, target.value, role.value,
        )

        updated = await self.storage.get(order_id) or order
        outcome = TransitionOutcome(
            order=updated,
            previous_status=from_status,
            side_effects=side_effects,
        )

        try:
            await self.storage.append_history(StatusHistoryEntry(
                order_id=order_id,
                previous_status=from_status,
                new_status=target,
                actor_role=role,
                actor_id=actor_id,
                reason=reason,
                metadata=metadata or {},
                created_at=now,
            ))
        except Exception:
            outcome.history_recorded = False
            logger.exception(
                "Failed to record history for order %s (%s -> %s)",
                order.order_number, from_status.value, target.value,
            )

        if side_effects.notify is not None:
            await self._notify(outcome, side_effects)

        return outcome

    def _build_updates(
        self,
        order: Order,
        target: OrderStatus,
        side_effects: SideEffects,
        reason: str | None,
        now: datetime,
    ) -> dict[str, Any]:
        updates: dict[str, Any] = {"status": target}

        field_name = side_effects.set_timestamp
        if field_name and getattr(order, field_name, None) is None:
            updates[field_name] = now
        if target == OrderStatus.CANCELLED:
            updates["cancellation_reason"] = reason

        if side_effects.update_metrics:
            snapshot = _Snapshot(order, updates)
            for metric, value in calculate_time_metrics(snapshot).items():
                if value is not None:
                    updates[metric] = value
        return updates

    async def _notify(self, outcome: TransitionOutcome, side_effects: SideEffects) -> None:
        extra = {"refund_required": side_effects.process_refund}
        try:
            outcome.notification = await self.notifier.notify(
                outcome.order, side_effects.notify, extra
            )
        except Exception as exc:
            outcome.notification_error = getattr(exc, "message", None) or str(exc)
            logger.warning(
                "Notification %s for order %s failed: %s",
                side_effects.notify.value, outcome.order.order_number, outcome.notification_error,
            )


class _Snapshot:
    """Order attributes overlaid with pending updates, for metric calculation."""

    def __init__(self, order: Order, updates: dict[str, Any]) -> None:
        self._order = order
        self._updates = updates

    def __getattr__(self, name: str) -> Any:
        if name in self._updates:
            return self._updates[name]
        return getattr(self._order, name)
