"""Order lifecycle API router — transitions, history, scheduled runs."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.exceptions import ForbiddenException, NotFoundException
from src.models.enums import UserRole
from src.models.order import Order
from src.modules.auth.auth import AuthenticatedUser, get_current_user, require_roles
from src.modules.notifications.factory import get_notifier
from src.modules.order.executor import TransitionExecutor
from src.modules.order.scheduler import ScheduledTransitionRunner
from src.modules.order.schemas import (
    AvailableTransitionsResponse,
    NotificationOutcome,
    OrderResponse,
    OrderTransitionRequest,
    RunSummaryResponse,
    StatusHistoryListResponse,
    StatusHistoryResponse,
    TransitionResponse,
)
from src.modules.order.state_machine import OrderStateMachine, RolePolicy
from src.modules.order.storage import OrderStorage, SqlAlchemyOrderStorage

router = APIRouter(prefix="/orders", tags=["orders"])
limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_order_storage() -> OrderStorage:
    return SqlAlchemyOrderStorage()


def get_state_machine() -> OrderStateMachine:
    return OrderStateMachine(RolePolicy.from_settings())


def get_transition_executor(
    storage: OrderStorage = Depends(get_order_storage),
    state_machine: OrderStateMachine = Depends(get_state_machine),
) -> TransitionExecutor:
    return TransitionExecutor(storage, get_notifier(), state_machine)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _load_visible_order(
    order_id: uuid.UUID, user: AuthenticatedUser, storage: OrderStorage
) -> Order:
    """Load an order, hiding other customers' orders from customers."""
    order = await storage.get(order_id)
    if order is None:
        raise NotFoundException(f"Order {order_id} not found")
    if user.is_customer and order.customer_id != user.id:
        raise ForbiddenException("You can only access your own orders")
    return order


# ---------------------------------------------------------------------------
# Scheduled transitions
# ---------------------------------------------------------------------------


@router.post("/scheduled-transitions/run", response_model=RunSummaryResponse)
@limiter.limit("10/minute")
async def run_scheduled_transitions(
    request: Request,
    user: AuthenticatedUser = Depends(require_roles(UserRole.OWNER, UserRole.ADMIN)),
    executor: TransitionExecutor = Depends(get_transition_executor),
):
    """Apply auto-complete, auto-cancel and start reminders immediately."""
    summary = await ScheduledTransitionRunner(executor).run()
    return RunSummaryResponse.model_validate(summary.as_dict())


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.get("/{order_id}/available-transitions", response_model=AvailableTransitionsResponse)
async def get_available_transitions(
    order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    storage: OrderStorage = Depends(get_order_storage),
    state_machine: OrderStateMachine = Depends(get_state_machine),
):
    order = await _load_visible_order(order_id, user, storage)
    return AvailableTransitionsResponse(
        order_id=order.id,
        current_status=order.status,
        role=user.role,
        available_transitions=state_machine.get_available_transitions(
            order.status, order, user.role
        ),
    )


@router.post("/{order_id}/transition", response_model=TransitionResponse)
async def transition_order(
    order_id: uuid.UUID,
    body: OrderTransitionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    storage: OrderStorage = Depends(get_order_storage),
    executor: TransitionExecutor = Depends(get_transition_executor),
):
    """Move an order to ``target_status`` as the calling user."""
    await _load_visible_order(order_id, user, storage)
    outcome = await executor.execute(
        order_id,
        body.target_status,
        user.role,
        body.reason,
        expected_from=body.expected_status,
        actor_id=user.id,
        metadata=body.metadata,
    )

    notification = None
    if outcome.side_effects.notify is not None:
        result = outcome.notification
        notification = NotificationOutcome(
            kind=outcome.side_effects.notify.value,
            channel=result.channel if result else None,
            queued=result.queued if result else False,
            delivered=result.delivered if result else False,
            error=outcome.notification_error,
        )

    return TransitionResponse(
        previous_status=outcome.previous_status,
        new_status=outcome.order.status,
        order=OrderResponse.model_validate(outcome.order),
        history_recorded=outcome.history_recorded,
        notification=notification,
    )


@router.get("/{order_id}/transition-history", response_model=StatusHistoryListResponse)
async def get_transition_history(
    order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    storage: OrderStorage = Depends(get_order_storage),
):
    await _load_visible_order(order_id, user, storage)
    entries = await storage.list_history(order_id)
    return StatusHistoryListResponse(
        items=[StatusHistoryResponse.model_validate(entry) for entry in entries],
        total=len(entries),
    )
