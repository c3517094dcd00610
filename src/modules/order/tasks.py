"""Celery tasks for scheduled order transitions."""

from __future__ import annotations

import asyncio
import logging

from celery_app import celery
from src.database.engine import engine
from src.modules.notifications.factory import close_all_notifiers, get_notifier
from src.modules.order.executor import TransitionExecutor
from src.modules.order.scheduler import ScheduledTransitionRunner
from src.modules.order.state_machine import OrderStateMachine, RolePolicy
from src.modules.order.storage import SqlAlchemyOrderStorage

logger = logging.getLogger(__name__)


def build_runner() -> ScheduledTransitionRunner:
    executor = TransitionExecutor(
        storage=SqlAlchemyOrderStorage(),
        notifier=get_notifier(),
        state_machine=OrderStateMachine(RolePolicy.from_settings()),
    )
    return ScheduledTransitionRunner(executor)


async def _run_async(rule: str) -> dict:
    """Run one rule (or all of them) and release loop-bound resources."""
    runner = build_runner()
    try:
        if rule == "auto_complete":
            summary = await runner.run_auto_complete()
        elif rule == "auto_cancel":
            summary = await runner.run_auto_cancel()
        elif rule == "start_reminders":
            summary = await runner.run_start_reminders()
        else:
            summary = await runner.run()
        return summary.as_dict()
    finally:
        # asyncio.run() gives every task a fresh loop; pooled connections and
        # httpx clients must not outlive it
        await close_all_notifiers()
        await engine.dispose()


# ---------------------------------------------------------------------------
# Celery task definitions
# ---------------------------------------------------------------------------


@celery.task(name="src.modules.order.tasks.auto_complete_ready_orders")
def auto_complete_ready_orders():
    """Complete orders left in ready past the pickup window."""
    stats = asyncio.run(_run_async("auto_complete"))
    logger.info("auto_complete_ready_orders complete: %s", stats["counts"])
    return stats


@celery.task(name="src.modules.order.tasks.auto_cancel_unpaid_orders")
def auto_cancel_unpaid_orders():
    """Cancel pending orders whose payment never arrived."""
    stats = asyncio.run(_run_async("auto_cancel"))
    logger.info("auto_cancel_unpaid_orders complete: %s", stats["counts"])
    return stats


@celery.task(name="src.modules.order.tasks.send_start_reminders")
def send_start_reminders():
    """Remind staff about confirmed orders that have not been started."""
    stats = asyncio.run(_run_async("start_reminders"))
    logger.info("send_start_reminders complete: %s", stats["counts"])
    return stats


@celery.task(name="src.modules.order.tasks.run_scheduled_transitions")
def run_scheduled_transitions():
    """Run every scheduled rule once (manual trigger)."""
    stats = asyncio.run(_run_async("all"))
    logger.info("run_scheduled_transitions complete: %s", stats["counts"])
    return stats
