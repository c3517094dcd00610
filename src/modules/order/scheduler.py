"""ScheduledTransitionRunner — timeout-driven automatic transitions.

Rules, each applied as the ``system`` role through TransitionExecutor:

- auto-complete: ``ready`` orders whose ``ready_at`` is older than the
  auto-complete window move to ``completed``.
- auto-cancel: ``pending`` orders that are not paid and were created before
  the payment window move to ``cancelled``.
- start reminder: ``confirmed`` orders not started within the reminder window
  trigger one ``start_reminder`` notification. Status is unchanged.

Orders are processed one at a time; a failure on one is recorded in the run
summary and the batch carries on.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from src.config import settings
from src.exceptions import AppException
from src.models.enums import NotificationKind, OrderStatus, UserRole
from src.models.order import Order
from src.modules.order.constants import (
    AUTO_CANCEL_METADATA_REASON,
    AUTO_CANCEL_REASON,
    AUTO_COMPLETE_METADATA_REASON,
    AUTO_COMPLETE_REASON,
)
from src.modules.order.executor import TransitionExecutor
from src.modules.order.storage import OrderStorage

logger = logging.getLogger(__name__)

RULE_AUTO_COMPLETE = "auto_complete"
RULE_AUTO_CANCEL = "auto_cancel"
RULE_START_REMINDER = "start_reminder"


@dataclass
class RunSummary:
    auto_completed: list[str] = field(default_factory=list)
    auto_cancelled: list[str] = field(default_factory=list)
    reminders_sent: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def record_error(self, rule: str, order: Order, exc: Exception) -> None:
        self.errors.append({
            "rule": rule,
            "order_id": str(order.id),
            "order_number": order.order_number,
            "code": getattr(exc, "code", type(exc).__name__),
            "error": getattr(exc, "message", None) or str(exc),
        })

    def as_dict(self) -> dict:
        return {
            "auto_completed": list(self.auto_completed),
            "auto_cancelled": list(self.auto_cancelled),
            "reminders_sent": list(self.reminders_sent),
            "errors": list(self.errors),
            "counts": {
                "auto_completed": len(self.auto_completed),
                "auto_cancelled": len(self.auto_cancelled),
                "reminders_sent": len(self.reminders_sent),
                "errors": len(self.errors),
            },
        }


class ScheduledTransitionRunner:
    def __init__(
        self,
        executor: TransitionExecutor,
        storage: OrderStorage | None = None,
        clock: Callable[[], datetime] | None = None,
        auto_complete_after: timedelta | None = None,
        unpaid_cancel_after: timedelta | None = None,
        start_reminder_after: timedelta | None = None,
    ) -> None:
        self.executor = executor
        self.storage = storage or executor.storage
        self.clock = clock or executor.clock
        self.auto_complete_after = auto_complete_after or timedelta(
            hours=settings.order_auto_complete_hours
        )
        self.unpaid_cancel_after = unpaid_cancel_after or timedelta(
            minutes=settings.order_unpaid_cancel_minutes
        )
        self.start_reminder_after = start_reminder_after or timedelta(
            hours=settings.order_start_reminder_hours
        )

    async def run(self) -> RunSummary:
        """Apply every rule once and return the combined summary."""
        summary = RunSummary()
        await self.run_auto_complete(summary)
        await self.run_auto_cancel(summary)
        await self.run_start_reminders(summary)
        logger.info(
            "Scheduled transitions: %d completed, %d cancelled, %d reminders, %d errors",
            len(summary.auto_completed), len(summary.auto_cancelled),
            len(summary.reminders_sent), len(summary.errors),
        )
        return summary

    async def run_auto_complete(self, summary: RunSummary | None = None) -> RunSummary:
        summary = summary if summary is not None else RunSummary()
        cutoff = self.clock() - self.auto_complete_after
        for order in await self.storage.query_ready_older_than(cutoff):
            try:
                await self.executor.execute(
                    order.id,
                    OrderStatus.COMPLETED,
                    UserRole.SYSTEM,
                    AUTO_COMPLETE_REASON,
                    expected_from=OrderStatus.READY,
                    metadata={"auto": True, "reason": AUTO_COMPLETE_METADATA_REASON},
                )
                summary.auto_completed.append(order.order_number)
            except AppException as exc:
                logger.warning("Auto-complete skipped order %s: %s", order.order_number, exc.message)
                summary.record_error(RULE_AUTO_COMPLETE, order, exc)
            except Exception as exc:
                logger.exception("Auto-complete failed for order %s", order.order_number)
                summary.record_error(RULE_AUTO_COMPLETE, order, exc)
        return summary

    async def run_auto_cancel(self, summary: RunSummary | None = None) -> RunSummary:
        summary = summary if summary is not None else RunSummary()
        cutoff = self.clock() - self.unpaid_cancel_after
        for order in await self.storage.query_unpaid_pending_older_than(cutoff):
            try:
                await self.executor.execute(
                    order.id,
                    OrderStatus.CANCELLED,
                    UserRole.SYSTEM,
                    AUTO_CANCEL_REASON,
                    expected_from=OrderStatus.PENDING,
                    metadata={"auto": True, "reason": AUTO_CANCEL_METADATA_REASON},
                )
                summary.auto_cancelled.append(order.order_number)
            except AppException as exc:
                logger.warning("Auto-cancel skipped order %s: %s", order.order_number, exc.message)
                summary.record_error(RULE_AUTO_CANCEL, order, exc)
            except Exception as exc:
                logger.exception("Auto-cancel failed for order %s", order.order_number)
                summary.record_error(RULE_AUTO_CANCEL, order, exc)
        return summary

    async def run_start_reminders(self, summary: RunSummary | None = None) -> RunSummary:
        summary = summary if summary is not None else RunSummary()
        now = self.clock()
        cutoff = now - self.start_reminder_after
        notifier = self.executor.notifier
        for order in await self.storage.query_confirmed_unstarted_older_than(cutoff):
            try:
                await notifier.notify(order, NotificationKind.START_REMINDER)
                await self.storage.mark_start_reminder_sent(order.id, now)
                summary.reminders_sent.append(order.order_number)
            except Exception as exc:
                logger.exception("Start reminder failed for order %s", order.order_number)
                summary.record_error(RULE_START_REMINDER, order, exc)
        return summary
