"""OutboxNotifier — queue notification intents in the transactional outbox."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.database.engine import async_session
from src.exceptions import NotificationFailedException
from src.models.enums import NotificationKind
from src.modules.events.outbox_service import OutboxService
from src.modules.notifications.base import NotificationResult, Notifier, build_notification_payload
from src.modules.order.constants import event_type_for

logger = logging.getLogger(__name__)

AGGREGATE_TYPE = "order"


class OutboxNotifier(Notifier):
    """Writes an ``order.<kind>`` event; the outbox processor delivers it later."""

    channel = "outbox"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
    ) -> None:
        self.session_factory = session_factory

    async def notify(
        self,
        order: Any,
        kind: NotificationKind,
        extra: dict | None = None,
    ) -> NotificationResult:
        event_type = event_type_for(kind)
        payload = build_notification_payload(order, kind, extra)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    event = await OutboxService(session).publish_event(
                        event_type=event_type,
                        aggregate_type=AGGREGATE_TYPE,
                        aggregate_id=str(order.id),
                        payload=payload,
                        max_retries=settings.notification_max_retries,
                    )
        except SQLAlchemyError as exc:
            raise NotificationFailedException(
                f"Could not queue {event_type} for order {order.order_number}",
                details=[{"error": str(exc)}],
            ) from exc

        logger.debug("Queued %s event %s for order %s", event_type, event.id, order.order_number)
        return NotificationResult(channel=self.channel, queued=True, detail=str(event.id))
