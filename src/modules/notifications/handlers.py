"""Outbox handlers delivering order events to the email service and webhook."""

import logging

import httpx

from src.config import settings
from src.models.enums import NotificationKind
from src.modules.events.handlers import EventHandlerRegistry
from src.modules.notifications.inline_http import (
    auth_headers,
    email_request_body,
    webhook_request_body,
)
from src.modules.order.constants import WEBHOOK_EVENTS, event_type_for

logger = logging.getLogger(__name__)


def _post(url: str, body: dict) -> None:
    # Failures propagate so the outbox processor counts a retry
    with httpx.Client(timeout=settings.notification_timeout_seconds, headers=auth_headers()) as client:
        response = client.post(url, json=body)
        response.raise_for_status()


def send_order_email(payload: dict) -> None:
    """Ask the email service to send the event's template to its recipient."""
    if not settings.notification_email_url:
        logger.debug("Email URL not configured, skipping %s", payload.get("kind"))
        return
    if not payload.get("recipient_email") or not payload.get("email_template"):
        logger.info(
            "No %s recipient for %s on order %s, skipping",
            payload.get("audience"), payload.get("kind"), payload.get("order_number"),
        )
        return
    _post(settings.notification_email_url, email_request_body(payload))


def send_order_webhook(payload: dict) -> None:
    if not settings.notification_webhook_url:
        logger.debug("Webhook URL not configured, skipping %s", payload.get("webhook_event"))
        return
    _post(settings.notification_webhook_url, webhook_request_body(payload))


def register_notification_handlers() -> None:
    """Attach delivery handlers for every ``order.<kind>`` event type."""
    for kind in NotificationKind:
        event_type = event_type_for(kind)
        EventHandlerRegistry.register(event_type, send_order_email)
        if kind in WEBHOOK_EVENTS:
            EventHandlerRegistry.register(event_type, send_order_webhook)
