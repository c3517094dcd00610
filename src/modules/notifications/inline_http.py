"""InlineHttpNotifier — deliver email and webhook requests directly over HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from src.config import settings
from src.exceptions import NotificationFailedException
from src.models.enums import NotificationKind
from src.modules.notifications.base import NotificationResult, Notifier, build_notification_payload

logger = logging.getLogger(__name__)

_RETRY_STATUSES = {429, 500, 502, 503, 504}


def email_request_body(payload: dict) -> dict:
    return {
        "template": payload["email_template"],
        "to": payload["recipient_email"],
        "data": payload,
    }


def webhook_request_body(payload: dict) -> dict:
    return {"event": payload["webhook_event"], "data": payload}


def auth_headers() -> dict[str, str]:
    if not settings.notification_api_key:
        return {}
    return {"Authorization": f"Bearer {settings.notification_api_key}"}


class InlineHttpNotifier(Notifier):
    """Posts to the email service and webhook endpoint from the calling process.

    ``notify`` starts delivery as a background task on the running loop and
    returns at once, so retries never hold up a transition. ``deliver`` is the
    blocking send: retryable responses and transport errors are retried with
    exponential backoff before NotificationFailedException is raised.
    ``close`` waits for deliveries still in flight.
    """

    channel = "http"

    def __init__(
        self,
        email_url: str | None = None,
        webhook_url: str | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.email_url = email_url if email_url is not None else settings.notification_email_url
        self.webhook_url = (
            webhook_url if webhook_url is not None else settings.notification_webhook_url
        )
        self.max_retries = (
            max_retries if max_retries is not None else settings.notification_max_retries
        )
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.notification_backoff_seconds
        )
        self._client = client
        self._pending: set[asyncio.Task] = set()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=settings.notification_timeout_seconds,
                headers=auth_headers(),
            )
        return self._client

    async def _post_with_retry(self, url: str, body: dict) -> httpx.Response:
        """POST ``body`` to ``url`` with exponential backoff for retryable errors."""
        client = await self._get_client()

        last_exception: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                response = await client.post(url, json=body)
                if response.status_code < 400:
                    return response
                if response.status_code not in _RETRY_STATUSES or attempt >= self.max_retries:
                    response.raise_for_status()
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Notification POST %s returned %d, retrying in %.1fs (attempt %d/%d)",
                    url, response.status_code, delay, attempt + 1, self.max_retries,
                )
                await asyncio.sleep(delay)
            except httpx.HTTPStatusError:
                raise
            except httpx.RequestError as exc:
                last_exception = exc
                if attempt >= self.max_retries:
                    raise
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Notification POST %s request error: %s, retrying in %.1fs",
                    url, exc, delay,
                )
                await asyncio.sleep(delay)

        if last_exception:
            raise last_exception
        raise RuntimeError(f"Max retries exceeded for notification POST {url}")

    async def notify(
        self,
        order: Any,
        kind: NotificationKind,
        extra: dict | None = None,
    ) -> NotificationResult:
        payload = build_notification_payload(order, kind, extra)
        task = asyncio.create_task(
            self._deliver_in_background(payload),
            name=f"notify-{kind.value}-{order.order_number}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return NotificationResult(channel=self.channel, queued=True)

    async def deliver(self, payload: dict) -> NotificationResult:
        """Send ``payload`` to every configured channel, waiting for the outcome."""
        sent: list[str] = []
        try:
            if self.email_url and payload["recipient_email"] and payload["email_template"]:
                await self._post_with_retry(self.email_url, email_request_body(payload))
                sent.append("email")
            if self.webhook_url and payload["webhook_event"]:
                await self._post_with_retry(self.webhook_url, webhook_request_body(payload))
                sent.append("webhook")
        except httpx.HTTPError as exc:
            raise NotificationFailedException(
                f"Notification {payload['kind']} for order {payload['order_number']} failed",
                details=[{"error": str(exc), "delivered": sent}],
            ) from exc

        if not sent:
            logger.debug(
                "No channel configured for %s on order %s",
                payload["kind"], payload["order_number"],
            )
        return NotificationResult(
            channel=self.channel,
            delivered=bool(sent),
            detail=",".join(sent) or None,
        )

    async def _deliver_in_background(self, payload: dict) -> None:
        try:
            await self.deliver(payload)
        except NotificationFailedException as exc:
            logger.warning("%s: %s", exc.message, exc.details)
        except Exception:
            logger.exception(
                "Notification %s for order %s crashed", payload["kind"], payload["order_number"]
            )

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
