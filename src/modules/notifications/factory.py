"""Notifier factory — select the configured delivery backend."""

from __future__ import annotations

from src.config import settings
from src.modules.notifications.base import Notifier
from src.modules.notifications.inline_http import InlineHttpNotifier
from src.modules.notifications.outbox import OutboxNotifier

_instances: dict[str, Notifier] = {}


def get_notifier(backend: str | None = None) -> Notifier:
    backend = (backend or settings.notification_backend).lower()
    if backend not in _instances:
        if backend == "outbox":
            _instances[backend] = OutboxNotifier()
        elif backend == "inline":
            _instances[backend] = InlineHttpNotifier()
        else:
            raise ValueError(f"No notifier for backend: {backend}")
    return _instances[backend]


async def close_all_notifiers() -> None:
    """Close cached notifiers.

    Must be called at the end of each asyncio.run() invocation in Celery tasks
    so httpx clients do not outlive their event loop.
    """
    for notifier in _instances.values():
        await notifier.close()
