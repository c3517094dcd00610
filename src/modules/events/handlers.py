"""Registry mapping ``order.<kind>`` outbox events to delivery handlers."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Handler = Callable[[dict], None]


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of one handler for one event."""

    handler: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def handler_name(handler: Handler) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


class EventHandlerRegistry:
    """Process-wide table of handlers, filled at worker start-up.

    Handlers receive the event payload and raise to signal a failed delivery.
    Each handler runs once per event in registration order; registering the
    same handler for the same event type twice keeps a single entry.
    """

    _handlers: dict[str, list[Handler]] = {}

    @classmethod
    def register(cls, event_type: str, handler: Handler) -> None:
        handlers = cls._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("Handler %s subscribed to %s", handler_name(handler), event_type)

    @classmethod
    def get_handlers(cls, event_type: str) -> list[Handler]:
        return list(cls._handlers.get(event_type, ()))

    @classmethod
    def dispatch(cls, event_type: str, payload: dict) -> list[HandlerResult]:
        """Run every handler for ``event_type``; one failure does not skip the rest."""
        results = []
        for handler in cls.get_handlers(event_type):
            name = handler_name(handler)
            try:
                handler(payload)
            except Exception as exc:
                logger.exception("Handler %s failed on %s", name, event_type)
                results.append(HandlerResult(name, str(exc) or type(exc).__name__))
            else:
                results.append(HandlerResult(name))
        return results

    @classmethod
    def clear(cls) -> None:
        cls._handlers.clear()
