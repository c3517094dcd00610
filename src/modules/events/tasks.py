"""Celery tasks for event outbox processing."""

import logging

from celery_app import celery
from src.modules.events.outbox_processor import OutboxProcessor
from src.modules.notifications.handlers import register_notification_handlers

logger = logging.getLogger(__name__)

register_notification_handlers()


@celery.task(name="src.modules.events.tasks.process_outbox")
def process_outbox():
    """Process a batch of pending outbox events."""
    stats = OutboxProcessor().process_batch()
    if stats["processed"] or stats["failed"]:
        logger.info("process_outbox complete: %s", stats)
    return stats


@celery.task(name="src.modules.events.tasks.cleanup_processed_events")
def cleanup_processed_events():
    """Delete expired processed_events and old completed outbox entries."""
    return OutboxProcessor().cleanup_expired()
