"""Celery application configuration for bakery order background tasks."""

from celery import Celery
from celery.schedules import crontab

from src.config import settings

celery = Celery("bakery_orders")

celery.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # --- Queue routing per job type ---
    task_routes={
        "src.modules.order.tasks.*": {"queue": "order-lifecycle"},
        "src.modules.events.tasks.process_outbox": {"queue": "event-outbox"},
        "src.modules.events.tasks.cleanup_processed_events": {"queue": "event-outbox"},
    },
    # --- Reliability settings ---
    task_default_retry_delay=60,
    task_max_retries=3,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24 hours
    # --- Broker transport options (Redis reliability) ---
    broker_transport_options={
        "max_retries": 10,
        "interval_start": 0.2,
        "interval_step": 0.5,
        "interval_max": 5.0,
        "retry_on_timeout": True,
        "visibility_timeout": 3600,
    },
    # --- Beat schedule ---
    beat_schedule={
        "order-auto-complete-hourly": {
            "task": "src.modules.order.tasks.auto_complete_ready_orders",
            "schedule": crontab(minute=settings.order_auto_complete_cron_minute),
        },
        "order-auto-cancel-unpaid": {
            "task": "src.modules.order.tasks.auto_cancel_unpaid_orders",
            "schedule": settings.order_unpaid_cancel_poll_seconds,
        },
        "order-start-reminders": {
            "task": "src.modules.order.tasks.send_start_reminders",
            "schedule": settings.order_start_reminder_poll_seconds,
        },
        "process-event-outbox": {
            "task": "src.modules.events.tasks.process_outbox",
            "schedule": settings.event_outbox_poll_seconds,
        },
        "cleanup-processed-events-daily": {
            "task": "src.modules.events.tasks.cleanup_processed_events",
            "schedule": crontab(hour=3, minute=30),
        },
    },
)

celery.autodiscover_tasks([
    "src.modules.order",
    "src.modules.events",
])
