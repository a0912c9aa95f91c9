"""Celery application factory for background notification tasks."""
from __future__ import annotations

import os
from datetime import timedelta

from celery import Celery

from notifications.config import NotificationSettings

DEFAULT_BROKER_URL = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
DEFAULT_BACKEND_URL = os.getenv("CELERY_RESULT_BACKEND", DEFAULT_BROKER_URL)


def create_celery_app() -> Celery:
    """Create and configure the Celery app for the project."""
    settings = NotificationSettings.from_env()
    celery_app = Celery(
        "shift_notifications",
        broker=DEFAULT_BROKER_URL,
        backend=DEFAULT_BACKEND_URL,
        include=["notifications.tasks"],
    )

    celery_app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone=os.getenv("CELERY_TIMEZONE", "UTC"),
        enable_utc=True,
        task_default_queue="notifications",
        # One execution slot: SMS sends stay serialized across dispatch runs.
        worker_concurrency=1,
        worker_prefetch_multiplier=1,
        beat_schedule={
            "scan-due-reminders": {
                "task": "notifications.tasks.scan_due_reminders",
                "schedule": timedelta(seconds=settings.reminder_check_seconds),
            },
        },
    )

    return celery_app


celery_app = create_celery_app()
