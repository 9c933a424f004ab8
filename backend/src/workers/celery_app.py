"""Celery application for background session maintenance.

Used when KEEPALIVE_MODE=celery: beat fires the keep-alive tick instead of
the in-process thread started by the API lifespan.

Run with:
    celery -A workers.celery_app worker --beat --loglevel=info
"""

from celery import Celery

from config import get_settings
from observability.logging_config import configure_logging

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

celery_app = Celery(
    "warehouse_bff",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["workers.keepalive_tasks"],
)

celery_app.conf.worker_prefetch_multiplier = 1

celery_app.conf.beat_schedule = {
    "sessions-keepalive-tick": {
        "task": "sessions.keepalive_tick",
        "schedule": float(settings.KEEPALIVE_TICK_SECONDS),
        # A tick older than one interval is stale; the next beat replaces it
        "options": {"expires": settings.KEEPALIVE_TICK_SECONDS},
    },
}
