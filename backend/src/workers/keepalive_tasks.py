"""Celery tasks for operator session keep-alive."""

import logging
from dataclasses import asdict
from typing import Any, Dict

from celery import shared_task

from dependencies import get_keepalive_worker

logger = logging.getLogger(__name__)


@shared_task(name="sessions.keepalive_tick")
def keepalive_tick_task() -> Dict[str, Any]:
    """Ping every due operator session once.

    Returns:
        Dict with tick statistics (due, renewed, failed, dropped)
    """
    stats = get_keepalive_worker().run_tick()
    if stats.due:
        logger.info(
            f"Keep-alive tick: {stats.renewed}/{stats.due} renewed",
            extra=asdict(stats),
        )
    return asdict(stats)
