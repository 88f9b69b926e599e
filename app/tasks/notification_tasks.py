"""
Notification Celery tasks — background push delivery.

Offloads push delivery to workers so route handlers return as soon as
the state change is committed.
"""

import asyncio
import logging

from app.tasks.celery_app import celery_app
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.notification_tasks.send_push_notification")
def send_push_notification(payload: dict):
    """Deliver one push payload. Failures are logged inside the service."""
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(notification_service.send_push(payload))
        logger.info("Push to %s: %s", payload.get("user_id"), result.get("status"))
        return result
    finally:
        loop.close()
