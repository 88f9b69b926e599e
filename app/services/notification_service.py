"""
Notification service — in-app records and push delivery.

Lifecycle operations return ``NotificationIntent``s. Route handlers
record them in the request's transaction and, after that, hand the ones
with a push title to Celery. Push delivery is best-effort: a failure is
logged and never affects the state change or the stored notification.
"""

import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.matching_engine.lifecycle import NotificationIntent
from app.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes notification rows and delivers push messages via the push function."""

    def __init__(self, push_url: str | None = None, service_key: str | None = None):
        self.push_url = settings.PUSH_FUNCTION_URL if push_url is None else push_url
        self.service_key = settings.PUSH_SERVICE_KEY if service_key is None else service_key
        self.timeout = settings.PUSH_TIMEOUT_SECONDS

    def record(self, session: AsyncSession, intents: list[NotificationIntent]) -> list[Notification]:
        """Add one Notification row per intent to *session* (no flush)."""
        rows = []
        for intent in intents:
            row = Notification(
                user_id=intent.recipient_id,
                type=intent.type,
                match_id=intent.match_id,
                from_user_id=intent.from_user_id,
                content=intent.content,
            )
            session.add(row)
            rows.append(row)
        return rows

    @staticmethod
    def dispatch_push(intents: list[NotificationIntent]) -> int:
        """
        Enqueue push delivery for every intent that wants one.

        Fire-and-forget: enqueue failures are logged and skipped.
        Returns the number of tasks enqueued.
        """
        pushable = [i for i in intents if i.wants_push]
        if not pushable:
            return 0

        try:
            from app.tasks.notification_tasks import send_push_notification
        except Exception:
            logger.exception("Failed to import notification tasks")
            return 0

        sent = 0
        for intent in pushable:
            try:
                send_push_notification.delay(intent.push_payload())
                sent += 1
            except Exception:
                logger.exception(
                    "Failed to enqueue push %s for user %s",
                    intent.type.value, intent.recipient_id,
                )
        return sent

    async def send_push(self, payload: dict) -> dict:
        """
        POST one push payload to the push function.

        Never raises; the returned dict says what happened.
        """
        user_id = payload.get("user_id")
        if not self.push_url or not self.service_key:
            logger.warning("Push delivery not configured; skipping push to %s", user_id)
            return {"user_id": user_id, "status": "skipped"}

        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.push_url, json=payload, headers=headers)
        except httpx.HTTPError:
            logger.exception("Push request to %s failed", user_id)
            return {"user_id": user_id, "status": "failed"}

        if response.is_success:
            return {"user_id": user_id, "status": "sent"}

        logger.error(
            "Push to %s rejected: HTTP %s %s",
            user_id, response.status_code, response.text[:200],
        )
        return {"user_id": user_id, "status": "failed", "http_status": response.status_code}


notification_service = NotificationService()
