"""
Celery application configuration.

Match recomputation and push delivery run on separate queues so a burst
of collection edits never delays trade notifications. Start workers with
``-Q matching,push`` (or one worker per queue). Everything is enqueued on
demand; there is no periodic schedule.
"""

from celery import Celery

from app.config import settings

celery_app = Celery(
    "natural_order",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=settings.CELERY_RESULT_EXPIRES_SECONDS,
    task_default_queue=settings.CELERY_MATCHING_QUEUE,
    task_routes={
        "app.tasks.matching_tasks.*": {"queue": settings.CELERY_MATCHING_QUEUE},
        "app.tasks.notification_tasks.*": {"queue": settings.CELERY_PUSH_QUEUE},
    },
    task_annotations={
        "app.tasks.matching_tasks.recompute_matches_for_user": {
            "time_limit": settings.MATCHING_TASK_TIME_LIMIT_SECONDS,
        },
        # A push is one HTTP call; give it the client timeout plus slack
        "app.tasks.notification_tasks.send_push_notification": {
            "time_limit": int(settings.PUSH_TIMEOUT_SECONDS) + 10,
        },
    },
)

# Auto-discover tasks in the tasks package
celery_app.autodiscover_tasks(["app.tasks"])
