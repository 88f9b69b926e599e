"""
Matching engine Celery tasks.

Reruns the matching job for one user after something that feeds the
match computation changed (e.g. a collection item was paused). Enqueued
best-effort by the API; matches are eventually consistent.
"""

import asyncio
import logging
import uuid

from app.tasks.celery_app import celery_app
from app.matching_engine.engine import MatchingError, matching_engine

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.matching_tasks.recompute_matches_for_user")
def recompute_matches_for_user(user_id: str):
    """
    Recompute every match for *user_id*.

    Celery tasks are synchronous, so we run the async engine
    in an event loop.
    """
    logger.info("Recomputing matches for user %s", user_id)
    loop = asyncio.new_event_loop()
    try:
        summaries = loop.run_until_complete(
            matching_engine.compute_for_user(uuid.UUID(user_id))
        )
        logger.info("Recomputed %d matches for user %s", len(summaries), user_id)
        return {"user_id": user_id, "matches": len(summaries)}
    except MatchingError as exc:
        logger.info("Skipping recompute for %s: %s", user_id, exc)
        return {"user_id": user_id, "skipped": str(exc)}
    except Exception:
        logger.exception("Match recompute failed for user %s", user_id)
        raise
    finally:
        loop.close()
