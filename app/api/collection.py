"""
Collection endpoints — per-item availability toggle.

Pausing an item hides it from matching. Existing matches are refreshed
by a background recompute; the toggle itself never waits for it.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.models.collection import CollectionItem
from app.models.user import User
from app.schemas.notification import CollectionPauseResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _enqueue_recompute(user_id: UUID) -> bool:
    """Fire-and-forget match recompute for *user_id*."""
    try:
        from app.tasks.matching_tasks import recompute_matches_for_user

        recompute_matches_for_user.delay(str(user_id))
        return True
    except Exception:
        logger.exception("Failed to enqueue match recompute for user %s", user_id)
        return False


@router.patch("/{item_id}/pause", response_model=CollectionPauseResponse)
async def toggle_pause(
    item_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    item = await db.get(CollectionItem, item_id)
    if item is None or item.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Collection item not found",
        )

    paused = item.toggle_pause()
    await db.commit()
    logger.info("Collection item %s %s by %s", item.id, "paused" if paused else "resumed", user.id)

    return CollectionPauseResponse(
        id=item.id,
        is_paused=paused,
        recompute_queued=_enqueue_recompute(user.id),
    )
