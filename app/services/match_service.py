"""
Match service — the glue between route handlers and the lifecycle.

Loads matches under a row lock, translates lifecycle rejections into
HTTP errors, and finishes an action by recording its notifications,
committing, and only then enqueueing push delivery.
"""

import logging
import uuid
from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.matching_engine.engine import MatchingError
from app.matching_engine.lifecycle import (
    MatchCardNotFound,
    MatchPermissionError,
    MatchTransitionError,
    TransitionResult,
)
from app.models.card import Card
from app.models.collection import CollectionItem
from app.models.match import Match, MatchCard, MatchStatus
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)


async def load_match(
    db: AsyncSession,
    match_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Match:
    """
    Load a match the user participates in.

    With ``for_update`` the row is locked until the transaction ends, so
    concurrent actions on the same match run one after the other.
    Raises 404 for unknown matches and for non-participants alike.
    """
    stmt = select(Match).where(Match.id == match_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    match = result.scalar_one_or_none()
    if match is None or not match.is_participant(user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Match not found",
        )
    return match


async def load_cards(db: AsyncSession, match: Match) -> list[MatchCard]:
    result = await db.execute(
        select(MatchCard)
        .where(MatchCard.match_id == match.id)
        .order_by(MatchCard.card_name)
    )
    return list(result.scalars().all())


async def load_collection_item(db: AsyncSession, item_id: uuid.UUID) -> CollectionItem:
    item = await db.get(CollectionItem, item_id)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Collection item not found",
        )
    return item


async def load_counterpart_collection(
    db: AsyncSession,
    owner_id: uuid.UUID,
    *,
    search: str = "",
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[CollectionItem], int]:
    """
    A page of the items *owner_id* can still trade, newest first, and the total.

    Paused items and items promised in a confirmed trade are left out.
    *search* matches the card name case-insensitively.
    """
    escrowed = (
        select(MatchCard.collection_id)
        .join(Match, Match.id == MatchCard.match_id)
        .where(
            Match.status == MatchStatus.CONFIRMED,
            MatchCard.is_excluded.is_(False),
            MatchCard.collection_id.is_not(None),
        )
    )
    stmt = select(CollectionItem).where(
        CollectionItem.user_id == owner_id,
        CollectionItem.quantity > 0,
        CollectionItem.is_paused.is_(False),
        CollectionItem.id.not_in(escrowed),
    )
    if search.strip():
        stmt = stmt.join(Card, Card.id == CollectionItem.card_id).where(
            Card.name.ilike(f"%{search.strip()}%")
        )

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    result = await db.execute(
        stmt.order_by(CollectionItem.created_at.desc()).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), total or 0


@contextmanager
def lifecycle_errors():
    """Map lifecycle and matching rejections onto HTTP status codes."""
    try:
        yield
    except MatchCardNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.reason)
    except MatchPermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.reason)
    except MatchTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.reason)
    except MatchingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


async def finish(db: AsyncSession, result: TransitionResult) -> None:
    """
    Persist a completed action and fire its pushes.

    Notification rows are written in the same transaction as the state
    change. Pushes are enqueued after the commit and never fail the call.
    """
    notification_service.record(db, result.notifications)
    await db.commit()
    notification_service.dispatch_push(result.notifications)
