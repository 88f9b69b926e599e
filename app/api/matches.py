"""
Match endpoints — list, inspect, compute and drive the trade lifecycle.

Every action that changes a match follows the same flow:
  1. Load the match under a row lock (404 unless I participate)
  2. Load its cards
  3. Apply the lifecycle operation (400/403/404 on rejection)
  4. Record notifications, commit, then enqueue pushes
"""

import logging
import math
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.matching_engine import lifecycle
from app.matching_engine.engine import matching_engine
from app.matching_engine.lifecycle import TransitionResult
from app.matching_engine.matcher import CollectionEntry
from app.models.match import Match, MatchCard, MatchStatus
from app.models.user import User
from app.schemas.match import (
    CardExclusionUpdate,
    CompletionReport,
    ComputeResponse,
    CounterpartCard,
    CounterpartCollectionResponse,
    CustomCardCreate,
    ExclusionsSave,
    MatchActionResponse,
    MatchCardResponse,
    MatchDetail,
    MatchListResponse,
    MatchStatusUpdate,
    MatchSummary,
)
from app.services.match_service import (
    finish,
    lifecycle_errors,
    load_cards,
    load_collection_item,
    load_counterpart_collection,
    load_match,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _summary_fields(match: Match, user_id: UUID) -> dict:
    """Match fields from *user_id*'s side of the trade."""
    if match.is_user_a(user_id):
        i_want, they_want = match.cards_a_wants_count, match.cards_b_wants_count
        value_i_want, value_they_want = match.value_a_wants, match.value_b_wants
    else:
        i_want, they_want = match.cards_b_wants_count, match.cards_a_wants_count
        value_i_want, value_they_want = match.value_b_wants, match.value_a_wants
    return {
        "id": match.id,
        "other_user_id": match.other_user_id(user_id),
        "match_type": match.match_type_for(user_id).value,
        "status": match.status.value,
        "distance_km": match.distance_km,
        "cards_i_want": i_want,
        "cards_they_want": they_want,
        "value_i_want": value_i_want,
        "value_they_want": value_they_want,
        "match_score": match.match_score,
        "has_price_warnings": match.has_price_warnings,
        "is_user_modified": match.is_user_modified,
        "updated_at": match.updated_at,
    }


def _build_detail(match: Match, cards: list[MatchCard], user_id: UUID) -> MatchDetail:
    my_direction = match.wants_direction(user_id)
    i_want = [c for c in cards if c.direction == my_direction]
    they_want = [c for c in cards if c.direction != my_direction]

    def total(items):
        return sum(
            (c.asking_price or Decimal("0") for c in items if not c.is_excluded),
            Decimal("0"),
        )

    if match.is_user_a(user_id):
        mine, theirs = match.user_a_completed, match.user_b_completed
    else:
        mine, theirs = match.user_b_completed, match.user_a_completed

    return MatchDetail(
        **_summary_fields(match, user_id),
        cards_i_want_list=[MatchCardResponse.model_validate(c) for c in i_want],
        cards_they_want_list=[MatchCardResponse.model_validate(c) for c in they_want],
        total_i_want=total(i_want),
        total_they_want=total(they_want),
        requested_by=match.requested_by,
        requested_at=match.requested_at,
        confirmed_at=match.confirmed_at,
        escrow_expires_at=match.escrow_expires_at,
        i_requested=match.requested_by == user_id,
        can_confirm=(
            match.status == MatchStatus.REQUESTED
            and match.requested_by is not None
            and match.requested_by != user_id
        ),
        my_completion=mine,
        their_completion=theirs,
        has_conflict=match.has_conflict,
    )


def _action_response(match: Match, result: TransitionResult) -> MatchActionResponse:
    card = None
    if result.card is not None and result.action != "deleted":
        card = MatchCardResponse.model_validate(result.card)
    return MatchActionResponse(
        id=match.id,
        status=match.status.value,
        previous_status=result.previous_status.value,
        request_invalidated=result.request_invalidated,
        match_score=match.match_score,
        action=result.action,
        card=card,
    )


# ---------------------------------------------------------------------------
# Listing, detail and computation
# ---------------------------------------------------------------------------


@router.get("/", response_model=MatchListResponse)
async def list_matches(
    status_filter: MatchStatus | None = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List my matches, best score first, optionally filtered by status."""
    stmt = select(Match).where(or_(Match.user_a_id == user.id, Match.user_b_id == user.id))
    if status_filter is not None:
        stmt = stmt.where(Match.status == status_filter)
    result = await db.execute(stmt.order_by(Match.match_score.desc()))
    matches = result.scalars().all()

    items = [MatchSummary(**_summary_fields(m, user.id)) for m in matches]
    return MatchListResponse(items=items, total=len(items))


@router.post("/compute", response_model=ComputeResponse)
async def compute_matches(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Run the matching job for the requesting user."""
    with lifecycle_errors():
        summaries = await matching_engine.compute_in_session(db, user.id)
    await db.commit()
    return ComputeResponse(matches=summaries, total=len(summaries))


@router.get("/{match_id}", response_model=MatchDetail)
async def get_match(
    match_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id)
    cards = await load_cards(db, match)
    return _build_detail(match, cards, user.id)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.patch("/{match_id}", response_model=MatchActionResponse)
async def update_match_status(
    match_id: UUID,
    payload: MatchStatusUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Dismiss a match, mark it contacted, or reactivate it.

    Reactivating is a full restore: exclusions are cleared and the score
    is recomputed.
    """
    match = await load_match(db, match_id, user.id, for_update=True)
    with lifecycle_errors():
        if payload.status == "dismissed":
            result = lifecycle.dismiss(match, user.id)
        elif payload.status == "contacted":
            result = lifecycle.mark_contacted(match, user.id)
        else:
            cards = await load_cards(db, match)
            result = lifecycle.restore(match, cards, user.id)
    await finish(db, result)
    return _action_response(match, result)


@router.post("/{match_id}/restore", response_model=MatchActionResponse)
async def restore_match(
    match_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id, for_update=True)
    cards = await load_cards(db, match)
    with lifecycle_errors():
        result = lifecycle.restore(match, cards, user.id)
    await finish(db, result)
    return _action_response(match, result)


@router.post("/{match_id}/recalculate", response_model=MatchActionResponse)
async def recalculate_match(
    match_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rebuild the match from both users' current lists, keeping custom cards."""
    match = await load_match(db, match_id, user.id, for_update=True)
    cards = await load_cards(db, match)
    with lifecycle_errors():
        result = await matching_engine.recalculate(db, match, cards, user.id)
    await finish(db, result)
    return _action_response(match, result)


@router.post("/{match_id}/request", response_model=MatchActionResponse)
async def request_trade(
    match_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id, for_update=True)
    cards = await load_cards(db, match)
    with lifecycle_errors():
        result = lifecycle.request_trade(match, cards, user.id, actor_name=user.display_name)
    await finish(db, result)
    return _action_response(match, result)


@router.delete("/{match_id}/request", response_model=MatchActionResponse)
async def cancel_request(
    match_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw my request, or decline the other user's."""
    match = await load_match(db, match_id, user.id, for_update=True)
    with lifecycle_errors():
        result = lifecycle.cancel_request(match, user.id, actor_name=user.display_name)
    await finish(db, result)
    return _action_response(match, result)


@router.post("/{match_id}/confirm", response_model=MatchActionResponse)
async def confirm_trade(
    match_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id, for_update=True)
    with lifecycle_errors():
        result = lifecycle.confirm(match, user.id, actor_name=user.display_name)
    await finish(db, result)
    return _action_response(match, result)


@router.post("/{match_id}/complete", response_model=MatchActionResponse)
async def report_completion(
    match_id: UUID,
    payload: CompletionReport,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Report whether the trade happened.

    When both users say yes the traded cards leave both inventories.
    """
    match = await load_match(db, match_id, user.id, for_update=True)
    with lifecycle_errors():
        result = lifecycle.report_completion(
            match, user.id, payload.completed, actor_name=user.display_name,
        )
    if result.status == MatchStatus.COMPLETED:
        cards = await load_cards(db, match)
        await matching_engine.apply_trade_completion(db, match, cards)
    await finish(db, result)
    return _action_response(match, result)


# ---------------------------------------------------------------------------
# Card edits
# ---------------------------------------------------------------------------


@router.patch("/{match_id}/cards", response_model=MatchActionResponse)
async def set_card_excluded(
    match_id: UUID,
    payload: CardExclusionUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id, for_update=True)
    cards = await load_cards(db, match)
    with lifecycle_errors():
        result = lifecycle.set_card_excluded(
            match, cards, payload.card_id, payload.is_excluded, user.id,
        )
    await finish(db, result)
    return _action_response(match, result)


@router.put("/{match_id}/cards", response_model=MatchActionResponse)
async def save_exclusions(
    match_id: UUID,
    payload: ExclusionsSave,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id, for_update=True)
    cards = await load_cards(db, match)
    with lifecycle_errors():
        result = lifecycle.save_exclusions(match, cards, payload.excluded_card_ids, user.id)
    await finish(db, result)
    return _action_response(match, result)


@router.post(
    "/{match_id}/cards/custom",
    response_model=MatchActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_custom_card(
    match_id: UUID,
    payload: CustomCardCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Add a card from the other user's collection that no wishlist matched."""
    match = await load_match(db, match_id, user.id, for_update=True)
    cards = await load_cards(db, match)
    item = await load_collection_item(db, payload.collection_id)
    with lifecycle_errors():
        result = lifecycle.add_custom_card(
            match, cards, CollectionEntry.from_orm(item), user.id, quantity=payload.quantity,
        )
    if result.action == "added":
        db.add(result.card)
    await finish(db, result)
    return _action_response(match, result)


@router.delete("/{match_id}/cards/{card_id}", response_model=MatchActionResponse)
async def delete_custom_card(
    match_id: UUID,
    card_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id, for_update=True)
    cards = await load_cards(db, match)
    with lifecycle_errors():
        result = lifecycle.delete_custom_card(match, cards, card_id, user.id)
    await db.delete(result.card)
    await finish(db, result)
    return _action_response(match, result)


@router.get("/{match_id}/cards", response_model=list[MatchCardResponse])
async def list_match_cards(
    match_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await load_match(db, match_id, user.id)
    cards = await load_cards(db, match)
    return [MatchCardResponse.model_validate(c) for c in cards]


@router.get("/{match_id}/counterpart-collection", response_model=CounterpartCollectionResponse)
async def counterpart_collection(
    match_id: UUID,
    search: str = Query(""),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Browse the other user's tradeable collection to pick custom cards.

    Items I already want in this trade are flagged ``already_in_trade``.
    """
    match = await load_match(db, match_id, user.id)
    cards = await load_cards(db, match)
    my_direction = match.wants_direction(user.id)
    in_trade = {
        c.collection_id for c in cards
        if c.direction == my_direction and not c.is_excluded
    }

    items, total = await load_counterpart_collection(
        db,
        match.other_user_id(user.id),
        search=search,
        offset=(page - 1) * limit,
        limit=limit,
    )

    offered = []
    for item in items:
        entry = CollectionEntry.from_orm(item)
        offered.append(CounterpartCard(
            collection_id=item.id,
            card_id=item.card_id,
            card_name=entry.name,
            card_set_code=entry.set_code,
            card_set_name=item.card.set_name,
            card_image_uri=entry.image_uri,
            condition=item.condition,
            is_foil=item.foil,
            quantity=item.quantity,
            asking_price=entry.asking_price,
            already_in_trade=item.id in in_trade,
        ))

    return CounterpartCollectionResponse(
        cards=offered,
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )
