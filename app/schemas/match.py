"""
Pydantic schemas for match listing, detail and lifecycle actions.

Match responses are always expressed from the requesting user's side:
``match_type`` is flipped for user_b, and cards are split into the ones
I want and the ones they want.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.collection import Condition
from app.models.match import CardDirection


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class MatchStatusUpdate(BaseModel):
    """PATCH /matches/{id} — dismiss, mark contacted, or reactivate."""
    status: Literal["dismissed", "contacted", "active"]


class CompletionReport(BaseModel):
    """Whether the trade actually took place."""
    completed: bool


class CardExclusionUpdate(BaseModel):
    card_id: UUID
    is_excluded: bool


class ExclusionsSave(BaseModel):
    """Exactly these cards end up excluded; every other card is included."""
    excluded_card_ids: list[UUID] = Field(default_factory=list)


class CustomCardCreate(BaseModel):
    collection_id: UUID
    quantity: int = Field(1, ge=1, examples=[1])


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class MatchCardResponse(BaseModel):
    id: UUID
    direction: CardDirection
    card_id: UUID
    card_name: str
    card_set_code: str | None
    card_image_uri: str | None
    asking_price: Decimal | None
    max_price: Decimal | None
    price_exceeds_max: bool
    collection_condition: Condition
    wishlist_min_condition: Condition
    is_foil: bool
    quantity_available: int
    quantity_wanted: int
    is_excluded: bool
    is_custom: bool
    added_by_user_id: UUID | None

    model_config = {"from_attributes": True}


class MatchSummary(BaseModel):
    """One row of the match list, from the requesting user's side."""
    id: UUID
    other_user_id: UUID
    match_type: str
    status: str
    distance_km: float | None
    cards_i_want: int
    cards_they_want: int
    value_i_want: Decimal
    value_they_want: Decimal
    match_score: float
    has_price_warnings: bool
    is_user_modified: bool
    updated_at: datetime


class MatchDetail(MatchSummary):
    """A match with its cards and the flags the trade screen needs."""
    cards_i_want_list: list[MatchCardResponse]
    cards_they_want_list: list[MatchCardResponse]
    total_i_want: Decimal
    total_they_want: Decimal
    requested_by: UUID | None
    requested_at: datetime | None
    confirmed_at: datetime | None
    escrow_expires_at: datetime | None
    i_requested: bool
    can_confirm: bool
    my_completion: bool | None
    their_completion: bool | None
    has_conflict: bool


class MatchListResponse(BaseModel):
    items: list[MatchSummary]
    total: int


class ComputeResponse(BaseModel):
    """Result of running the matching job for the requesting user."""
    matches: list[dict]
    total: int


class MatchActionResponse(BaseModel):
    """Outcome of a lifecycle action."""
    id: UUID
    status: str
    previous_status: str
    request_invalidated: bool = False
    match_score: float
    action: str | None = None
    card: MatchCardResponse | None = None


class CounterpartCard(BaseModel):
    """One item of the other user's collection, offered as a custom card."""
    collection_id: UUID
    card_id: UUID
    card_name: str
    card_set_code: str | None
    card_set_name: str | None
    card_image_uri: str | None
    condition: Condition
    is_foil: bool
    quantity: int
    asking_price: Decimal | None
    already_in_trade: bool


class CounterpartCollectionResponse(BaseModel):
    cards: list[CounterpartCard]
    total: int
    page: int
    limit: int
    total_pages: int
