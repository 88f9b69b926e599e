"""
Pair matching — which cards two users can trade, and how good the trade is.

Works on plain snapshots of collection and wishlist rows so the logic
stays free of database access. The matching job builds the snapshots,
calls ``evaluate_pair`` for every nearby user, and persists the result
oriented to the (user_a, user_b) ordering used by ``Match``.

Match types are relative to the evaluating user until ``orient`` is
applied; after that they are relative to user_a:

    two_way       both users want something from the other
    one_way_buy   only the evaluating user (or user_a) wants cards
    one_way_sell  only the counterpart wants cards
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from app.matching_engine.predicates import (
    condition_meets_minimum,
    edition_matches,
    foil_matches,
)
from app.matching_engine.pricing import calculate_asking_price, price_exceeds_max
from app.matching_engine.scoring import calculate_match_score, calculate_price_efficiency
from app.models.match import CardDirection, MatchType
from app.models.user import TradeMode

# ── Snapshots ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CollectionEntry:
    """A collection item joined with its catalog card."""

    id: uuid.UUID
    user_id: uuid.UUID
    card_id: uuid.UUID
    oracle_id: str | None
    scryfall_id: str
    name: str
    set_code: str | None
    image_uri: str | None
    quantity: int
    condition: str
    foil: bool
    price_mode: str
    price_percentage: Decimal
    price_fixed: Decimal | None
    prices_usd: Decimal | None
    prices_usd_foil: Decimal | None

    @classmethod
    def from_orm(cls, item) -> "CollectionEntry":
        card = item.card
        return cls(
            id=item.id,
            user_id=item.user_id,
            card_id=item.card_id,
            oracle_id=card.oracle_id,
            scryfall_id=card.scryfall_id,
            name=card.name,
            set_code=card.set_code,
            image_uri=card.image_uri,
            quantity=item.quantity,
            condition=item.condition,
            foil=item.foil,
            price_mode=item.price_mode,
            price_percentage=item.price_percentage,
            price_fixed=item.price_fixed,
            prices_usd=card.prices_usd,
            prices_usd_foil=card.prices_usd_foil,
        )

    @property
    def asking_price(self) -> Decimal | None:
        return calculate_asking_price(
            self.price_mode,
            self.price_percentage,
            self.price_fixed,
            self.prices_usd,
            self.foil,
            self.prices_usd_foil,
        )


@dataclass(frozen=True)
class WishlistEntry:
    """A wishlist item joined with its catalog card."""

    id: uuid.UUID
    user_id: uuid.UUID
    card_id: uuid.UUID
    oracle_id: str | None
    quantity: int
    max_price: Decimal | None
    min_condition: str
    foil_preference: str
    edition_preference: str
    specific_editions: tuple[str, ...] = ()

    @classmethod
    def from_orm(cls, item) -> "WishlistEntry":
        return cls(
            id=item.id,
            user_id=item.user_id,
            card_id=item.card_id,
            oracle_id=item.card.oracle_id if item.card is not None else None,
            quantity=item.quantity,
            max_price=item.max_price,
            min_condition=item.min_condition,
            foil_preference=item.foil_preference,
            edition_preference=item.edition_preference,
            specific_editions=tuple(item.specific_editions or ()),
        )


@dataclass(frozen=True)
class CardMatch:
    """One collection item that satisfies one wishlist entry."""

    wishlist: WishlistEntry
    collection: CollectionEntry
    asking_price: Decimal | None
    price_exceeds_max: bool

    @property
    def max_price(self) -> Decimal | None:
        return self.wishlist.max_price


# ── Card-level matching ─────────────────────────────────────────────────


def satisfies(wish: WishlistEntry, item: CollectionEntry) -> bool:
    """True when *item* is the wished card and passes every constraint."""
    if not wish.oracle_id or not item.oracle_id:
        return False
    if wish.oracle_id != item.oracle_id:
        return False
    return (
        edition_matches(item.scryfall_id, wish.edition_preference, wish.specific_editions)
        and condition_meets_minimum(item.condition, wish.min_condition)
        and foil_matches(item.foil, wish.foil_preference)
    )


def find_card_matches(
    wishlist: list[WishlistEntry],
    collection: list[CollectionEntry],
) -> list[CardMatch]:
    """
    Every (wishlist entry, collection item) pair that satisfies the wish.

    A single wish can be met by several items (different printings or
    conditions) and one item can meet several wishes; each pair is kept.
    """
    matches: list[CardMatch] = []
    for wish in wishlist:
        for item in collection:
            if not satisfies(wish, item):
                continue
            asking = item.asking_price
            matches.append(CardMatch(
                wishlist=wish,
                collection=item,
                asking_price=asking,
                price_exceeds_max=price_exceeds_max(asking, wish.max_price),
            ))
    return matches


def classify_match_type(wanted_count: int, offered_count: int) -> MatchType | None:
    """Match type from the perspective of the user who wants *wanted_count* cards."""
    if wanted_count > 0 and offered_count > 0:
        return MatchType.TWO_WAY
    if wanted_count > 0:
        return MatchType.ONE_WAY_BUY
    if offered_count > 0:
        return MatchType.ONE_WAY_SELL
    return None


def trade_mode_allows(trade_mode: TradeMode | str | None, match_type: MatchType) -> bool:
    """Apply a user's trade-mode preference to a match type seen from that user."""
    if trade_mode == TradeMode.TRADE:
        return match_type == MatchType.TWO_WAY
    if trade_mode == TradeMode.SELL:
        return match_type != MatchType.ONE_WAY_BUY
    if trade_mode == TradeMode.BUY:
        return match_type != MatchType.ONE_WAY_SELL
    return True


def _total_value(cards) -> Decimal:
    return sum((c.asking_price or Decimal("0") for c in cards), Decimal("0"))


# ── Pair evaluation ─────────────────────────────────────────────────────


@dataclass
class OrientedPair:
    """A pair evaluation expressed relative to user_a (the lower id)."""

    user_a_id: uuid.UUID
    user_b_id: uuid.UUID
    match_type: MatchType
    a_wants: list[CardMatch]
    b_wants: list[CardMatch]
    value_a_wants: Decimal
    value_b_wants: Decimal
    distance_km: float | None
    has_price_warnings: bool
    score: float

    def direction_of(self, card: CardMatch) -> CardDirection:
        return CardDirection.A_WANTS if card.wishlist.user_id == self.user_a_id else CardDirection.B_WANTS


@dataclass
class PairEvaluation:
    """Result of matching one user against one counterpart, from the user's side."""

    user_id: uuid.UUID
    other_user_id: uuid.UUID
    match_type: MatchType
    cards_i_want: list[CardMatch] = field(default_factory=list)
    cards_they_want: list[CardMatch] = field(default_factory=list)
    value_i_want: Decimal = Decimal("0")
    value_they_want: Decimal = Decimal("0")
    distance_km: float | None = None
    has_price_warnings: bool = False
    price_efficiency: float = 0.5
    score: float = 0.0

    def orient(self) -> OrientedPair:
        """Normalise to (user_a, user_b) with the lower id as user_a."""
        if str(self.user_id) < str(self.other_user_id):
            return OrientedPair(
                user_a_id=self.user_id,
                user_b_id=self.other_user_id,
                match_type=self.match_type,
                a_wants=self.cards_i_want,
                b_wants=self.cards_they_want,
                value_a_wants=self.value_i_want,
                value_b_wants=self.value_they_want,
                distance_km=self.distance_km,
                has_price_warnings=self.has_price_warnings,
                score=self.score,
            )
        return OrientedPair(
            user_a_id=self.other_user_id,
            user_b_id=self.user_id,
            match_type=self.match_type.flipped(),
            a_wants=self.cards_they_want,
            b_wants=self.cards_i_want,
            value_a_wants=self.value_they_want,
            value_b_wants=self.value_i_want,
            distance_km=self.distance_km,
            has_price_warnings=self.has_price_warnings,
            score=self.score,
        )


def evaluate_pair(
    *,
    user_id: uuid.UUID,
    other_user_id: uuid.UUID,
    my_wishlist: list[WishlistEntry],
    my_collection: list[CollectionEntry],
    their_wishlist: list[WishlistEntry],
    their_collection: list[CollectionEntry],
    distance_km: float | None,
    trade_mode: TradeMode | str | None = TradeMode.BOTH,
) -> PairEvaluation | None:
    """
    Match one user against one counterpart.

    Returns ``None`` when no card overlaps in either direction, or when
    the user's trade mode rules out the resulting match type.
    """
    cards_i_want = find_card_matches(my_wishlist, their_collection)
    cards_they_want = find_card_matches(their_wishlist, my_collection)

    match_type = classify_match_type(len(cards_i_want), len(cards_they_want))
    if match_type is None:
        return None
    if not trade_mode_allows(trade_mode, match_type):
        return None

    value_i_want = _total_value(cards_i_want)
    value_they_want = _total_value(cards_they_want)
    has_warnings = any(c.price_exceeds_max for c in cards_i_want + cards_they_want)
    efficiency = calculate_price_efficiency(cards_i_want)

    score = calculate_match_score(
        match_type=match_type,
        cards_a_wants=len(cards_i_want),
        cards_b_wants=len(cards_they_want),
        value_a_wants=value_i_want,
        value_b_wants=value_they_want,
        distance_km=distance_km,
        has_price_warnings=has_warnings,
        price_efficiency=efficiency,
    )

    return PairEvaluation(
        user_id=user_id,
        other_user_id=other_user_id,
        match_type=match_type,
        cards_i_want=cards_i_want,
        cards_they_want=cards_they_want,
        value_i_want=value_i_want,
        value_they_want=value_they_want,
        distance_km=distance_km,
        has_price_warnings=has_warnings,
        price_efficiency=efficiency,
        score=score,
    )


# ── Persisted-match summaries ───────────────────────────────────────────


@dataclass
class CardSummary:
    """Statistics derived from the active (non-excluded) cards of a match."""

    match_type: MatchType
    cards_a_wants_count: int
    cards_b_wants_count: int
    value_a_wants: Decimal
    value_b_wants: Decimal
    has_price_warnings: bool
    price_efficiency: float
    score: float

    def apply_to(self, match) -> None:
        match.match_type = self.match_type
        match.cards_a_wants_count = self.cards_a_wants_count
        match.cards_b_wants_count = self.cards_b_wants_count
        match.value_a_wants = self.value_a_wants
        match.value_b_wants = self.value_b_wants
        match.has_price_warnings = self.has_price_warnings
        match.match_score = self.score


def summarize_cards(
    cards,
    distance_km: float | None,
    current_type: MatchType,
    scoring_side: CardDirection = CardDirection.A_WANTS,
) -> CardSummary:
    """
    Recompute a persisted match's statistics and score from its MatchCards.

    Excluded cards are ignored. When no active card remains the match
    keeps *current_type* and scores on its other signals alone.

    The score is taken from the side of the user whose wanted cards are
    *scoring_side*: price efficiency covers only those cards and the
    match type is read from that user's point of view. The stored
    ``match_type`` stays relative to user_a.
    """
    active = [c for c in cards if not c.is_excluded]
    a_wants = [c for c in active if c.direction == CardDirection.A_WANTS]
    b_wants = [c for c in active if c.direction == CardDirection.B_WANTS]

    match_type = classify_match_type(len(a_wants), len(b_wants)) or current_type
    value_a = _total_value(a_wants)
    value_b = _total_value(b_wants)
    has_warnings = any(c.price_exceeds_max for c in active)

    if scoring_side == CardDirection.A_WANTS:
        scorer_type, scorer_wants = match_type, a_wants
    else:
        scorer_type, scorer_wants = match_type.flipped(), b_wants
    efficiency = calculate_price_efficiency(scorer_wants)

    score = calculate_match_score(
        match_type=scorer_type,
        cards_a_wants=len(a_wants),
        cards_b_wants=len(b_wants),
        value_a_wants=value_a,
        value_b_wants=value_b,
        distance_km=distance_km,
        has_price_warnings=has_warnings,
        price_efficiency=efficiency,
    )
    return CardSummary(
        match_type=match_type,
        cards_a_wants_count=len(a_wants),
        cards_b_wants_count=len(b_wants),
        value_a_wants=value_a,
        value_b_wants=value_b,
        has_price_warnings=has_warnings,
        price_efficiency=efficiency,
        score=score,
    )
