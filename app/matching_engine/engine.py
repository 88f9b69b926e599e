"""
Main matching engine orchestrator.

Coordinates a matching run for one user: loads the user's location,
preferences, wishlist and collection; finds every other user within
trade radius; evaluates each pair with the pure matcher; upserts the
resulting matches and their cards; and deletes stale matches that are
no longer backed by any overlap. Matches that users are already working
on (user-modified, requested, confirmed or finished) are never touched.

Also owns the single-match recalculation and the inventory updates that
follow a completed trade.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError

from app.matching_engine import lifecycle
from app.matching_engine.geo import distance_between, within_trade_radius
from app.matching_engine.lifecycle import NotificationIntent
from app.matching_engine.matcher import (
    CardMatch,
    CollectionEntry,
    OrientedPair,
    WishlistEntry,
    evaluate_pair,
)
from app.models.collection import CollectionItem
from app.models.match import CardDirection, Match, MatchCard, MatchStatus
from app.models.notification import NotificationType
from app.models.user import Location, Preferences, TradeMode
from app.models.wishlist import WishlistItem
from app.services.notification_service import notification_service

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class MatchingError(Exception):
    """The matching job cannot run for this user or match."""


def build_match_card(match_id: uuid.UUID, direction: CardDirection, card: CardMatch) -> MatchCard:
    """Snapshot one wishlist/collection pairing as a MatchCard row."""
    item = card.collection
    wish = card.wishlist
    return MatchCard(
        match_id=match_id,
        direction=direction,
        wishlist_id=wish.id,
        collection_id=item.id,
        card_id=item.card_id,
        card_name=item.name,
        card_set_code=item.set_code,
        card_image_uri=item.image_uri,
        asking_price=card.asking_price,
        max_price=wish.max_price,
        price_exceeds_max=card.price_exceeds_max,
        collection_condition=item.condition,
        wishlist_min_condition=wish.min_condition,
        is_foil=item.foil,
        quantity_available=item.quantity,
        quantity_wanted=wish.quantity,
        is_excluded=False,
        is_custom=False,
    )


def build_match_cards(match_id: uuid.UUID, pair: OrientedPair) -> list[MatchCard]:
    return (
        [build_match_card(match_id, CardDirection.A_WANTS, c) for c in pair.a_wants]
        + [build_match_card(match_id, CardDirection.B_WANTS, c) for c in pair.b_wants]
    )


class MatchingEngine:
    """Runs matching jobs and match recalculations against the database."""

    def __init__(self, session_factory=None):
        """
        Args:
            session_factory: Async session factory for DB access
                             (defaults to ``app.database.async_session``).
        """
        self._session_factory = session_factory

    @property
    def session_factory(self):
        if self._session_factory is not None:
            return self._session_factory
        from app.database import async_session
        return async_session

    # ── Public entry points ──────────────────────────────────────────────

    async def compute_for_user(self, user_id: uuid.UUID) -> list[dict]:
        """
        Run a full matching job for *user_id* in its own transaction.

        Returns one summary per match produced, best score first.
        Raises MatchingError when the user has no active location.
        """
        async with self.session_factory() as session:
            async with session.begin():
                return await self.compute_in_session(session, user_id)

    async def compute_in_session(self, session: "AsyncSession", user_id: uuid.UUID) -> list[dict]:
        """Matching job body; the caller owns the transaction."""
        started_at = datetime.now(timezone.utc)

        my_location = await self._load_active_location(session, user_id)
        if my_location is None:
            raise MatchingError("Set an active location before computing matches")

        my_prefs = await self._load_preferences(session, user_id)
        trade_mode = my_prefs.trade_mode if my_prefs else TradeMode.BOTH
        escrowed = await self._load_escrowed_collection_ids(session)

        nearby = await self._load_nearby_users(session, user_id, my_location)
        other_ids = list(nearby)

        wishlists = await self._load_wishlists(session, [user_id, *other_ids])
        collections = await self._load_collections(session, [user_id, *other_ids], escrowed)
        my_collection = [] if (my_prefs and my_prefs.collection_paused) else collections[user_id]

        existing = await self._load_existing_matches(session, user_id)
        processed: set[tuple[uuid.UUID, uuid.UUID]] = set()
        summaries: list[dict] = []
        intents: list[NotificationIntent] = []

        for other_id, (distance, other_prefs) in nearby.items():
            pair_key = Match.ordered_pair(user_id, other_id)
            match = existing.get(pair_key)
            if match is not None and match.is_protected:
                processed.add(pair_key)
                continue

            evaluation = evaluate_pair(
                user_id=user_id,
                other_user_id=other_id,
                my_wishlist=wishlists[user_id],
                my_collection=my_collection,
                their_wishlist=wishlists[other_id],
                their_collection=collections[other_id],
                distance_km=distance,
                trade_mode=trade_mode,
            )
            if evaluation is None:
                continue
            processed.add(pair_key)

            oriented = evaluation.orient()
            match, created = await self._upsert_match(session, match, oriented)

            if created and (other_prefs is None or other_prefs.notify_new_matches):
                intents.append(NotificationIntent(
                    recipient_id=other_id,
                    type=NotificationType.NEW_MATCH,
                    match_id=match.id,
                    from_user_id=user_id,
                    content="You have a new trade match nearby",
                ))

            summaries.append({
                "id": str(match.id),
                "other_user_id": str(other_id),
                "match_type": evaluation.match_type.value,
                "cards_i_want": len(evaluation.cards_i_want),
                "cards_they_want": len(evaluation.cards_they_want),
                "distance_km": distance,
                "score": evaluation.score,
            })

        stale = [m for key, m in existing.items() if key not in processed and not m.is_protected]
        for match in stale:
            await session.delete(match)

        notification_service.record(session, intents)

        summaries.sort(key=lambda s: s["score"], reverse=True)
        logger.info(
            "Matching job for %s: %d nearby users, %d matches, %d stale removed in %.2fs",
            user_id, len(nearby), len(summaries), len(stale),
            (datetime.now(timezone.utc) - started_at).total_seconds(),
        )
        return summaries

    async def recalculate(
        self,
        session: "AsyncSession",
        match: Match,
        cards: list[MatchCard],
        actor_id: uuid.UUID,
    ) -> lifecycle.TransitionResult:
        """
        Recompute one match from both users' current wishlists and collections.

        Custom cards are preserved; every other card is replaced. Runs as a
        card edit, so a pending request is invalidated.
        """
        if not match.is_participant(actor_id):
            raise lifecycle.MatchPermissionError("Only participants of this trade can act on it")
        lifecycle.next_status(match.status, lifecycle.MatchEvent.EDIT_CARDS)

        loc_a = await self._load_active_location(session, match.user_a_id)
        loc_b = await self._load_active_location(session, match.user_b_id)
        if loc_a is None or loc_b is None:
            raise MatchingError("One of the users has no active location")

        user_ids = [match.user_a_id, match.user_b_id]
        wishlists = await self._load_wishlists(session, user_ids)
        collections = await self._load_collections(session, user_ids, escrowed=set())

        # Scored from the acting user's side, like the matching job
        other_id = match.other_user_id(actor_id)
        match.distance_km = distance_between(loc_a, loc_b)
        evaluation = evaluate_pair(
            user_id=actor_id,
            other_user_id=other_id,
            my_wishlist=wishlists[actor_id],
            my_collection=collections[actor_id],
            their_wishlist=wishlists[other_id],
            their_collection=collections[other_id],
            distance_km=match.distance_km,
        )
        fresh = build_match_cards(match.id, evaluation.orient()) if evaluation else []

        result = lifecycle.replace_computed_cards(match, cards, fresh, actor_id)
        for card in result.removed:
            await session.delete(card)
        for card in fresh:
            session.add(card)
        return result

    async def apply_trade_completion(
        self,
        session: "AsyncSession",
        match: Match,
        cards: list[MatchCard],
    ) -> None:
        """
        Move traded quantities out of both users' inventories.

        For every active card, the seller's collection row and the buyer's
        wishlist row each lose ``min(available, wanted)``; rows that reach
        zero are deleted. Runs in a savepoint: a failure is logged and
        leaves the completed status in place.
        """
        try:
            async with session.begin_nested():
                for card in cards:
                    if card.is_excluded:
                        continue
                    traded = min(card.quantity_available, card.quantity_wanted)
                    if card.collection_id is not None:
                        await self._decrement(session, CollectionItem, card.collection_id, traded)
                    if card.wishlist_id is not None:
                        await self._decrement(session, WishlistItem, card.wishlist_id, traded)
        except SQLAlchemyError:
            logger.exception("Failed to update inventories after completing match %s", match.id)

    # ── Loaders ──────────────────────────────────────────────────────────

    @staticmethod
    async def _load_active_location(session: "AsyncSession", user_id: uuid.UUID) -> Location | None:
        result = await session.execute(
            select(Location)
            .where(Location.user_id == user_id, Location.is_active.is_(True))
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def _load_preferences(session: "AsyncSession", user_id: uuid.UUID) -> Preferences | None:
        result = await session.execute(
            select(Preferences).where(Preferences.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _load_nearby_users(
        session: "AsyncSession",
        user_id: uuid.UUID,
        my_location: Location,
    ) -> dict[uuid.UUID, tuple[float, Preferences | None]]:
        """
        Other users with an active location inside either user's radius.

        Users who paused their whole collection are left out.
        Returns ``{user_id: (distance_km, preferences)}``.
        """
        result = await session.execute(
            select(Location, Preferences)
            .outerjoin(Preferences, Preferences.user_id == Location.user_id)
            .where(Location.is_active.is_(True), Location.user_id != user_id)
        )
        nearby: dict[uuid.UUID, tuple[float, Preferences | None]] = {}
        for location, prefs in result.all():
            if location.user_id in nearby:
                continue
            if prefs is not None and prefs.collection_paused:
                continue
            distance = distance_between(my_location, location)
            if distance is None:
                continue
            if within_trade_radius(distance, my_location.radius_km, location.radius_km):
                nearby[location.user_id] = (distance, prefs)
        return nearby

    @staticmethod
    async def _load_escrowed_collection_ids(session: "AsyncSession") -> set[uuid.UUID]:
        """Collection items promised in a confirmed trade."""
        result = await session.execute(
            select(MatchCard.collection_id)
            .join(Match, Match.id == MatchCard.match_id)
            .where(
                Match.status == MatchStatus.CONFIRMED,
                MatchCard.is_excluded.is_(False),
                MatchCard.collection_id.is_not(None),
            )
        )
        return set(result.scalars().all())

    @staticmethod
    async def _load_wishlists(
        session: "AsyncSession",
        user_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, list[WishlistEntry]]:
        result = await session.execute(
            select(WishlistItem).where(WishlistItem.user_id.in_(user_ids))
        )
        grouped: dict[uuid.UUID, list[WishlistEntry]] = defaultdict(list)
        for item in result.scalars().all():
            grouped[item.user_id].append(WishlistEntry.from_orm(item))
        return grouped

    @staticmethod
    async def _load_collections(
        session: "AsyncSession",
        user_ids: list[uuid.UUID],
        escrowed: set[uuid.UUID],
    ) -> dict[uuid.UUID, list[CollectionEntry]]:
        result = await session.execute(
            select(CollectionItem).where(
                CollectionItem.user_id.in_(user_ids),
                CollectionItem.is_paused.is_(False),
            )
        )
        grouped: dict[uuid.UUID, list[CollectionEntry]] = defaultdict(list)
        for item in result.scalars().all():
            if item.id in escrowed:
                continue
            grouped[item.user_id].append(CollectionEntry.from_orm(item))
        return grouped

    @staticmethod
    async def _load_existing_matches(
        session: "AsyncSession",
        user_id: uuid.UUID,
    ) -> dict[tuple[uuid.UUID, uuid.UUID], Match]:
        result = await session.execute(
            select(Match).where(or_(Match.user_a_id == user_id, Match.user_b_id == user_id))
        )
        return {(m.user_a_id, m.user_b_id): m for m in result.scalars().all()}

    # ── Persistence ──────────────────────────────────────────────────────

    async def _upsert_match(
        self,
        session: "AsyncSession",
        match: Match | None,
        pair: OrientedPair,
    ) -> tuple[Match, bool]:
        """
        Insert a new active match or refresh an existing unprotected one.

        Existing matches keep their id, status, excluded and custom cards;
        all other cards are replaced by the fresh computation.
        """
        created = match is None
        if created:
            match = Match(
                user_a_id=pair.user_a_id,
                user_b_id=pair.user_b_id,
                match_type=pair.match_type,
                status=MatchStatus.ACTIVE,
            )
            session.add(match)
        else:
            await session.execute(
                delete(MatchCard).where(
                    MatchCard.match_id == match.id,
                    MatchCard.is_excluded.is_(False),
                    MatchCard.is_custom.is_(False),
                )
            )
            match.updated_at = datetime.now(timezone.utc)

        match.match_type = pair.match_type
        match.distance_km = pair.distance_km
        match.cards_a_wants_count = len(pair.a_wants)
        match.cards_b_wants_count = len(pair.b_wants)
        match.value_a_wants = pair.value_a_wants
        match.value_b_wants = pair.value_b_wants
        match.match_score = pair.score
        match.has_price_warnings = pair.has_price_warnings

        for card in build_match_cards(match.id, pair):
            session.add(card)
        return match, created

    @staticmethod
    async def _decrement(session: "AsyncSession", model, row_id: uuid.UUID, amount: int) -> None:
        row = await session.get(model, row_id)
        if row is None:
            return
        remaining = row.quantity - amount
        if remaining <= 0:
            await session.delete(row)
        else:
            row.quantity = remaining


# Module-level singleton (uses the default session factory)
matching_engine = MatchingEngine()
