"""Tests for the matching engine orchestrator (engine.py).

Covers the matching job (location check, upserts, protected and stale
matches, new-match notifications), single-match recalculation, nearby
user filtering, and inventory updates after a completed trade.
"""

import uuid
from collections import defaultdict
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.matching_engine.engine import MatchingEngine, MatchingError, build_match_cards
from app.matching_engine.lifecycle import MatchPermissionError, MatchTransitionError
from app.matching_engine.matcher import CollectionEntry, WishlistEntry
from app.models.collection import CollectionItem
from app.models.match import CardDirection, Match, MatchCard, MatchStatus, MatchType
from app.models.notification import NotificationType
from app.models.user import Location, Preferences, TradeMode
from app.models.wishlist import WishlistItem


# ── Helpers ──────────────────────────────────────────────────────────────


def _item(user_id, oracle_id, **overrides) -> CollectionEntry:
    values = {
        "id": uuid.uuid4(),
        "user_id": user_id,
        "card_id": uuid.uuid4(),
        "oracle_id": oracle_id,
        "scryfall_id": f"sf-{oracle_id}",
        "name": oracle_id.title(),
        "set_code": "M11",
        "image_uri": None,
        "quantity": 1,
        "condition": "NM",
        "foil": False,
        "price_mode": "percentage",
        "price_percentage": Decimal("100"),
        "price_fixed": None,
        "prices_usd": Decimal("4.00"),
        "prices_usd_foil": None,
    }
    values.update(overrides)
    return CollectionEntry(**values)


def _wish(user_id, oracle_id, **overrides) -> WishlistEntry:
    values = {
        "id": uuid.uuid4(),
        "user_id": user_id,
        "card_id": uuid.uuid4(),
        "oracle_id": oracle_id,
        "quantity": 1,
        "max_price": Decimal("5.00"),
        "min_condition": "LP",
        "foil_preference": "any",
        "edition_preference": "any",
    }
    values.update(overrides)
    return WishlistEntry(**values)


def _grouped(*entries) -> defaultdict:
    grouped = defaultdict(list)
    for entry in entries:
        grouped[entry.user_id].append(entry)
    return grouped


def _location(user_id, lat=-34.6037, lon=-58.3816, radius=25.0) -> Location:
    return Location(user_id=user_id, name="Home", latitude=lat, longitude=lon, radius_km=radius)


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def mock_session():
    """Mock async DB session supporting session.begin() and begin_nested()."""
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.delete = AsyncMock()
    session.get = AsyncMock(return_value=None)

    begin_cm = AsyncMock()
    begin_cm.__aenter__ = AsyncMock(return_value=None)
    begin_cm.__aexit__ = AsyncMock(return_value=False)
    session.begin = MagicMock(return_value=begin_cm)
    session.begin_nested = MagicMock(return_value=begin_cm)

    return session


@pytest.fixture
def mock_session_factory(mock_session):
    """Session factory that returns a context manager yielding mock_session."""

    class _SessionCM:
        async def __aenter__(self):
            return mock_session

        async def __aexit__(self, *args):
            pass

    def factory():
        return _SessionCM()

    return factory


@pytest.fixture
def engine(mock_session_factory):
    return MatchingEngine(session_factory=mock_session_factory)


@pytest.fixture
def loaders(user_a_id, user_b_id):
    """Patch every loader with a two-way overlap between USER_A and USER_B."""
    wishlists = _grouped(_wish(user_a_id, "bolt"), _wish(user_b_id, "thoughtseize"))
    collections = _grouped(_item(user_a_id, "thoughtseize"), _item(user_b_id, "bolt"))

    mocks = {
        "_load_active_location": AsyncMock(return_value=_location(user_a_id)),
        "_load_preferences": AsyncMock(return_value=None),
        "_load_escrowed_collection_ids": AsyncMock(return_value=set()),
        "_load_nearby_users": AsyncMock(return_value={user_b_id: (5.0, None)}),
        "_load_wishlists": AsyncMock(return_value=wishlists),
        "_load_collections": AsyncMock(return_value=collections),
        "_load_existing_matches": AsyncMock(return_value={}),
    }
    patches = [patch.object(MatchingEngine, name, new=mock) for name, mock in mocks.items()]
    for p in patches:
        p.start()
    yield mocks
    for p in patches:
        p.stop()


@pytest.fixture
def recorder():
    with patch("app.matching_engine.engine.notification_service") as service:
        yield service.record


def _added(session, model):
    return [c.args[0] for c in session.add.call_args_list if isinstance(c.args[0], model)]


# ===========================================================================
# MATCHING JOB
# ===========================================================================


class TestComputeForUser:

    @pytest.mark.asyncio
    async def test_requires_active_location(self, engine, loaders, user_a_id):
        loaders["_load_active_location"].return_value = None
        with pytest.raises(MatchingError, match="active location"):
            await engine.compute_for_user(user_a_id)

    @pytest.mark.asyncio
    async def test_runs_in_its_own_transaction(self, engine, loaders, recorder, mock_session, user_a_id):
        await engine.compute_for_user(user_a_id)
        mock_session.begin.assert_called_once()

    @pytest.mark.asyncio
    async def test_creates_two_way_match(
        self, engine, loaders, recorder, mock_session, user_a_id, user_b_id,
    ):
        summaries = await engine.compute_in_session(mock_session, user_a_id)

        assert len(summaries) == 1
        summary = summaries[0]
        assert summary["other_user_id"] == str(user_b_id)
        assert summary["match_type"] == "two_way"
        assert summary["cards_i_want"] == 1
        assert summary["cards_they_want"] == 1

        [match] = _added(mock_session, Match)
        assert match.user_a_id == user_a_id
        assert match.user_b_id == user_b_id
        assert match.status == MatchStatus.ACTIVE
        assert match.match_score == summary["score"]

        cards = _added(mock_session, MatchCard)
        assert {c.direction for c in cards} == {CardDirection.A_WANTS, CardDirection.B_WANTS}
        assert all(c.match_id == match.id for c in cards)

    @pytest.mark.asyncio
    async def test_new_match_notifies_counterpart(
        self, engine, loaders, recorder, mock_session, user_a_id, user_b_id,
    ):
        await engine.compute_in_session(mock_session, user_a_id)

        [intent] = recorder.call_args.args[1]
        assert intent.recipient_id == user_b_id
        assert intent.type == NotificationType.NEW_MATCH
        assert intent.wants_push is False

    @pytest.mark.asyncio
    async def test_counterpart_opted_out_of_new_match_notifications(
        self, engine, loaders, recorder, mock_session, user_a_id, user_b_id,
    ):
        prefs = Preferences(user_id=user_b_id, notify_new_matches=False)
        loaders["_load_nearby_users"].return_value = {user_b_id: (5.0, prefs)}

        await engine.compute_in_session(mock_session, user_a_id)

        assert recorder.call_args.args[1] == []

    @pytest.mark.asyncio
    async def test_refreshes_existing_unprotected_match(
        self, engine, loaders, recorder, mock_session, make_match, user_a_id, user_b_id,
    ):
        existing = make_match(match_type=MatchType.ONE_WAY_BUY, status=MatchStatus.CONTACTED)
        loaders["_load_existing_matches"].return_value = {(user_a_id, user_b_id): existing}

        summaries = await engine.compute_in_session(mock_session, user_a_id)

        assert summaries[0]["id"] == str(existing.id)
        assert existing.match_type == MatchType.TWO_WAY
        assert existing.status == MatchStatus.CONTACTED
        assert _added(mock_session, Match) == []
        # the old computed cards are deleted in bulk
        mock_session.execute.assert_awaited_once()
        assert recorder.call_args.args[1] == []

    @pytest.mark.asyncio
    async def test_protected_match_left_alone(
        self, engine, loaders, recorder, mock_session, make_match, user_a_id, user_b_id,
    ):
        existing = make_match(status=MatchStatus.REQUESTED, match_score=12.0)
        loaders["_load_existing_matches"].return_value = {(user_a_id, user_b_id): existing}

        summaries = await engine.compute_in_session(mock_session, user_a_id)

        assert summaries == []
        assert existing.match_score == 12.0
        mock_session.delete.assert_not_awaited()
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_match_deleted(
        self, engine, loaders, recorder, mock_session, make_match, user_a_id, user_b_id, outsider_id,
    ):
        stale = make_match(user_a_id=user_a_id, user_b_id=outsider_id)
        protected = make_match(user_a_id=user_a_id, user_b_id=outsider_id, is_user_modified=True)
        loaders["_load_existing_matches"].return_value = {
            (user_a_id, outsider_id): stale,
            (outsider_id, user_a_id): protected,
        }

        await engine.compute_in_session(mock_session, user_a_id)

        mock_session.delete.assert_awaited_once_with(stale)

    @pytest.mark.asyncio
    async def test_paused_collection_offers_nothing(
        self, engine, loaders, recorder, mock_session, user_a_id,
    ):
        loaders["_load_preferences"].return_value = Preferences(
            user_id=user_a_id, collection_paused=True,
        )

        summaries = await engine.compute_in_session(mock_session, user_a_id)

        assert summaries[0]["match_type"] == "one_way_buy"
        assert summaries[0]["cards_they_want"] == 0

    @pytest.mark.asyncio
    async def test_trade_mode_filters_one_way(
        self, engine, loaders, recorder, mock_session, user_a_id, user_b_id,
    ):
        loaders["_load_preferences"].return_value = Preferences(
            user_id=user_a_id, trade_mode=TradeMode.TRADE,
        )
        loaders["_load_wishlists"].return_value = _grouped(_wish(user_a_id, "bolt"))

        summaries = await engine.compute_in_session(mock_session, user_a_id)

        assert summaries == []

    @pytest.mark.asyncio
    async def test_sorted_by_score(
        self, engine, loaders, recorder, mock_session, user_a_id, user_b_id, outsider_id,
    ):
        loaders["_load_nearby_users"].return_value = {
            user_b_id: (40.0, None),
            outsider_id: (1.0, None),
        }
        loaders["_load_wishlists"].return_value = _grouped(_wish(user_a_id, "bolt"))
        loaders["_load_collections"].return_value = _grouped(
            _item(user_b_id, "bolt"), _item(outsider_id, "bolt"),
        )

        summaries = await engine.compute_in_session(mock_session, user_a_id)

        assert [s["other_user_id"] for s in summaries] == [str(outsider_id), str(user_b_id)]


# ===========================================================================
# NEARBY USERS
# ===========================================================================


class TestLoadNearbyUsers:

    @pytest.mark.asyncio
    async def test_filters_by_radius_and_pause(self, mock_session, user_a_id, user_b_id, outsider_id):
        me = _location(user_a_id, radius=10.0)
        near = _location(user_b_id, lat=-34.5875, lon=-58.4200, radius=10.0)
        paused_user = uuid.uuid4()
        paused = _location(paused_user, lat=-34.60, lon=-58.38)
        far = _location(outsider_id, lat=-31.4201, lon=-64.1888, radius=50.0)

        result = MagicMock()
        result.all.return_value = [
            (near, None),
            (near, None),
            (paused, Preferences(user_id=paused_user, collection_paused=True)),
            (far, None),
        ]
        mock_session.execute.return_value = result

        nearby = await MatchingEngine._load_nearby_users(mock_session, user_a_id, me)

        assert list(nearby) == [user_b_id]
        distance, prefs = nearby[user_b_id]
        assert 0 < distance < 10
        assert prefs is None


# ===========================================================================
# RECALCULATE
# ===========================================================================


class TestRecalculate:

    @pytest.mark.asyncio
    async def test_replaces_computed_cards_and_keeps_custom(
        self, engine, loaders, mock_session, make_match, make_card, user_a_id, user_b_id,
    ):
        loaders["_load_active_location"].side_effect = [
            _location(user_a_id), _location(user_b_id, lat=-34.5875, lon=-58.4200),
        ]
        match = make_match(match_type=MatchType.ONE_WAY_BUY)
        stale = make_card(match)
        custom = make_card(match, direction=CardDirection.B_WANTS, is_custom=True, added_by_user_id=user_b_id)
        cards = [stale, custom]

        result = await engine.recalculate(mock_session, match, cards, user_b_id)

        assert result.action == "recalculated"
        assert result.removed == [stale]
        mock_session.delete.assert_awaited_once_with(stale)
        fresh = _added(mock_session, MatchCard)
        assert len(fresh) == 2
        assert custom in cards
        assert match.match_type == MatchType.TWO_WAY
        assert match.cards_b_wants_count == 2
        assert match.is_user_modified is True
        assert match.distance_km > 0

    @pytest.mark.asyncio
    async def test_scored_from_acting_user_side(
        self, engine, loaders, mock_session, make_match, user_a_id, user_b_id,
    ):
        # Only user_b wants something: user_a's Thoughtseize at 4.00 against a 5.00 max
        loaders["_load_wishlists"].return_value = _grouped(_wish(user_b_id, "thoughtseize"))
        loaders["_load_collections"].return_value = _grouped(_item(user_a_id, "thoughtseize"))

        by_b = make_match(match_type=MatchType.ONE_WAY_SELL)
        await engine.recalculate(mock_session, by_b, [], user_b_id)
        by_a = make_match(match_type=MatchType.ONE_WAY_SELL)
        await engine.recalculate(mock_session, by_a, [], user_a_id)

        assert by_b.match_type == by_a.match_type == MatchType.ONE_WAY_SELL
        # 15 buy + 2.5 card + 0.4 value + 15 distance + 2 efficiency
        assert by_b.match_score == 34.9
        # 10 sell + 2.5 card + 0.4 value + 15 distance + 5 neutral efficiency
        assert by_a.match_score == 32.9

    @pytest.mark.asyncio
    async def test_requires_both_locations(self, engine, loaders, mock_session, make_match, user_a_id):
        loaders["_load_active_location"].side_effect = [_location(user_a_id), None]
        with pytest.raises(MatchingError, match="no active location"):
            await engine.recalculate(mock_session, make_match(), [], user_a_id)

    @pytest.mark.asyncio
    async def test_outsider_rejected(self, engine, loaders, mock_session, make_match, outsider_id):
        with pytest.raises(MatchPermissionError):
            await engine.recalculate(mock_session, make_match(), [], outsider_id)
        loaders["_load_active_location"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confirmed_trade_rejected(self, engine, loaders, mock_session, make_match, user_a_id):
        with pytest.raises(MatchTransitionError):
            await engine.recalculate(mock_session, make_match(status=MatchStatus.CONFIRMED), [], user_a_id)


# ===========================================================================
# TRADE COMPLETION
# ===========================================================================


class TestApplyTradeCompletion:

    @pytest.mark.asyncio
    async def test_decrements_inventories(self, engine, mock_session, make_match, make_card, user_a_id):
        match = make_match()
        card = make_card(match, quantity_available=3, quantity_wanted=2)
        excluded = make_card(match, is_excluded=True)
        collection_row = CollectionItem(user_id=user_a_id, card_id=card.card_id, condition="NM", quantity=3)
        wishlist_row = WishlistItem(user_id=user_a_id, card_id=card.card_id, quantity=2)
        rows = {card.collection_id: collection_row, card.wishlist_id: wishlist_row}
        mock_session.get.side_effect = lambda model, row_id: rows.get(row_id)

        await engine.apply_trade_completion(mock_session, match, [card, excluded])

        assert collection_row.quantity == 1
        mock_session.delete.assert_awaited_once_with(wishlist_row)
        assert mock_session.get.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_rows_are_skipped(self, engine, mock_session, make_match, make_card):
        match = make_match()
        card = make_card(match, collection_id=None)

        await engine.apply_trade_completion(mock_session, match, [card])

        mock_session.get.assert_awaited_once_with(WishlistItem, card.wishlist_id)
        mock_session.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_error_is_logged_not_raised(self, engine, mock_session, make_match, make_card):
        match = make_match()
        mock_session.get.side_effect = SQLAlchemyError("connection lost")

        await engine.apply_trade_completion(mock_session, match, [make_card(match)])


class TestBuildMatchCards:

    def test_directions_follow_oriented_pair(self, user_a_id, user_b_id):
        from app.matching_engine.matcher import evaluate_pair

        evaluation = evaluate_pair(
            user_id=user_b_id,
            other_user_id=user_a_id,
            my_wishlist=[_wish(user_b_id, "bolt")],
            my_collection=[],
            their_wishlist=[],
            their_collection=[_item(user_a_id, "bolt", quantity=4)],
            distance_km=3.0,
        )
        match_id = uuid.uuid4()
        [card] = build_match_cards(match_id, evaluation.orient())

        assert card.direction == CardDirection.B_WANTS
        assert card.match_id == match_id
        assert card.quantity_available == 4
        assert card.asking_price == Decimal("4.00")
        assert card.is_custom is False
