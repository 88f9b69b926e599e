"""Tests for the match lifecycle state machine and card-level edits."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from app.matching_engine import lifecycle
from app.matching_engine.lifecycle import (
    EDITABLE_STATUSES,
    TRANSITIONS,
    MatchCardNotFound,
    MatchEvent,
    MatchPermissionError,
    MatchTransitionError,
    can_apply,
    next_status,
)
from app.matching_engine.matcher import CollectionEntry
from app.models.collection import Condition
from app.models.match import CardDirection, MatchStatus, MatchType
from app.models.notification import NotificationType


def _snapshot(match):
    """Everything a rejected operation must leave untouched."""
    return (
        match.status,
        match.requested_by,
        match.requested_at,
        match.confirmed_at,
        match.escrow_expires_at,
        match.user_a_completed,
        match.user_b_completed,
        match.is_user_modified,
        match.match_score,
    )


def _collection_entry(owner_id, **overrides) -> CollectionEntry:
    values = {
        "id": uuid.uuid4(),
        "user_id": owner_id,
        "card_id": uuid.uuid4(),
        "oracle_id": "or-ragavan",
        "scryfall_id": "sf-ragavan",
        "name": "Ragavan, Nimble Pilferer",
        "set_code": "MH2",
        "image_uri": None,
        "quantity": 2,
        "condition": "LP",
        "foil": False,
        "price_mode": "percentage",
        "price_percentage": Decimal("100"),
        "price_fixed": None,
        "prices_usd": Decimal("55.00"),
        "prices_usd_foil": None,
    }
    values.update(overrides)
    return CollectionEntry(**values)


@pytest.fixture
def requested_match(make_match, user_a_id, now):
    """A match user A has requested."""
    return make_match(
        status=MatchStatus.REQUESTED,
        requested_by=user_a_id,
        requested_at=now - timedelta(hours=1),
        is_user_modified=True,
    )


@pytest.fixture
def confirmed_match(make_match, user_a_id, now):
    return make_match(
        status=MatchStatus.CONFIRMED,
        requested_by=user_a_id,
        requested_at=now - timedelta(days=1),
        confirmed_at=now - timedelta(hours=2),
        escrow_expires_at=now + timedelta(days=14),
    )


# ===========================================================================
# TRANSITION TABLE
# ===========================================================================


class TestTransitionTable:

    @pytest.mark.parametrize("status", list(MatchStatus))
    @pytest.mark.parametrize("event", list(MatchEvent))
    def test_next_status_agrees_with_table(self, status, event):
        if status in (MatchStatus.COMPLETED, MatchStatus.CANCELLED):
            with pytest.raises(MatchTransitionError, match="already"):
                next_status(status, event)
        elif can_apply(status, event):
            assert next_status(status, event) == TRANSITIONS[(status, event)]
        else:
            with pytest.raises(MatchTransitionError, match="Cannot"):
                next_status(status, event)

    def test_terminal_statuses_have_no_exits(self):
        for status, _event in TRANSITIONS:
            assert status not in (MatchStatus.COMPLETED, MatchStatus.CANCELLED)

    def test_editable_statuses(self):
        assert EDITABLE_STATUSES == {
            MatchStatus.ACTIVE,
            MatchStatus.CONTACTED,
            MatchStatus.DISMISSED,
            MatchStatus.REQUESTED,
        }

    def test_request_only_from_card_editing_states(self):
        sources = {s for (s, e) in TRANSITIONS if e == MatchEvent.REQUEST}
        assert sources == {MatchStatus.ACTIVE, MatchStatus.CONTACTED, MatchStatus.DISMISSED}

    def test_card_edit_regresses_requested_to_contacted(self):
        assert next_status(MatchStatus.REQUESTED, MatchEvent.EDIT_CARDS) == MatchStatus.CONTACTED

    def test_rejection_message_names_event_and_status(self):
        with pytest.raises(MatchTransitionError) as exc_info:
            next_status(MatchStatus.CONFIRMED, MatchEvent.DISMISS)
        assert exc_info.value.reason == "Cannot dismiss a trade in 'confirmed' status"


# ===========================================================================
# STATUS OPERATIONS
# ===========================================================================


class TestDismissAndContact:

    def test_dismiss_active(self, make_match, user_a_id, now):
        match = make_match()
        result = lifecycle.dismiss(match, user_a_id, now=now)

        assert match.status == MatchStatus.DISMISSED
        assert result.previous_status == MatchStatus.ACTIVE
        assert result.changed_status is True
        assert result.notifications == []
        assert match.updated_at == now

    def test_dismiss_contacted_rejected(self, make_match, user_a_id):
        match = make_match(status=MatchStatus.CONTACTED)
        with pytest.raises(MatchTransitionError):
            lifecycle.dismiss(match, user_a_id)
        assert match.status == MatchStatus.CONTACTED

    @pytest.mark.parametrize("status", [MatchStatus.ACTIVE, MatchStatus.DISMISSED])
    def test_mark_contacted(self, make_match, user_b_id, status):
        match = make_match(status=status)
        lifecycle.mark_contacted(match, user_b_id)
        assert match.status == MatchStatus.CONTACTED

    def test_outsider_rejected(self, make_match, outsider_id):
        match = make_match()
        with pytest.raises(MatchPermissionError):
            lifecycle.dismiss(match, outsider_id)
        assert match.status == MatchStatus.ACTIVE


class TestRestore:

    def test_restore_dismissed_clears_exclusions(self, make_match, make_card, user_a_id, now):
        match = make_match(status=MatchStatus.DISMISSED, match_score=1.0)
        cards = [make_card(match, is_excluded=True), make_card(match, direction=CardDirection.B_WANTS)]

        result = lifecycle.restore(match, cards, user_a_id, now=now)

        assert match.status == MatchStatus.ACTIVE
        assert result.previous_status == MatchStatus.DISMISSED
        assert all(not c.is_excluded for c in cards)
        assert match.match_type == MatchType.TWO_WAY
        assert match.cards_a_wants_count == 1
        assert match.cards_b_wants_count == 1
        assert match.match_score != 1.0

    def test_restore_is_idempotent(self, make_match, make_card, user_a_id, now):
        match = make_match(status=MatchStatus.DISMISSED)
        cards = [make_card(match, is_excluded=True), make_card(match, is_excluded=True)]

        lifecycle.restore(match, cards, user_a_id, now=now)
        once = (_snapshot(match), [c.is_excluded for c in cards])
        lifecycle.restore(match, cards, user_a_id, now=now)
        twice = (_snapshot(match), [c.is_excluded for c in cards])

        assert once == twice

    def test_restore_contacted_keeps_status(self, make_match, make_card, user_b_id):
        match = make_match(status=MatchStatus.CONTACTED)
        cards = [make_card(match, is_excluded=True)]
        lifecycle.restore(match, cards, user_b_id)
        assert match.status == MatchStatus.CONTACTED
        assert cards[0].is_excluded is False

    @pytest.mark.parametrize("status", [MatchStatus.REQUESTED, MatchStatus.CONFIRMED, MatchStatus.COMPLETED])
    def test_restore_rejected_once_trade_is_in_flight(self, make_match, make_card, user_a_id, status):
        match = make_match(status=status)
        cards = [make_card(match, is_excluded=True)]
        with pytest.raises(MatchTransitionError):
            lifecycle.restore(match, cards, user_a_id)
        assert cards[0].is_excluded is True
        assert match.status == status


class TestRequestTrade:

    @pytest.mark.parametrize("status", [MatchStatus.ACTIVE, MatchStatus.CONTACTED, MatchStatus.DISMISSED])
    def test_request(self, make_match, make_card, user_a_id, user_b_id, now, status):
        match = make_match(status=status)
        cards = [make_card(match)]

        result = lifecycle.request_trade(match, cards, user_a_id, actor_name="Ana", now=now)

        assert match.status == MatchStatus.REQUESTED
        assert match.requested_by == user_a_id
        assert match.requested_at == now
        assert match.is_user_modified is True

        [intent] = result.notifications
        assert intent.recipient_id == user_b_id
        assert intent.type == NotificationType.TRADE_REQUESTED
        assert intent.content == "Ana requested a trade with you"
        assert intent.wants_push is True

    def test_request_requires_an_active_card(self, make_match, make_card, user_a_id):
        match = make_match()
        cards = [make_card(match, is_excluded=True)]
        with pytest.raises(MatchTransitionError, match="no active cards"):
            lifecycle.request_trade(match, cards, user_a_id)
        assert _snapshot(match)[0] == MatchStatus.ACTIVE
        assert match.requested_by is None

    def test_cannot_request_twice(self, requested_match, make_card, user_b_id):
        cards = [make_card(requested_match)]
        with pytest.raises(MatchTransitionError):
            lifecycle.request_trade(requested_match, cards, user_b_id)


class TestCancelRequest:

    def test_requester_withdraws_silently(self, requested_match, user_a_id):
        result = lifecycle.cancel_request(requested_match, user_a_id)

        assert requested_match.status == MatchStatus.CONTACTED
        assert requested_match.requested_by is None
        assert requested_match.requested_at is None
        assert result.notifications == []

    def test_counterpart_declines_and_requester_is_told(self, requested_match, user_a_id, user_b_id):
        result = lifecycle.cancel_request(requested_match, user_b_id, actor_name="Bruno")

        assert requested_match.status == MatchStatus.CONTACTED
        [intent] = result.notifications
        assert intent.recipient_id == user_a_id
        assert intent.type == NotificationType.REQUEST_INVALIDATED
        assert intent.push_title == "Trade request declined"

    def test_nothing_to_cancel(self, make_match, user_a_id):
        with pytest.raises(MatchTransitionError):
            lifecycle.cancel_request(make_match(status=MatchStatus.CONTACTED), user_a_id)


class TestConfirm:

    def test_cannot_confirm_own_request(self, requested_match, user_a_id):
        before = _snapshot(requested_match)
        with pytest.raises(MatchTransitionError, match="your own trade request"):
            lifecycle.confirm(requested_match, user_a_id)
        assert _snapshot(requested_match) == before

    def test_counterpart_confirms_with_fifteen_day_escrow(self, requested_match, user_a_id, user_b_id, now):
        result = lifecycle.confirm(requested_match, user_b_id, actor_name="Bruno", now=now)

        assert requested_match.status == MatchStatus.CONFIRMED
        assert requested_match.confirmed_at == now
        assert requested_match.escrow_expires_at == now + timedelta(days=15)
        assert requested_match.escrow_expires_at - requested_match.confirmed_at == timedelta(days=15)

        [intent] = result.notifications
        assert intent.recipient_id == user_a_id
        assert intent.type == NotificationType.TRADE_CONFIRMED
        assert intent.push_title == "Trade confirmed!"
        assert "15 days" in intent.content

    def test_confirm_requires_pending_request(self, make_match, user_b_id):
        match = make_match(status=MatchStatus.CONTACTED)
        with pytest.raises(MatchTransitionError):
            lifecycle.confirm(match, user_b_id)
        assert match.confirmed_at is None

    def test_outsider_cannot_confirm(self, requested_match, outsider_id):
        with pytest.raises(MatchPermissionError):
            lifecycle.confirm(requested_match, outsider_id)
        assert requested_match.status == MatchStatus.REQUESTED


class TestReportCompletion:

    def test_first_report_waits_for_the_other_side(self, confirmed_match, user_a_id, user_b_id):
        result = lifecycle.report_completion(confirmed_match, user_a_id, True, actor_name="Ana")

        assert confirmed_match.status == MatchStatus.CONFIRMED
        assert confirmed_match.user_a_completed is True
        assert confirmed_match.user_b_completed is None
        assert result.changed_status is False

        [intent] = result.notifications
        assert intent.recipient_id == user_b_id
        assert intent.type == NotificationType.TRADE_COMPLETED
        assert intent.wants_push is False
        assert intent.content == "Ana marked the trade as done"

    def test_both_yes_completes(self, confirmed_match, user_a_id, user_b_id):
        confirmed_match.user_b_completed = True
        result = lifecycle.report_completion(confirmed_match, user_a_id, True)

        assert confirmed_match.status == MatchStatus.COMPLETED
        assert confirmed_match.has_conflict is False
        [intent] = result.notifications
        assert intent.recipient_id == user_b_id
        assert intent.push_title == "Trade completed"

    def test_both_no_cancels_without_conflict(self, confirmed_match, user_b_id):
        confirmed_match.user_a_completed = False
        result = lifecycle.report_completion(confirmed_match, user_b_id, False)

        assert confirmed_match.status == MatchStatus.CANCELLED
        assert confirmed_match.has_conflict is False
        assert result.notifications[0].type == NotificationType.TRADE_CANCELLED

    def test_disagreement_cancels_with_conflict(self, confirmed_match, user_b_id):
        confirmed_match.user_a_completed = True
        result = lifecycle.report_completion(confirmed_match, user_b_id, False, actor_name="Bruno")

        assert confirmed_match.status == MatchStatus.CANCELLED
        assert confirmed_match.has_conflict is True
        assert "conflict" in result.notifications[0].content

    def test_report_before_confirmation_rejected(self, requested_match, user_a_id):
        with pytest.raises(MatchTransitionError):
            lifecycle.report_completion(requested_match, user_a_id, True)
        assert requested_match.user_a_completed is None

    def test_completed_trade_accepts_no_reports(self, make_match, user_a_id):
        match = make_match(status=MatchStatus.COMPLETED, user_a_completed=True, user_b_completed=True)
        with pytest.raises(MatchTransitionError, match="already completed"):
            lifecycle.report_completion(match, user_a_id, False)
        assert match.user_a_completed is True


class TestNotificationIntent:

    def test_push_payload(self, make_match, user_a_id, user_b_id, make_card):
        match = make_match()
        result = lifecycle.request_trade(match, [make_card(match)], user_a_id, actor_name="Ana")
        payload = result.notifications[0].push_payload()

        assert payload == {
            "user_id": str(user_b_id),
            "title": "New trade request",
            "body": "Ana requested a trade with you",
            "data": {
                "type": "trade_requested",
                "matchId": str(match.id),
                "url": f"/dashboard/matches/{match.id}",
            },
        }


# ===========================================================================
# CARD-LEVEL OPERATIONS
# ===========================================================================


class TestExclusions:

    def test_exclude_card_recomputes(self, make_match, make_card, user_a_id):
        match = make_match()
        a_card = make_card(match, direction=CardDirection.A_WANTS)
        b_card = make_card(match, direction=CardDirection.B_WANTS)
        cards = [a_card, b_card]

        result = lifecycle.set_card_excluded(match, cards, b_card.id, True, user_a_id)

        assert b_card.is_excluded is True
        assert result.card is b_card
        assert match.is_user_modified is True
        assert match.match_type == MatchType.ONE_WAY_BUY
        assert match.cards_b_wants_count == 0

    def test_unknown_card(self, make_match, make_card, user_a_id):
        match = make_match()
        with pytest.raises(MatchCardNotFound):
            lifecycle.set_card_excluded(match, [make_card(match)], uuid.uuid4(), True, user_a_id)
        assert match.is_user_modified is False

    def test_exclusion_invalidates_request(self, requested_match, make_card, user_a_id, user_b_id):
        card = make_card(requested_match)
        result = lifecycle.set_card_excluded(requested_match, [card], card.id, True, user_b_id)

        assert requested_match.status == MatchStatus.CONTACTED
        assert requested_match.requested_by is None
        assert result.request_invalidated is True
        [intent] = result.notifications
        assert intent.recipient_id == user_a_id
        assert intent.type == NotificationType.REQUEST_INVALIDATED

    def test_confirmed_trade_cannot_be_edited(self, confirmed_match, make_card, user_a_id):
        card = make_card(confirmed_match)
        with pytest.raises(MatchTransitionError):
            lifecycle.set_card_excluded(confirmed_match, [card], card.id, True, user_a_id)
        assert card.is_excluded is False

    def test_save_exclusions_sets_exact_set(self, make_match, make_card, user_b_id):
        match = make_match()
        keep = make_card(match)
        drop = make_card(match, is_excluded=False)
        back = make_card(match, is_excluded=True)
        cards = [keep, drop, back]

        lifecycle.save_exclusions(match, cards, [drop.id, uuid.uuid4()], user_b_id)

        assert keep.is_excluded is False
        assert drop.is_excluded is True
        assert back.is_excluded is False
        assert match.cards_a_wants_count == 2

    def test_score_follows_the_editing_user(self, make_match, make_card, user_a_id, user_b_id):
        match = make_match(distance_km=None)
        cards = [make_card(match, asking_price=Decimal("1.00"), max_price=Decimal("4.00"))]

        lifecycle.save_exclusions(match, cards, [], user_a_id)
        # 15 buy + 2.5 card + 0.1 value + 7.5 efficiency
        assert match.match_score == 25.1

        lifecycle.save_exclusions(match, cards, [], user_b_id)
        # 10 sell + 2.5 card + 0.1 value + 5 neutral efficiency
        assert match.match_score == 17.6
        assert match.match_type == MatchType.ONE_WAY_BUY


class TestAddCustomCard:

    def test_adds_card_from_counterpart_collection(self, make_match, make_card, user_a_id, user_b_id):
        match = make_match()
        cards = [make_card(match)]
        item = _collection_entry(user_b_id)

        result = lifecycle.add_custom_card(match, cards, item, user_a_id, quantity=5)

        assert result.action == "added"
        card = result.card
        assert card in cards
        assert card.is_custom is True
        assert card.added_by_user_id == user_a_id
        assert card.direction == CardDirection.A_WANTS
        assert card.collection_id == item.id
        assert card.wishlist_id is None
        assert card.asking_price == Decimal("55.00")
        assert card.max_price is None
        assert card.wishlist_min_condition == Condition.HP
        assert card.quantity_wanted == 2
        assert match.cards_a_wants_count == 2
        assert match.is_user_modified is True

    def test_user_b_adds_in_their_direction(self, make_match, user_a_id, user_b_id):
        match = make_match()
        result = lifecycle.add_custom_card(match, [], _collection_entry(user_a_id), user_b_id)
        assert result.card.direction == CardDirection.B_WANTS

    def test_rejects_own_card(self, make_match, user_a_id):
        match = make_match()
        cards = []
        with pytest.raises(MatchTransitionError, match="other participant"):
            lifecycle.add_custom_card(match, cards, _collection_entry(user_a_id), user_a_id)
        assert cards == []

    def test_rejects_duplicate(self, make_match, make_card, user_a_id, user_b_id):
        match = make_match()
        item = _collection_entry(user_b_id)
        cards = [make_card(match, collection_id=item.id)]
        with pytest.raises(MatchTransitionError, match="already in the trade"):
            lifecycle.add_custom_card(match, cards, item, user_a_id)
        assert len(cards) == 1

    def test_reincludes_excluded_duplicate(self, make_match, make_card, user_a_id, user_b_id):
        match = make_match()
        item = _collection_entry(user_b_id)
        existing = make_card(match, collection_id=item.id, is_excluded=True)
        cards = [existing]

        result = lifecycle.add_custom_card(match, cards, item, user_a_id)

        assert result.action == "unexcluded"
        assert result.card is existing
        assert existing.is_excluded is False
        assert len(cards) == 1

    def test_rejects_invalid_quantity(self, make_match, user_a_id, user_b_id):
        match = make_match()
        with pytest.raises(MatchTransitionError, match="Invalid quantity"):
            lifecycle.add_custom_card(match, [], _collection_entry(user_b_id), user_a_id, quantity=0)


class TestDeleteCustomCard:

    def test_delete_in_requested_regresses_to_contacted(self, requested_match, make_card, user_a_id, user_b_id):
        custom = make_card(requested_match, is_custom=True, added_by_user_id=user_b_id)
        cards = [make_card(requested_match), custom]

        result = lifecycle.delete_custom_card(requested_match, cards, custom.id, user_b_id)

        assert requested_match.status == MatchStatus.CONTACTED
        assert requested_match.requested_by is None
        assert custom not in cards
        assert result.card is custom
        assert result.action == "deleted"
        assert result.request_invalidated is True
        assert result.notifications[0].recipient_id == user_a_id

    def test_delete_in_completed_rejected_without_change(self, make_match, make_card, user_a_id):
        match = make_match(status=MatchStatus.COMPLETED)
        custom = make_card(match, is_custom=True, added_by_user_id=user_a_id)
        cards = [custom]
        before = _snapshot(match)

        with pytest.raises(MatchTransitionError, match="already completed"):
            lifecycle.delete_custom_card(match, cards, custom.id, user_a_id)

        assert _snapshot(match) == before
        assert cards == [custom]

    def test_wishlist_card_cannot_be_deleted(self, make_match, make_card, user_a_id):
        match = make_match()
        card = make_card(match)
        with pytest.raises(MatchTransitionError, match="only be excluded"):
            lifecycle.delete_custom_card(match, [card], card.id, user_a_id)

    def test_only_adder_can_delete(self, make_match, make_card, user_a_id, user_b_id):
        match = make_match()
        custom = make_card(match, is_custom=True, added_by_user_id=user_b_id)
        cards = [custom]
        with pytest.raises(MatchPermissionError):
            lifecycle.delete_custom_card(match, cards, custom.id, user_a_id)
        assert cards == [custom]

    def test_unknown_card(self, make_match, user_a_id):
        with pytest.raises(MatchCardNotFound):
            lifecycle.delete_custom_card(make_match(), [], uuid.uuid4(), user_a_id)


class TestReplaceComputedCards:

    def test_keeps_custom_cards(self, make_match, make_card, user_a_id):
        match = make_match(is_user_modified=True)
        custom = make_card(match, is_custom=True, added_by_user_id=user_a_id)
        stale = make_card(match)
        fresh = make_card(match, direction=CardDirection.B_WANTS)
        cards = [custom, stale]

        result = lifecycle.replace_computed_cards(match, cards, [fresh], user_a_id)

        assert cards == [custom, fresh]
        assert result.removed == [stale]
        assert result.action == "recalculated"
        assert match.is_user_modified is True
        assert match.match_type == MatchType.TWO_WAY

    def test_clears_user_modified_without_custom_cards(self, make_match, make_card, user_a_id):
        match = make_match(is_user_modified=True)
        cards = [make_card(match, is_excluded=True)]
        fresh = make_card(match)

        lifecycle.replace_computed_cards(match, cards, [fresh], user_a_id)

        assert match.is_user_modified is False
        assert cards == [fresh]

    def test_nothing_left_zeroes_score(self, make_match, make_card, user_a_id):
        match = make_match(match_score=60.0)
        lifecycle.replace_computed_cards(match, [make_card(match)], [], user_a_id)
        assert match.match_score == 0.0
        assert match.match_type == MatchType.TWO_WAY
