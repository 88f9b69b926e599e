"""
Match lifecycle — legal status transitions and their side effects.

    active ──dismiss──▶ dismissed ──restore──▶ active
      │                    │
      ├──mark_contacted────┴──▶ contacted
      │
      └──request (also from contacted/dismissed)──▶ requested
                                                     │
                     cancel_request / card edit ◀────┤ (regress to contacted)
                                                     │
                                     confirm ────────▶ confirmed
                                                        │
                       report_completion (both users) ──┴─▶ completed | cancelled

Every operation takes the match, the acting user and ``now``; validates
completely before touching anything; raises ``MatchTransitionError`` on
rejection; and returns a ``TransitionResult`` listing the notifications
to record and push. Card-level operations also take the match's cards
(as loaded by the caller), mutate them in place and recompute the
match's score from them.

Callers are responsible for persistence and for serialising operations
on the same match (the route handlers lock the match row).
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from app.matching_engine.config import ESCROW_DAYS
from app.matching_engine.matcher import CollectionEntry, summarize_cards
from app.models.collection import Condition
from app.models.match import Match, MatchCard, MatchStatus, TERMINAL_STATUSES
from app.models.notification import NotificationType

logger = logging.getLogger(__name__)

DEFAULT_ACTOR_NAME = "A user"

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class MatchTransitionError(ValueError):
    """A lifecycle operation was rejected. No state was changed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MatchPermissionError(MatchTransitionError):
    """The actor is not allowed to perform the operation."""


class MatchCardNotFound(MatchTransitionError):
    """The referenced card is not part of the match."""


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


class MatchEvent(str, enum.Enum):
    DISMISS = "dismiss"
    MARK_CONTACTED = "mark_contacted"
    RESTORE = "restore"
    REQUEST = "request"
    CANCEL_REQUEST = "cancel_request"
    CONFIRM = "confirm"
    REPORT_COMPLETION = "report_completion"
    COMPLETE = "complete"
    CANCEL = "cancel"
    EDIT_CARDS = "edit_cards"


_S = MatchStatus
_E = MatchEvent

TRANSITIONS: dict[tuple[MatchStatus, MatchEvent], MatchStatus] = {
    (_S.ACTIVE, _E.DISMISS): _S.DISMISSED,

    (_S.ACTIVE, _E.MARK_CONTACTED): _S.CONTACTED,
    (_S.DISMISSED, _E.MARK_CONTACTED): _S.CONTACTED,

    (_S.ACTIVE, _E.RESTORE): _S.ACTIVE,
    (_S.CONTACTED, _E.RESTORE): _S.CONTACTED,
    (_S.DISMISSED, _E.RESTORE): _S.ACTIVE,

    (_S.ACTIVE, _E.REQUEST): _S.REQUESTED,
    (_S.CONTACTED, _E.REQUEST): _S.REQUESTED,
    (_S.DISMISSED, _E.REQUEST): _S.REQUESTED,

    (_S.REQUESTED, _E.CANCEL_REQUEST): _S.CONTACTED,
    (_S.REQUESTED, _E.CONFIRM): _S.CONFIRMED,

    # Each participant reports; the final report resolves to COMPLETE or CANCEL
    (_S.CONFIRMED, _E.REPORT_COMPLETION): _S.CONFIRMED,
    (_S.CONFIRMED, _E.COMPLETE): _S.COMPLETED,
    (_S.CONFIRMED, _E.CANCEL): _S.CANCELLED,

    # Card edits keep the status, except that they invalidate a pending request
    (_S.ACTIVE, _E.EDIT_CARDS): _S.ACTIVE,
    (_S.CONTACTED, _E.EDIT_CARDS): _S.CONTACTED,
    (_S.DISMISSED, _E.EDIT_CARDS): _S.DISMISSED,
    (_S.REQUESTED, _E.EDIT_CARDS): _S.CONTACTED,
}

EDITABLE_STATUSES = frozenset(
    status for (status, event) in TRANSITIONS if event == MatchEvent.EDIT_CARDS
)


def can_apply(status: MatchStatus, event: MatchEvent) -> bool:
    return (status, event) in TRANSITIONS


def next_status(status: MatchStatus, event: MatchEvent) -> MatchStatus:
    """
    Look up the target status for *event* in *status*.

    Raises MatchTransitionError when the event is not allowed.
    """
    if status in TERMINAL_STATUSES:
        raise MatchTransitionError(
            f"This trade is already {status.value}; no further changes are accepted"
        )
    target = TRANSITIONS.get((status, event))
    if target is None:
        raise MatchTransitionError(
            f"Cannot {event.value.replace('_', ' ')} a trade in '{status.value}' status"
        )
    return target


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class NotificationIntent:
    """A notification to record, and optionally push, after a transition."""

    recipient_id: uuid.UUID
    type: NotificationType
    match_id: uuid.UUID
    from_user_id: uuid.UUID
    content: str
    push_title: str | None = None

    @property
    def wants_push(self) -> bool:
        return self.push_title is not None

    def push_payload(self) -> dict:
        return {
            "user_id": str(self.recipient_id),
            "title": self.push_title,
            "body": self.content,
            "data": {
                "type": self.type.value,
                "matchId": str(self.match_id),
                "url": f"/dashboard/matches/{self.match_id}",
            },
        }


@dataclass
class TransitionResult:
    previous_status: MatchStatus
    status: MatchStatus
    notifications: list[NotificationIntent] = field(default_factory=list)
    request_invalidated: bool = False
    card: MatchCard | None = None
    action: str | None = None
    removed: list[MatchCard] = field(default_factory=list)

    @property
    def changed_status(self) -> bool:
        return self.previous_status != self.status


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _require_participant(match: Match, actor_id: uuid.UUID) -> None:
    if not match.is_participant(actor_id):
        raise MatchPermissionError("Only participants of this trade can act on it")


def _set_status(
    match: Match,
    target: MatchStatus,
    actor_id: uuid.UUID,
    event: MatchEvent,
    now: datetime,
) -> TransitionResult:
    previous = match.status
    match.status = target
    match.updated_at = now
    if previous != target:
        logger.info(
            "Match %s: %s -> %s (%s by %s)",
            match.id, previous.value, target.value, event.value, actor_id,
        )
    return TransitionResult(previous_status=previous, status=target)


def _recompute(match: Match, cards: list[MatchCard], actor_id: uuid.UUID) -> None:
    summary = summarize_cards(
        cards, match.distance_km, match.match_type, match.wants_direction(actor_id),
    )
    summary.apply_to(match)


def _find_card(cards: list[MatchCard], card_id: uuid.UUID) -> MatchCard:
    for card in cards:
        if card.id == card_id:
            return card
    raise MatchCardNotFound("Card not found in this trade")


# ---------------------------------------------------------------------------
# Status operations
# ---------------------------------------------------------------------------


def dismiss(match: Match, actor_id: uuid.UUID, *, now: datetime | None = None) -> TransitionResult:
    """Hide an active match. Reversible with ``restore``."""
    _require_participant(match, actor_id)
    target = next_status(match.status, MatchEvent.DISMISS)
    return _set_status(match, target, actor_id, MatchEvent.DISMISS, _now(now))


def mark_contacted(match: Match, actor_id: uuid.UUID, *, now: datetime | None = None) -> TransitionResult:
    """Record that the participants have started talking."""
    _require_participant(match, actor_id)
    target = next_status(match.status, MatchEvent.MARK_CONTACTED)
    return _set_status(match, target, actor_id, MatchEvent.MARK_CONTACTED, _now(now))


def restore(
    match: Match,
    cards: list[MatchCard],
    actor_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Reset a match to its computed state.

    Clears every card's exclusion, reactivates a dismissed match and
    recomputes the score. Restoring twice is the same as restoring once.
    """
    _require_participant(match, actor_id)
    target = next_status(match.status, MatchEvent.RESTORE)

    for card in cards:
        card.is_excluded = False
    result = _set_status(match, target, actor_id, MatchEvent.RESTORE, _now(now))
    _recompute(match, cards, actor_id)
    return result


def request_trade(
    match: Match,
    cards: list[MatchCard],
    actor_id: uuid.UUID,
    *,
    actor_name: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Ask the counterpart to confirm the trade as it currently stands."""
    _require_participant(match, actor_id)
    target = next_status(match.status, MatchEvent.REQUEST)
    if not any(not c.is_excluded for c in cards):
        raise MatchTransitionError("There are no active cards in this trade")

    now = _now(now)
    result = _set_status(match, target, actor_id, MatchEvent.REQUEST, now)
    match.requested_by = actor_id
    match.requested_at = now
    match.is_user_modified = True

    content = f"{actor_name or DEFAULT_ACTOR_NAME} requested a trade with you"
    result.notifications.append(NotificationIntent(
        recipient_id=match.other_user_id(actor_id),
        type=NotificationType.TRADE_REQUESTED,
        match_id=match.id,
        from_user_id=actor_id,
        content=content,
        push_title="New trade request",
    ))
    return result


def cancel_request(
    match: Match,
    actor_id: uuid.UUID,
    *,
    actor_name: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Withdraw (requester) or reject (counterpart) a pending request.

    The requester is notified only when the counterpart rejects.
    """
    _require_participant(match, actor_id)
    target = next_status(match.status, MatchEvent.CANCEL_REQUEST)

    requester = match.requested_by
    result = _set_status(match, target, actor_id, MatchEvent.CANCEL_REQUEST, _now(now))
    match.requested_by = None
    match.requested_at = None

    if requester is not None and requester != actor_id:
        result.notifications.append(NotificationIntent(
            recipient_id=requester,
            type=NotificationType.REQUEST_INVALIDATED,
            match_id=match.id,
            from_user_id=actor_id,
            content=f"{actor_name or DEFAULT_ACTOR_NAME} declined your trade request",
            push_title="Trade request declined",
        ))
    return result


def confirm(
    match: Match,
    actor_id: uuid.UUID,
    *,
    actor_name: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Accept the counterpart's request and open the escrow window.

    Only the participant who did not request the trade may confirm it.
    """
    _require_participant(match, actor_id)
    target = next_status(match.status, MatchEvent.CONFIRM)
    if match.requested_by == actor_id:
        raise MatchTransitionError("You cannot confirm your own trade request")

    now = _now(now)
    result = _set_status(match, target, actor_id, MatchEvent.CONFIRM, now)
    match.confirmed_at = now
    match.escrow_expires_at = now + timedelta(days=ESCROW_DAYS)

    requester = match.requested_by or match.other_user_id(actor_id)
    result.notifications.append(NotificationIntent(
        recipient_id=requester,
        type=NotificationType.TRADE_CONFIRMED,
        match_id=match.id,
        from_user_id=actor_id,
        content=(
            f"{actor_name or DEFAULT_ACTOR_NAME} confirmed the trade. "
            f"You have {ESCROW_DAYS} days to complete it."
        ),
        push_title="Trade confirmed!",
    ))
    return result


def report_completion(
    match: Match,
    actor_id: uuid.UUID,
    completed: bool,
    *,
    actor_name: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Record one participant's report of whether the trade took place.

    Once both have reported: both yes → completed; both no → cancelled;
    disagreement → cancelled with ``has_conflict`` set. Until then the
    match stays confirmed and the counterpart is told about the report.
    """
    _require_participant(match, actor_id)
    next_status(match.status, MatchEvent.REPORT_COMPLETION)

    if match.is_user_a(actor_id):
        other_report = match.user_b_completed
    else:
        other_report = match.user_a_completed

    now = _now(now)
    if other_report is None:
        event, target = MatchEvent.REPORT_COMPLETION, MatchStatus.CONFIRMED
    elif completed and other_report:
        event, target = MatchEvent.COMPLETE, MatchStatus.COMPLETED
    else:
        event, target = MatchEvent.CANCEL, MatchStatus.CANCELLED
    target = next_status(match.status, event)

    if match.is_user_a(actor_id):
        match.user_a_completed = completed
    else:
        match.user_b_completed = completed
    result = _set_status(match, target, actor_id, event, now)

    name = actor_name or DEFAULT_ACTOR_NAME
    if target == MatchStatus.COMPLETED:
        notif_type, title = NotificationType.TRADE_COMPLETED, "Trade completed"
        content = f"Your trade with {name} was completed successfully"
    elif target == MatchStatus.CANCELLED:
        match.has_conflict = bool(completed) != bool(other_report)
        notif_type, title = NotificationType.TRADE_CANCELLED, "Trade cancelled"
        if match.has_conflict:
            content = f"There was a conflict in your trade with {name}. The trade was cancelled."
        else:
            content = f"Your trade with {name} was cancelled"
    else:
        notif_type, title = NotificationType.TRADE_COMPLETED, None
        if completed:
            content = f"{name} marked the trade as done"
        else:
            content = f"{name} marked the trade as not done"

    result.notifications.append(NotificationIntent(
        recipient_id=match.other_user_id(actor_id),
        type=notif_type,
        match_id=match.id,
        from_user_id=actor_id,
        content=content,
        push_title=title,
    ))
    return result


# ---------------------------------------------------------------------------
# Card-level operations
# ---------------------------------------------------------------------------


def _begin_card_edit(match: Match, actor_id: uuid.UUID) -> MatchStatus:
    _require_participant(match, actor_id)
    return next_status(match.status, MatchEvent.EDIT_CARDS)


def _finish_card_edit(
    match: Match,
    cards: list[MatchCard],
    target: MatchStatus,
    actor_id: uuid.UUID,
    now: datetime | None,
) -> TransitionResult:
    """
    Common tail of every card edit.

    Marks the match user-modified, recomputes its score and, when a
    request was pending, regresses to contacted and tells the requester.
    """
    requester = match.requested_by
    was_requested = match.status == MatchStatus.REQUESTED

    result = _set_status(match, target, actor_id, MatchEvent.EDIT_CARDS, _now(now))
    match.is_user_modified = True

    if was_requested:
        match.requested_by = None
        match.requested_at = None
        result.request_invalidated = True
        if requester is not None:
            result.notifications.append(NotificationIntent(
                recipient_id=requester,
                type=NotificationType.REQUEST_INVALIDATED,
                match_id=match.id,
                from_user_id=actor_id,
                content="The trade was modified, so the previous request was invalidated",
                push_title="Trade request invalidated",
            ))

    _recompute(match, cards, actor_id)
    return result


def set_card_excluded(
    match: Match,
    cards: list[MatchCard],
    card_id: uuid.UUID,
    excluded: bool,
    actor_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """Exclude one card from the trade (or bring it back) without deleting it."""
    target = _begin_card_edit(match, actor_id)
    card = _find_card(cards, card_id)

    card.is_excluded = excluded
    result = _finish_card_edit(match, cards, target, actor_id, now)
    result.card = card
    return result


def save_exclusions(
    match: Match,
    cards: list[MatchCard],
    excluded_card_ids,
    actor_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """Exclude exactly the listed cards and include every other one."""
    target = _begin_card_edit(match, actor_id)

    excluded = set(excluded_card_ids)
    for card in cards:
        card.is_excluded = card.id in excluded
    return _finish_card_edit(match, cards, target, actor_id, now)


def add_custom_card(
    match: Match,
    cards: list[MatchCard],
    item: CollectionEntry,
    actor_id: uuid.UUID,
    *,
    quantity: int = 1,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Add a card from the counterpart's collection that no wishlist matched.

    If the same item is already in the trade but excluded it is simply
    re-included. The new card is appended to *cards*; the caller persists
    ``result.card`` when ``result.action == "added"``.
    """
    target = _begin_card_edit(match, actor_id)
    if item.user_id != match.other_user_id(actor_id):
        raise MatchTransitionError("This card does not belong to the other participant")

    direction = match.wants_direction(actor_id)
    existing = next(
        (c for c in cards if c.collection_id == item.id and c.direction == direction),
        None,
    )
    if existing is not None and not existing.is_excluded:
        raise MatchTransitionError("This card is already in the trade")

    if existing is not None:
        existing.is_excluded = False
        card, action = existing, "unexcluded"
    else:
        wanted = min(quantity, item.quantity)
        if wanted <= 0:
            raise MatchTransitionError("Invalid quantity")
        card = MatchCard(
            match_id=match.id,
            direction=direction,
            wishlist_id=None,
            collection_id=item.id,
            card_id=item.card_id,
            card_name=item.name,
            card_set_code=item.set_code,
            card_image_uri=item.image_uri,
            asking_price=item.asking_price,
            max_price=None,
            price_exceeds_max=False,
            collection_condition=item.condition,
            wishlist_min_condition=Condition.HP,
            is_foil=item.foil,
            quantity_available=item.quantity,
            quantity_wanted=wanted,
            is_excluded=False,
            is_custom=True,
            added_by_user_id=actor_id,
        )
        cards.append(card)
        action = "added"

    result = _finish_card_edit(match, cards, target, actor_id, now)
    result.card = card
    result.action = action
    return result


def delete_custom_card(
    match: Match,
    cards: list[MatchCard],
    card_id: uuid.UUID,
    actor_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Remove a manually added card.

    Wishlist-derived cards can only be excluded, and a custom card can
    only be removed by the participant who added it. The card is removed
    from *cards*; the caller deletes ``result.card``.
    """
    target = _begin_card_edit(match, actor_id)
    card = _find_card(cards, card_id)
    if not card.is_custom:
        raise MatchTransitionError(
            "Only manually added cards can be removed; wishlist cards can only be excluded"
        )
    if card.added_by_user_id != actor_id:
        raise MatchPermissionError("Only the user who added this card can remove it")

    cards.remove(card)
    result = _finish_card_edit(match, cards, target, actor_id, now)
    result.card = card
    result.action = "deleted"
    return result


def replace_computed_cards(
    match: Match,
    cards: list[MatchCard],
    fresh_cards: list[MatchCard],
    actor_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Swap every wishlist-derived card for a freshly computed set.

    Custom cards survive. The match counts as user-modified afterwards
    only if custom cards remain. Removed cards are listed in
    ``result.removed`` for the caller to delete.
    """
    target = _begin_card_edit(match, actor_id)

    removed = [c for c in cards if not c.is_custom]
    cards[:] = [c for c in cards if c.is_custom] + list(fresh_cards)

    result = _finish_card_edit(match, cards, target, actor_id, now)
    if not cards:
        # Nothing left to trade: keep the type, zero the score
        match.match_score = 0.0
    match.is_user_modified = any(c.is_custom for c in cards)
    result.removed = removed
    result.action = "recalculated"
    return result
