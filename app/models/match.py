"""
Match and match card models.

A Match is a candidate or in-progress trade between exactly two users.
``user_a_id`` is always the lower of the two ids, and ``match_type`` and
the ``*_a_*``/``*_b_*`` statistics are expressed relative to user_a.
MatchCards are the individual cards each side wants from the other;
status changes go through ``app.matching_engine.lifecycle``.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Enum as SAEnum,
    event,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, enum_values
from app.models.collection import Condition

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MatchType(str, enum.Enum):
    TWO_WAY = "two_way"
    ONE_WAY_BUY = "one_way_buy"     # user_a buys from user_b
    ONE_WAY_SELL = "one_way_sell"   # user_a sells to user_b

    def flipped(self) -> "MatchType":
        """The same match seen from the other participant."""
        if self is MatchType.ONE_WAY_BUY:
            return MatchType.ONE_WAY_SELL
        if self is MatchType.ONE_WAY_SELL:
            return MatchType.ONE_WAY_BUY
        return self


class MatchStatus(str, enum.Enum):
    ACTIVE = "active"
    CONTACTED = "contacted"
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISMISSED = "dismissed"


class CardDirection(str, enum.Enum):
    A_WANTS = "a_wants"
    B_WANTS = "b_wants"


TERMINAL_STATUSES = frozenset({MatchStatus.COMPLETED, MatchStatus.CANCELLED})

# Matches the recompute job must leave alone
PROTECTED_STATUSES = frozenset({
    MatchStatus.REQUESTED,
    MatchStatus.CONFIRMED,
    MatchStatus.COMPLETED,
    MatchStatus.CANCELLED,
})


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        CheckConstraint("user_a_id <> user_b_id", name="ck_matches_distinct_users"),
        UniqueConstraint("user_a_id", "user_b_id", name="uq_matches_user_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    user_a_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_b_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    match_type: Mapped[MatchType] = mapped_column(
        SAEnum(MatchType, name="matchtype", values_callable=enum_values), nullable=False,
    )
    status: Mapped[MatchStatus] = mapped_column(
        SAEnum(MatchStatus, name="matchstatus", values_callable=enum_values), default=MatchStatus.ACTIVE,
    )

    # Derived statistics (recomputed on every card-level change)
    distance_km: Mapped[float | None] = mapped_column(Float)
    cards_a_wants_count: Mapped[int] = mapped_column(Integer, default=0)
    cards_b_wants_count: Mapped[int] = mapped_column(Integer, default=0)
    value_a_wants: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), default=Decimal("0"))
    value_b_wants: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), default=Decimal("0"))
    match_score: Mapped[float] = mapped_column(Float, default=0.0)
    has_price_warnings: Mapped[bool] = mapped_column(Boolean, default=False)

    # Trade flow
    is_user_modified: Mapped[bool] = mapped_column(Boolean, default=False)
    requested_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True,
    )
    requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    escrow_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    user_a_completed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    user_b_completed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    has_conflict: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    cards = relationship(
        "MatchCard", back_populates="match", cascade="all, delete-orphan", passive_deletes=True,
    )

    # ------------------------------------------------------------------
    # Participant helpers
    # ------------------------------------------------------------------

    @staticmethod
    def ordered_pair(
        first: uuid.UUID, second: uuid.UUID,
    ) -> tuple[uuid.UUID, uuid.UUID]:
        """Return the two user ids as (user_a, user_b), lower id first."""
        return (first, second) if str(first) < str(second) else (second, first)

    def is_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def is_user_a(self, user_id: uuid.UUID) -> bool:
        return user_id == self.user_a_id

    def other_user_id(self, user_id: uuid.UUID) -> uuid.UUID:
        """The counterpart of *user_id* in this match."""
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id

    def wants_direction(self, user_id: uuid.UUID) -> CardDirection:
        """Direction of cards that *user_id* wants."""
        return CardDirection.A_WANTS if self.is_user_a(user_id) else CardDirection.B_WANTS

    def match_type_for(self, user_id: uuid.UUID) -> MatchType:
        """Match type from the perspective of *user_id*."""
        return self.match_type if self.is_user_a(user_id) else self.match_type.flipped()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_protected(self) -> bool:
        """True when the recompute job must not overwrite this match."""
        return self.is_user_modified or self.status in PROTECTED_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Match {self.id} "
            f"{self.match_type.value if self.match_type else 'N/A'} "
            f"status={self.status.value if self.status else 'N/A'}>"
        )


class MatchCard(Base):
    __tablename__ = "match_cards"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    match_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    direction: Mapped[CardDirection] = mapped_column(
        SAEnum(CardDirection, name="carddirection", values_callable=enum_values), nullable=False,
    )

    wishlist_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("wishlist.id", ondelete="SET NULL"), nullable=True,
    )
    collection_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("collections.id", ondelete="SET NULL"), nullable=True,
    )
    card_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cards.id"), nullable=False,
    )

    # Snapshot of the card at match time
    card_name: Mapped[str] = mapped_column(String(200), nullable=False)
    card_set_code: Mapped[str | None] = mapped_column(String(10))
    card_image_uri: Mapped[str | None] = mapped_column(String(500))

    asking_price: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2))
    max_price: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2))
    price_exceeds_max: Mapped[bool] = mapped_column(Boolean, default=False)

    collection_condition: Mapped[Condition] = mapped_column(
        SAEnum(Condition, name="cardcondition", values_callable=enum_values), nullable=False,
    )
    wishlist_min_condition: Mapped[Condition] = mapped_column(
        SAEnum(Condition, name="cardcondition", values_callable=enum_values), nullable=False,
    )
    is_foil: Mapped[bool] = mapped_column(Boolean, default=False)
    quantity_available: Mapped[int] = mapped_column(Integer, default=1)
    quantity_wanted: Mapped[int] = mapped_column(Integer, default=1)

    is_excluded: Mapped[bool] = mapped_column(Boolean, default=False)
    is_custom: Mapped[bool] = mapped_column(Boolean, default=False)
    added_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True,
    )

    match = relationship("Match", back_populates="cards")

    def __repr__(self) -> str:
        flags = []
        if self.is_custom:
            flags.append("custom")
        if self.is_excluded:
            flags.append("excluded")
        return f"<MatchCard {self.card_name} {self.direction.value if self.direction else ''} {' '.join(flags)}>"


# ---------------------------------------------------------------------------
# Auto-set Python-side defaults on construction
# ---------------------------------------------------------------------------


@event.listens_for(Match, "init")
def _set_match_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "status" not in kwargs:
        target.status = MatchStatus.ACTIVE
    if "cards_a_wants_count" not in kwargs:
        target.cards_a_wants_count = 0
    if "cards_b_wants_count" not in kwargs:
        target.cards_b_wants_count = 0
    if "value_a_wants" not in kwargs:
        target.value_a_wants = Decimal("0")
    if "value_b_wants" not in kwargs:
        target.value_b_wants = Decimal("0")
    if "match_score" not in kwargs:
        target.match_score = 0.0
    if "has_price_warnings" not in kwargs:
        target.has_price_warnings = False
    if "is_user_modified" not in kwargs:
        target.is_user_modified = False
    if "has_conflict" not in kwargs:
        target.has_conflict = False
    now = datetime.now(timezone.utc)
    if "created_at" not in kwargs:
        target.created_at = now
    if "updated_at" not in kwargs:
        target.updated_at = now


@event.listens_for(MatchCard, "init")
def _set_match_card_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "price_exceeds_max" not in kwargs:
        target.price_exceeds_max = False
    if "is_foil" not in kwargs:
        target.is_foil = False
    if "quantity_available" not in kwargs:
        target.quantity_available = 1
    if "quantity_wanted" not in kwargs:
        target.quantity_wanted = 1
    if "is_excluded" not in kwargs:
        target.is_excluded = False
    if "is_custom" not in kwargs:
        target.is_custom = False
