"""
Wishlist item model — a card a user wants, with acceptance constraints.

A collection item satisfies a wishlist entry when it is the same card
(``oracle_id``), meets the minimum condition, fits the foil preference,
and, for specific-edition wishes, is one of the accepted printings.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Enum as SAEnum,
    event,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, enum_values
from app.models.collection import Condition


class FoilPreference(str, enum.Enum):
    ANY = "any"
    FOIL_ONLY = "foil_only"
    NON_FOIL = "non_foil"


class EditionPreference(str, enum.Enum):
    ANY = "any"
    SPECIFIC = "specific"


class WishlistItem(Base):
    __tablename__ = "wishlist"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    card_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cards.id"), nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    max_price: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2))
    min_condition: Mapped[Condition] = mapped_column(
        SAEnum(Condition, name="cardcondition", values_callable=enum_values), default=Condition.LP,
    )
    foil_preference: Mapped[FoilPreference] = mapped_column(
        SAEnum(FoilPreference, name="foilpreference", values_callable=enum_values), default=FoilPreference.ANY,
    )
    edition_preference: Mapped[EditionPreference] = mapped_column(
        SAEnum(EditionPreference, name="editionpreference", values_callable=enum_values), default=EditionPreference.ANY,
    )
    # Accepted scryfall ids; only consulted for specific-edition wishes
    specific_editions: Mapped[list[str]] = mapped_column(ARRAY(String(64)), default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    card = relationship("Card", lazy="joined")

    def __repr__(self) -> str:
        return f"<WishlistItem {self.card_id} x{self.quantity}>"


@event.listens_for(WishlistItem, "init")
def _set_wishlist_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "quantity" not in kwargs:
        target.quantity = 1
    if "min_condition" not in kwargs:
        target.min_condition = Condition.LP
    if "foil_preference" not in kwargs:
        target.foil_preference = FoilPreference.ANY
    if "edition_preference" not in kwargs:
        target.edition_preference = EditionPreference.ANY
    if "specific_editions" not in kwargs:
        target.specific_editions = []
    if "created_at" not in kwargs:
        target.created_at = datetime.now(timezone.utc)
