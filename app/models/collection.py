"""
Collection item model — a card a user owns and offers for trade.

Pricing is either a percentage of the live market price for the item's
finish, or a fixed price pinned by the owner. Paused items are skipped
by the matching job.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    Enum as SAEnum,
    event,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, enum_values


class Condition(str, enum.Enum):
    """Card condition, declared best to worst."""
    NM = "NM"
    LP = "LP"
    MP = "MP"
    HP = "HP"
    DMG = "DMG"


class PriceMode(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CollectionItem(Base):
    __tablename__ = "collections"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_collections_quantity_positive"),
    )

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
    condition: Mapped[Condition] = mapped_column(
        SAEnum(Condition, name="cardcondition", values_callable=enum_values), nullable=False,
    )
    foil: Mapped[bool] = mapped_column(Boolean, default=False)

    price_mode: Mapped[PriceMode] = mapped_column(
        SAEnum(PriceMode, name="pricemode", values_callable=enum_values), default=PriceMode.PERCENTAGE,
    )
    price_percentage: Mapped[Decimal] = mapped_column(
        Numeric(precision=6, scale=2), default=Decimal("100"),
    )
    price_fixed: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2))

    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    card = relationship("Card", lazy="joined")

    def toggle_pause(self) -> bool:
        """Flip the pause flag and return the new value."""
        self.is_paused = not self.is_paused
        self.updated_at = datetime.now(timezone.utc)
        return self.is_paused

    def __repr__(self) -> str:
        return (
            f"<CollectionItem {self.card_id} x{self.quantity} "
            f"{self.condition.value if self.condition else 'N/A'}"
            f"{' foil' if self.foil else ''}>"
        )


@event.listens_for(CollectionItem, "init")
def _set_collection_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "quantity" not in kwargs:
        target.quantity = 1
    if "foil" not in kwargs:
        target.foil = False
    if "price_mode" not in kwargs:
        target.price_mode = PriceMode.PERCENTAGE
    if "price_percentage" not in kwargs:
        target.price_percentage = Decimal("100")
    if "is_paused" not in kwargs:
        target.is_paused = False
    now = datetime.now(timezone.utc)
    if "created_at" not in kwargs:
        target.created_at = now
    if "updated_at" not in kwargs:
        target.updated_at = now
