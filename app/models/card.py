"""
Card catalog cache.

Rows mirror the external card catalog. ``scryfall_id`` identifies one
printing (edition); ``oracle_id`` identifies the card across all of its
printings. Market prices may be missing for a finish, which is a normal
state rather than an error.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Card(Base):
    __tablename__ = "cards"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    scryfall_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    oracle_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    set_code: Mapped[str] = mapped_column(String(10), nullable=False)
    set_name: Mapped[str | None] = mapped_column(String(200))
    image_uri: Mapped[str | None] = mapped_column(String(500))

    prices_usd: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2))
    prices_usd_foil: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Card {self.name} [{self.set_code}]>"


@event.listens_for(Card, "init")
def _set_card_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
