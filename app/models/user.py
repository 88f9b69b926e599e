"""
User, location, and preference models.

Users are created by the hosted auth platform; the matching engine only
reads them. Each user has at most one *active* location used for
proximity filtering, and one preferences row controlling trade mode and
whole-collection pausing.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    String,
    Enum as SAEnum,
    event,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, enum_values


class TradeMode(str, enum.Enum):
    TRADE = "trade"     # two-way matches only
    SELL = "sell"
    BUY = "buy"
    BOTH = "both"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    locations = relationship("Location", back_populates="user")
    preferences = relationship("Preferences", back_populates="user", uselist=False)

    def __repr__(self) -> str:
        return f"<User {self.display_name} ({self.id})>"


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str | None] = mapped_column(String(300))
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    radius_km: Mapped[float] = mapped_column(Float, default=25.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    user = relationship("User", back_populates="locations")


class Preferences(Base):
    __tablename__ = "preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False,
    )
    trade_mode: Mapped[TradeMode] = mapped_column(
        SAEnum(TradeMode, name="trademode", values_callable=enum_values), default=TradeMode.BOTH,
    )
    collection_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    notify_new_matches: Mapped[bool] = mapped_column(Boolean, default=True)

    user = relationship("User", back_populates="preferences")


@event.listens_for(User, "init")
def _set_user_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    now = datetime.now(timezone.utc)
    if "created_at" not in kwargs:
        target.created_at = now
    if "updated_at" not in kwargs:
        target.updated_at = now


@event.listens_for(Location, "init")
def _set_location_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "radius_km" not in kwargs:
        target.radius_km = 25.0
    if "is_active" not in kwargs:
        target.is_active = True


@event.listens_for(Preferences, "init")
def _set_preferences_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "trade_mode" not in kwargs:
        target.trade_mode = TradeMode.BOTH
    if "collection_paused" not in kwargs:
        target.collection_paused = False
    if "notify_new_matches" not in kwargs:
        target.notify_new_matches = True
