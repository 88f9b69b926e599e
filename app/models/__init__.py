"""SQLAlchemy ORM models for Natural Order."""

from app.models.user import User, Location, Preferences, TradeMode
from app.models.card import Card
from app.models.collection import CollectionItem, Condition, PriceMode
from app.models.wishlist import WishlistItem, FoilPreference, EditionPreference
from app.models.match import Match, MatchCard, MatchType, MatchStatus, CardDirection
from app.models.notification import Notification, NotificationType

__all__ = [
    "User", "Location", "Preferences", "TradeMode",
    "Card",
    "CollectionItem", "Condition", "PriceMode",
    "WishlistItem", "FoilPreference", "EditionPreference",
    "Match", "MatchCard", "MatchType", "MatchStatus", "CardDirection",
    "Notification", "NotificationType",
]
