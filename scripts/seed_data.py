"""
Test data seeder — populates the database with sample data for development.

Usage:
    python scripts/seed_data.py

Creates:
  - 3 users in and around Buenos Aires, each with an active location
  - a small card catalog (two printings of one card, plus three others)
  - collections and wishlists that overlap both ways between the first two
    users and one way with the third

Idempotent: checks for existing emails and scryfall ids before inserting.
Run ``scripts/run_matching.py <user_id>`` afterwards to produce matches.
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from app.database import async_session
from app.models.card import Card
from app.models.collection import CollectionItem, Condition, PriceMode
from app.models.user import Location, Preferences, TradeMode, User
from app.models.wishlist import EditionPreference, FoilPreference, WishlistItem

# ---------------------------------------------------------------------------
# Seed definitions
# ---------------------------------------------------------------------------

USERS = [
    # email, display name, (lat, lon), radius km, trade mode
    ("ana@example.com", "Ana", (-34.6037, -58.3816), 25.0, TradeMode.BOTH),
    ("bruno@example.com", "Bruno", (-34.5875, -58.4200), 10.0, TradeMode.BOTH),
    ("carla@example.com", "Carla", (-34.6500, -58.5000), 30.0, TradeMode.BUY),
]

CARDS = [
    # scryfall id, oracle id, name, set, usd, usd foil
    ("sf-bolt-m11", "or-bolt", "Lightning Bolt", "M11", "2.00", "12.00"),
    ("sf-bolt-2xm", "or-bolt", "Lightning Bolt", "2XM", "1.50", "6.00"),
    ("sf-thoughtseize", "or-thoughtseize", "Thoughtseize", "THS", "15.00", "40.00"),
    ("sf-counterspell", "or-counterspell", "Counterspell", "MH2", "1.00", None),
    ("sf-ragavan", "or-ragavan", "Ragavan, Nimble Pilferer", "MH2", "55.00", "90.00"),
]

# user index -> [(scryfall id, quantity, condition, foil, price mode, pct, fixed)]
COLLECTIONS = {
    0: [
        ("sf-thoughtseize", 2, Condition.NM, False, PriceMode.PERCENTAGE, "90", None),
        ("sf-counterspell", 4, Condition.LP, False, PriceMode.FIXED, "100", "0.80"),
    ],
    1: [
        ("sf-bolt-m11", 1, Condition.LP, False, PriceMode.PERCENTAGE, "100", None),
        ("sf-bolt-2xm", 3, Condition.MP, True, PriceMode.PERCENTAGE, "80", None),
    ],
    2: [],
}

# user index -> [(scryfall id, quantity, max price, min condition, foil pref, editions)]
WISHLISTS = {
    0: [
        ("sf-bolt-m11", 2, "5.00", Condition.LP, FoilPreference.ANY, None),
    ],
    1: [
        ("sf-thoughtseize", 1, "20.00", Condition.LP, FoilPreference.NON_FOIL, None),
    ],
    2: [
        ("sf-counterspell", 2, None, Condition.MP, FoilPreference.ANY, ["sf-counterspell"]),
    ],
}


async def seed():
    async with async_session() as session:
        async with session.begin():
            cards: dict[str, Card] = {}
            for scryfall_id, oracle_id, name, set_code, usd, usd_foil in CARDS:
                result = await session.execute(select(Card).where(Card.scryfall_id == scryfall_id))
                card = result.scalar_one_or_none()
                if card is None:
                    card = Card(
                        scryfall_id=scryfall_id,
                        oracle_id=oracle_id,
                        name=name,
                        set_code=set_code,
                        prices_usd=Decimal(usd),
                        prices_usd_foil=Decimal(usd_foil) if usd_foil else None,
                    )
                    session.add(card)
                cards[scryfall_id] = card
            await session.flush()

            for index, (email, name, (lat, lon), radius, mode) in enumerate(USERS):
                result = await session.execute(select(User).where(User.email == email))
                if result.scalar_one_or_none() is not None:
                    print(f"  {email} already exists, skipping")
                    continue

                user = User(email=email, display_name=name)
                session.add(user)
                await session.flush()
                session.add(Location(
                    user_id=user.id, name="Home", latitude=lat, longitude=lon, radius_km=radius,
                ))
                session.add(Preferences(user_id=user.id, trade_mode=mode))

                for sf_id, qty, condition, foil, mode_, pct, fixed in COLLECTIONS[index]:
                    session.add(CollectionItem(
                        user_id=user.id,
                        card_id=cards[sf_id].id,
                        quantity=qty,
                        condition=condition,
                        foil=foil,
                        price_mode=mode_,
                        price_percentage=Decimal(pct),
                        price_fixed=Decimal(fixed) if fixed else None,
                    ))

                for sf_id, qty, max_price, min_condition, foil_pref, editions in WISHLISTS[index]:
                    session.add(WishlistItem(
                        user_id=user.id,
                        card_id=cards[sf_id].id,
                        quantity=qty,
                        max_price=Decimal(max_price) if max_price else None,
                        min_condition=min_condition,
                        foil_preference=foil_pref,
                        edition_preference=(
                            EditionPreference.SPECIFIC if editions else EditionPreference.ANY
                        ),
                        specific_editions=editions or [],
                    ))
                print(f"  created {name} <{email}> ({user.id})")

    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
