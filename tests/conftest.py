"""
Shared test fixtures for Natural Order.

Provides the async test client, database session mocks, model factories
for users, matches and match cards, and JWT headers signed the way the
auth platform signs them.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import settings
from app.database import get_db
from app.models.collection import Condition
from app.models.match import CardDirection, Match, MatchCard, MatchStatus, MatchType
from app.models.user import User

# Fixed ids so that USER_A sorts before USER_B, as Match requires
USER_A_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
USER_B_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")
OUTSIDER_ID = uuid.UUID("33333333-3333-4333-8333-333333333333")


# --- Model factories ---


def _make_user(**overrides) -> User:
    defaults = {
        "id": USER_A_ID,
        "email": "ana@example.com",
        "display_name": "Ana",
    }
    defaults.update(overrides)
    return User(**defaults)


def _make_match(**overrides) -> Match:
    defaults = {
        "user_a_id": USER_A_ID,
        "user_b_id": USER_B_ID,
        "match_type": MatchType.TWO_WAY,
        "status": MatchStatus.ACTIVE,
        "distance_km": 5.0,
    }
    defaults.update(overrides)
    return Match(**defaults)


def _make_card(match: Match | None = None, **overrides) -> MatchCard:
    defaults = {
        "match_id": match.id if match is not None else uuid.uuid4(),
        "direction": CardDirection.A_WANTS,
        "wishlist_id": uuid.uuid4(),
        "collection_id": uuid.uuid4(),
        "card_id": uuid.uuid4(),
        "card_name": "Lightning Bolt",
        "card_set_code": "M11",
        "asking_price": Decimal("2.00"),
        "max_price": Decimal("4.00"),
        "collection_condition": Condition.NM,
        "wishlist_min_condition": Condition.LP,
        "quantity_available": 1,
        "quantity_wanted": 1,
    }
    defaults.update(overrides)
    return MatchCard(**defaults)


@pytest.fixture
def make_user():
    """Factory fixture for creating User instances."""
    return _make_user


@pytest.fixture
def make_match():
    """Factory fixture for creating Match instances between USER_A and USER_B."""
    return _make_match


@pytest.fixture
def make_card():
    """Factory fixture for creating MatchCard instances."""
    return _make_card


@pytest.fixture
def user_a_id():
    return USER_A_ID


@pytest.fixture
def user_b_id():
    return USER_B_ID


@pytest.fixture
def outsider_id():
    return OUTSIDER_ID


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# --- Auth ---


def make_token(user_id: uuid.UUID, **claims) -> str:
    """Sign a token the way the auth platform does."""
    payload = {
        "sub": str(user_id),
        "aud": settings.JWT_AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    payload.update(claims)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def token_for():
    """Factory fixture: signed bearer token for any user id."""
    return make_token


@pytest.fixture
def auth_headers():
    """JWT Authorization header for USER_A."""
    return {"Authorization": f"Bearer {make_token(USER_A_ID)}"}


# --- Mock Database Session ---


@pytest.fixture
def mock_db():
    """AsyncMock database session."""
    db = AsyncMock()

    # Mock the result object returned by db.execute()
    mock_result = MagicMock()
    mock_result.scalar_one_or_none = MagicMock(return_value=None)
    db.execute = AsyncMock(return_value=mock_result)
    db.get = AsyncMock(return_value=None)
    db.scalar = AsyncMock(return_value=0)
    db.flush = AsyncMock()
    db.add = MagicMock()
    db.delete = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()

    return db


# --- Dependency Override Helpers ---


@pytest_asyncio.fixture
async def client(mock_db):
    """Async HTTP test client with get_db overridden to use mock_db."""
    from app.main import app

    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
