"""
Core security module — verification of access tokens.

Tokens are issued by the hosted auth platform and signed with a shared
secret; this service only verifies them. ``sub`` carries the user id.
"""

import logging
import uuid

import jwt
from fastapi import HTTPException, status

from app.config import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> dict:
    """
    Decode and return the JWT payload.

    Raises HTTP 401 on expiry or any other invalid-token error.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )


def user_id_from_token(token: str) -> uuid.UUID:
    """Decode *token* and return its subject as a UUID."""
    payload = decode_token(token)
    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        logger.warning("Token subject is not a user id: %r", payload.get("sub"))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
        )
