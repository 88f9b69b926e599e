"""
Reusable FastAPI dependencies for authentication.

Dependencies:
  - get_current_user  — extracts the user from the bearer JWT (401 if invalid)
"""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import user_id_from_token
from app.database import get_db
from app.models.user import User


async def get_current_user(
    authorization: str = Header(..., description="Bearer <access_token>"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Parse the ``Authorization: Bearer <token>`` header, verify the JWT,
    look up the User in the database, and return it.

    Raises 401 if the token is missing, malformed, expired, or the user
    is not found.
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )

    user_id = user_id_from_token(authorization[len("Bearer "):])

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


# Convenience alias
require_auth = get_current_user
