"""
Dependency injection for FastAPI routes.
Provides reusable dependencies for authentication, database sessions, etc.
"""
from typing import Optional

from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.database import get_db
from parley.core.errors import AuthenticationError
from parley.core.security import decode_access_token, extract_token_from_header
from parley.models.user import User
from parley.repositories.user_repo import UserRepository


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user.

    Verifies the bearer access token locally and loads the user row. The
    row is detached from the session so a service rolling back a race does
    not expire it under the route.

    Raises:
        AuthenticationError: 401 if the token is missing or invalid, or the
            user no longer exists

    Example:
        ```python
        @router.get("/protected")
        async def protected_route(current_user: User = Depends(get_current_user)):
            return {"user": current_user.username}
        ```
    """
    token = extract_token_from_header(authorization)
    user_id = decode_access_token(token)

    user = await UserRepository(db).get(user_id)
    if user is None:
        raise AuthenticationError("User not found")
    db.expunge(user)
    return user


def get_pagination_params(
    cursor: Optional[str] = Query(None, description="Opaque cursor from a previous page"),
    limit: Optional[int] = Query(None, ge=1, description="Page size (clamped to the server maximum)"),
) -> dict:
    """
    Dependency for cursor-based pagination parameters.

    Limits are clamped by the services, so this only collects them.
    """
    return {"cursor": cursor, "limit": limit}
