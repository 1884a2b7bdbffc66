"""
Security utilities for authentication.
Handles JWT access tokens, password hashing and refresh-token secrets.
"""
import hashlib
import secrets
from datetime import timedelta
from typing import Optional, Dict, Any

import jwt
from passlib.context import CryptContext

from parley.config import settings
from parley.core.errors import AuthenticationError
from parley.utils.datetime_utils import utc_now

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def create_access_token(
    user_id: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed JWT access token for a user.

    Args:
        user_id: Subject of the token
        expires_delta: Optional lifetime override
        extra_claims: Additional claims merged into the payload

    Returns:
        Encoded JWT token

    Example:
        ```python
        token = create_access_token(user.id)
        ```
    """
    now = utc_now()
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.access_token_expire_seconds)

    to_encode: Dict[str, Any] = dict(extra_claims or {})
    to_encode.update({"sub": user_id, "iat": now, "exp": now + expires_delta})

    return jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm
    )


def decode_access_token(token: str) -> str:
    """
    Verify an access token and return its subject (the user id).

    Raises:
        AuthenticationError: If token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise AuthenticationError("Invalid token payload")
    return user_id


def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract the token from an 'Authorization: Bearer <token>' header.

    Raises:
        AuthenticationError: If header is missing or malformed
    """
    if not authorization:
        raise AuthenticationError("Missing authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format")

    return parts[1]


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Check a password against its bcrypt hash."""
    return pwd_context.verify(plain_password, password_hash)


def generate_refresh_token() -> str:
    """Random url-safe refresh token handed to the client once."""
    return secrets.token_urlsafe(64)


def hash_refresh_token(token: str) -> str:
    """SHA-256 hex digest stored in place of the refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
