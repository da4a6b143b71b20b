"""
Security utilities for authentication.
Handles JWT token creation and validation.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from .config import settings
from .exceptions import InvalidTokenError

logger = logging.getLogger(__name__)


def create_access_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None,
    secret: Optional[str] = None,
) -> str:
    """
    Create a signed JWT access token for a user.

    Args:
        user_id: The ID of the user the token is issued to
        expires_delta: Optional custom expiration time
        secret: Optional signing key (defaults to the configured JWT secret)

    Returns:
        str: The encoded JWT token
    """
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    claims = {
        "user_id": user_id,
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(
        claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm
    )


def _coerce_user_id(value: object) -> int:
    # Claims may come back as int, float (JSON numbers) or numeric strings
    if isinstance(value, bool):
        raise InvalidTokenError("invalid user_id type")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as exc:
            raise InvalidTokenError("invalid user_id format") from exc
    raise InvalidTokenError("invalid user_id type")


def validate_token(token: str, secret: Optional[str] = None) -> int:
    """
    Verify a JWT token and return the user ID it was issued to.

    Args:
        token: The JWT token to verify
        secret: Optional verification key (defaults to the configured JWT secret)

    Returns:
        int: The user ID carried in the ``user_id`` claim

    Raises:
        InvalidTokenError: If the signature, expiry or claims are invalid
    """
    try:
        payload = jwt.decode(
            token,
            secret or settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require_exp": True},
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {str(e)}")
        raise InvalidTokenError(str(e)) from e

    if "user_id" not in payload:
        raise InvalidTokenError("user_id claim is missing")
    return _coerce_user_id(payload["user_id"])
