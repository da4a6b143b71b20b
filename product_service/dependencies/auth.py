"""
Authentication dependencies for FastAPI endpoints.
Provides JWT verification for routes that mutate the catalog.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from product_service.core.exceptions import InvalidTokenError
from product_service.core.security import validate_token

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """
    Get the ID of the authenticated user.

    Args:
        credentials: HTTP Bearer credentials from request

    Returns:
        int: The user ID carried by the token

    Raises:
        HTTPException: If the header is missing or the token is invalid
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return validate_token(credentials.credentials)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
