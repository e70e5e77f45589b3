"""FastAPI dependency resolving the caller's identity."""

from typing import Optional
from uuid import UUID

from fastapi import Header
from jose import JWTError

from assetflow.auth.jwt import get_user_id_from_token
from assetflow.errors import UnauthenticatedError


async def resolve_identity(
    authorization: Optional[str] = Header(None),
) -> UUID:
    """Return the authenticated user id for the request.

    Every core operation receives this id explicitly; nothing downstream
    reads session state.

    Raises:
        UnauthenticatedError: Missing, malformed, invalid or expired token
    """
    if not authorization:
        raise UnauthenticatedError("Authorization header required")

    if not authorization.startswith("Bearer "):
        raise UnauthenticatedError("Invalid authorization header format")

    token = authorization[7:]  # Remove "Bearer " prefix

    try:
        return get_user_id_from_token(token)
    except JWTError:
        raise UnauthenticatedError("Invalid or expired token")
