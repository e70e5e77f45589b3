"""Bearer JWT verification for the caller-identity oracle."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from uuid import UUID

from jose import jwt, JWTError

from assetflow.settings import settings


def verify_identity_token(token: str) -> Dict[str, Any]:
    """Verify a signed session token and return its claims.

    Verification checks:
    - signature matches the shared secret
    - token is not expired (exp claim)
    - audience matches, when one is configured

    Raises:
        JWTError: If the token is invalid or no secret is configured
    """
    if not settings.auth_jwt_secret:
        raise JWTError("Identity verification is not configured")

    options = {
        "verify_signature": True,
        "verify_exp": True,
        "verify_aud": bool(settings.auth_jwt_audience),
    }
    try:
        return jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except JWTError as e:
        raise JWTError(f"JWT verification failed: {str(e)}")


def get_user_id_from_token(token: str) -> UUID:
    """Return the user id carried in the 'sub' claim of a verified token."""
    claims = verify_identity_token(token)
    try:
        return UUID(str(claims.get("sub") or ""))
    except ValueError:
        raise JWTError("Token subject is not a user id")


def issue_identity_token(user_id: UUID | str, *, expires_in_seconds: int = 3600) -> str:
    """Sign a token for user_id; used by the CLI and tests."""
    if not settings.auth_jwt_secret:
        raise JWTError("Identity verification is not configured")
    claims = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds),
    }
    if settings.auth_jwt_audience:
        claims["aud"] = settings.auth_jwt_audience
    return jwt.encode(claims, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)
