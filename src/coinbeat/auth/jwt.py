"""
Identity-provider JWT verification.

Sign-in happens at the hosted identity provider; this service only verifies
the access tokens it issues (shared-secret signature, ``sub`` = user id,
optional ``email`` claim). ``create_access_token`` mints tokens with the same
shape for tooling and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from coinbeat.config import get_settings


def create_access_token(
    user_id: str,
    email: str | None = None,
    expires_minutes: int = 60,
) -> str:
    """
    Create an access token shaped like the identity provider's.

    Args:
        user_id: The provider's user id (token subject).
        email: The user's email, used for the admin allow-list.
        expires_minutes: Token lifetime.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": user_id,
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)

    return payload
