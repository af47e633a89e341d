"""FastAPI authentication dependencies."""

from __future__ import annotations

import hmac
from dataclasses import dataclass

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from coinbeat.auth.jwt import verify_token
from coinbeat.config import get_settings
from coinbeat.errors import AuthError, ForbiddenError

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str | None = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> CurrentUser:
    """
    Verify the bearer JWT and return the acting user.

    Raises AuthError (401) on a missing or invalid token.
    """
    if credentials is None:
        raise AuthError("Authentication required")
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise AuthError(str(e)) from e
    return CurrentUser(id=str(payload["sub"]), email=payload.get("email"))


async def get_admin_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Same as get_current_user but additionally requires an allow-listed admin email."""
    admins = {e.lower() for e in get_settings().admin_emails}
    if not user.email or user.email.lower() not in admins:
        raise ForbiddenError("Admin access required")
    return user


async def require_service_key(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Gate for the scheduler-triggered monitor endpoint."""
    expected = get_settings().notification_service_key
    if credentials is None or not hmac.compare_digest(credentials.credentials, expected):
        raise AuthError("Unauthorized")
