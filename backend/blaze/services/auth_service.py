"""
Blaze Backend — Authentication
===============================

What:  Resolves an inbound request to an identity.
How:   Two kinds of caller reach this backend:
       - Users (PWA, service worker): `Authorization: Bearer <JWT>`,
         HS256-signed with JWT_SECRET, carrying the username.
       - Alarm controllers: `X-Controller-Key: <shared secret>` when
         CONTROLLER_API_KEY is configured.

Error Mapping:
    no credential at all             → UnprocessableError (422)
    bad signature / expired / junk   → UnauthorizedError (401)
    token for a user that is gone    → UnauthorizedError (401)
    non-admin on an admin route      → UnauthorizedError (401)
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from blaze.config import settings
from blaze.exceptions import UnauthorizedError, UnprocessableError
from blaze.models.user import User
from blaze.services.store import AlarmStore, get_alarm_store

logger = logging.getLogger(__name__)

# auto_error=False: we raise our own errors instead of FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    username: str
    is_admin: bool = False


def create_access_token(
    username: str,
    is_admin: bool = False,
    expires_minutes: Optional[int] = None,
) -> str:
    """Issue a signed token for `username`, valid for JWT_EXPIRE_MINUTES by default."""
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.jwt_expire_minutes
    claims = {
        "sub": username,
        "username": username,
        "admin": is_admin,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Identity:
    """
    Verify signature and expiry.

    Raises:
        UnauthorizedError: the token is invalid, expired, or has no username
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError(message="Token has expired")
    except jwt.InvalidTokenError as e:
        logger.info("Rejected token: %s", str(e))
        raise UnauthorizedError(message="Invalid token")

    username = claims.get("username") or claims.get("sub")
    if not username:
        raise UnauthorizedError(message="Invalid token")
    return Identity(username=username, is_admin=bool(claims.get("admin", False)))


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """FastAPI dependency: the identity carried by the bearer token."""
    if credentials is None or not credentials.credentials:
        raise UnprocessableError()
    return decode_access_token(credentials.credentials)


async def get_current_user(
    identity: Identity = Depends(get_current_identity),
    store: AlarmStore = Depends(get_alarm_store),
) -> User:
    """FastAPI dependency: the database user behind the bearer token."""
    user = await store.get_user_by_username(identity.username)
    if user is None:
        raise UnauthorizedError(
            message="Authentication failed",
            context={"username": identity.username},
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """The admin flag is read from the database, not trusted from the token."""
    if not user.admin:
        raise UnauthorizedError(message="Administrator access required")
    return user


async def require_controller(
    x_controller_key: Optional[str] = Header(default=None, alias="X-Controller-Key"),
) -> None:
    """
    FastAPI dependency guarding controller routes.

    A no-op while CONTROLLER_API_KEY is empty (development).
    """
    expected = settings.controller_api_key
    if not expected:
        return
    if x_controller_key is None:
        raise UnprocessableError(message="Missing controller key")
    if not hmac.compare_digest(x_controller_key.encode(), expected.encode()):
        raise UnauthorizedError(message="Invalid controller key")
