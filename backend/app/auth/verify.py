"""Bearer-token verification against the external auth provider's shared secret.

Provides ``current_user_id`` for host-facing routes and ``require_shared_secret``
for the operator/cron endpoints.
"""
import hmac
import logging
from typing import Optional

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.services.errors import unauthorized

logger = logging.getLogger(__name__)

_security = HTTPBearer(auto_error=False)


def verify_jwt(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.AUTH_JWT_AUDIENCE,
            options={"verify_exp": True, "require": ["sub"]},
        )
    except jwt.PyJWTError as e:
        logger.info("Rejected bearer token: %s", e)
        raise unauthorized("Invalid authentication token") from e


def current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_security),
) -> str:
    if credentials is None or not credentials.credentials:
        raise unauthorized()
    if not settings.AUTH_JWT_SECRET:
        logger.error("AUTH_JWT_SECRET is not configured; refusing bearer token")
        raise unauthorized()
    return str(verify_jwt(credentials.credentials)["sub"])


def require_shared_secret(expected: str, provided: Optional[str]) -> None:
    """Raise 401 when a secret is configured and the header does not match it."""
    if not expected:
        return
    if provided is None or not hmac.compare_digest(provided, expected):
        raise unauthorized("unauthorized")


def require_enqueue_secret(x_enqueue_secret: Optional[str] = Header(None)) -> None:
    require_shared_secret(settings.ENQUEUE_SECRET, x_enqueue_secret)


def require_admin_secret(x_admin_secret: Optional[str] = Header(None)) -> None:
    require_shared_secret(settings.ADMIN_SECRET, x_admin_secret)


def require_cron_secret(x_cron_secret: Optional[str] = Header(None)) -> None:
    require_shared_secret(settings.CRON_SECRET, x_cron_secret)
