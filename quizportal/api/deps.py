"""FastAPI dependencies shared across routes."""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from quizportal.core.errors import MaintenanceMode
from quizportal.core.security import decode_access_token
from quizportal.db.session import get_db
from quizportal.services import rate_limiter
from quizportal.services.maintenance import MaintenanceModeCache

logger = logging.getLogger(__name__)

# Tokens are issued by the identity provider; tokenUrl only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as supplied by the identity provider."""

    user_id: uuid.UUID
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    """Decode JWT and return the authenticated principal, or 401."""
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload"
        )
    return Principal(user_id=user_id, role=str(payload.get("role", "student")))


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Raise 403 unless the caller is an admin."""
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return principal


def get_maintenance_cache(request: Request) -> MaintenanceModeCache:
    return request.app.state.maintenance_cache


def get_student(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: MaintenanceModeCache = Depends(get_maintenance_cache),
) -> Principal:
    """Authenticated caller for attempt routes; blocked during maintenance unless admin."""
    if not principal.is_admin and cache.is_enabled(db):
        raise MaintenanceMode()
    return principal


def require_attempt_rate_limit(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> None:
    """Raise 429 when the caller exceeds the per-attempt mutation limit."""
    route = request.scope.get("route")
    endpoint = getattr(route, "name", None) or request.url.path
    key = rate_limiter.bucket_key(endpoint, principal.user_id)
    if not rate_limiter.check(key):
        logger.info("Rate-limited: %s", key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please slow down.",
        )
