"""Bearer-token dependencies for FastAPI routes.

Session tokens are verified locally (signature + expiry) on every request;
no server-side session lookup is needed.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.deps import get_services
from errors import InvalidToken
from models.auth import TokenClaims
from services.container import Services

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    services: Services = Depends(get_services),
) -> TokenClaims:
    """Resolve the caller from ``Authorization: Bearer <token>``."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return services.auth.verify_token(credentials.credentials)
    except InvalidToken as exc:
        logger.info("Rejected session token: %s", exc)
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def require_admin(user: TokenClaims = Depends(get_current_user)) -> TokenClaims:
    """Like :func:`get_current_user` but rejects non-admin callers with 403."""
    if not user.is_admin:
        logger.warning("Admin route denied for %s", user.email)
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
