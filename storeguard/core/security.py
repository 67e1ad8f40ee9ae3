"""
StoreGuard - Security Module
Request authentication and authorization dependencies.

A session id (cookie or `Authorization: Bearer <session_id>`) resolves to
a user id through the session backend. Role and store scope are never
taken from the session: they are read from the user directory on every
check so a role change applies immediately.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.core.config import Settings, get_settings
from storeguard.core.database import get_db
from storeguard.core.errors import ForbiddenError, UnauthorizedError
from storeguard.core.permissions import PermissionEvaluator
from storeguard.core.scope import UserScope
from storeguard.core.sessions import SessionBackend, get_session_backend
from storeguard.services.directory import (
    SQLPolicyStore,
    SQLProfileStore,
    StoreOwnershipOracle,
)

logger = logging.getLogger("storeguard.security")


# =============================================================================
# Identity
# =============================================================================

security_bearer = HTTPBearer(auto_error=False)


def get_session_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    settings: Settings,
) -> Optional[str]:
    """
    Authentication sources (priority order):
    1. session cookie
    2. Authorization: Bearer <session_id>
    """
    session_id = request.cookies.get(settings.session_cookie_name)
    if session_id:
        return session_id
    if credentials:
        return credentials.credentials
    return None


async def get_optional_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
    settings: Settings = Depends(get_settings),
    sessions: SessionBackend = Depends(get_session_backend),
) -> Optional[str]:
    session_id = get_session_id(request, credentials, settings)
    if not session_id:
        return None

    session = await sessions.get(session_id)
    if not session:
        return None
    return session.get("user_id")


async def get_current_user_id(
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> str:
    """Require an authenticated user. Raises UnauthorizedError (401)."""
    if not user_id:
        raise UnauthorizedError()
    return user_id


# =============================================================================
# Authorization
# =============================================================================

def get_permission_evaluator(db: AsyncSession = Depends(get_db)) -> PermissionEvaluator:
    return PermissionEvaluator(
        profiles=SQLProfileStore(db),
        policies=SQLPolicyStore(db),
        oracle=StoreOwnershipOracle(db),
    )


def require_permission(resource: str, action: str):
    """
    Dependency factory: require `resource.action`.

    Usage:
        @router.get("/users")
        async def list_users(scope: UserScope = Depends(require_permission("users", "view"))):
            ...
    """
    async def check_permission(
        user_id: str = Depends(get_current_user_id),
        evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
    ) -> UserScope:
        if not await evaluator.check_permission(user_id, resource, action):
            logger.warning("Permission %s.%s denied for %s", resource, action, user_id)
            raise ForbiddenError("Insufficient permissions")
        return await evaluator.get_user_scope(user_id)

    return check_permission
