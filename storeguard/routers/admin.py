"""
Admin Router
Staff management endpoints. Every query is narrowed by the caller's scope.

Endpoints:
- POST /api/admin/users/reset-password - set another user's password
- GET  /api/admin/users                - list users visible to the caller
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.core.database import get_db
from storeguard.core.errors import ErrorResponse
from storeguard.core.rate_limit import limit_read, limit_write
from storeguard.core.scope import UserScope
from storeguard.core.security import get_current_user_id, require_permission
from storeguard.services.audit import RequestContext
from storeguard.services.directory import UserRepository
from storeguard.services.password_reset import (
    PasswordResetService,
    get_password_reset_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


# =============================================================================
# Schemas
# =============================================================================

class AdminResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    send_email: bool = Field(default=False, alias="sendEmail")


class AdminResetPasswordResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    user_id: str = Field(serialization_alias="userId")
    email: Optional[str] = None


class UserSummary(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    store_id: Optional[str] = None
    organization_id: Optional[str] = None
    is_store_owner: bool = False
    status: str


class UserListResponse(BaseModel):
    users: list[UserSummary]
    total: int
    limit: int
    offset: int


# =============================================================================
# Endpoints
# =============================================================================

@router.post(
    "/users/reset-password",
    response_model=AdminResetPasswordResponse,
    response_model_by_alias=True,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
@limit_write
async def admin_reset_password(
    request: Request,
    body: AdminResetPasswordRequest,
    actor_id: str = Depends(get_current_user_id),
    service: PasswordResetService = Depends(get_password_reset_service),
):
    target = await service.admin_reset(
        actor_id=actor_id,
        target_user_id=body.user_id,
        new_password=body.new_password,
        send_email=body.send_email,
        context=RequestContext.from_request(request),
    )
    return AdminResetPasswordResponse(
        message="Password reset successfully",
        user_id=target.id,
        email=target.email,
    )


@router.get("/users", response_model=UserListResponse)
@limit_read
async def list_users(
    request: Request,
    role: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    scope: UserScope = Depends(require_permission("users", "view")),
    db: AsyncSession = Depends(get_db),
):
    users, total = await UserRepository(db).list_in_scope(
        scope.scope_filter,
        role=role,
        search=search,
        limit=limit,
        offset=offset,
    )
    return UserListResponse(
        users=[
            UserSummary(
                id=u.id,
                email=u.email,
                name=u.name,
                role=u.role,
                store_id=u.store_id,
                organization_id=u.organization_id,
                is_store_owner=bool(u.is_store_owner),
                status=u.status,
            )
            for u in users
        ],
        total=total,
        limit=limit,
        offset=offset,
    )
