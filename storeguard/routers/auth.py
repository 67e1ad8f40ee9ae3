"""
Authentication Router
CSRF token issuance, password reset, and session login/logout.

Endpoints:
- GET  /api/auth/csrf-token      - issue (or re-issue) the CSRF pair
- POST /api/auth/forgot-password - request a reset link
- GET  /api/auth/reset-password  - probe a reset token
- POST /api/auth/reset-password  - redeem a reset token
- POST /api/auth/login           - email/password login, sets session cookie
- POST /api/auth/logout          - drop the session
- GET  /api/auth/session         - current profile and scope
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, ConfigDict, Field

from storeguard.core.config import Settings, get_settings
from storeguard.core.csrf import CSRFProtection, get_csrf_protection
from storeguard.core.errors import NotFoundError
from storeguard.core.permissions import PermissionEvaluator
from storeguard.core.rate_limit import limit_auth, limit_read, limit_write
from storeguard.core.security import (
    get_current_user_id,
    get_permission_evaluator,
    get_session_id,
    security_bearer,
)
from storeguard.core.sessions import SessionBackend, get_session_backend
from storeguard.core.tokens import generate_session_id
from storeguard.services.audit import RequestContext
from storeguard.services.login import LoginService, get_login_service
from storeguard.services.password_reset import (
    PasswordResetService,
    get_password_reset_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# =============================================================================
# Schemas
# =============================================================================

# Fields are optional so a missing value yields the same 400 message the
# endpoint would return for an empty one.

class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = None
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class ResetPasswordResponse(BaseModel):
    message: str
    email: str


class TokenValidationResponse(BaseModel):
    valid: bool = True
    email: str
    name: Optional[str] = None


# =============================================================================
# CSRF
# =============================================================================

@router.get("/csrf-token")
async def csrf_token(
    request: Request,
    csrf: CSRFProtection = Depends(get_csrf_protection),
):
    """
    Returns the caller's CSRF token, minting one if the cookie is absent.
    The token is set as a cookie and echoed in the X-CSRF-Token header.
    """
    token = csrf.get_token(request) or csrf.generate_token()
    response = JSONResponse({"token": token, "success": True})
    return csrf.issue(response, token)


# =============================================================================
# Password Reset
# =============================================================================

@router.post("/forgot-password", response_model=MessageResponse)
@limit_auth
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: PasswordResetService = Depends(get_password_reset_service),
):
    message = await service.request_reset(body.email, RequestContext.from_request(request))
    return MessageResponse(message=message)


@router.get("/reset-password", response_model=TokenValidationResponse)
@limit_read
async def validate_reset_token(
    request: Request,
    token: Optional[str] = None,
    service: PasswordResetService = Depends(get_password_reset_service),
):
    info = await service.validate_token(token)
    return TokenValidationResponse(email=info.email, name=info.name)


@router.post("/reset-password", response_model=ResetPasswordResponse)
@limit_write
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    service: PasswordResetService = Depends(get_password_reset_service),
):
    info = await service.complete_reset(
        body.token,
        body.new_password,
        RequestContext.from_request(request),
    )
    return ResetPasswordResponse(message="Password reset successfully", email=info.email)


# =============================================================================
# Session
# =============================================================================

@router.post("/login")
@limit_auth
async def login(
    request: Request,
    body: LoginRequest,
    service: LoginService = Depends(get_login_service),
    sessions: SessionBackend = Depends(get_session_backend),
    evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
    settings: Settings = Depends(get_settings),
):
    user_id = await service.authenticate(body.email, body.password, RequestContext.from_request(request))

    session_id = generate_session_id()
    await sessions.set(session_id, {"user_id": user_id}, ttl_seconds=settings.session_ttl_seconds)

    scope = await evaluator.get_user_scope(user_id)
    response = JSONResponse({"success": True, "user_id": user_id, "scope": scope.to_dict()})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_ttl_seconds,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )
    return response


@router.post("/logout")
async def logout(
    request: Request,
    sessions: SessionBackend = Depends(get_session_backend),
    settings: Settings = Depends(get_settings),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_bearer),
):
    session_id = get_session_id(request, credentials, settings)
    if session_id:
        await sessions.delete(session_id)

    response = JSONResponse({"success": True})
    response.delete_cookie(settings.session_cookie_name, path="/")
    return response


@router.get("/session")
async def current_session(
    user_id: str = Depends(get_current_user_id),
    evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
):
    profile = await evaluator.profiles.get_profile(user_id)
    if profile is None:
        raise NotFoundError("User profile")
    scope = await evaluator.get_user_scope(user_id)
    return {
        "user": {
            "id": profile.id,
            "email": profile.email,
            "name": profile.name,
            "role": profile.role.value,
            "store_id": profile.store_id,
            "organization_id": profile.organization_id,
            "is_store_owner": profile.is_store_owner,
        },
        "scope": scope.to_dict(),
    }
