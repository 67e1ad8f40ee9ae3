"""
Password Reset Service

Token lifecycle for self-service resets plus the admin-initiated reset.

    NONE --request_reset--> ISSUED --complete_reset--> CONSUMED
                              |
                              +--(now > expires)--> EXPIRED

A user holds at most one active token; a new request overwrites it.
Primary writes (token, credential) are committed before any side effect
runs. Side effects (audit, email, last_password_change) are best effort:
their failures are logged and never change the response.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.core.config import Settings, get_settings
from storeguard.core.database import get_db
from storeguard.core.errors import (
    ExpiredTokenError,
    ForbiddenError,
    InternalError,
    InvalidRequestError,
    InvalidTokenError,
    NotFoundError,
)
from storeguard.core.password_policy import PasswordPolicy, validate_password
from storeguard.core.permissions import PermissionEvaluator, ensure_can_manage_user
from storeguard.core.security import get_permission_evaluator
from storeguard.core.tokens import generate_token
from storeguard.core.user_context import UserProfile
from storeguard.models.models import User
from storeguard.services.audit import AuditAction, AuditEntry, AuditLogger, RequestContext
from storeguard.services.credentials import CredentialStore
from storeguard.services.directory import UserRepository
from storeguard.services.email import EmailService, get_email_service

logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = "If an account with this email exists, a password reset link has been sent."


@dataclass(frozen=True)
class ResetTokenInfo:
    user_id: str
    email: str
    name: Optional[str] = None


class PasswordResetService:
    def __init__(
        self,
        db: AsyncSession,
        evaluator: PermissionEvaluator,
        email_service: EmailService,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.evaluator = evaluator
        self.email_service = email_service
        self.settings = settings or get_settings()
        self.now = now
        self.users = UserRepository(db)
        self.credentials = CredentialStore(db)
        self.audit = AuditLogger(db)
        self.policy = PasswordPolicy.from_settings(self.settings)

    # =========================================================================
    # Self-service
    # =========================================================================

    async def request_reset(self, email: Optional[str], context: RequestContext) -> str:
        """
        Issue a reset token and mail the link. The returned message is the
        same whether or not the account exists.
        """
        if not email or not email.strip():
            raise InvalidRequestError("Email is required")

        user = await self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown account")
            await self.audit.log(AuditEntry.for_request(
                AuditAction.PASSWORD_RESET_REQUESTED,
                context,
                new_values={"reset_requested": True, "account_found": False},
            ))
            return GENERIC_RESET_MESSAGE

        # Rollback expires ORM state; keep plain copies for later steps
        user_id, user_email, user_name = user.id, user.email, user.name
        token = generate_token(self.settings.reset_token_bytes)
        expires_at = self.now() + timedelta(minutes=self.settings.reset_token_ttl_minutes)

        try:
            await self.users.set_reset_token(user, token, expires_at)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to store reset token for %s: %s", user_id, e)
            raise InternalError("Failed to process password reset request")

        await self.audit.log(AuditEntry.for_request(
            AuditAction.PASSWORD_RESET_REQUESTED,
            context,
            user_id=user_id,
            record_id=user_id,
            new_values={"reset_requested": True},
        ))

        reset_url = f"{self.settings.app_url.rstrip('/')}/auth/reset-password?token={token}"
        result = await self.email_service.send_password_reset_email(
            to=user_email,
            reset_url=reset_url,
            recipient_name=user_name,
            expires_in=self._ttl_label(),
        )
        if not result.success:
            logger.error("Password reset email to user %s failed: %s", user_id, result.error)

        return GENERIC_RESET_MESSAGE

    async def validate_token(self, token: Optional[str]) -> ResetTokenInfo:
        """Resolve a token to its user without consuming it."""
        user = await self._resolve_token(token)
        return ResetTokenInfo(user_id=user.id, email=user.email, name=user.name)

    async def complete_reset(
        self,
        token: Optional[str],
        new_password: Optional[str],
        context: RequestContext,
    ) -> ResetTokenInfo:
        if not token:
            raise InvalidRequestError("Reset token is required")
        if not new_password:
            raise InvalidRequestError("New password is required")
        self._check_password(new_password)

        user = await self._resolve_token(token)
        info = ResetTokenInfo(user_id=user.id, email=user.email, name=user.name)

        # Credential and token clear commit together: a failed update
        # leaves the token usable, a successful one consumes it.
        try:
            await self.credentials.set_password(info.user_id, new_password)
            await self.users.clear_reset_token(user)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Password update failed for %s: %s", info.user_id, e)
            raise InternalError("Failed to update password")

        await self._stamp_password_change(info.user_id)

        await self.audit.log(AuditEntry.for_request(
            AuditAction.PASSWORD_RESET_COMPLETED,
            context,
            user_id=info.user_id,
            record_id=info.user_id,
            new_values={"password_reset": True},
        ))

        logger.info("Password reset completed for user %s", info.user_id)
        return info

    # =========================================================================
    # Admin
    # =========================================================================

    async def admin_reset(
        self,
        actor_id: str,
        target_user_id: Optional[str],
        new_password: Optional[str],
        send_email: bool,
        context: RequestContext,
    ) -> UserProfile:
        """
        Set another user's password directly.

        Raises ForbiddenError (not an admin, admin-on-admin, cross-store),
        NotFoundError (no such target), InvalidRequestError, InternalError.
        """
        if not await self.evaluator.check_admin_permissions(actor_id):
            raise ForbiddenError("Insufficient permissions")

        if not target_user_id:
            raise InvalidRequestError("User ID is required")
        if not new_password:
            raise InvalidRequestError("New password is required")
        self._check_password(new_password)

        actor = await self.evaluator.profiles.get_profile(actor_id)
        if actor is None:
            raise ForbiddenError("Insufficient permissions")

        target = await self.evaluator.profiles.get_profile(target_user_id)
        if target is None:
            raise NotFoundError("User")

        ensure_can_manage_user(actor, target, action="reset password for")

        try:
            await self.credentials.set_password(target.id, new_password)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Admin password update for %s failed: %s", target.id, e)
            raise InternalError("Failed to update password")

        await self._stamp_password_change(target.id)

        await self.audit.log(AuditEntry.for_request(
            AuditAction.PASSWORD_RESET_ADMIN,
            context,
            user_id=actor.id,
            record_id=target.id,
            new_values={"password_reset": True, "reset_by_admin": True},
        ))

        if send_email and target.email:
            result = await self.email_service.send_password_changed_email(
                to=target.email,
                recipient_name=target.name,
                changed_by=actor.name or actor.email,
            )
            if not result.success:
                logger.error("Password changed email to %s failed: %s", target.id, result.error)

        logger.info("Admin %s reset password for user %s", actor.id, target.id)
        return target

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _resolve_token(self, token: Optional[str]) -> User:
        if not token:
            raise InvalidRequestError("Reset token is required")

        user = await self.users.get_by_reset_token(token)
        if user is None:
            raise InvalidTokenError()

        expires_at = user.password_reset_expires
        if expires_at is None or self.now() > expires_at:
            raise ExpiredTokenError()
        return user

    def _check_password(self, password: str) -> None:
        result = validate_password(password, self.policy)
        if not result.is_valid:
            raise InvalidRequestError(
                result.errors[0],
                details=[{"msg": error} for error in result.errors],
            )

    async def _stamp_password_change(self, user_id: str) -> None:
        try:
            user = await self.users.get(user_id)
            if user is not None:
                await self.users.stamp_password_change(user, self.now())
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning("Could not record password change time for %s: %s", user_id, e)

    def _ttl_label(self) -> str:
        minutes = self.settings.reset_token_ttl_minutes
        if minutes % 60 == 0:
            hours = minutes // 60
            return "1 hour" if hours == 1 else f"{hours} hours"
        return f"{minutes} minutes"


def get_password_reset_service(
    db: AsyncSession = Depends(get_db),
    evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
    email_service: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
) -> PasswordResetService:
    """FastAPI dependency."""
    return PasswordResetService(db, evaluator, email_service, settings)
