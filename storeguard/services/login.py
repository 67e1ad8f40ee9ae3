"""
Login Service

Password login with failed-attempt lockout. After `login_max_attempts`
consecutive failures the account is locked for `login_lockout_minutes`;
the counter is forgotten once `login_attempts_reset_minutes` pass without
a failure, and cleared by a successful login.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.core.config import Settings, get_settings
from storeguard.core.database import get_db
from storeguard.core.errors import AccountLockedError, InvalidRequestError, UnauthorizedError
from storeguard.core.password_policy import LockoutPolicy, check_lockout, format_time_remaining
from storeguard.models.models import User
from storeguard.services.audit import AuditAction, AuditEntry, AuditLogger, RequestContext
from storeguard.services.credentials import CredentialStore
from storeguard.services.directory import UserRepository

logger = logging.getLogger(__name__)

INVALID_LOGIN_MESSAGE = "Invalid email or password"
LOCKED_MESSAGE = "Account is temporarily locked due to too many failed login attempts."
JUST_LOCKED_MESSAGE = "Account locked due to too many failed attempts."


class LoginService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.now = now
        self.users = UserRepository(db)
        self.credentials = CredentialStore(db)
        self.audit = AuditLogger(db)
        self.lockout = LockoutPolicy.from_settings(self.settings)

    async def authenticate(
        self,
        email: Optional[str],
        password: Optional[str],
        context: RequestContext,
    ) -> str:
        """
        Verify credentials and return the user id.

        Unknown email, inactive account and wrong password all raise the
        same UnauthorizedError. A locked account raises AccountLockedError.
        """
        if not email or not password:
            raise InvalidRequestError("Email and password are required")

        user = await self.users.get_by_email(email)
        if user is None or user.status != "active":
            raise UnauthorizedError(INVALID_LOGIN_MESSAGE)

        now = self.now()
        if user.locked_until is not None:
            if now < user.locked_until:
                logger.info("Login refused for locked account %s", user.id)
                raise AccountLockedError(
                    LOCKED_MESSAGE,
                    user.locked_until,
                    format_time_remaining(user.locked_until, now),
                )
            # Lock has run out: start counting afresh
            user.login_attempts = 0
            user.locked_until = None

        if not await self.credentials.verify(user.id, password):
            await self._record_failure(user, now, context)
            raise UnauthorizedError(INVALID_LOGIN_MESSAGE)

        user_id = user.id
        await self.users.stamp_login(user, now)
        await self.db.commit()
        logger.info("User %s logged in", user_id)
        return user_id

    async def _record_failure(self, user: User, now: datetime, context: RequestContext) -> None:
        user_id = user.id
        attempts = user.login_attempts or 0
        last_failure = user.last_failed_login_at
        if last_failure and now - last_failure >= timedelta(minutes=self.lockout.reset_after_minutes):
            attempts = 0
        attempts += 1

        decision = check_lockout(attempts, now, self.lockout)
        try:
            await self.users.record_failed_login(user, attempts, decision.locked_until, now)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Could not record failed login for %s: %s", user_id, e)

        logger.info("Failed login for user %s (attempt %d)", user_id, attempts)
        await self.audit.log(AuditEntry.for_request(
            AuditAction.LOGIN_FAILED,
            context,
            user_id=user_id,
            record_id=user_id,
            new_values={"attempts": attempts},
        ))

        if decision.should_lock:
            logger.warning("Account %s locked until %s", user_id, decision.locked_until)
            raise AccountLockedError(
                JUST_LOCKED_MESSAGE,
                decision.locked_until,
                format_time_remaining(decision.locked_until, now),
            )


def get_login_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> LoginService:
    """FastAPI dependency."""
    return LoginService(db, settings)
