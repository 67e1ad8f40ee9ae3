"""
User Directory (SQL)

SQLAlchemy-backed implementations of the collaborators the permission
evaluator and the password-reset flow talk to.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.core.permissions import (
    PolicyDecision,
    PolicyOracle,
    PolicyStore,
    ProfileStore,
)
from storeguard.core.scope import ScopeFilter
from storeguard.core.user_context import UserProfile, UserRole, role_has_permission
from storeguard.models.models import Store, User, UserPermission

logger = logging.getLogger(__name__)


def to_profile(user: User) -> UserProfile:
    return UserProfile(
        id=user.id,
        role=UserRole(user.role),
        store_id=user.store_id,
        organization_id=user.organization_id,
        is_store_owner=bool(user.is_store_owner),
        email=user.email,
        name=user.name,
    )


class SQLProfileStore(ProfileStore):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        user = await self.db.get(User, user_id)
        if user is None:
            return None
        return to_profile(user)


class SQLPolicyStore(PolicyStore):
    """
    Explicit grants in user_permissions win; otherwise the user's role
    is checked against the static role matrix.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def user_has_permission(self, user_id: str, permission: str) -> Optional[bool]:
        result = await self.db.execute(
            select(UserPermission.granted).where(
                UserPermission.user_id == user_id,
                UserPermission.permission == permission,
            )
        )
        granted = result.scalar_one_or_none()
        if granted is not None:
            return bool(granted)

        user = await self.db.get(User, user_id)
        if user is None:
            return None
        return role_has_permission(UserRole(user.role), permission)


class StoreOwnershipOracle(PolicyOracle):
    """ALLOW when a store row names the user as its owner."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def decide(self, user_id: str) -> PolicyDecision:
        try:
            result = await self.db.execute(
                select(func.count()).select_from(Store).where(Store.owner_id == user_id)
            )
            owned = result.scalar_one()
        except Exception as e:
            logger.warning("Store ownership lookup failed for %s: %s", user_id, e)
            return PolicyDecision.UNKNOWN
        return PolicyDecision.ALLOW if owned else PolicyDecision.DENY


class UserRepository:
    """Row-level reads and writes on the users table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalars().first()

    async def get_by_reset_token(self, token: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.password_reset_token == token)
        )
        return result.scalars().first()

    async def set_reset_token(self, user: User, token: str, expires_at: datetime) -> None:
        """Overwrites any previous token: one active token per user."""
        user.password_reset_token = token
        user.password_reset_expires = expires_at
        await self.db.flush()

    async def clear_reset_token(self, user: User) -> None:
        user.password_reset_token = None
        user.password_reset_expires = None
        await self.db.flush()

    async def stamp_password_change(self, user: User, changed_at: datetime) -> None:
        user.last_password_change = changed_at
        user.updated_at = changed_at
        await self.db.flush()

    async def stamp_login(self, user: User, logged_in_at: datetime) -> None:
        """Successful login: clears any failure count and lock."""
        user.last_login_at = logged_in_at
        user.login_attempts = 0
        user.locked_until = None
        await self.db.flush()

    async def record_failed_login(
        self,
        user: User,
        attempts: int,
        locked_until: Optional[datetime],
        failed_at: datetime,
    ) -> None:
        user.login_attempts = attempts
        user.locked_until = locked_until
        user.last_failed_login_at = failed_at
        await self.db.flush()

    async def list_in_scope(
        self,
        scope_filter: ScopeFilter,
        role: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[User], int]:
        """Users visible under a scope filter, newest first, with total count."""
        query = scope_filter.apply(select(User), User)
        if role:
            query = query.where(User.role == role)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                func.lower(User.email).like(pattern) | func.lower(User.name).like(pattern)
            )

        total = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()

        result = await self.db.execute(
            query.order_by(User.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total
