"""
StoreGuard - Permission Evaluator
Answers "can this user do X?" for multi-tenant store data.

Every check fails closed: a lookup error is a denial, never an allow.

Admin check order (first match wins):
1. Profile lookup (missing or failing -> deny)
2. super_admin
3. admin
4. Store owner with a store
5. PolicyOracle (business-rule derivation, e.g. store ownership on record)

Fine-grained checks (`resource.action`) run only after the admin check
fails, so the common admin case never pays for the second lookup.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from storeguard.core.errors import ForbiddenError, NotFoundError
from storeguard.core.scope import UserScope, build_user_scope
from storeguard.core.user_context import UserProfile, UserRole, can_manage_role

logger = logging.getLogger("storeguard.permissions")


# =============================================================================
# Collaborator Interfaces
# =============================================================================

class ProfileStore(ABC):
    """Read access to the user directory."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """Resolved profile, or None if the user does not exist."""
        pass


class PolicyStore(ABC):
    """Fine-grained permission lookups."""

    @abstractmethod
    async def user_has_permission(self, user_id: str, permission: str) -> Optional[bool]:
        """True/False, or None when the store has no answer."""
        pass


class PolicyDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    UNKNOWN = "unknown"  # the oracle could not decide (error, no data)


class PolicyOracle(ABC):
    """Derives admin rights from business rules outside the profile."""

    @abstractmethod
    async def decide(self, user_id: str) -> PolicyDecision:
        pass


# =============================================================================
# Evaluator
# =============================================================================

class PermissionEvaluator:
    """
    Usage:
        evaluator = PermissionEvaluator(profiles, policies, oracle)
        if not await evaluator.check_permission(user_id, "users", "view"):
            raise ForbiddenError()
    """

    def __init__(
        self,
        profiles: ProfileStore,
        policies: PolicyStore,
        oracle: Optional[PolicyOracle] = None,
    ):
        self.profiles = profiles
        self.policies = policies
        self.oracle = oracle

    async def _load_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            return await self.profiles.get_profile(user_id)
        except Exception as e:
            logger.error("Profile lookup failed for %s: %s", user_id, e)
            return None

    async def consult_oracle(self, user_id: str) -> PolicyDecision:
        """Ask the oracle; an erroring oracle counts as UNKNOWN."""
        if self.oracle is None:
            return PolicyDecision.UNKNOWN
        try:
            return await self.oracle.decide(user_id)
        except Exception as e:
            logger.warning("Policy oracle unavailable for %s: %s", user_id, e)
            return PolicyDecision.UNKNOWN

    async def check_admin_permissions(self, user_id: str) -> bool:
        profile = await self._load_profile(user_id)
        if profile is None:
            return False

        if profile.role in (UserRole.SUPER_ADMIN, UserRole.ADMIN):
            return True

        if profile.is_store_owner and profile.store_id:
            return True

        # UNKNOWN folds to DENY
        return await self.consult_oracle(user_id) == PolicyDecision.ALLOW

    async def check_permission(self, user_id: str, resource: str, action: str) -> bool:
        if await self.check_admin_permissions(user_id):
            return True

        permission = f"{resource}.{action}"
        try:
            allowed = await self.policies.user_has_permission(user_id, permission)
        except Exception as e:
            logger.error("Permission check %s failed for %s: %s", permission, user_id, e)
            return False

        return bool(allowed)

    async def get_user_scope(self, user_id: str) -> UserScope:
        """
        Role and row filter for a user.

        Raises NotFoundError when the profile cannot be loaded; callers
        surface it as a request failure.
        """
        profile = await self._load_profile(user_id)
        if profile is None:
            raise NotFoundError("User profile")
        return build_user_scope(profile)

    async def require_admin_permissions(self, user_id: str) -> UserScope:
        if not await self.check_admin_permissions(user_id):
            raise ForbiddenError("Insufficient permissions")
        return await self.get_user_scope(user_id)


# =============================================================================
# Cross-user Rules
# =============================================================================

def ensure_can_manage_user(actor: UserProfile, target: UserProfile, action: str = "manage") -> None:
    """
    Rules for one staff member acting on another, layered on top of the
    admin check:
    - only super_admin may act on a super_admin, whatever the store
    - an admin may only act on roles it can manage (no other admins)
    - only super_admin may act across stores

    Raises ForbiddenError.
    """
    if target.is_super_admin and not actor.is_super_admin:
        raise ForbiddenError(f"Cannot {action} super admin users")

    if actor.role == UserRole.ADMIN and not can_manage_role(actor.role, target.role):
        raise ForbiddenError(f"Cannot {action} other admin users")

    if actor.role != UserRole.SUPER_ADMIN and target.store_id != actor.store_id:
        raise ForbiddenError(f"Cannot {action} users from other stores")
