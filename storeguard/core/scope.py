"""
StoreGuard - Data Scope
Derives the row filter a caller's role entitles it to.

super_admin sees every store. Everyone else is pinned to their own store.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import Select, false

from storeguard.core.user_context import UserProfile, UserRole

# Known issue, kept as-is: a non-super_admin profile with no store_id gets an
# empty (unrestricted) filter. Set to False to deny-all instead.
UNSCOPED_FALLBACK_FOR_STORELESS_USERS = True


@dataclass(frozen=True)
class ScopeFilter:
    """Required equality constraints, e.g. {"store_id": "..."}."""
    constraints: dict[str, Any] = field(default_factory=dict)
    deny_all: bool = False

    @property
    def is_unrestricted(self) -> bool:
        return not self.constraints and not self.deny_all

    def matches(self, row: Any) -> bool:
        """Whether a mapping or object satisfies every constraint."""
        if self.deny_all:
            return False
        for key, value in self.constraints.items():
            actual = row.get(key) if isinstance(row, dict) else getattr(row, key, None)
            if actual != value:
                return False
        return True

    def apply(self, statement: Select, model: Any) -> Select:
        """Add `model.<column> == value` for every constraint."""
        if self.deny_all:
            return statement.where(false())
        for key, value in self.constraints.items():
            statement = statement.where(getattr(model, key) == value)
        return statement

    def to_dict(self) -> dict[str, Any]:
        return dict(self.constraints)


# Matches nothing: used when the storeless fallback is switched off
DENY_ALL = ScopeFilter(deny_all=True)


@dataclass(frozen=True)
class UserScope:
    role: UserRole
    store_id: Optional[str]
    organization_id: Optional[str]
    is_store_owner: bool
    is_super_admin: bool
    scope_filter: ScopeFilter

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "store_id": self.store_id,
            "organization_id": self.organization_id,
            "is_store_owner": self.is_store_owner,
            "is_super_admin": self.is_super_admin,
            "scope_filter": self.scope_filter.to_dict(),
        }


def build_scope_filter(profile: UserProfile) -> ScopeFilter:
    if profile.role == UserRole.SUPER_ADMIN:
        return ScopeFilter()
    if profile.store_id:
        return ScopeFilter({"store_id": profile.store_id})
    if UNSCOPED_FALLBACK_FOR_STORELESS_USERS:
        return ScopeFilter()
    return DENY_ALL


def build_user_scope(profile: UserProfile) -> UserScope:
    return UserScope(
        role=profile.role,
        store_id=profile.store_id,
        organization_id=profile.organization_id,
        is_store_owner=profile.is_store_owner,
        is_super_admin=profile.role == UserRole.SUPER_ADMIN,
        scope_filter=build_scope_filter(profile),
    )
