"""
StoreGuard - User Context
Roles, resolved user profiles and the static role/permission matrix.

Design Principles:
- A profile always has a role
- store_id / organization_id may be absent only for super_admin
- Permission keys are "<resource>.<action>" strings
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =============================================================================
# User Roles
# =============================================================================

class UserRole(str, Enum):
    """Closed set of staff roles."""
    SUPER_ADMIN = "super_admin"  # Platform owner: every store
    ADMIN = "admin"              # Store / organization administrator
    MANAGER = "manager"          # Store manager
    CASHIER = "cashier"          # Front-line sales
    SELLER = "seller"            # Seller portal user


# =============================================================================
# Resolved Profile
# =============================================================================

@dataclass(frozen=True)
class UserProfile:
    """Identity resolved from the user directory. Read-only here."""
    id: str
    role: UserRole
    store_id: Optional[str] = None
    organization_id: Optional[str] = None
    is_store_owner: bool = False
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN


# =============================================================================
# Role Permission Matrix
# =============================================================================

_ADMIN_ONLY = {"admin.system", "admin.users", "admin.audit"}
_SELLER_PORTAL = {"seller.dashboard", "seller.purchases", "seller.invoices", "seller.reports"}
_RESTAURANT = {"restaurant.menu", "restaurant.tables", "restaurant.orders"}

ROLE_PERMISSIONS: dict[UserRole, frozenset[str]] = {
    UserRole.ADMIN: frozenset({
        "users.view", "users.create", "users.update", "users.delete", "users.invite",
        "inventory.view", "inventory.create", "inventory.update", "inventory.delete",
        "products.manage", "categories.manage", "suppliers.manage",
        "sales.view", "sales.create", "sales.update", "sales.void",
        "customers.view", "customers.manage",
        "invoices.view", "invoices.create",
        "discounts.manage",
        "reports.view", "reports.export", "analytics.view",
        "admin.settings",
        *_RESTAURANT,
    }),
    UserRole.MANAGER: frozenset({
        "users.view",
        "inventory.view", "inventory.create", "inventory.update",
        "products.manage", "categories.manage", "suppliers.manage",
        "sales.view", "sales.create", "sales.update", "sales.void",
        "customers.view", "customers.manage",
        "invoices.view", "invoices.create",
        "discounts.manage",
        "reports.view", "reports.export", "analytics.view",
        *_RESTAURANT,
    }),
    UserRole.CASHIER: frozenset({
        "inventory.view",
        "sales.view", "sales.create",
        "customers.view",
        "invoices.view",
        *_RESTAURANT,
    }),
    UserRole.SELLER: frozenset({
        *_SELLER_PORTAL,
        "inventory.view",
        "sales.view", "sales.create",
        "customers.view",
    }),
}
ROLE_PERMISSIONS[UserRole.SUPER_ADMIN] = frozenset().union(
    *ROLE_PERMISSIONS.values(), _ADMIN_ONLY, _SELLER_PORTAL
)

# Roles whose permissions a role inherits
ROLE_HIERARCHY: dict[UserRole, tuple[UserRole, ...]] = {
    UserRole.SUPER_ADMIN: tuple(UserRole),
    UserRole.ADMIN: (UserRole.ADMIN, UserRole.MANAGER, UserRole.CASHIER, UserRole.SELLER),
    UserRole.MANAGER: (UserRole.MANAGER, UserRole.CASHIER),
    UserRole.CASHIER: (UserRole.CASHIER,),
    UserRole.SELLER: (UserRole.SELLER,),
}


def role_has_permission(role: Optional[UserRole], permission: str) -> bool:
    """Check a permission key against the role matrix, including inherited roles."""
    if role is None:
        return False
    return any(
        permission in ROLE_PERMISSIONS.get(inherited, frozenset())
        for inherited in ROLE_HIERARCHY.get(role, ())
    )


def get_role_permissions(role: UserRole) -> frozenset[str]:
    """All permission keys granted to a role, including inherited roles."""
    return frozenset().union(
        *(ROLE_PERMISSIONS.get(r, frozenset()) for r in ROLE_HIERARCHY.get(role, ()))
    )


# =============================================================================
# Role Management
# =============================================================================

ASSIGNABLE_ROLES: dict[UserRole, tuple[UserRole, ...]] = {
    UserRole.SUPER_ADMIN: tuple(UserRole),
    UserRole.ADMIN: (UserRole.MANAGER, UserRole.CASHIER, UserRole.SELLER),
}


def can_manage_role(manager_role: Optional[UserRole], target_role: Optional[UserRole]) -> bool:
    """
    Whether a role may manage users holding another role.

    super_admin manages everyone; admin manages manager, cashier and
    seller; every other role manages nobody.
    """
    if manager_role is None or target_role is None:
        return False
    return target_role in ASSIGNABLE_ROLES.get(manager_role, ())


def get_assignable_roles(role: Optional[UserRole]) -> tuple[UserRole, ...]:
    """Roles a user with `role` may hand out."""
    if role is None:
        return ()
    return ASSIGNABLE_ROLES.get(role, ())
