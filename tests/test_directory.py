"""
StoreGuard - SQL Directory Tests
"""

import pytest

from storeguard.core.permissions import PolicyDecision
from storeguard.core.user_context import UserRole
from storeguard.models.models import UserPermission
from storeguard.services.directory import (
    SQLPolicyStore,
    SQLProfileStore,
    StoreOwnershipOracle,
    UserRepository,
)


@pytest.mark.anyio
async def test_profile_store_resolves_user(db, make_store, make_user):
    store = await make_store()
    user = await make_user("owner@example.com", role="manager", store_id=store.id, is_store_owner=True)

    profile = await SQLProfileStore(db).get_profile(user.id)

    assert profile.role == UserRole.MANAGER
    assert profile.store_id == store.id
    assert profile.is_store_owner
    assert await SQLProfileStore(db).get_profile("missing") is None


@pytest.mark.anyio
async def test_policy_store_prefers_explicit_grants(db, make_user):
    user = await make_user("cashier@example.com")
    db.add(UserPermission(user_id=user.id, permission="sales.view", granted=False))
    db.add(UserPermission(user_id=user.id, permission="reports.view", granted=True))
    await db.commit()

    policies = SQLPolicyStore(db)
    assert await policies.user_has_permission(user.id, "sales.view") is False
    assert await policies.user_has_permission(user.id, "reports.view") is True
    # Falls back to the role matrix
    assert await policies.user_has_permission(user.id, "customers.view") is True
    assert await policies.user_has_permission(user.id, "users.delete") is False
    assert await policies.user_has_permission("missing", "sales.view") is None


@pytest.mark.anyio
async def test_ownership_oracle(db, make_store, make_user):
    owner = await make_user("owner@example.com", role="manager")
    other = await make_user("other@example.com", role="manager")
    await make_store(owner_id=owner.id)

    oracle = StoreOwnershipOracle(db)
    assert await oracle.decide(owner.id) == PolicyDecision.ALLOW
    assert await oracle.decide(other.id) == PolicyDecision.DENY


@pytest.mark.anyio
async def test_lookup_by_email_ignores_case(db, make_user):
    user = await make_user("cashier@example.com")
    found = await UserRepository(db).get_by_email("  CASHIER@example.COM ")
    assert found.id == user.id
