"""
StoreGuard - Password Reset Service Tests
Token lifecycle against a real database with a controllable clock.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from storeguard.core.config import get_settings
from storeguard.core.database import get_db_session
from storeguard.core.errors import (
    ExpiredTokenError,
    InternalError,
    InvalidRequestError,
    InvalidTokenError,
)
from storeguard.core.permissions import PermissionEvaluator
from storeguard.models.models import AuditLog, User
from storeguard.services import audit as audit_module
from storeguard.services.audit import AuditAction, RequestContext
from storeguard.services.credentials import CredentialStore
from storeguard.services.directory import SQLPolicyStore, SQLProfileStore, StoreOwnershipOracle
from storeguard.services.password_reset import GENERIC_RESET_MESSAGE, PasswordResetService

CONTEXT = RequestContext(ip_address="203.0.113.7", user_agent="pytest")
NEW_PASSWORD = "brand-new-secret"


class Clock:
    def __init__(self):
        self.current = datetime(2026, 3, 1, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def service(db, outbox, clock):
    evaluator = PermissionEvaluator(SQLProfileStore(db), SQLPolicyStore(db), StoreOwnershipOracle(db))
    return PasswordResetService(db, evaluator, outbox, get_settings(), now=clock)


async def fetch_user(user_id: str) -> User:
    async with get_db_session() as session:
        return await session.get(User, user_id)


async def audit_rows(action: AuditAction) -> list[AuditLog]:
    async with get_db_session() as session:
        result = await session.execute(select(AuditLog).where(AuditLog.action == action.value))
        return list(result.scalars().all())


# =============================================================================
# request_reset
# =============================================================================

@pytest.mark.anyio
async def test_unknown_email_gets_generic_message_and_nothing_stored(service, outbox, make_user):
    bystander = await make_user("someone@example.com")

    message = await service.request_reset("nobody@example.com", CONTEXT)

    assert message == GENERIC_RESET_MESSAGE
    assert outbox.sent == []
    assert (await fetch_user(bystander.id)).password_reset_token is None

    rows = await audit_rows(AuditAction.PASSWORD_RESET_REQUESTED)
    assert len(rows) == 1
    assert rows[0].user_id is None


@pytest.mark.anyio
async def test_known_email_issues_token_and_sends_link(service, outbox, clock, make_user):
    user = await make_user("cashier@example.com")

    message = await service.request_reset("Cashier@Example.com ", CONTEXT)
    assert message == GENERIC_RESET_MESSAGE

    stored = await fetch_user(user.id)
    assert len(stored.password_reset_token) == 64
    assert stored.password_reset_expires == clock() + timedelta(hours=1)

    assert len(outbox.sent) == 1
    assert outbox.sent[0]["to"] == "cashier@example.com"
    assert f"http://shop.test/auth/reset-password?token={stored.password_reset_token}" in outbox.sent[0]["body"]
    assert "1 hour" in outbox.sent[0]["body"]

    rows = await audit_rows(AuditAction.PASSWORD_RESET_REQUESTED)
    assert rows[0].user_id == user.id
    assert rows[0].record_id == user.id
    assert rows[0].new_values == {"reset_requested": True}
    assert rows[0].ip_address == "203.0.113.7"
    assert rows[0].user_agent == "pytest"


@pytest.mark.anyio
async def test_email_failure_does_not_fail_request(service, outbox, make_user):
    user = await make_user("cashier@example.com")
    outbox.fail = True

    assert await service.request_reset(user.email, CONTEXT) == GENERIC_RESET_MESSAGE
    assert (await fetch_user(user.id)).password_reset_token is not None


@pytest.mark.anyio
async def test_new_request_replaces_previous_token(service, outbox, make_user):
    user = await make_user("cashier@example.com")

    await service.request_reset(user.email, CONTEXT)
    first = outbox.last_reset_token()
    await service.request_reset(user.email, CONTEXT)
    second = outbox.last_reset_token()

    assert first != second
    with pytest.raises(InvalidTokenError):
        await service.validate_token(first)
    assert (await service.validate_token(second)).user_id == user.id


@pytest.mark.anyio
async def test_missing_email_rejected(service):
    with pytest.raises(InvalidRequestError) as exc:
        await service.request_reset("", CONTEXT)
    assert exc.value.message == "Email is required"


# =============================================================================
# validate_token
# =============================================================================

@pytest.mark.anyio
async def test_token_valid_until_expiry(service, outbox, clock, make_user):
    user = await make_user("cashier@example.com", name="Casey")
    await service.request_reset(user.email, CONTEXT)
    token = outbox.last_reset_token()

    info = await service.validate_token(token)
    assert info.email == "cashier@example.com"
    assert info.name == "Casey"

    clock.advance(minutes=60)
    assert (await service.validate_token(token)).user_id == user.id

    clock.advance(seconds=1)
    with pytest.raises(ExpiredTokenError):
        await service.validate_token(token)


@pytest.mark.anyio
async def test_unknown_token_rejected(service):
    with pytest.raises(InvalidTokenError) as exc:
        await service.validate_token("f" * 64)
    assert exc.value.status_code == 400


@pytest.mark.anyio
async def test_empty_token_rejected(service):
    with pytest.raises(InvalidRequestError) as exc:
        await service.validate_token("")
    assert exc.value.message == "Reset token is required"


# =============================================================================
# complete_reset
# =============================================================================

@pytest.mark.anyio
async def test_complete_reset_changes_password_and_consumes_token(service, outbox, clock, db, make_user):
    user = await make_user("cashier@example.com")
    await service.request_reset(user.email, CONTEXT)
    token = outbox.last_reset_token()

    info = await service.complete_reset(token, NEW_PASSWORD, CONTEXT)
    assert info.email == user.email

    assert await CredentialStore(db).verify(user.id, NEW_PASSWORD)

    stored = await fetch_user(user.id)
    assert stored.password_reset_token is None
    assert stored.password_reset_expires is None
    assert stored.last_password_change == clock()

    rows = await audit_rows(AuditAction.PASSWORD_RESET_COMPLETED)
    assert len(rows) == 1
    assert rows[0].new_values == {"password_reset": True}

    with pytest.raises(InvalidTokenError):
        await service.complete_reset(token, "another-password", CONTEXT)


@pytest.mark.anyio
async def test_weak_password_rejected_before_token_is_touched(service, outbox, make_user):
    user = await make_user("cashier@example.com")
    await service.request_reset(user.email, CONTEXT)
    token = outbox.last_reset_token()

    with pytest.raises(InvalidRequestError) as exc:
        await service.complete_reset(token, "short", CONTEXT)
    assert exc.value.message == "Password must be at least 8 characters long"

    assert (await fetch_user(user.id)).password_reset_token == token


@pytest.mark.anyio
@pytest.mark.parametrize(
    "token, password, message",
    [
        (None, NEW_PASSWORD, "Reset token is required"),
        ("abc", None, "New password is required"),
    ],
)
async def test_missing_fields_rejected(service, token, password, message):
    with pytest.raises(InvalidRequestError) as exc:
        await service.complete_reset(token, password, CONTEXT)
    assert exc.value.message == message


@pytest.mark.anyio
async def test_expired_token_cannot_be_redeemed(service, outbox, clock, db, make_user):
    user = await make_user("cashier@example.com")
    await service.request_reset(user.email, CONTEXT)
    token = outbox.last_reset_token()

    clock.advance(hours=2)
    with pytest.raises(ExpiredTokenError):
        await service.complete_reset(token, NEW_PASSWORD, CONTEXT)
    assert not await CredentialStore(db).verify(user.id, NEW_PASSWORD)


@pytest.mark.anyio
async def test_credential_failure_keeps_token_usable(service, outbox, make_user, monkeypatch):
    user = await make_user("cashier@example.com")
    await service.request_reset(user.email, CONTEXT)
    token = outbox.last_reset_token()

    async def broken_set_password(user_id, new_password):
        raise ConnectionError("identity store unavailable")

    monkeypatch.setattr(service.credentials, "set_password", broken_set_password)

    with pytest.raises(InternalError) as exc:
        await service.complete_reset(token, NEW_PASSWORD, CONTEXT)
    assert exc.value.message == "Failed to update password"

    assert (await service.validate_token(token)).user_id == user.id
    assert await audit_rows(AuditAction.PASSWORD_RESET_COMPLETED) == []


@pytest.mark.anyio
async def test_timestamp_failure_does_not_fail_reset(service, outbox, db, make_user, monkeypatch):
    user = await make_user("cashier@example.com")
    await service.request_reset(user.email, CONTEXT)
    token = outbox.last_reset_token()

    async def broken_stamp(user, changed_at):
        raise ConnectionError("write failed")

    monkeypatch.setattr(service.users, "stamp_password_change", broken_stamp)

    await service.complete_reset(token, NEW_PASSWORD, CONTEXT)
    assert await CredentialStore(db).verify(user.id, NEW_PASSWORD)
    assert (await fetch_user(user.id)).password_reset_token is None


# =============================================================================
# Audit failures
# =============================================================================

def broken_audit_row(**values):
    raise ConnectionError("audit table unavailable")


@pytest.mark.anyio
async def test_audit_failure_does_not_fail_request(service, outbox, make_user, monkeypatch):
    user = await make_user("cashier@example.com")
    monkeypatch.setattr(audit_module, "AuditLog", broken_audit_row)

    assert await service.request_reset(user.email, CONTEXT) == GENERIC_RESET_MESSAGE
    assert await service.request_reset("ghost@example.com", CONTEXT) == GENERIC_RESET_MESSAGE

    assert (await fetch_user(user.id)).password_reset_token == outbox.last_reset_token()
    assert len(outbox.sent) == 1


@pytest.mark.anyio
async def test_audit_failure_does_not_fail_completion(service, outbox, db, make_user, monkeypatch):
    user = await make_user("cashier@example.com")
    await service.request_reset(user.email, CONTEXT)
    token = outbox.last_reset_token()
    monkeypatch.setattr(audit_module, "AuditLog", broken_audit_row)

    info = await service.complete_reset(token, NEW_PASSWORD, CONTEXT)

    assert info.user_id == user.id
    assert await CredentialStore(db).verify(user.id, NEW_PASSWORD)
    assert (await fetch_user(user.id)).password_reset_token is None
    assert await audit_rows(AuditAction.PASSWORD_RESET_COMPLETED) == []
