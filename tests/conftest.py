"""
StoreGuard - Shared Test Fixtures

Tests run against the real app over a throwaway SQLite database. Mail is
captured by an in-memory outbox instead of being sent.
"""

import os
import tempfile

# Configure the app before it is imported
_TEST_DIR = tempfile.mkdtemp(prefix="storeguard-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ["APP_URL"] = "http://shop.test"

import re
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

from storeguard.core.config import get_settings
from storeguard.core.database import close_db, drop_db, get_db_session, get_session_factory, init_db
from storeguard.core.sessions import configure_session_backend
from storeguard.main import app
from storeguard.models.models import Store, User, UserCredential
from storeguard.services.credentials import hash_password
from storeguard.services.email import EmailResult, EmailService, get_email_service

DEFAULT_PASSWORD = "correct-horse-1"
RESET_TOKEN_PATTERN = re.compile(r"token=([0-9a-f]{64})")


class RecordingEmailService(EmailService):
    """Keeps every message instead of delivering it."""

    def __init__(self):
        super().__init__(get_settings())
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str) -> EmailResult:
        self.sent.append({"to": to, "subject": subject, "body": body})
        if self.fail:
            return EmailResult(success=False, error="mail server down", method="test")
        return EmailResult(success=True, message_id=f"test-{len(self.sent)}", method="test")

    def last_reset_token(self) -> Optional[str]:
        for message in reversed(self.sent):
            match = RESET_TOKEN_PATTERN.search(message["body"])
            if match:
                return match.group(1)
        return None


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def database(anyio_backend):
    """Fresh schema per test."""
    await drop_db()
    await init_db()
    configure_session_backend(None)
    yield
    await close_db()


@pytest.fixture
async def db(database):
    factory = get_session_factory()
    async with factory() as session:
        yield session


@pytest.fixture
def outbox() -> RecordingEmailService:
    return RecordingEmailService()


@pytest.fixture
async def client(database, outbox):
    """Create test client."""
    app.dependency_overrides[get_email_service] = lambda: outbox
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# =============================================================================
# Seed helpers
# =============================================================================

@pytest.fixture
def make_store(database):
    async def _make(name: str = "Main Street", owner_id: Optional[str] = None) -> Store:
        async with get_db_session() as session:
            store = Store(name=name, organization_id="org-1", owner_id=owner_id)
            session.add(store)
            await session.flush()
            return store

    return _make


@pytest.fixture
def make_user(database):
    async def _make(
        email: str,
        role: str = "cashier",
        store_id: Optional[str] = None,
        password: Optional[str] = DEFAULT_PASSWORD,
        is_store_owner: bool = False,
        name: Optional[str] = None,
    ) -> User:
        async with get_db_session() as session:
            user = User(
                email=email,
                name=name or email.split("@")[0].title(),
                role=role,
                store_id=store_id,
                organization_id="org-1" if store_id else None,
                is_store_owner=is_store_owner,
            )
            session.add(user)
            await session.flush()
            if password:
                session.add(UserCredential(user_id=user.id, password_hash=hash_password(password)))
                await session.flush()
            return user

    return _make


async def get_csrf_headers(client: AsyncClient) -> dict[str, str]:
    response = await client.get("/api/auth/csrf-token")
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["token"]}


@pytest.fixture
def csrf_headers(client):
    async def _headers() -> dict[str, str]:
        return await get_csrf_headers(client)

    return _headers


@pytest.fixture
def login(client):
    async def _login(email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
        headers = await get_csrf_headers(client)
        response = await client.post(
            "/api/auth/login",
            json={"email": email, "password": password},
            headers=headers,
        )
        assert response.status_code == 200, response.text
        return headers

    return _login
