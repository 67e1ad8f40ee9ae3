"""
StoreGuard - Rate Limit Tests
Auth endpoints are limited per client address, whatever cookies or
forwarding headers the client sends.
"""

import pytest
from httpx import AsyncClient

from storeguard.core.rate_limit import limiter

LOGIN_URL = "/api/auth/login"


@pytest.fixture
def rate_limited():
    limiter.enabled = True
    limiter.reset()
    yield limiter
    limiter.reset()
    limiter.enabled = False


async def failed_logins(client: AsyncClient, headers: dict, rotate) -> list[int]:
    statuses = []
    for i in range(7):
        extra = rotate(i)
        response = await client.post(
            LOGIN_URL,
            json={"email": f"ghost-{i}@example.com", "password": "guess-123"},
            headers={**headers, **extra},
        )
        statuses.append(response.status_code)
    return statuses


@pytest.mark.anyio
async def test_login_limit_applies_per_client(client: AsyncClient, csrf_headers, rate_limited):
    headers = await csrf_headers()

    statuses = await failed_logins(client, headers, lambda i: {})

    assert statuses == [401] * 5 + [429] * 2


@pytest.mark.anyio
async def test_rotating_session_cookie_does_not_reset_limit(client: AsyncClient, csrf_headers, rate_limited):
    headers = await csrf_headers()

    def rotate(i):
        client.cookies.set("session", f"made-up-session-{i}")
        return {}

    statuses = await failed_logins(client, headers, rotate)

    assert statuses == [401] * 5 + [429] * 2


@pytest.mark.anyio
async def test_rotating_forwarded_for_does_not_reset_limit(client: AsyncClient, csrf_headers, rate_limited):
    headers = await csrf_headers()

    statuses = await failed_logins(
        client, headers, lambda i: {"X-Forwarded-For": f"198.51.100.{i}", "X-Real-IP": f"198.51.100.{i}"}
    )

    assert statuses == [401] * 5 + [429] * 2


@pytest.mark.anyio
async def test_limit_response_body(client: AsyncClient, csrf_headers, rate_limited):
    headers = await csrf_headers()
    await failed_logins(client, headers, lambda i: {})

    response = await client.post(
        LOGIN_URL, json={"email": "ghost@example.com", "password": "guess-123"}, headers=headers
    )

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    body = response.json()
    assert body["code"] == "rate_limit_exceeded"
    assert body["error"] == "Too many requests. Please slow down."
