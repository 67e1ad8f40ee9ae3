"""
StoreGuard - Application Factory Tests
"""

import pytest

from storeguard.core.config import Settings
from storeguard.core.sessions import MemorySessionBackend, RedisSessionBackend, get_session_backend
from storeguard.main import create_app


@pytest.mark.anyio
async def test_lifespan_uses_settings_given_to_factory(database):
    settings = Settings(redis_url="redis://sessions.internal:6379/2", rate_limit_enabled=False)
    app = create_app(settings)

    async with app.router.lifespan_context(app):
        backend = get_session_backend()
        assert isinstance(backend, RedisSessionBackend)
        assert backend.redis_url == "redis://sessions.internal:6379/2"

    assert app.state.settings is settings


@pytest.mark.anyio
async def test_lifespan_without_redis_uses_memory_sessions(database):
    app = create_app(Settings(redis_url=None, rate_limit_enabled=False))

    async with app.router.lifespan_context(app):
        assert isinstance(get_session_backend(), MemorySessionBackend)
