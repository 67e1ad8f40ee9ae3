"""
StoreGuard Configuration
Settings are read from environment variables (and an optional .env file).
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    app_name: str = "StoreGuard"
    app_version: str = "1.0.0"
    environment: str = "development"  # development, production, test
    debug: bool = False
    app_url: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite+aiosqlite:///./storeguard.db"

    # Sessions (Redis in production, memory otherwise)
    redis_url: Optional[str] = None
    session_cookie_name: str = "session"
    session_ttl_seconds: int = 60 * 60 * 24

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # CSRF
    csrf_cookie_name: str = "csrf-token"
    csrf_header_name: str = "x-csrf-token"
    csrf_token_length: int = 32
    csrf_max_age: int = 60 * 60
    csrf_exempt_paths: list[str] = []

    # Password reset
    reset_token_bytes: int = 32
    reset_token_ttl_minutes: int = 60
    password_min_length: int = 8
    password_require_complexity: bool = False

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    trust_proxy_headers: bool = False  # honour X-Forwarded-For / X-Real-IP

    # Login lockout
    login_max_attempts: int = 5
    login_lockout_minutes: int = 15
    login_attempts_reset_minutes: int = 30

    # Email
    email_provider: str = "console"  # console, smtp, sendgrid
    email_from: str = "noreply@example.com"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    sendgrid_api_key: Optional[str] = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (FastAPI dependency)."""
    return Settings()
