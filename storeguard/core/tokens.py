"""
Token Generation

Cryptographically random hex tokens for CSRF and password reset.
"""

import secrets

DEFAULT_TOKEN_BYTES = 32


def generate_token(length_bytes: int = DEFAULT_TOKEN_BYTES) -> str:
    """
    Generate a secure random token as a hex string (2 chars per byte).

    Backed by the OS CSPRNG; if that is unavailable the error propagates,
    since no caller can proceed without a token.
    """
    if length_bytes <= 0:
        raise ValueError("length_bytes must be positive")
    return secrets.token_hex(length_bytes)


def generate_session_id() -> str:
    """Opaque URL-safe session identifier."""
    return secrets.token_urlsafe(32)
