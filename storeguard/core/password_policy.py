"""
Password Policy

Only the minimum length is enforced by default; the character-class and
common-password rules are switched on with `password_require_complexity`.
Also holds the failed-login lockout rule.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from storeguard.core.config import Settings

COMMON_PASSWORDS = frozenset({
    "password", "123456", "123456789", "qwerty", "abc123", "password123",
    "admin", "letmein", "welcome", "monkey", "1234567890", "password1",
    "qwerty123", "welcome123", "admin123", "root", "user", "guest",
})

SPECIAL_CHARS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    require_uppercase: bool = False
    require_lowercase: bool = False
    require_numbers: bool = False
    require_special: bool = False
    prevent_common: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        strict = settings.password_require_complexity
        return cls(
            min_length=settings.password_min_length,
            require_uppercase=strict,
            require_lowercase=strict,
            require_numbers=strict,
            require_special=strict,
            prevent_common=strict,
        )


@dataclass
class PasswordValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    strength: str = "weak"  # weak, medium, strong
    score: int = 0


def validate_password(password: str, policy: PasswordPolicy = PasswordPolicy()) -> PasswordValidationResult:
    errors = []
    score = 0

    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")
    else:
        score += min(len(password) // 2, 20)

    checks = [
        (policy.require_uppercase, r"[A-Z]", "Password must contain at least one uppercase letter"),
        (policy.require_lowercase, r"[a-z]", "Password must contain at least one lowercase letter"),
        (policy.require_numbers, r"\d", "Password must contain at least one number"),
    ]
    for required, pattern, message in checks:
        present = re.search(pattern, password) is not None
        if required and not present:
            errors.append(message)
        elif present:
            score += 15

    has_special = SPECIAL_CHARS.search(password) is not None
    if policy.require_special and not has_special:
        errors.append("Password must contain at least one special character")
    elif has_special:
        score += 15

    if policy.prevent_common and password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common. Please choose a more unique password")

    if score >= 60:
        strength = "strong"
    elif score >= 40:
        strength = "medium"
    else:
        strength = "weak"

    return PasswordValidationResult(
        is_valid=not errors,
        errors=errors,
        strength=strength,
        score=min(score, 100),
    )


# =============================================================================
# Login Lockout
# =============================================================================

@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = 5
    lockout_minutes: int = 15
    progressive: bool = True
    reset_after_minutes: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> "LockoutPolicy":
        return cls(
            max_attempts=settings.login_max_attempts,
            lockout_minutes=settings.login_lockout_minutes,
            reset_after_minutes=settings.login_attempts_reset_minutes,
        )


@dataclass(frozen=True)
class LockoutDecision:
    should_lock: bool
    locked_until: Optional[datetime] = None
    remaining_attempts: int = 0


def check_lockout(failed_attempts: int, now: datetime, policy: LockoutPolicy = LockoutPolicy()) -> LockoutDecision:
    """
    Decide whether `failed_attempts` consecutive failures lock the account.

    With progressive lockout every two failures past the limit add another
    lockout period.
    """
    remaining = max(0, policy.max_attempts - failed_attempts)
    if failed_attempts < policy.max_attempts:
        return LockoutDecision(should_lock=False, remaining_attempts=remaining)

    minutes = policy.lockout_minutes
    if policy.progressive and failed_attempts > policy.max_attempts:
        minutes *= (failed_attempts - policy.max_attempts) // 2 + 1

    return LockoutDecision(should_lock=True, locked_until=now + timedelta(minutes=minutes))


def format_time_remaining(locked_until: datetime, now: datetime) -> str:
    """'14m 59s' style countdown; never negative."""
    remaining = max(0, int((locked_until - now).total_seconds()))
    minutes, seconds = divmod(remaining, 60)
    return f"{minutes}m {seconds}s"
