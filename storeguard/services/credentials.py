"""Password hashing (bcrypt) and the credential table."""

from datetime import datetime
from typing import Optional

import bcrypt
from sqlalchemy.ext.asyncio import AsyncSession

from storeguard.models.models import UserCredential

# bcrypt only reads the first 72 bytes
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt. Returns a utf-8 string."""
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Return True if password matches the stored bcrypt hash."""
    return bcrypt.checkpw(_encode(password), hashed.encode("utf-8"))


class CredentialStore:
    """Owns user_credentials. Raises on storage failure."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def set_password(self, user_id: str, new_password: str) -> None:
        credential: Optional[UserCredential] = await self.db.get(UserCredential, user_id)
        password_hash = hash_password(new_password)
        if credential is None:
            self.db.add(UserCredential(user_id=user_id, password_hash=password_hash))
        else:
            credential.password_hash = password_hash
            credential.updated_at = datetime.utcnow()
        await self.db.flush()

    async def verify(self, user_id: str, password: str) -> bool:
        credential = await self.db.get(UserCredential, user_id)
        if credential is None:
            return False
        return verify_password(password, credential.password_hash)
