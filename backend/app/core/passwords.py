"""Password hashing and strength rules.

bcrypt with a cost factor of 12. Hashing runs in a worker thread so the
event loop is not blocked for the ~250ms a hash takes.
"""

import asyncio

import bcrypt

from app.core.errors import ValidationError

# bcrypt cost factor for password hashing
_BCRYPT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of its input
_MAX_PASSWORD_BYTES = 72
_MIN_PASSWORD_LENGTH = 8

# Pre-computed bcrypt hash for timing-safe comparison when no hash exists.
# Security: prevents account enumeration via response time differences.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def validate_password_strength(password: str) -> None:
    """Validate password length rules.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If the password is too short or too long.
    """
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {_MIN_PASSWORD_LENGTH} characters"
        )
    if len(password.encode()) > _MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {_MAX_PASSWORD_BYTES} bytes"
        )


class PasswordHasher:
    """Salted, slow password hashing.

    Opaque to callers: ``hash`` produces a digest string and ``verify``
    checks a plain password against one.
    """

    def __init__(self, rounds: int = _BCRYPT_ROUNDS) -> None:
        self._rounds = rounds

    def hash_sync(self, password: str) -> str:
        """Hash a password on the calling thread."""
        return bcrypt.hashpw(
            password.encode(), bcrypt.gensalt(rounds=self._rounds)
        ).decode()

    def verify_sync(self, password: str, digest: str | None) -> bool:
        """Check a password on the calling thread.

        A missing digest still costs one bcrypt comparison against
        DUMMY_HASH, and always fails.
        """
        candidate = password.encode()[:_MAX_PASSWORD_BYTES]
        if digest is None:
            bcrypt.checkpw(candidate, DUMMY_HASH)
            return False
        return bcrypt.checkpw(candidate, digest.encode())

    async def hash(self, password: str) -> str:
        """Hash a password.

        Args:
            password: Plain-text password (never logged or stored).

        Returns:
            bcrypt digest string.
        """
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, digest: str | None) -> bool:
        """Check a password against a digest.

        Args:
            password: Plain-text password.
            digest: Stored bcrypt digest, or None when the account has none.

        Returns:
            True if the password matches.
        """
        return await asyncio.to_thread(self.verify_sync, password, digest)
