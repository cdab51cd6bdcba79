"""Verification challenge lifecycle.

Issues, validates, and clears the six-digit codes that prove ownership
of an email address. One live challenge per account: issuing a new one
silently voids the previous code.
"""

import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from app.models.account import Account, VerificationChallenge
from app.repositories.account_store import AccountStore

logger = logging.getLogger(__name__)

CODE_TTL = timedelta(minutes=10)

# Uniform over 100000..999999
_CODE_FLOOR = 100_000
_CODE_SPAN = 900_000


def _utc_now() -> datetime:
    return datetime.now(UTC)


def generate_code() -> str:
    """Draw a uniformly random six-digit code from a CSPRNG."""
    return str(secrets.randbelow(_CODE_SPAN) + _CODE_FLOOR)


class VerificationChallengeManager:
    """Issues and checks verification challenges stored on accounts.

    Args:
        store: Account store the challenge is persisted through.
        now: Clock returning timezone-aware UTC time. Injectable for tests.
        ttl: Challenge lifetime.
    """

    def __init__(
        self,
        store: AccountStore,
        *,
        now: Callable[[], datetime] = _utc_now,
        ttl: timedelta = CODE_TTL,
    ) -> None:
        self._store = store
        self._now = now
        self._ttl = ttl

    async def issue(self, account: Account) -> VerificationChallenge:
        """Replace the account's challenge with a fresh one and persist it.

        Args:
            account: Account to challenge.

        Returns:
            The new challenge.
        """
        challenge = VerificationChallenge(
            code=generate_code(),
            expires_at=self._now() + self._ttl,
        )
        account.active_challenge = challenge
        await self._store.save(account)
        logger.info(
            "Verification challenge issued",
            extra={"account_id": str(account.id)},
        )
        return challenge

    def validate(self, account: Account, submitted_code: str) -> bool:
        """Check a submitted code against the account's challenge.

        Read-only: the caller clears the challenge after acting on success.
        Codes compare as strings, so leading zeros are never lost.

        Args:
            account: Account holding the challenge.
            submitted_code: Code typed by the user.

        Returns:
            True if a challenge exists, the code matches exactly, and it
            has not expired.
        """
        challenge = account.active_challenge
        if challenge is None:
            return False
        if challenge.is_expired(self._now()):
            return False
        return hmac.compare_digest(
            challenge.code.encode(), submitted_code.encode()
        )

    async def clear(self, account: Account) -> None:
        """Void the account's challenge and persist the change."""
        account.active_challenge = None
        await self._store.save(account)
