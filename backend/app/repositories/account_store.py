"""Account store interface and its SQLAlchemy implementation.

The store owns email uniqueness: no two accounts may share an email, and
that rule holds at the store boundary (a unique constraint in SQL, an
atomic check-and-insert in memory), not through caller discipline.

WHY AN INJECTED STORE:
- The identity orchestrator receives the store it works against
- Tests substitute InMemoryAccountStore without a database
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateEmailError
from app.models.account import Account, AuthMethod


def normalize_email(email: str) -> str:
    """Normalize an email address for storage and comparison.

    Args:
        email: Raw email address.

    Returns:
        Stripped, lower-cased address.
    """
    return email.strip().lower()


@dataclass(frozen=True)
class NewAccount:
    """Field set for creating an account.

    Attributes:
        email: Email address (normalized by the store).
        first_name: Given name.
        last_name: Family name.
        password_hash: bcrypt hash, if registering with a password.
        federated_id: Google subject identifier, if created by Google sign-in.
        profile_image_url: Photo URL from Google.
        last_used_method: Method that created the account.
        is_verified: Whether the email is already proven.
    """

    email: str
    first_name: str
    last_name: str
    password_hash: str | None = None
    federated_id: str | None = None
    profile_image_url: str | None = None
    last_used_method: AuthMethod = AuthMethod.LOCAL
    is_verified: bool = False

    def build(self) -> Account:
        """Materialize an Account with every column set explicitly."""
        now = datetime.now(UTC)
        return Account(
            id=uuid.uuid4(),
            email=normalize_email(self.email),
            first_name=self.first_name,
            last_name=self.last_name,
            password_hash=self.password_hash,
            federated_id=self.federated_id,
            profile_image_url=self.profile_image_url,
            last_used_method=self.last_used_method,
            is_verified=self.is_verified,
            registration_pending=False,
            verification_code=None,
            verification_code_expires=None,
            created_at=now,
            updated_at=now,
        )


class AccountStore(ABC):
    """Persistent table of accounts keyed by email.

    Lookups by email are case-insensitive. ``create`` fails with
    DuplicateEmailError when the email is already present. ``save``
    is an idempotent full replace of an existing account.
    """

    @abstractmethod
    async def find_by_email(self, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive)."""

    @abstractmethod
    async def find_by_id(self, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by primary key."""

    @abstractmethod
    async def find_by_federated_id(self, federated_id: str) -> Account | None:
        """Fetch the account linked to a Google subject identifier."""

    @abstractmethod
    async def create(self, fields: NewAccount) -> Account:
        """Create an account if its email is absent.

        Raises:
            DuplicateEmailError: If the email is already present.
        """

    @abstractmethod
    async def save(self, account: Account) -> Account:
        """Persist every field of an existing account."""

    @abstractmethod
    async def commit(self) -> None:
        """Make every write so far durable, ending the current unit of work."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored accounts."""


class SqlAccountStore(AccountStore):
    """Account store backed by an async SQLAlchemy session.

    Writes are flushed into the session's transaction. The request
    dependency commits it at the end, unless ``commit`` ends it earlier.
    A failed insert rolls the session back before DuplicateEmailError is
    raised, so ``create`` belongs at the start of a unit of work.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def find_by_email(self, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive).

        Args:
            email: Email address to look up.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(Account.email == normalize_email(email))
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_id(self, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by primary key.

        Args:
            account_id: UUID primary key.

        Returns:
            Account if found, None otherwise.
        """
        return await self._db.get(Account, account_id)

    async def find_by_federated_id(self, federated_id: str) -> Account | None:
        """Fetch the account linked to a Google subject identifier.

        Args:
            federated_id: Provider-assigned stable identifier.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(Account.federated_id == federated_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, fields: NewAccount) -> Account:
        """Insert a new account.

        Uniqueness is enforced by the unique constraint on ``email``, so two
        concurrent creators cannot both succeed.

        Args:
            fields: Field set for the new account.

        Returns:
            Created Account.

        Raises:
            DuplicateEmailError: If the email already exists.
        """
        account = fields.build()
        self._db.add(account)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            await self._db.rollback()
            raise DuplicateEmailError(account.email) from exc
        await self._db.refresh(account)
        return account

    async def save(self, account: Account) -> Account:
        """Flush all pending changes of an account.

        Args:
            account: Account previously returned by this store.

        Returns:
            The refreshed Account.
        """
        merged = await self._db.merge(account)
        await self._db.flush()
        await self._db.refresh(merged)
        return merged

    async def commit(self) -> None:
        """Commit the session's transaction and release its row locks."""
        await self._db.commit()

    async def count(self) -> int:
        """Number of stored accounts."""
        result = await self._db.execute(select(func.count()).select_from(Account))
        return int(result.scalar_one())
