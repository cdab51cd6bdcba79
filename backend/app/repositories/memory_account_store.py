"""In-memory account store.

Used by unit tests and by local experiments that need no database.
Behaves like SqlAccountStore: case-insensitive email lookup, email
uniqueness on create, full replace on save.
"""

import uuid
from datetime import UTC, datetime

from app.core.errors import DuplicateEmailError
from app.models.account import Account
from app.repositories.account_store import AccountStore, NewAccount, normalize_email


class InMemoryAccountStore(AccountStore):
    """Dict-backed account store.

    Attributes:
        accounts: Accounts keyed by id.
    """

    def __init__(self) -> None:
        self.accounts: dict[uuid.UUID, Account] = {}
        self._ids_by_email: dict[str, uuid.UUID] = {}

    async def find_by_email(self, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive)."""
        account_id = self._ids_by_email.get(normalize_email(email))
        if account_id is None:
            return None
        return self.accounts.get(account_id)

    async def find_by_id(self, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by primary key."""
        return self.accounts.get(account_id)

    async def find_by_federated_id(self, federated_id: str) -> Account | None:
        """Fetch the account linked to a Google subject identifier."""
        for account in self.accounts.values():
            if account.federated_id == federated_id:
                return account
        return None

    async def create(self, fields: NewAccount) -> Account:
        """Insert a new account unless its email is taken.

        Check and insert run with no ``await`` between them, so concurrent
        tasks on one event loop cannot both pass the check.

        Raises:
            DuplicateEmailError: If the email already exists.
        """
        account = fields.build()
        if account.email in self._ids_by_email:
            raise DuplicateEmailError(account.email)
        self._ids_by_email[account.email] = account.id
        self.accounts[account.id] = account
        return account

    async def save(self, account: Account) -> Account:
        """Replace the stored account with ``account``.

        Raises:
            KeyError: If the account was never created in this store.
            ValueError: If the email was changed after creation.
        """
        stored = self.accounts[account.id]
        if normalize_email(account.email) != stored.email:
            msg = "Account email is immutable"
            raise ValueError(msg)
        account.updated_at = datetime.now(UTC)
        self.accounts[account.id] = account
        return account

    async def commit(self) -> None:
        """Writes are immediate; nothing to do."""

    async def count(self) -> int:
        """Number of stored accounts."""
        return len(self.accounts)
