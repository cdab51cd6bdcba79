"""Shared dependencies for API endpoints.

Wires the identity flows together per request: a database session, the
SQL account store over it, and an IdentityOrchestrator over the store.
The email delivery service and password hasher are process singletons.

WHY DEPENDENCY INJECTION:
- Endpoints never build collaborators themselves
- Tests override get_account_store / get_email_service with fakes
"""

import uuid
from typing import Annotated

import jwt
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import decode_session_jwt
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import UnauthorizedError
from app.core.passwords import PasswordHasher
from app.repositories.account_store import AccountStore, SqlAccountStore
from app.services.email_delivery import EmailDeliveryService
from app.services.identity import IdentityOrchestrator
from app.services.verification_challenges import VerificationChallengeManager

_email_service: EmailDeliveryService | None = None
_password_hasher: PasswordHasher | None = None


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_account_store(db: DbSession) -> AccountStore:
    """Account store bound to the request's database session."""
    return SqlAccountStore(db)


def get_email_service() -> EmailDeliveryService:
    """Get or create the email delivery service singleton."""
    global _email_service

    if _email_service is None:
        _email_service = EmailDeliveryService(settings)
    return _email_service


def get_password_hasher() -> PasswordHasher:
    """Get or create the password hasher singleton."""
    global _password_hasher

    if _password_hasher is None:
        _password_hasher = PasswordHasher()
    return _password_hasher


def get_identity_orchestrator(
    store: Annotated[AccountStore, Depends(get_account_store)],
    email_service: Annotated[EmailDeliveryService, Depends(get_email_service)],
    password_hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
) -> IdentityOrchestrator:
    """Build the orchestrator for one request.

    Args:
        store: Account store (injected).
        email_service: Email delivery service (injected).
        password_hasher: Password hasher (injected).

    Returns:
        IdentityOrchestrator wired to the given collaborators.
    """
    return IdentityOrchestrator(
        store=store,
        challenges=VerificationChallengeManager(store),
        email_service=email_service,
        password_hasher=password_hasher,
        settings=settings,
    )


def get_current_account_id(request: Request) -> uuid.UUID:
    """Get the signed-in account id from the session cookie.

    Validation steps:
    1. Read JWT from cookie
    2. Decode + verify signature (HS256), exp, aud, iss
    3. Extract sub as UUID

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        UUID of the current account.

    Raises:
        UnauthorizedError: For any session failure. Security: the reason
            is never disclosed.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise UnauthorizedError()

    try:
        payload = decode_session_jwt(token, settings.auth_secret.get_secret_value())
        return uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise UnauthorizedError() from exc


# Reusable type aliases for dependency injection
Accounts = Annotated[AccountStore, Depends(get_account_store)]
Identity = Annotated[IdentityOrchestrator, Depends(get_identity_orchestrator)]
CurrentAccountId = Annotated[uuid.UUID, Depends(get_current_account_id)]
