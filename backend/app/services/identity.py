"""Identity orchestrator - password, code, and federated sign-in flows.

Every flow converges on a SessionIdentity that the session layer turns
into a cookie. The orchestrator reads and writes through the injected
AccountStore, issues codes through the VerificationChallengeManager, and
hands them to the EmailDeliveryService. It never touches a mail
transport directly.

Email uniqueness is the store's job: on DuplicateEmailError the
orchestrator re-reads the winner instead of checking first and hoping.
"""

import enum
import logging
import uuid
from dataclasses import dataclass

from app.core.account_linking import (
    FederatedClaims,
    find_or_create_account_for_federated,
)
from app.core.config import Settings
from app.core.errors import (
    AccountExistsError,
    CodeDeliveryError,
    DuplicateEmailError,
    FederatedAccountError,
    InvalidCredentialsError,
    InvalidEmailFormatError,
    InvalidOrExpiredCodeError,
    RegistrationNotPendingError,
    ValidationError,
)
from app.core.passwords import PasswordHasher, validate_password_strength
from app.models.account import (
    PLACEHOLDER_FIRST_NAME,
    PLACEHOLDER_LAST_NAME,
    Account,
    AuthMethod,
)
from app.providers.mail import analyze_address, is_valid_email
from app.repositories.account_store import AccountStore, NewAccount, normalize_email
from app.services.email_delivery import EmailDeliveryFailedError, EmailDeliveryService
from app.services.verification_challenges import VerificationChallengeManager

__all__ = [
    "CodeRequestResult",
    "DeliveryMode",
    "FederatedClaims",
    "IdentityOrchestrator",
    "NeedsRegistration",
    "SessionIdentity",
    "TEST_EMAIL_CODE",
]

logger = logging.getLogger(__name__)

# Fixed code sent by the delivery self-test
TEST_EMAIL_CODE = "123456"
_TEST_EMAIL_NAME = "Test User"

# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class SessionIdentity:
    """Validated account reference handed to the session layer.

    Attributes:
        account_id: Account primary key.
        display_name: "First Last" for display.
    """

    account_id: uuid.UUID
    display_name: str

    @classmethod
    def for_account(cls, account: Account) -> "SessionIdentity":
        return cls(account_id=account.id, display_name=account.display_name)


@dataclass(frozen=True)
class NeedsRegistration:
    """Code proved, but the account still has the placeholder name.

    Not a session. The client must collect a real name (and optionally a
    password) and call complete_registration.
    """

    account_id: uuid.UUID


class DeliveryMode(enum.StrEnum):
    """How a verification code reached (or failed to reach) the user."""

    REAL = "real"
    MOCK = "mock"
    MOCK_FALLBACK = "mock-fallback"


@dataclass(frozen=True)
class CodeRequestResult:
    """Outcome of requesting a sign-in code.

    Attributes:
        email: Normalized recipient address.
        provider: Detected mail provider key.
        is_known_provider: Informational hint for the UI.
        mode: Delivery mode used.
        code: The code itself. Set only in non-production mode.
    """

    email: str
    provider: str
    is_known_provider: bool
    mode: DeliveryMode
    code: str | None = None


def _require_name(value: str, field: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValidationError(
            f"{field} is required",
            details=[{"field": field, "error": "REQUIRED"}],
        )
    return cleaned


class IdentityOrchestrator:
    """Registration and sign-in flows over an injected account store.

    Args:
        store: Account store (owns email uniqueness).
        challenges: Verification challenge manager.
        email_service: Delivery service for verification codes.
        password_hasher: Opaque hash/verify capability.
        settings: Operational mode and email configuration.
    """

    def __init__(
        self,
        store: AccountStore,
        challenges: VerificationChallengeManager,
        email_service: EmailDeliveryService,
        password_hasher: PasswordHasher,
        settings: Settings,
    ) -> None:
        self._store = store
        self._challenges = challenges
        self._email = email_service
        self._hasher = password_hasher
        self._settings = settings

    def _check_email(self, email: str) -> str:
        email = email.strip()
        if not is_valid_email(email):
            raise InvalidEmailFormatError()
        return normalize_email(email)

    # =========================================================================
    # Password flow
    # =========================================================================

    async def register_password(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> Account:
        """Register (or re-register) a local account.

        An existing unverified account is overwritten in place: the last
        registration attempt wins and no second row is created.

        Args:
            email: Account email.
            password: Plain-text password (hashed before storage).
            first_name: Given name.
            last_name: Family name.

        Returns:
            The created or updated Account (unverified).

        Raises:
            InvalidEmailFormatError: If the email fails the syntax check.
            ValidationError: If a name is blank or the password is weak.
            AccountExistsError: If a verified account owns the email.
        """
        email = self._check_email(email)
        first_name = _require_name(first_name, "first_name")
        last_name = _require_name(last_name, "last_name")
        validate_password_strength(password)

        existing = await self._store.find_by_email(email)
        if existing is not None and existing.is_verified:
            raise AccountExistsError()

        password_hash = await self._hasher.hash(password)

        if existing is None:
            try:
                account = await self._store.create(
                    NewAccount(
                        email=email,
                        first_name=first_name,
                        last_name=last_name,
                        password_hash=password_hash,
                        last_used_method=AuthMethod.LOCAL,
                    )
                )
            except DuplicateEmailError:
                existing = await self._store.find_by_email(email)
                if existing is None:
                    raise
                if existing.is_verified:
                    raise AccountExistsError() from None
            else:
                logger.info(
                    "Account registered",
                    extra={"account_id": str(account.id)},
                )
                return account

        existing.first_name = first_name
        existing.last_name = last_name
        existing.password_hash = password_hash
        account = await self._store.save(existing)
        logger.info(
            "Unverified account re-registered",
            extra={"account_id": str(account.id)},
        )
        return account

    async def login_password(self, email: str, password: str) -> SessionIdentity:
        """Sign in with email and password.

        Security: Unknown account, unverified account, missing password,
        and wrong password all fail the same way, and all cost one bcrypt
        comparison. The one exception is a Google-only account, which is
        told to use Google sign-in.

        Raises:
            InvalidCredentialsError: On any credential failure.
            FederatedAccountError: If the account only has a Google link.
        """
        account = await self._store.find_by_email(normalize_email(email))

        digest = (
            account.password_hash
            if account is not None and account.is_verified
            else None
        )
        password_ok = await self._hasher.verify(password, digest)

        if account is None or not account.is_verified:
            raise InvalidCredentialsError()
        if not account.has_password:
            if account.has_federated_link:
                raise FederatedAccountError()
            raise InvalidCredentialsError()
        if not password_ok:
            logger.info(
                "Password sign-in failed",
                extra={"account_id": str(account.id)},
            )
            raise InvalidCredentialsError()

        if account.last_used_method != AuthMethod.LOCAL:
            account.last_used_method = AuthMethod.LOCAL
            account = await self._store.save(account)
        return SessionIdentity.for_account(account)

    # =========================================================================
    # Code flow
    # =========================================================================

    async def _find_or_create_for_code(self, email: str) -> Account:
        account = await self._store.find_by_email(email)
        if account is not None:
            return account
        try:
            account = await self._store.create(
                NewAccount(
                    email=email,
                    first_name=PLACEHOLDER_FIRST_NAME,
                    last_name=PLACEHOLDER_LAST_NAME,
                )
            )
        except DuplicateEmailError:
            existing = await self._store.find_by_email(email)
            if existing is None:
                raise
            return existing
        logger.info(
            "Placeholder account created for code sign-in",
            extra={"account_id": str(account.id)},
        )
        return account

    async def request_code(self, email: str) -> CodeRequestResult:
        """Issue a sign-in code and deliver it.

        The account and challenge are committed before the email goes out,
        so a failed delivery keeps them and no transaction stays open
        across the send. In development the code is logged and returned
        instead; in production a provider-scoped CodeDeliveryError is raised.

        Args:
            email: Address to send the code to.

        Returns:
            CodeRequestResult with provider metadata and delivery mode.

        Raises:
            InvalidEmailFormatError: If the email fails the syntax check.
            CodeDeliveryError: If delivery failed in production.
        """
        email = self._check_email(email)
        address = analyze_address(email)
        provider = address.provider.value

        account = await self._find_or_create_for_code(email)
        challenge = await self._challenges.issue(account)
        await self._store.commit()

        def result(mode: DeliveryMode) -> CodeRequestResult:
            return CodeRequestResult(
                email=email,
                provider=provider,
                is_known_provider=address.is_known_provider,
                mode=mode,
                code=challenge.code if self._settings.is_development else None,
            )

        if self._settings.use_mock_email:
            await self._email.send_mock(email, challenge.code, account.first_name)
            return result(DeliveryMode.MOCK)

        try:
            await self._email.send(email, challenge.code, account.first_name)
        except EmailDeliveryFailedError as e:
            logger.error(
                "Verification email delivery failed",
                extra={
                    "account_id": str(account.id),
                    "provider": provider,
                    "attempts": e.attempts,
                    "last_error": e.last_error,
                },
            )
            if not self._settings.is_development:
                raise CodeDeliveryError(provider=provider, email=email) from e
            logger.warning(
                "EMAIL FAILED - development code for %s: %s",
                email,
                challenge.code,
            )
            return result(DeliveryMode.MOCK_FALLBACK)

        return result(DeliveryMode.REAL)

    async def submit_code(
        self, email: str, code: str
    ) -> SessionIdentity | NeedsRegistration:
        """Check a submitted code.

        Args:
            email: Account email.
            code: Code typed by the user.

        Returns:
            NeedsRegistration for a placeholder account, which is marked as
            awaiting registration (the challenge is kept until it
            completes). Otherwise a SessionIdentity.

        Raises:
            InvalidOrExpiredCodeError: If there is no account or the code
                is wrong or expired.
        """
        account = await self._store.find_by_email(normalize_email(email))
        if account is None or not self._challenges.validate(account, code):
            raise InvalidOrExpiredCodeError()

        if account.has_placeholder_name:
            if not account.registration_pending:
                account.registration_pending = True
                account = await self._store.save(account)
            return NeedsRegistration(account_id=account.id)

        account.is_verified = True
        account.last_used_method = AuthMethod.LOCAL
        await self._challenges.clear(account)
        logger.info(
            "Code sign-in succeeded",
            extra={"account_id": str(account.id)},
        )
        return SessionIdentity.for_account(account)

    async def complete_registration(
        self,
        account_id: uuid.UUID,
        first_name: str,
        last_name: str,
        password: str | None = None,
    ) -> SessionIdentity:
        """Give a code-verified placeholder account its real identity.

        Args:
            account_id: Account from NeedsRegistration.
            first_name: Given name.
            last_name: Family name.
            password: Optional password to enable password sign-in.

        Returns:
            SessionIdentity for the now verified account.

        Raises:
            ValidationError: If a name is blank or the password is weak.
            RegistrationNotPendingError: If the account does not exist, has
                a real name, or has not proven its code via submit_code.
        """
        first_name = _require_name(first_name, "first_name")
        last_name = _require_name(last_name, "last_name")
        if password:
            validate_password_strength(password)

        account = await self._store.find_by_id(account_id)
        if account is None or not account.awaiting_registration:
            raise RegistrationNotPendingError()

        account.first_name = first_name
        account.last_name = last_name
        account.registration_pending = False
        account.is_verified = True
        account.last_used_method = AuthMethod.LOCAL
        if password:
            account.password_hash = await self._hasher.hash(password)
        await self._challenges.clear(account)

        logger.info(
            "Registration completed",
            extra={"account_id": str(account.id), "with_password": bool(password)},
        )
        return SessionIdentity.for_account(account)

    # =========================================================================
    # Federated flow
    # =========================================================================

    async def login_federated(self, claims: FederatedClaims) -> SessionIdentity:
        """Sign in with claims from a completed Google handshake.

        Args:
            claims: Provider claims.

        Returns:
            SessionIdentity for the resolved account.
        """
        account, _created = await find_or_create_account_for_federated(
            store=self._store, claims=claims
        )
        if account.last_used_method != AuthMethod.FEDERATED:
            account.last_used_method = AuthMethod.FEDERATED
            account = await self._store.save(account)
        return SessionIdentity.for_account(account)

    # =========================================================================
    # Delivery self-test
    # =========================================================================

    async def test_email_delivery(self, email: str) -> CodeRequestResult:
        """Send a fixed test code through the normal mock/real choice.

        Nothing is persisted.

        Raises:
            InvalidEmailFormatError: If the email fails the syntax check.
            EmailDeliveryFailedError: If real delivery fails.
        """
        email = self._check_email(email)
        address = analyze_address(email)

        if self._settings.use_mock_email:
            await self._email.send_mock(email, TEST_EMAIL_CODE, _TEST_EMAIL_NAME)
            mode = DeliveryMode.MOCK
        else:
            await self._email.send(email, TEST_EMAIL_CODE, _TEST_EMAIL_NAME)
            mode = DeliveryMode.REAL

        return CodeRequestResult(
            email=email,
            provider=address.provider.value,
            is_known_provider=address.is_known_provider,
            mode=mode,
        )
