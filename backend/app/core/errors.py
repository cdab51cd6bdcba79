"""Errors the identity service reports over HTTP.

Every class carries the HTTP status and the machine-readable code that
the handlers in app.main render into the ``{"error": {...}}`` envelope.
Services raise the identity errors below. Endpoints use the generic
classes directly for request-level problems.
"""


class APIError(Exception):
    """An error with a code, a client-safe message, and an HTTP status.

    Attributes:
        code: Machine-readable code (e.g., "INVALID_CREDENTIALS").
        message: Message shown to the client. Never includes secrets,
            codes, or transport details.
        status_code: HTTP status code to return.
        details: Optional list of hints or field-level errors.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Bad request input or a failed handshake step (400)."""

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
        *,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(
            code=code, message=message, status_code=400, details=details
        )


class UnauthorizedError(APIError):
    """No usable session, or credentials rejected (401)."""

    def __init__(
        self,
        message: str = "Authentication required",
        *,
        code: str = "UNAUTHORIZED",
    ) -> None:
        super().__init__(code=code, message=message, status_code=401)


class ForbiddenError(APIError):
    """Operation disabled in this deployment (403)."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(code="FORBIDDEN", message=message, status_code=403)


class ConflictError(APIError):
    """The email address is already taken (409)."""

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code, message=message, status_code=409, details=details
        )


# ===================================================================
# Identity errors
# ===================================================================


class DuplicateEmailError(ConflictError):
    """An account with this email already exists (409).

    Raised by account stores on create. The orchestrator normally
    absorbs it by re-reading the existing account.
    """

    def __init__(self, email: str) -> None:
        super().__init__(
            code="DUPLICATE_EMAIL",
            message="An account with this email already exists",
        )
        self.email = email


class AccountExistsError(ConflictError):
    """Registration attempted for an already verified account (409)."""

    def __init__(self) -> None:
        super().__init__(
            code="ACCOUNT_EXISTS",
            message="User already exists",
        )


class InvalidCredentialsError(UnauthorizedError):
    """Password sign-in failed (401).

    Security: One message for unknown account, unverified account,
    missing password, and wrong password.
    """

    def __init__(self) -> None:
        super().__init__("Invalid credentials", code="INVALID_CREDENTIALS")


class FederatedAccountError(UnauthorizedError):
    """Password sign-in attempted on a Google-only account (401).

    The single deliberate disclosure: the user is redirected to the
    sign-in method the account actually supports.
    """

    def __init__(self) -> None:
        super().__init__(
            "This account uses Google Sign-In. Please use the Google login button.",
            code="USE_FEDERATED_SIGN_IN",
        )


class UnverifiedFederatedEmailError(UnauthorizedError):
    """Google did not vouch for the asserted email address (401).

    Such claims neither link to an existing account nor create one.
    """

    def __init__(self) -> None:
        super().__init__(
            "Your Google account email is not verified. Verify it with Google "
            "or sign in with an emailed code.",
            code="FEDERATED_EMAIL_UNVERIFIED",
        )


class InvalidOrExpiredCodeError(ValidationError):
    """Verification code missing, wrong, or expired (400)."""

    def __init__(self) -> None:
        super().__init__(
            "Invalid or expired verification code",
            code="INVALID_OR_EXPIRED_CODE",
        )


class InvalidEmailFormatError(ValidationError):
    """Email address failed the syntax check (400)."""

    def __init__(self) -> None:
        super().__init__("Invalid email format", code="INVALID_EMAIL_FORMAT")


class RegistrationNotPendingError(ValidationError):
    """Complete-registration called for an account not awaiting it (400)."""

    def __init__(self) -> None:
        super().__init__(
            "Invalid registration session",
            code="REGISTRATION_NOT_PENDING",
        )


class CodeDeliveryError(APIError):
    """Verification email could not be delivered (503).

    Security: Carries only the detected provider and generic suggestions.
    Transport and credential errors never reach the client.

    Args:
        provider: Detected mail provider key (e.g., "gmail").
        email: Recipient address, echoed back in one suggestion.
    """

    def __init__(self, provider: str, email: str) -> None:
        super().__init__(
            code="EMAIL_DELIVERY_FAILED",
            message=f"Failed to send verification code to {provider} email",
            status_code=503,
            details=[
                {
                    "provider": provider,
                    "suggestions": [
                        "Please check that your email address is correct",
                        "Check your spam/junk folder",
                        "Try again in a few minutes",
                        f"Make sure {email} can receive emails",
                    ],
                }
            ],
        )
        self.provider = provider
