"""Verification code sign-in endpoints.

Two steps, so the client can show an intermediate state:
- POST /auth/login/send-code: issue a six-digit code and email it
- POST /auth/login/verify-code: check the code; sign in, or ask for a
  name when the account was just created
- POST /auth/complete-registration: finish a placeholder account
- POST /auth/test-email: send a fixed test code (not in production)

Security: the code is echoed in responses only in development, and
delivery errors never reach the client verbatim.
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import Identity
from app.core.auth import (
    create_registration_token,
    issue_session,
    read_registration_token,
)
from app.core.config import settings
from app.core.errors import APIError, ForbiddenError, RegistrationNotPendingError
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.services.email_delivery import EmailDeliveryFailedError
from app.services.identity import CodeRequestResult, DeliveryMode, NeedsRegistration

router = APIRouter()

_SEND_CODE_MESSAGES = {
    DeliveryMode.REAL: "Verification code sent to your {provider} email",
    DeliveryMode.MOCK: "Verification code sent (development mode - check console)",
    DeliveryMode.MOCK_FALLBACK: (
        "Email service temporarily unavailable - "
        "verification code displayed in server console"
    ),
}

_EMAIL_TEST_SUGGESTIONS = [
    "Check your EMAIL_USER and EMAIL_APP_PASSWORD in .env file",
    "Make sure 2-factor authentication is enabled on Gmail",
    "Generate a new App Password from Google Account settings",
    "Try using mock mode for development",
]


# ===================================================================
# Request models
# ===================================================================


class SendCodeRequest(BaseModel):
    """Request body for POST /auth/login/send-code and /auth/test-email."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=254)


class VerifyCodeRequest(BaseModel):
    """Request body for POST /auth/login/verify-code."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=254)
    code: str = Field(min_length=1, max_length=16)


class CompleteRegistrationRequest(BaseModel):
    """Request body for POST /auth/complete-registration."""

    model_config = ConfigDict(extra="forbid")

    registration_token: str = Field(min_length=1, max_length=2048)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    password: str | None = Field(None, max_length=128)


def _code_request_payload(result: CodeRequestResult) -> dict:
    data: dict = {
        "message": _SEND_CODE_MESSAGES[result.mode].format(provider=result.provider),
        "email": result.email,
        "provider": result.provider,
        "is_known_provider": result.is_known_provider,
        "mode": result.mode.value,
    }
    if result.code is not None:
        data["code"] = result.code
    return data


# ===================================================================
# POST /auth/login/send-code
# ===================================================================


@router.post("/login/send-code")
@limiter.limit(lambda: settings.rate_limit_send_code)
async def send_code(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SendCodeRequest,
    identity: Identity,
) -> DataResponse[dict]:
    """Issue a verification code and deliver it by email.

    Creates a placeholder account on first contact with an address.
    """
    result = await identity.request_code(body.email)
    return DataResponse(data=_code_request_payload(result))


# ===================================================================
# POST /auth/login/verify-code
# ===================================================================


@router.post("/login/verify-code")
@limiter.limit(lambda: settings.rate_limit_verify_code)
async def verify_code(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyCodeRequest,
    response: Response,
    identity: Identity,
) -> DataResponse[dict]:
    """Check a code and sign in.

    For an account that still needs a name, returns a short-lived
    registration token instead of a session.
    """
    outcome = await identity.submit_code(body.email, body.code)

    if isinstance(outcome, NeedsRegistration):
        token = create_registration_token(
            account_id=outcome.account_id,
            secret=settings.auth_secret.get_secret_value(),
        )
        return DataResponse(
            data={
                "needs_registration": True,
                "message": "Please complete your registration",
                "registration_token": token,
            }
        )

    issue_session(
        response, account_id=outcome.account_id, display_name=outcome.display_name
    )
    return DataResponse(
        data={
            "needs_registration": False,
            "message": "Login successful",
            "id": str(outcome.account_id),
            "name": outcome.display_name,
        }
    )


# ===================================================================
# POST /auth/complete-registration
# ===================================================================


@router.post("/complete-registration")
@limiter.limit(lambda: settings.rate_limit_verify_code)
async def complete_registration(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: CompleteRegistrationRequest,
    response: Response,
    identity: Identity,
) -> DataResponse[dict]:
    """Set the real name (and optional password) and sign in."""
    account_id = read_registration_token(
        body.registration_token, settings.auth_secret.get_secret_value()
    )
    if account_id is None:
        raise RegistrationNotPendingError()

    session = await identity.complete_registration(
        account_id, body.first_name, body.last_name, body.password
    )
    issue_session(
        response, account_id=session.account_id, display_name=session.display_name
    )
    return DataResponse(
        data={
            "message": "Registration completed successfully",
            "id": str(session.account_id),
            "name": session.display_name,
        }
    )


# ===================================================================
# POST /auth/test-email
# ===================================================================


@router.post("/test-email")
@limiter.limit(lambda: settings.rate_limit_send_code)
async def test_email(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SendCodeRequest,
    identity: Identity,
) -> DataResponse[dict]:
    """Send a fixed test code to check email delivery.

    Development only. Failure details are returned since this endpoint
    never runs in production.
    """
    if not settings.is_development:
        raise ForbiddenError("Email test is disabled in production")

    try:
        result = await identity.test_email_delivery(body.email)
    except EmailDeliveryFailedError as e:
        raise APIError(
            code="EMAIL_TEST_FAILED",
            message="Email test failed",
            status_code=500,
            details=[{"error": e.last_error, "suggestions": _EMAIL_TEST_SUGGESTIONS}],
        ) from e

    if result.mode == DeliveryMode.MOCK:
        message = "Mock email sent (check console)"
    else:
        message = f"Test email sent successfully to {result.provider} email!"
    return DataResponse(
        data={
            "message": message,
            "provider": result.provider,
            "is_known_provider": result.is_known_provider,
            "mode": result.mode.value,
        }
    )
