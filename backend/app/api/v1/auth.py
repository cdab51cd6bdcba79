"""Authentication endpoints for password-based auth.

- POST /auth/register: create or re-register an unverified local account
- POST /auth/login: email + password sign-in

Security considerations:
- login: one bcrypt comparison on every path (DUMMY_HASH when no usable
  hash) prevents account enumeration by response time
- register: bcrypt cost 12; email uniqueness enforced by the store
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import Identity
from app.core.auth import issue_session
from app.core.config import settings
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.providers.mail import detect_provider

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1, max_length=128)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1, max_length=128)


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=201)
@limiter.limit(lambda: settings.rate_limit_password)
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    identity: Identity,
) -> DataResponse[dict]:
    """Register a local account with email + password.

    The account stays unverified until the email is proven through the
    code flow or Google sign-in. Re-registering an unverified email
    overwrites its name and password.
    """
    account = await identity.register_password(
        body.email, body.password, body.first_name, body.last_name
    )
    return DataResponse(
        data={
            "message": "User registered successfully",
            "id": str(account.id),
            "email": account.email,
            "provider": detect_provider(account.email).value,
        }
    )


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit(lambda: settings.rate_limit_password)
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    identity: Identity,
) -> DataResponse[dict]:
    """Verify email + password and issue the session cookie."""
    session = await identity.login_password(body.email, body.password)
    issue_session(
        response, account_id=session.account_id, display_name=session.display_name
    )
    return DataResponse(
        data={
            "message": "Login successful",
            "id": str(session.account_id),
            "name": session.display_name,
        }
    )
