"""Google sign-in endpoints.

- GET /auth/providers/google: redirect to Google with PKCE + state
- GET /auth/callback/google: finish the handshake, resolve the account,
  issue the session cookie, and redirect to the frontend

The handshake stays here. The identity flows only ever see the
resulting FederatedClaims.
"""

import logging
import secrets
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from starlette.responses import Response

from app.api.deps import Identity
from app.core.account_linking import FederatedClaims
from app.core.auth import issue_session
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.oauth import (
    GOOGLE,
    claims_from_userinfo,
    create_oauth_state_cookie,
    generate_code_challenge,
    generate_code_verifier,
    validate_oauth_state_cookie,
)
from app.core.oauth_client import exchange_code_for_tokens, fetch_userinfo
from app.core.rate_limiting import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

_STATE_COOKIE = "oauth_state"
_STATE_COOKIE_PATH = "/api/v1/auth/callback"
_STATE_COOKIE_MAX_AGE = 600
_CALLBACK_PATH = "/api/v1/auth/callback/google"


def _callback_url(request: Request) -> str:
    return str(request.base_url).rstrip("/") + _CALLBACK_PATH


def _signing_secret() -> str:
    return settings.auth_secret.get_secret_value()


async def _claims_from_google(
    *, code: str, code_verifier: str, redirect_uri: str
) -> FederatedClaims:
    """Run the server-side half of the handshake.

    Raises:
        ValidationError: On any Google failure. Details are logged only.
    """
    try:
        tokens = await exchange_code_for_tokens(
            code=code, code_verifier=code_verifier, redirect_uri=redirect_uri
        )
    except httpx.HTTPError:
        logger.exception("Google token exchange failed")
        raise ValidationError("Google sign-in failed") from None

    access_token = tokens.get("access_token")
    if not access_token:
        raise ValidationError("Google did not return an access token")

    try:
        userinfo = await fetch_userinfo(access_token=access_token)
    except httpx.HTTPError:
        logger.exception("Google userinfo fetch failed")
        raise ValidationError("Could not retrieve Google profile") from None

    claims = claims_from_userinfo(userinfo)
    if claims is None:
        logger.warning(
            "Google profile missing subject or email",
            extra={"fields": sorted(userinfo)},
        )
        raise ValidationError("Google profile is missing an email address")
    return claims


# ===================================================================
# GET /auth/providers/google
# ===================================================================


@router.get("/providers/google")
@limiter.limit(lambda: settings.rate_limit_oauth)
async def google_initiate(request: Request) -> Response:
    """Redirect to Google's consent screen.

    The PKCE verifier and the CSRF state travel in a signed, httpOnly
    cookie scoped to the callback path.
    """
    if not settings.google_client_id:
        raise ValidationError("Google sign-in is not configured")

    code_verifier = generate_code_verifier()
    state = secrets.token_urlsafe(32)
    query = urlencode(
        {
            "client_id": settings.google_client_id,
            "redirect_uri": _callback_url(request),
            "response_type": "code",
            "scope": " ".join(GOOGLE.scopes),
            "state": state,
            "code_challenge": generate_code_challenge(code_verifier),
            "code_challenge_method": "S256",
        }
    )

    redirect = RedirectResponse(
        url=f"{GOOGLE.authorization_url}?{query}", status_code=307
    )
    redirect.set_cookie(
        key=_STATE_COOKIE,
        value=create_oauth_state_cookie(
            state=state, code_verifier=code_verifier, secret=_signing_secret()
        ),
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=_STATE_COOKIE_MAX_AGE,
        path=_STATE_COOKIE_PATH,
    )
    return redirect


# ===================================================================
# GET /auth/callback/google
# ===================================================================


@router.get("/callback/google")
@limiter.limit(lambda: settings.rate_limit_oauth)
async def google_callback(
    request: Request,
    identity: Identity,
    code: str | None = None,
    state: str | None = None,
) -> Response:
    """Finish Google sign-in and land on the frontend signed in.

    A Google account whose email already has a local account is linked to
    it rather than creating a second account.
    """
    if not code or not state:
        raise ValidationError("Missing authorization code or state")

    state_cookie = request.cookies.get(_STATE_COOKIE)
    if not state_cookie:
        raise ValidationError("Missing OAuth state cookie")

    code_verifier = validate_oauth_state_cookie(
        cookie_value=state_cookie, expected_state=state, secret=_signing_secret()
    )
    if not code_verifier:
        raise ValidationError("Invalid or expired OAuth state")

    claims = await _claims_from_google(
        code=code, code_verifier=code_verifier, redirect_uri=_callback_url(request)
    )
    session = await identity.login_federated(claims)

    redirect = RedirectResponse(url=settings.frontend_url, status_code=307)
    issue_session(
        redirect, account_id=session.account_id, display_name=session.display_name
    )
    redirect.delete_cookie(key=_STATE_COOKIE, path=_STATE_COOKIE_PATH)
    return redirect
