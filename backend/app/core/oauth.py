"""Google sign-in handshake helpers: PKCE, state cookie, endpoints.

The handshake itself stays at the HTTP edge. Its only output to the
identity flows is a FederatedClaims value built by ``claims_from_userinfo``.
"""

import base64
import hashlib
import secrets
import time
from dataclasses import dataclass
from typing import Any

import jwt

from app.core.account_linking import FederatedClaims

# PKCE code verifier length (RFC 7636 allows 43-128)
_VERIFIER_LENGTH = 128

# RFC 7636 §4.1 unreserved characters
_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

# OAuth state cookie lifetime (10 minutes)
_DEFAULT_STATE_TTL = 600
_STATE_AUDIENCE = "videocall-oauth-state"


def generate_code_verifier() -> str:
    """Generate a 128-character PKCE code verifier."""
    return "".join(secrets.choice(_UNRESERVED_CHARS) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 PKCE challenge: BASE64URL(SHA256(verifier)), unpadded."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_oauth_state_cookie(
    *,
    state: str,
    code_verifier: str,
    secret: str,
    ttl_seconds: int = _DEFAULT_STATE_TTL,
) -> str:
    """Sign the state parameter and PKCE verifier into a cookie value.

    Args:
        state: Random CSRF state parameter.
        code_verifier: PKCE verifier for the token exchange.
        secret: HMAC signing secret.
        ttl_seconds: Cookie lifetime.

    Returns:
        Signed JWT string.
    """
    payload = {
        "state": state,
        "code_verifier": code_verifier,
        "aud": _STATE_AUDIENCE,
        "exp": int(time.time()) + ttl_seconds,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def validate_oauth_state_cookie(
    *,
    cookie_value: str,
    expected_state: str,
    secret: str,
) -> str | None:
    """Check the state cookie against the callback's state parameter.

    Returns:
        The PKCE code verifier if signature, expiry, and state all check
        out, None otherwise.
    """
    try:
        payload = jwt.decode(
            cookie_value, secret, algorithms=["HS256"], audience=_STATE_AUDIENCE
        )
    except jwt.InvalidTokenError:
        return None

    if not secrets.compare_digest(str(payload.get("state", "")), expected_state):
        return None

    return payload.get("code_verifier")


# ===================================================================
# Google endpoints
# ===================================================================


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Endpoints and scopes of an OAuth provider.

    Attributes:
        authorization_url: Authorization endpoint.
        token_url: Token exchange endpoint.
        userinfo_url: OpenID Connect userinfo endpoint.
        scopes: Scopes to request.
    """

    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]


GOOGLE = OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
    authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
    scopes=("openid", "email", "profile"),
)


def claims_from_userinfo(userinfo: dict[str, Any]) -> FederatedClaims | None:
    """Convert a Google userinfo document into FederatedClaims.

    Args:
        userinfo: Parsed userinfo response (sub, email, given_name,
            family_name, picture, email_verified).

    Returns:
        FederatedClaims, or None when ``sub`` or ``email`` is missing.
    """
    provider_id = userinfo.get("sub")
    email = userinfo.get("email")
    if not provider_id or not email:
        return None
    return FederatedClaims(
        provider_id=str(provider_id),
        email=str(email),
        given_name=str(userinfo.get("given_name") or ""),
        family_name=str(userinfo.get("family_name") or ""),
        photo_url=userinfo.get("picture") or None,
        email_verified=userinfo.get("email_verified") in (True, "true"),
    )
