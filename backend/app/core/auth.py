"""Session issuance: signed JWT cookies.

The session sink for the identity flows. A SessionIdentity (account id
plus display name) becomes an httpOnly cookie; later requests identify
the account by decoding it.

Also issues the short-lived registration token that binds the
complete-registration step to the client that proved the code.
"""

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response

from app.core.config import settings

_AUDIENCE = "videocall-identity"
_ALGORITHM = "HS256"

# Registration token: lets a code-verified placeholder account finish sign-up
_REGISTRATION_PURPOSE = "complete_registration"
_REGISTRATION_TTL = timedelta(minutes=10)


def _session_ttl() -> timedelta:
    return timedelta(hours=settings.session_ttl_hours)


def create_session_jwt(
    *,
    account_id: str,
    display_name: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session JWT with standard claims.

    Args:
        account_id: Account UUID string for the sub claim.
        display_name: Name shown for the signed-in account.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to SESSION_TTL_HOURS.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": account_id,
        "name": display_name,
        "aud": _AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or _session_ttl()),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_session_jwt(token: str, secret: str) -> dict:
    """Decode and verify a session JWT.

    Args:
        token: Encoded JWT string from the cookie.
        secret: HMAC signing secret.

    Returns:
        Verified claims.

    Raises:
        jwt.InvalidTokenError: If signature, expiry, audience, or issuer fail,
            or if the token is a registration token.
    """
    payload = jwt.decode(
        token,
        secret,
        algorithms=[_ALGORITHM],
        audience=_AUDIENCE,
        issuer=settings.auth_issuer,
    )
    if payload.get("purpose") is not None:
        msg = "Not a session token"
        raise jwt.InvalidTokenError(msg)
    return payload


def set_auth_cookie(response: Response, token: str) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: FastAPI response object.
        token: JWT token string.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=int(_session_ttl().total_seconds()),
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Delete the session cookie.

    Cookie attributes must match set_auth_cookie() for the browser to delete.
    """
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )


def create_registration_token(*, account_id: uuid.UUID, secret: str) -> str:
    """Create a signed token naming the account awaiting registration.

    Args:
        account_id: Placeholder account that just proved its code.
        secret: HMAC signing secret.

    Returns:
        Encoded JWT string, valid for 10 minutes.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(account_id),
        "purpose": _REGISTRATION_PURPOSE,
        "aud": _AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + _REGISTRATION_TTL,
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def read_registration_token(token: str, secret: str) -> uuid.UUID | None:
    """Validate a registration token and return its account id.

    Args:
        token: Encoded JWT string from the request body.
        secret: HMAC signing secret.

    Returns:
        Account UUID if the token is valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            audience=_AUDIENCE,
            issuer=settings.auth_issuer,
        )
        if payload.get("purpose") != _REGISTRATION_PURPOSE:
            return None
        return uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None


def issue_session(
    response: Response, *, account_id: uuid.UUID, display_name: str
) -> None:
    """Sign a session for a validated account and set it as a cookie.

    Args:
        response: Response that will carry the cookie.
        account_id: Account the session identifies.
        display_name: Name shown for the signed-in account.
    """
    token = create_session_jwt(
        account_id=str(account_id),
        display_name=display_name,
        secret=settings.auth_secret.get_secret_value(),
    )
    set_auth_cookie(response, token)
