"""Rate limiting for the identity endpoints (slowapi).

Security: Slows credential stuffing and verification-code guessing, and
keeps the send-code endpoint from being used to spam mailboxes.

Buckets:
- Signed-in callers share one bucket per account ("account:<uuid>")
- Everyone else is bucketed by client IP ("unauth:<ip>")

Limits are read from settings at request time so they can be tuned per
deployment (and per test) without re-decorating routes:

    @router.post("/login/send-code")
    @limiter.limit(lambda: settings.rate_limit_send_code)
    async def send_code(request: Request, ...):
        ...
"""

import re
import uuid

import jwt
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.auth import decode_session_jwt
from app.core.config import settings
from app.core.responses import ErrorDetail, ErrorResponse

_WINDOW_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}
_WINDOW_PATTERN = re.compile(r"per (\d+) (second|minute|hour|day)")
_DEFAULT_RETRY_AFTER = 60


def _session_account_id(request: Request) -> uuid.UUID | None:
    token = request.cookies.get(settings.auth_cookie_name)
    secret = settings.auth_secret.get_secret_value()
    if not token or not secret:
        return None
    try:
        return uuid.UUID(decode_session_jwt(token, secret)["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None


def _rate_limit_key_func(request: Request) -> str:
    """Bucket key for a request.

    A forged or expired cookie gets the IP bucket, never its own.
    """
    account_id = _session_account_id(request)
    if account_id is not None:
        return f"account:{account_id}"
    return f"unauth:{get_remote_address(request)}"


# In-memory storage: one bucket table per process
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def _retry_after_seconds(detail: str | None) -> int:
    """Length of the limit window, parsed from e.g. "5 per 1 minute"."""
    match = _WINDOW_PATTERN.search(detail or "")
    if match is None:
        return _DEFAULT_RETRY_AFTER
    amount, unit = match.groups()
    return int(amount) * _WINDOW_SECONDS[unit]


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Render a 429 in the standard error envelope with Retry-After.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with RATE_LIMITED code.
    """
    return JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="RATE_LIMITED",
                message=f"Too many requests ({exc.detail}). Try again later.",
            )
        ).model_dump(),
        headers={"Retry-After": str(_retry_after_seconds(exc.detail))},
    )
