"""Outbound calls to Google during the sign-in handshake.

Both calls raise httpx.HTTPError on transport failures and non-2xx
answers. Callers turn that into a generic 400; Google's response body is
never shown to the user.
"""

from typing import Any

import httpx

from app.core.config import settings
from app.core.oauth import GOOGLE

_GOOGLE_TIMEOUT = httpx.Timeout(10.0)


async def _google_json(method: str, url: str, **kwargs: Any) -> dict[str, Any]:
    async with httpx.AsyncClient(timeout=_GOOGLE_TIMEOUT) as client:
        resp = await client.request(method, url, **kwargs)
    resp.raise_for_status()
    body: dict[str, Any] = resp.json()
    return body


async def exchange_code_for_tokens(
    *,
    code: str,
    code_verifier: str,
    redirect_uri: str,
) -> dict[str, Any]:
    """Trade the callback's authorization code for Google tokens.

    Args:
        code: Authorization code from the callback.
        code_verifier: PKCE verifier stored in the state cookie.
        redirect_uri: Same callback URL sent at initiation.

    Returns:
        Token response (access_token, id_token, expires_in, ...).
    """
    return await _google_json(
        "POST",
        GOOGLE.token_url,
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret.get_secret_value(),
            "code_verifier": code_verifier,
        },
    )


async def fetch_userinfo(*, access_token: str) -> dict[str, Any]:
    """OpenID userinfo for the signed-in Google user (sub, email, names, picture)."""
    return await _google_json(
        "GET",
        GOOGLE.userinfo_url,
        headers={"Authorization": f"Bearer {access_token}"},
    )
