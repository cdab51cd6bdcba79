"""Tests for Google sign-in endpoints: initiation and callback."""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.core.oauth import create_oauth_state_cookie
from app.models.account import AuthMethod
from app.repositories.account_store import NewAccount
from app.repositories.memory_account_store import InMemoryAccountStore
from tests.conftest import TEST_AUTH_SECRET

# ===================================================================
# Constants
# ===================================================================

_GOOGLE_INITIATE_URL = "/api/v1/auth/providers/google"
_GOOGLE_CALLBACK_URL = "/api/v1/auth/callback/google"
_OAUTH_STATE_COOKIE = "oauth_state"
_PATCH_EXCHANGE = "app.api.v1.auth_oauth.exchange_code_for_tokens"
_PATCH_USERINFO = "app.api.v1.auth_oauth.fetch_userinfo"

_MOCK_GOOGLE_USERINFO = {
    "sub": "google-sub-test-123",
    "email": "oauthuser@example.com",
    "email_verified": True,
    "given_name": "OAuth",
    "family_name": "User",
    "picture": "https://example.com/photo.jpg",
}


@pytest.fixture(autouse=True)
def google_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    """Google client credentials and a frontend URL for every test here."""
    monkeypatch.setattr(settings, "google_client_id", "test-google-client-id")
    monkeypatch.setattr(settings, "frontend_url", "http://localhost:5000")


async def _callback(
    client: AsyncClient,
    *,
    state: str = "test-state",
    userinfo: dict | None = None,
):
    client.cookies.set(
        _OAUTH_STATE_COOKIE,
        create_oauth_state_cookie(
            state=state, code_verifier="test-verifier", secret=TEST_AUTH_SECRET
        ),
    )
    with (
        patch(
            _PATCH_EXCHANGE,
            new_callable=AsyncMock,
            return_value={"access_token": "mock-token"},
        ) as exchange,
        patch(
            _PATCH_USERINFO,
            new_callable=AsyncMock,
            return_value=userinfo or _MOCK_GOOGLE_USERINFO,
        ),
    ):
        response = await client.get(
            _GOOGLE_CALLBACK_URL, params={"code": "auth-code", "state": state}
        )
    return response, exchange


def _session_cookie_set(response) -> bool:
    return any(
        c.startswith(f"{settings.auth_cookie_name}=")
        for c in response.headers.get_list("set-cookie")
    )


# ===================================================================
# GET /auth/providers/google
# ===================================================================


class TestGoogleInitiate:
    """Tests for GET /auth/providers/google."""

    async def test_redirects_with_pkce_and_state(self, client: AsyncClient):
        """Redirects to Google with S256 challenge and sets the state cookie."""
        response = await client.get(_GOOGLE_INITIATE_URL)

        assert response.status_code == 307
        location = urlparse(response.headers["location"])
        assert location.netloc == "accounts.google.com"
        params = parse_qs(location.query)
        assert params["client_id"] == ["test-google-client-id"]
        assert params["code_challenge_method"] == ["S256"]
        assert params["scope"] == ["openid email profile"]
        assert params["redirect_uri"][0].endswith("/api/v1/auth/callback/google")
        assert any(
            c.startswith(f"{_OAUTH_STATE_COOKIE}=")
            for c in response.headers.get_list("set-cookie")
        )

    async def test_not_configured(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ):
        """400 when no Google client id is configured."""
        monkeypatch.setattr(settings, "google_client_id", "")

        response = await client.get(_GOOGLE_INITIATE_URL)

        assert response.status_code == 400


# ===================================================================
# GET /auth/callback/google
# ===================================================================


class TestGoogleCallback:
    """Tests for GET /auth/callback/google."""

    async def test_creates_account_and_redirects(
        self, client: AsyncClient, store: InMemoryAccountStore
    ):
        """New Google user gets an account, a session cookie, and a redirect."""
        response, exchange = await _callback(client)

        assert response.status_code == 307
        assert response.headers["location"].startswith("http://localhost:5000")
        set_cookies = response.headers.get_list("set-cookie")
        assert any(c.startswith(f"{settings.auth_cookie_name}=") for c in set_cookies)
        assert exchange.await_args.kwargs["code_verifier"] == "test-verifier"

        account = await store.find_by_email("oauthuser@example.com")
        assert account is not None
        assert account.federated_id == "google-sub-test-123"
        assert account.is_verified is True
        assert account.display_name == "OAuth User"

    async def test_links_existing_account(
        self, client: AsyncClient, store: InMemoryAccountStore
    ):
        """An existing local account with the same email is linked."""
        local = await store.create(
            NewAccount(
                email="oauthuser@example.com",
                first_name="Ada",
                last_name="Lovelace",
                password_hash="$2b$04$existing",
            )
        )

        response, _ = await _callback(client)

        assert response.status_code == 307
        assert await store.count() == 1
        account = await store.find_by_id(local.id)
        assert account is not None
        assert account.federated_id == "google-sub-test-123"
        assert account.has_password is True
        assert account.last_used_method == AuthMethod.FEDERATED

    async def test_clears_state_cookie(self, client: AsyncClient):
        """The state cookie is expired after a successful callback."""
        response, _ = await _callback(client)

        cleared = [
            c
            for c in response.headers.get_list("set-cookie")
            if c.startswith(f"{_OAUTH_STATE_COOKIE}=")
        ]
        assert cleared
        assert "max-age=0" in cleared[0].lower()

    async def test_rejects_missing_state_cookie(self, client: AsyncClient):
        """Missing state cookie returns 400."""
        response = await client.get(
            _GOOGLE_CALLBACK_URL, params={"code": "auth-code", "state": "some-state"}
        )

        assert response.status_code == 400

    async def test_rejects_mismatched_state(self, client: AsyncClient):
        """A state parameter that does not match the cookie returns 400."""
        client.cookies.set(
            _OAUTH_STATE_COOKIE,
            create_oauth_state_cookie(
                state="real-state", code_verifier="v", secret=TEST_AUTH_SECRET
            ),
        )

        response = await client.get(
            _GOOGLE_CALLBACK_URL, params={"code": "auth-code", "state": "forged"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid or expired OAuth state"

    async def test_rejects_missing_code(self, client: AsyncClient):
        """Missing authorization code returns 400."""
        response = await client.get(_GOOGLE_CALLBACK_URL, params={"state": "s"})

        assert response.status_code == 400

    async def test_token_exchange_failure(self, client: AsyncClient):
        """A failed token exchange returns 400 without provider details."""
        client.cookies.set(
            _OAUTH_STATE_COOKIE,
            create_oauth_state_cookie(
                state="s", code_verifier="v", secret=TEST_AUTH_SECRET
            ),
        )

        with patch(
            _PATCH_EXCHANGE,
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("boom"),
        ):
            response = await client.get(
                _GOOGLE_CALLBACK_URL, params={"code": "c", "state": "s"}
            )

        assert response.status_code == 400
        assert "boom" not in response.text

    async def test_userinfo_without_email(self, client: AsyncClient):
        """Userinfo missing the email is rejected."""
        response, _ = await _callback(client, userinfo={"sub": "google-1"})

        assert response.status_code == 400

    async def test_token_response_without_access_token(self, client: AsyncClient):
        """A token response lacking access_token is rejected before userinfo."""
        client.cookies.set(
            _OAUTH_STATE_COOKIE,
            create_oauth_state_cookie(
                state="s", code_verifier="v", secret=TEST_AUTH_SECRET
            ),
        )

        with (
            patch(_PATCH_EXCHANGE, new_callable=AsyncMock, return_value={}),
            patch(_PATCH_USERINFO, new_callable=AsyncMock) as userinfo,
        ):
            response = await client.get(
                _GOOGLE_CALLBACK_URL, params={"code": "c", "state": "s"}
            )

        assert response.status_code == 400
        userinfo.assert_not_awaited()

    async def test_unverified_google_email_cannot_link(
        self, client: AsyncClient, store: InMemoryAccountStore
    ):
        """A Google profile with an unverified email is refused, account untouched."""
        local = await store.create(
            NewAccount(
                email="oauthuser@example.com",
                first_name="Ada",
                last_name="Lovelace",
                password_hash="$2b$04$existing",
            )
        )

        response, _ = await _callback(
            client, userinfo={**_MOCK_GOOGLE_USERINFO, "email_verified": False}
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "FEDERATED_EMAIL_UNVERIFIED"
        assert _session_cookie_set(response) is False
        account = await store.find_by_id(local.id)
        assert account is not None
        assert account.federated_id is None
