"""Tests for the Google OAuth adapter."""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.auth_google import GOOGLE_AUTH_URL, GOOGLE_TOKEN_URL, GOOGLE_USERINFO_URL, GoogleOAuthProvider
from app.errors import EmailNotVerifiedError, ProfileFetchError, ProviderError, TokenExchangeError
from app.models import Provider, ProviderProfile
from tests.conftest import make_credentials

USERINFO = {
    "id": "108234",
    "email": "ada@example.com",
    "verified_email": True,
    "name": "Ada Lovelace",
    "picture": "https://lh3.example.com/ada.png",
}


@pytest.fixture
def provider():
    return GoogleOAuthProvider(make_credentials(Provider.GOOGLE), timeout=5.0)


class TestAuthorizationUrl:

    def test_url_parameters(self, provider):
        url = provider.build_authorization_url("state-123")
        parsed = urlparse(url)
        params = parse_qs(parsed.query)

        assert url.startswith(GOOGLE_AUTH_URL + "?")
        assert params["client_id"] == ["google-client-id"]
        assert params["redirect_uri"] == ["http://localhost:3000/auth/google/callback"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == ["openid profile email"]
        assert params["state"] == ["state-123"]
        assert params["access_type"] == ["online"]
        assert params["prompt"] == ["select_account"]


class TestExchangeCode:

    @pytest.mark.asyncio
    async def test_success(self, provider, mock_http):
        mock_http.post.return_value = httpx.Response(200, json={"access_token": "ya29.token"})

        assert await provider.exchange_code("auth-code") == "ya29.token"

        args, kwargs = mock_http.post.call_args
        assert args[0] == GOOGLE_TOKEN_URL
        assert kwargs["data"]["code"] == "auth-code"
        assert kwargs["data"]["grant_type"] == "authorization_code"
        assert kwargs["data"]["client_secret"] == "google-client-secret"

    @pytest.mark.asyncio
    async def test_rejected_code(self, provider, mock_http):
        mock_http.post.return_value = httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(TokenExchangeError, match="Failed to exchange Google code"):
            await provider.exchange_code("bad-code")

    @pytest.mark.asyncio
    async def test_missing_access_token(self, provider, mock_http):
        mock_http.post.return_value = httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(TokenExchangeError):
            await provider.exchange_code("auth-code")

    @pytest.mark.asyncio
    async def test_timeout(self, provider, mock_http):
        mock_http.post.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(ProviderError, match="timed out"):
            await provider.exchange_code("auth-code")

    @pytest.mark.asyncio
    async def test_unreachable(self, provider, mock_http):
        mock_http.post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(ProviderError):
            await provider.exchange_code("auth-code")


class TestFetchProfile:

    @pytest.mark.asyncio
    async def test_verified_profile(self, provider, mock_http):
        mock_http.get.return_value = httpx.Response(200, json=USERINFO)

        profile = await provider.fetch_profile("ya29.token")

        assert profile == ProviderProfile(
            provider_id="108234",
            email="ada@example.com",
            name="Ada Lovelace",
            avatar_url="https://lh3.example.com/ada.png",
        )
        args, kwargs = mock_http.get.call_args
        assert args[0] == GOOGLE_USERINFO_URL
        assert kwargs["headers"]["Authorization"] == "Bearer ya29.token"

    @pytest.mark.asyncio
    async def test_unverified_email(self, provider, mock_http):
        mock_http.get.return_value = httpx.Response(200, json={**USERINFO, "verified_email": False})

        with pytest.raises(EmailNotVerifiedError, match="Google email is not verified"):
            await provider.fetch_profile("ya29.token")

    @pytest.mark.asyncio
    async def test_missing_verified_flag(self, provider, mock_http):
        info = {k: v for k, v in USERINFO.items() if k != "verified_email"}
        mock_http.get.return_value = httpx.Response(200, json=info)

        with pytest.raises(EmailNotVerifiedError):
            await provider.fetch_profile("ya29.token")

    @pytest.mark.asyncio
    async def test_profile_error(self, provider, mock_http):
        mock_http.get.return_value = httpx.Response(401, json={"error": "invalid_token"})

        with pytest.raises(ProfileFetchError):
            await provider.fetch_profile("expired")

    @pytest.mark.asyncio
    async def test_optional_fields(self, provider, mock_http):
        mock_http.get.return_value = httpx.Response(
            200, json={"id": 42, "email": "min@example.com", "verified_email": True}
        )

        profile = await provider.fetch_profile("ya29.token")
        assert profile.provider_id == "42"
        assert profile.name is None
        assert profile.avatar_url is None


class TestCompleteFlow:

    @pytest.mark.asyncio
    async def test_code_to_profile(self, provider, mock_http):
        mock_http.post = AsyncMock(return_value=httpx.Response(200, json={"access_token": "ya29.token"}))
        mock_http.get = AsyncMock(return_value=httpx.Response(200, json=USERINFO))

        profile = await provider.complete_flow("auth-code")

        assert profile.email == "ada@example.com"
        assert mock_http.post.await_count == 1
        assert mock_http.get.await_count == 1
