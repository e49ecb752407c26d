"""Tests for the GitHub OAuth adapter."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.auth_github import (GITHUB_AUTH_URL, GITHUB_EMAILS_URL, GITHUB_TOKEN_URL, GITHUB_USER_URL,
                             GitHubOAuthProvider)
from app.errors import NoVerifiedEmailError, ProfileFetchError, ProviderError, TokenExchangeError
from app.models import Provider
from tests.conftest import make_credentials

USER = {
    "id": 4567,
    "login": "octocat",
    "name": "The Octocat",
    "avatar_url": "https://avatars.githubusercontent.com/u/4567",
}

EMAILS = [
    {"email": "secondary@example.com", "primary": False, "verified": True},
    {"email": "octocat@example.com", "primary": True, "verified": True},
]


@pytest.fixture
def provider():
    return GitHubOAuthProvider(make_credentials(Provider.GITHUB))


def api_responder(user_response, emails_response):
    """Side effect for client.get that answers by URL."""
    async def get(url, **kwargs):
        if url == GITHUB_USER_URL:
            return user_response
        if url == GITHUB_EMAILS_URL:
            return emails_response
        raise AssertionError(f"unexpected URL {url}")
    return get


class TestAuthorizationUrl:

    def test_url_parameters(self, provider):
        url = provider.build_authorization_url("state-xyz")
        params = parse_qs(urlparse(url).query)

        assert url.startswith(GITHUB_AUTH_URL + "?")
        assert params["client_id"] == ["github-client-id"]
        assert params["redirect_uri"] == ["http://localhost:3000/auth/github/callback"]
        assert params["scope"] == ["read:user user:email"]
        assert params["state"] == ["state-xyz"]
        assert params["allow_signup"] == ["true"]


class TestExchangeCode:

    @pytest.mark.asyncio
    async def test_success(self, provider, mock_http):
        mock_http.post.return_value = httpx.Response(200, json={"access_token": "gho_token", "token_type": "bearer"})

        assert await provider.exchange_code("auth-code") == "gho_token"

        args, kwargs = mock_http.post.call_args
        assert args[0] == GITHUB_TOKEN_URL
        assert kwargs["headers"]["Accept"] == "application/json"
        assert kwargs["data"]["code"] == "auth-code"

    @pytest.mark.asyncio
    async def test_error_with_http_200(self, provider, mock_http):
        mock_http.post.return_value = httpx.Response(200, json={
            "error": "bad_verification_code",
            "error_description": "The code passed is incorrect or expired.",
        })

        with pytest.raises(TokenExchangeError, match="incorrect or expired"):
            await provider.exchange_code("stale-code")

    @pytest.mark.asyncio
    async def test_http_error(self, provider, mock_http):
        mock_http.post.return_value = httpx.Response(500, text="server error")

        with pytest.raises(TokenExchangeError, match="Failed to exchange GitHub code"):
            await provider.exchange_code("auth-code")

    @pytest.mark.asyncio
    async def test_timeout(self, provider, mock_http):
        mock_http.post.side_effect = httpx.ConnectTimeout("timed out")

        with pytest.raises(ProviderError):
            await provider.exchange_code("auth-code")


class TestFetchProfile:

    @pytest.mark.asyncio
    async def test_profile_with_primary_verified_email(self, provider, mock_http):
        mock_http.get.side_effect = api_responder(
            httpx.Response(200, json=USER), httpx.Response(200, json=EMAILS)
        )

        profile = await provider.fetch_profile("gho_token")

        assert profile.provider_id == "4567"
        assert profile.email == "octocat@example.com"
        assert profile.name == "The Octocat"
        assert profile.avatar_url == "https://avatars.githubusercontent.com/u/4567"

    @pytest.mark.asyncio
    async def test_api_headers(self, provider, mock_http):
        mock_http.get.side_effect = api_responder(
            httpx.Response(200, json=USER), httpx.Response(200, json=EMAILS)
        )

        await provider.fetch_profile("gho_token")

        assert mock_http.get.call_count == 2
        for call in mock_http.get.call_args_list:
            headers = call.kwargs["headers"]
            assert headers["Authorization"] == "Bearer gho_token"
            assert headers["Accept"] == "application/json"
            assert headers["User-Agent"]

    @pytest.mark.asyncio
    async def test_name_falls_back_to_login(self, provider, mock_http):
        mock_http.get.side_effect = api_responder(
            httpx.Response(200, json={**USER, "name": None}), httpx.Response(200, json=EMAILS)
        )

        profile = await provider.fetch_profile("gho_token")
        assert profile.name == "octocat"

    @pytest.mark.asyncio
    async def test_no_primary_verified_email(self, provider, mock_http):
        emails = [
            {"email": "unverified@example.com", "primary": True, "verified": False},
            {"email": "verified@example.com", "primary": False, "verified": True},
        ]
        mock_http.get.side_effect = api_responder(
            httpx.Response(200, json=USER), httpx.Response(200, json=emails)
        )

        with pytest.raises(NoVerifiedEmailError, match="No verified email found in GitHub account"):
            await provider.fetch_profile("gho_token")

    @pytest.mark.asyncio
    async def test_user_endpoint_error(self, provider, mock_http):
        mock_http.get.side_effect = api_responder(
            httpx.Response(401, json={"message": "Bad credentials"}), httpx.Response(200, json=EMAILS)
        )

        with pytest.raises(ProfileFetchError):
            await provider.fetch_profile("gho_token")

    @pytest.mark.asyncio
    async def test_emails_endpoint_error(self, provider, mock_http):
        mock_http.get.side_effect = api_responder(
            httpx.Response(200, json=USER), httpx.Response(403, json={"message": "Forbidden"})
        )

        with pytest.raises(ProfileFetchError):
            await provider.fetch_profile("gho_token")
