"""GitHub OAuth integration.

GitHub's ``/user`` payload omits the email when the user keeps it private,
so the primary verified address is read from ``/user/emails``; both calls
run concurrently.
"""

import asyncio
import logging
from typing import Any, Dict, List

import httpx

from .auth_provider import OAuthProvider
from .errors import NoVerifiedEmailError, ProfileFetchError, TokenExchangeError
from .models import Provider, ProviderProfile

logger = logging.getLogger(__name__)

GITHUB_AUTH_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"
USER_AGENT = "oauth-gateway"


class GitHubOAuthProvider(OAuthProvider):
    """GitHub OAuth handler."""

    provider = Provider.GITHUB
    auth_url = GITHUB_AUTH_URL
    token_url = GITHUB_TOKEN_URL
    user_url = GITHUB_USER_URL
    emails_url = GITHUB_EMAILS_URL
    scopes = ("read:user", "user:email")

    def authorization_params(self, state: str) -> Dict[str, str]:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "allow_signup": "true",
        }

    def api_headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def exchange_code(self, code: str) -> str:
        async with self.http_client() as client:
            response = await self.send(client.post(
                self.token_url,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                },
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
            ))

        if not self.is_success(response):
            raise TokenExchangeError(f"Failed to exchange GitHub code: {response.text}")

        # GitHub reports bad codes with HTTP 200 and an error field
        token_data = response.json()
        access_token = token_data.get("access_token")
        if not access_token:
            reason = token_data.get("error_description") or token_data.get("error") or "no access token"
            raise TokenExchangeError(f"Failed to exchange GitHub code: {reason}")
        return access_token

    async def _get_user(self, client: httpx.AsyncClient, access_token: str) -> Dict[str, Any]:
        response = await self.send(client.get(self.user_url, headers=self.api_headers(access_token)))
        if not self.is_success(response):
            raise ProfileFetchError(f"Failed to fetch GitHub user profile: {response.text}")
        return response.json()

    async def _get_primary_email(self, client: httpx.AsyncClient, access_token: str) -> str:
        response = await self.send(client.get(self.emails_url, headers=self.api_headers(access_token)))
        if not self.is_success(response):
            raise ProfileFetchError(f"Failed to fetch GitHub user emails: {response.text}")

        emails: List[Dict[str, Any]] = response.json()
        for entry in emails:
            if entry.get("primary") and entry.get("verified"):
                return entry["email"]
        raise NoVerifiedEmailError("No verified email found in GitHub account")

    async def fetch_profile(self, access_token: str) -> ProviderProfile:
        async with self.http_client() as client:
            user, email = await asyncio.gather(
                self._get_user(client, access_token),
                self._get_primary_email(client, access_token),
            )

        return ProviderProfile(
            provider_id=str(user["id"]),
            email=email,
            name=user.get("name") or user.get("login"),
            avatar_url=user.get("avatar_url"),
        )
