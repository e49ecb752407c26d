"""Google OAuth integration."""

import logging
from typing import Dict

from .auth_provider import OAuthProvider
from .errors import EmailNotVerifiedError, ProfileFetchError, TokenExchangeError
from .models import Provider, ProviderProfile

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleOAuthProvider(OAuthProvider):
    """Google OAuth handler."""

    provider = Provider.GOOGLE
    auth_url = GOOGLE_AUTH_URL
    token_url = GOOGLE_TOKEN_URL
    userinfo_url = GOOGLE_USERINFO_URL
    scopes = ("openid", "profile", "email")

    def authorization_params(self, state: str) -> Dict[str, str]:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
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
                    "grant_type": "authorization_code",
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            ))

        if not self.is_success(response):
            raise TokenExchangeError(f"Failed to exchange Google code: {response.text}")

        token_data = response.json()
        access_token = token_data.get("access_token")
        if not access_token:
            raise TokenExchangeError(f"No access token in Google response: {token_data.get('error', 'unknown error')}")
        return access_token

    async def fetch_profile(self, access_token: str) -> ProviderProfile:
        async with self.http_client() as client:
            response = await self.send(client.get(
                self.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            ))

        if not self.is_success(response):
            raise ProfileFetchError(f"Failed to fetch Google user profile: {response.text}")

        profile = response.json()
        if not profile.get("verified_email"):
            raise EmailNotVerifiedError("Google email is not verified")

        return ProviderProfile(
            provider_id=str(profile["id"]),
            email=profile["email"],
            name=profile.get("name"),
            avatar_url=profile.get("picture"),
        )
