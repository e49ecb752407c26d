"""OAuth provider abstraction shared by the Google and GitHub adapters.

The flow controller only uses ``OAuthProvider`` and ``ProviderRegistry``;
adding a provider means writing an adapter and registering it in
``OAuthProviderFactory.PROVIDERS``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional, Type
from urllib.parse import urlencode

import httpx

from .config import ProviderCredentials, Settings
from .errors import ProviderError
from .models import Provider, ProviderProfile

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0


class OAuthProvider(ABC):
    """Authorization-code flow against one identity provider."""

    provider: Provider
    auth_url: str
    token_url: str
    scopes: tuple = ()

    def __init__(self, credentials: ProviderCredentials, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self.client_id = credentials.client_id
        self.client_secret = credentials.client_secret
        self.redirect_uri = credentials.redirect_uri
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.provider.display_name

    @abstractmethod
    def authorization_params(self, state: str) -> Dict[str, str]:
        """Query parameters for the provider's authorization endpoint."""
        pass

    @abstractmethod
    async def exchange_code(self, code: str) -> str:
        """Trade an authorization code for a provider access token."""
        pass

    @abstractmethod
    async def fetch_profile(self, access_token: str) -> ProviderProfile:
        """Fetch and normalize the signed-in account's profile."""
        pass

    def build_authorization_url(self, state: str) -> str:
        return f"{self.auth_url}?{urlencode(self.authorization_params(state))}"

    async def complete_flow(self, code: str) -> ProviderProfile:
        """Exchange the code and return the normalized profile."""
        access_token = await self.exchange_code(code)
        return await self.fetch_profile(access_token)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout)

    async def send(self, request) -> httpx.Response:
        """Await an httpx call, turning timeouts and transport failures into ProviderError.

        Provider calls are never retried: authorization codes are single-use.
        """
        try:
            return await request
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} request timed out") from e
        except httpx.TransportError as e:
            raise ProviderError(f"{self.name} is unreachable: {e}") from e

    @staticmethod
    def is_success(response: httpx.Response) -> bool:
        return 200 <= response.status_code < 300


class ProviderRegistry:
    """Configured providers, looked up by enum value or URL segment."""

    def __init__(self, providers: Optional[Dict[Provider, OAuthProvider]] = None):
        self._providers: Dict[Provider, OAuthProvider] = dict(providers or {})

    def register(self, adapter: OAuthProvider) -> None:
        self._providers[adapter.provider] = adapter

    def get(self, provider) -> Optional[OAuthProvider]:
        if isinstance(provider, str):
            try:
                provider = Provider(provider)
            except ValueError:
                return None
        return self._providers.get(provider)

    def __contains__(self, provider) -> bool:
        return self.get(provider) is not None

    def __iter__(self) -> Iterator[OAuthProvider]:
        return iter(self._providers.values())


class OAuthProviderFactory:
    """Builds adapters for every provider with credentials in the settings."""

    @staticmethod
    def provider_classes() -> Dict[Provider, Type[OAuthProvider]]:
        from .auth_github import GitHubOAuthProvider
        from .auth_google import GoogleOAuthProvider

        return {
            Provider.GOOGLE: GoogleOAuthProvider,
            Provider.GITHUB: GitHubOAuthProvider,
        }

    @classmethod
    def create_provider(cls, provider: Provider, credentials: ProviderCredentials,
                        timeout: float = DEFAULT_HTTP_TIMEOUT) -> OAuthProvider:
        provider_class = cls.provider_classes().get(provider)
        if not provider_class:
            raise ValueError(f"Unsupported provider: {provider}")
        return provider_class(credentials, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderRegistry:
        registry = ProviderRegistry()
        for provider, credentials in settings.providers.items():
            registry.register(cls.create_provider(provider, credentials, settings.oauth_http_timeout))
            logger.info(f"{provider.display_name} OAuth provider registered")
        return registry
