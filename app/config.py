"""Environment configuration for the auth gateway."""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .errors import ConfigError
from .models import Provider

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "auth.db"
OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE_SECONDS = 10 * 60


@dataclass
class ProviderCredentials:
    """OAuth client registration for one provider."""
    client_id: str
    client_secret: str
    redirect_uri: str


@dataclass
class Settings:
    environment: str = "development"
    database_path: str = DEFAULT_DB_PATH
    db_pool_size: int = 10
    db_pool_timeout: float = 5.0
    session_cookie_name: str = "session_token"
    session_lifetime_days: int = 7
    oauth_http_timeout: float = 10.0
    providers: Dict[Provider, ProviderCredentials] = field(default_factory=dict)
    cors_origins: List[str] = field(default_factory=list)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def session_max_age_seconds(self) -> int:
        return self.session_lifetime_days * 24 * 60 * 60

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and a .env file if present)."""
        load_dotenv()

        providers = {}
        for provider in Provider:
            prefix = provider.value.upper()
            client_id = os.getenv(f"{prefix}_CLIENT_ID")
            client_secret = os.getenv(f"{prefix}_CLIENT_SECRET")
            redirect_uri = os.getenv(f"{prefix}_REDIRECT_URI")
            if client_id or client_secret or redirect_uri:
                providers[provider] = ProviderCredentials(
                    client_id=client_id or "",
                    client_secret=client_secret or "",
                    redirect_uri=redirect_uri or "",
                )

        cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

        return cls(
            environment=os.getenv("APP_ENV", os.getenv("ENVIRONMENT", "development")).lower(),
            database_path=resolve_database_path(os.getenv("DATABASE_URL"), os.getenv("DB_PATH")),
            db_pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
            db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT_SECONDS", "5")),
            session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "session_token"),
            session_lifetime_days=int(os.getenv("SESSION_LIFETIME_DAYS", "7")),
            oauth_http_timeout=float(os.getenv("OAUTH_HTTP_TIMEOUT_SECONDS", "10")),
            providers=providers,
            cors_origins=cors_origins,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
        )

    def missing_keys(self) -> List[str]:
        """Names of required environment variables that are not set."""
        missing = []

        # Outside production a provider may be left out entirely
        required = list(Provider) if self.is_production else list(self.providers)
        for provider in required:
            prefix = provider.value.upper()
            creds = self.providers.get(provider)
            if not creds or not creds.client_id:
                missing.append(f"{prefix}_CLIENT_ID")
            if not creds or not creds.client_secret:
                missing.append(f"{prefix}_CLIENT_SECRET")
            if not creds or not creds.redirect_uri:
                missing.append(f"{prefix}_REDIRECT_URI")
        return missing

    def validate(self) -> None:
        missing = self.missing_keys()
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Check your .env file against .env.example"
            )
        if self.db_pool_size < 1:
            raise ConfigError("DB_POOL_SIZE must be at least 1")
        for provider in Provider:
            if provider not in self.providers:
                logger.warning(f"{provider.display_name} OAuth not configured, login via {provider.value} disabled")

    def get_config_summary(self) -> dict:
        """Current configuration for logging, without secrets."""
        return {
            "environment": self.environment,
            "database_path": self.database_path,
            "db_pool_size": self.db_pool_size,
            "db_pool_timeout": self.db_pool_timeout,
            "session_cookie_name": self.session_cookie_name,
            "session_lifetime_days": self.session_lifetime_days,
            "oauth_http_timeout": self.oauth_http_timeout,
            "providers": sorted(p.value for p in self.providers),
            "cors_origins": self.cors_origins,
        }


def resolve_database_path(database_url: Optional[str], db_path: Optional[str] = None) -> str:
    """Turn DATABASE_URL (``sqlite:///path``) or DB_PATH into a sqlite file path."""
    if not database_url:
        return db_path or DEFAULT_DB_PATH

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise ConfigError(f"Invalid DATABASE_URL: {e}") from e

    if url.get_backend_name() != "sqlite":
        raise ConfigError(f"Unsupported database backend '{url.get_backend_name()}', only sqlite is supported")
    if not url.database or url.database == ":memory:":
        raise ConfigError("DATABASE_URL must name a sqlite database file")
    return url.database
