"""Application error types.

``AppError`` subclasses carry the HTTP status they map to; they are raised by
the storage and session layers and rendered by the handler registered in
``app.main``. ``AuthenticationError`` subclasses are raised by the provider
adapters and are reported by the OAuth callback as a login failure.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base application error with status code and machine-readable code."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"


class ConfigError(ValueError):
    """Raised when required configuration is missing or invalid."""
    pass


class AuthenticationError(Exception):
    """OAuth login failed at the provider."""
    pass


class TokenExchangeError(AuthenticationError):
    """The provider rejected the authorization code."""
    pass


class ProfileFetchError(AuthenticationError):
    """The provider's profile endpoint returned an error."""
    pass


class EmailNotVerifiedError(AuthenticationError):
    """The provider reports the account email as unverified."""
    pass


class NoVerifiedEmailError(AuthenticationError):
    """The provider account has no primary verified email."""
    pass


class ProviderError(AuthenticationError):
    """The provider could not be reached or timed out."""
    pass
