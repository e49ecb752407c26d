"""FastAPI dependencies for session-cookie authentication.

Shared components live on ``app.state`` (set up in ``app.main``) and are
handed to routes through these dependencies, so tests can swap them.
"""

from typing import Optional

from fastapi import Depends, Request

from .auth_provider import ProviderRegistry
from .config import Settings
from .db import AccountStore
from .errors import UnauthorizedError
from .models import User
from .sessions import SessionManager


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> AccountStore:
    return request.app.state.store


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_providers(request: Request) -> ProviderRegistry:
    return request.app.state.providers


def get_session_token(request: Request, settings: Settings = Depends(get_settings)) -> Optional[str]:
    return request.cookies.get(settings.session_cookie_name)


async def get_current_user(
    token: Optional[str] = Depends(get_session_token),
    session_manager: SessionManager = Depends(get_session_manager),
) -> User:
    """Dependency for protected routes.

    Missing, unknown, tampered and expired tokens all get the same 401.
    """
    user = await session_manager.validate(token)
    if not user:
        raise UnauthorizedError("Authentication required")
    return user

