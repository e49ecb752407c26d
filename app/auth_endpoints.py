"""OAuth login, logout and current-user endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from .accounts import reconcile
from .auth import get_current_user, get_providers, get_session_manager, get_session_token, get_settings, get_store
from .auth_provider import OAuthProvider, ProviderRegistry
from .config import OAUTH_STATE_COOKIE, Settings
from .cookies import clear_oauth_state_cookie, clear_session_cookie, set_oauth_state_cookie, set_session_cookie
from .crypto import constant_time_equals, generate_token
from .db import AccountStore
from .errors import NotFoundError, ServiceUnavailableError
from .models import LoginResponse, LogoutResponse, MeResponse, User, UserSummary
from .sessions import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


def get_provider(provider: str, providers: ProviderRegistry = Depends(get_providers)) -> OAuthProvider:
    adapter = providers.get(provider)
    if adapter is None:
        raise NotFoundError(f"Unknown login provider: {provider}")
    return adapter


def _callback_error(settings: Settings, status_code: int, body: dict) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=body)
    clear_oauth_state_cookie(response, settings)
    return response


@router.get("/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)):
    """Return the signed-in user."""
    return MeResponse.from_user(current_user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    token: Optional[str] = Depends(get_session_token),
    session_manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    """Revoke the current session if there is one. Always succeeds."""
    try:
        await session_manager.revoke(token)
    except ServiceUnavailableError as e:
        logger.error(f"Logout could not revoke session, clearing cookie anyway: {e}")

    response = JSONResponse(content=LogoutResponse().model_dump())
    clear_session_cookie(response, settings)
    return response


@router.get("/{provider}/start")
async def start_login(
    adapter: OAuthProvider = Depends(get_provider),
    settings: Settings = Depends(get_settings),
):
    """Initiate the OAuth login flow."""
    state = generate_token(32)
    response = RedirectResponse(url=adapter.build_authorization_url(state), status_code=302)
    set_oauth_state_cookie(response, settings, state)
    return response


@router.get("/{provider}/callback")
async def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    adapter: OAuthProvider = Depends(get_provider),
    settings: Settings = Depends(get_settings),
    store: AccountStore = Depends(get_store),
    session_manager: SessionManager = Depends(get_session_manager),
):
    """Handle the provider redirect back to us.

    The state cookie is single-use: every response from here clears it.
    """
    if error:
        return _callback_error(settings, 400, {"error": f"OAuth error: {error}"})

    if not code:
        return _callback_error(settings, 400, {"error": "Missing authorization code"})

    if not state:
        return _callback_error(settings, 400, {"error": "Missing state parameter"})

    stored_state = request.cookies.get(OAUTH_STATE_COOKIE)
    if not stored_state or not constant_time_equals(stored_state, state):
        logger.warning(f"{adapter.name} callback rejected: state mismatch")
        return _callback_error(settings, 400, {"error": "Invalid state parameter"})

    try:
        profile = await adapter.complete_flow(code)
        user = await reconcile(store, adapter.provider, profile)
        session_token = await session_manager.issue(user.id)
    except Exception as e:
        logger.error(f"{adapter.name} OAuth callback error: {e}")
        body = {"error": f"{adapter.name} login failed"}
        if not settings.is_production:
            body["details"] = str(e)
        return _callback_error(settings, 500, body)

    logger.info(f"User {user.id} logged in with {adapter.provider.value}")
    response = JSONResponse(content=LoginResponse(user=UserSummary.from_user(user)).model_dump())
    set_session_cookie(response, settings, session_token)
    clear_oauth_state_cookie(response, settings)
    return response
