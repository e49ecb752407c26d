"""Session and OAuth-state cookie helpers."""

from fastapi import Response

from .config import OAUTH_STATE_COOKIE, OAUTH_STATE_MAX_AGE_SECONDS, Settings


def set_cookie(response: Response, settings: Settings, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_cookie(response: Response, settings: Settings, name: str) -> None:
    response.delete_cookie(
        name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def set_session_cookie(response: Response, settings: Settings, token: str) -> None:
    """Store the raw session token; the database only ever sees its hash."""
    set_cookie(response, settings, settings.session_cookie_name, token, settings.session_max_age_seconds)


def clear_session_cookie(response: Response, settings: Settings) -> None:
    clear_cookie(response, settings, settings.session_cookie_name)


def set_oauth_state_cookie(response: Response, settings: Settings, state: str) -> None:
    set_cookie(response, settings, OAUTH_STATE_COOKIE, state, OAUTH_STATE_MAX_AGE_SECONDS)


def clear_oauth_state_cookie(response: Response, settings: Settings) -> None:
    clear_cookie(response, settings, OAUTH_STATE_COOKIE)
