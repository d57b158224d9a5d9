"""Session cookie and header helpers."""

from typing import Dict, Optional

from fastapi import Response

from smartcommerce.config import get_config
from smartcommerce.services.sessions import RememberMeToken, SessionData

SESSION_COOKIE = "sessionId"
REMEMBER_ME_COOKIE = "rememberMe"
REMEMBER_ME_ENABLED_COOKIE = "rememberMeEnabled"


def set_session_cookie(
    response: Response,
    session: SessionData,
    remember_token: Optional[RememberMeToken] = None,
    update_remember_me: bool = True,
) -> None:
    """Set ``sessionId`` and the remember-me cookies.

    Without a remember-me token both remember-me cookies are cleared so a
    previous opt-in does not survive a plain login. Session refreshes pass
    ``update_remember_me=False`` to leave them alone.
    """
    config = get_config()
    secure = config.cookie_secure
    response.set_cookie(
        SESSION_COOKIE,
        session.session_id,
        max_age=session.max_age,
        httponly=True,
        secure=secure,
        samesite="strict",
        path="/",
    )
    if remember_token is not None:
        ttl = config.session.remember_me_token_ttl
        response.set_cookie(
            REMEMBER_ME_COOKIE,
            remember_token.token,
            max_age=ttl,
            httponly=True,
            secure=secure,
            samesite="strict",
            path="/",
        )
        # Readable by the frontend to show the remember-me state
        response.set_cookie(
            REMEMBER_ME_ENABLED_COOKIE,
            "true",
            max_age=ttl,
            httponly=False,
            secure=secure,
            samesite="strict",
            path="/",
        )
    elif update_remember_me:
        clear_remember_me_cookies(response)


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")


def clear_remember_me_cookies(response: Response) -> None:
    response.delete_cookie(REMEMBER_ME_COOKIE, path="/")
    response.delete_cookie(REMEMBER_ME_ENABLED_COOKIE, path="/")


def session_headers(session: SessionData) -> Dict[str, str]:
    return {
        "X-Session-ID": session.session_id,
        "X-Session-Expires-At": session.expires_at.isoformat(),
        "X-Session-Max-Age": str(session.max_age),
        "X-Session-Security-Level": session.security_level,
    }


def apply_session(
    response: Response,
    session: SessionData,
    remember_token: Optional[RememberMeToken] = None,
    update_remember_me: bool = True,
) -> None:
    """Cookies plus ``X-Session-*`` headers for a new or refreshed session."""
    set_session_cookie(response, session, remember_token, update_remember_me)
    for name, value in session_headers(session).items():
        response.headers[name] = value
