"""Authentication and session dependencies for FastAPI routes.

Two credentials are accepted side by side:

- ``Authorization: Bearer <jwt>`` for API access (``get_current_user``)
- a server-side session id (``X-Session-ID`` header, ``sessionId`` cookie
  or ``session_id`` query parameter) for browser sessions
  (``require_session``)

Usage:
    @router.get("/me")
    async def me(user: User = Depends(get_current_user)):
        ...

    @router.post("/danger")
    async def danger(session: SessionData = Depends(require_security_level("high"))):
        ...
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID

import sentry_sdk
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from smartcommerce.api.shared.helpers import APIError, ErrorCode, get_request_meta
from smartcommerce.api.shared.dependencies import get_session_service, get_token_service
from smartcommerce.config import get_config
from smartcommerce.db.models import User, UserRole, UserStatus
from smartcommerce.db.session import get_db
from smartcommerce.logging_config import get_logger, set_context
from smartcommerce.services.sessions import (
    SECURITY_LEVELS,
    RequestMeta,
    SessionData,
    SessionService,
)
from smartcommerce.services.tokens import (
    TokenExpiredError,
    TokenRevokedError,
    TokenService,
    TokenError,
    extract_bearer_token,
)

logger = get_logger(__name__)

SESSION_HEADER = "X-Session-ID"
SESSION_COOKIE = "sessionId"
SESSION_QUERY = "session_id"


# =============================================================================
# Bearer tokens
# =============================================================================


async def _authenticate(
    request: Request,
    db: AsyncSession,
    tokens: TokenService,
) -> Optional[User]:
    """Resolve the Bearer token to an active user.

    Returns None when no token is present.

    Raises:
        APIError: Invalid, expired or revoked token; unknown or disabled user
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None

    try:
        claims = await tokens.verify_token(token)
    except TokenExpiredError:
        raise APIError(ErrorCode.AUTH_TOKEN_EXPIRED)
    except TokenRevokedError:
        raise APIError(ErrorCode.AUTH_TOKEN_REVOKED)
    except TokenError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise APIError(ErrorCode.AUTH_INVALID_TOKEN)

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        raise APIError(ErrorCode.AUTH_INVALID_TOKEN)

    user = await db.get(User, user_id)
    if user is None:
        raise APIError(ErrorCode.AUTH_INVALID_TOKEN, detail="User not found")
    if user.status in (UserStatus.INACTIVE, UserStatus.SUSPENDED):
        raise APIError(ErrorCode.AUTH_ACCOUNT_INACTIVE)

    request.state.token_claims = claims
    request.state.user = user
    set_context(user_id=str(user.id))
    sentry_sdk.set_user({"id": str(user.id)})
    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """Require a valid Bearer token for an ACTIVE or PENDING user."""
    user = await _authenticate(request, db, tokens)
    if user is None:
        raise APIError(ErrorCode.AUTH_MISSING_TOKEN)
    return user


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[User]:
    """Like ``get_current_user`` but anonymous requests get None.

    A bad token is still rejected rather than silently ignored.
    """
    return await _authenticate(request, db, tokens)


def require_roles(*roles: UserRole) -> Callable:
    """Dependency factory: the user must hold one of ``roles``.

    Example:
        @router.get("/stats", dependencies=[Depends(require_roles(UserRole.ADMIN))])
    """
    allowed = {UserRole(r) for r in roles}

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.warning(
                "Role check failed",
                extra={"user_id": str(user.id), "role": user.role.value, "required": sorted(r.value for r in allowed)},
            )
            raise APIError(ErrorCode.AUTH_FORBIDDEN)
        return user

    return dependency


require_admin = require_roles(UserRole.ADMIN)


async def require_email_verified(user: User = Depends(get_current_user)) -> User:
    if not user.email_verified:
        raise APIError(ErrorCode.AUTH_EMAIL_NOT_VERIFIED)
    return user


async def require_phone_verified(user: User = Depends(get_current_user)) -> User:
    if not user.phone_verified:
        raise APIError(ErrorCode.AUTH_PHONE_NOT_VERIFIED)
    return user


# =============================================================================
# Sessions
# =============================================================================


def get_session_id(request: Request) -> Optional[str]:
    """Session id from the request, or None.

    Order: ``X-Session-ID`` header, ``sessionId`` cookie, ``session_id``
    query parameter. The Authorization header carries JWTs and is never
    read as a session id.
    """
    return (
        request.headers.get(SESSION_HEADER)
        or request.cookies.get(SESSION_COOKIE)
        or request.query_params.get(SESSION_QUERY)
        or None
    )


async def get_optional_session(
    request: Request,
    meta: RequestMeta = Depends(get_request_meta),
    sessions: SessionService = Depends(get_session_service),
) -> Optional[SessionData]:
    """Validated session, or None when absent or invalid."""
    session_id = get_session_id(request)
    if not session_id:
        return None
    validation = await sessions.validate_session(session_id, meta)
    if not validation.valid:
        request.state.session_error = validation.reason
        return None
    request.state.session = validation.session
    set_context(session_id=session_id[:8], user_id=validation.session.user_id)
    return validation.session


async def require_session(
    request: Request,
    session: Optional[SessionData] = Depends(get_optional_session),
) -> SessionData:
    if session is None:
        reason = getattr(request.state, "session_error", None)
        if reason is None:
            raise APIError(ErrorCode.SESSION_REQUIRED)
        raise APIError(ErrorCode.SESSION_INVALID, detail=reason, extra={"reason": reason})
    return session


def require_fresh_session(max_idle: Optional[int] = None) -> Callable:
    """Dependency factory: the session must have been created recently.

    Args:
        max_idle: Maximum seconds since the session was created
            (defaults to ``session.fresh_max_idle``, 30 minutes)
    """

    async def dependency(session: SessionData = Depends(require_session)) -> SessionData:
        limit = max_idle or get_config().session.fresh_max_idle
        age = (datetime.now(timezone.utc) - session.created_at).total_seconds()
        if age > limit:
            raise APIError(ErrorCode.SESSION_NOT_FRESH, extra={"session_age": int(age), "max_age": limit})
        return session

    return dependency


def require_security_level(level: str) -> Callable:
    """Dependency factory: session security level must be at least ``level``.

    Levels order as low < standard < high.
    """
    if level not in SECURITY_LEVELS:
        raise ValueError(f"Unknown security level: {level}")
    required = SECURITY_LEVELS[level]

    async def dependency(session: SessionData = Depends(require_session)) -> SessionData:
        current = SECURITY_LEVELS.get(session.security_level, 0)
        if current < required:
            raise APIError(
                ErrorCode.SESSION_INSUFFICIENT_LEVEL,
                extra={"required_level": level, "current_level": session.security_level},
            )
        return session

    return dependency


def user_payload(user: User) -> Dict[str, Any]:
    """Public view of a user returned by auth routes."""
    return {
        "id": str(user.id),
        "email": user.email,
        "phone": user.phone,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "role": user.role.value,
        "status": user.status.value,
        "email_verified": user.email_verified,
        "phone_verified": user.phone_verified,
    }
