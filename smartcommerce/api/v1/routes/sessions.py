"""Session management API routes."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from smartcommerce.api.shared.auth import (
    get_current_user,
    get_session_id,
    require_admin,
    require_session,
)
from smartcommerce.api.shared.dependencies import get_session_service
from smartcommerce.api.shared.helpers import APIError, ErrorCode, get_request_meta
from smartcommerce.api.shared.helpers.cookies import apply_session, clear_session_cookie
from smartcommerce.db.models import User
from smartcommerce.logging_config import get_logger
from smartcommerce.services.sessions import RequestMeta, SessionData, SessionService

logger = get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


# ============================================================================
# Request Models
# ============================================================================


class RefreshSessionRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, description="Defaults to the current session")
    max_age: Optional[int] = Field(
        default=None,
        ge=300,
        le=30 * 24 * 60 * 60,
        description="New lifetime in seconds",
    )


class DestroySessionRequest(BaseModel):
    session_id: Optional[str] = None
    all_sessions: bool = False


# ============================================================================
# Routes
# ============================================================================


@router.get("/validate")
async def validate_session(session: SessionData = Depends(require_session)) -> Dict[str, Any]:
    return {"message": "Session is valid", "valid": True, "session": session.public()}


@router.post("/refresh")
async def refresh_session(
    request: Request,
    response: Response,
    body: Optional[RefreshSessionRequest] = None,
    meta: RequestMeta = Depends(get_request_meta),
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """Extend a session; the current session's cookie is updated too."""
    body = body or RefreshSessionRequest()
    current = get_session_id(request)
    session_id = body.session_id or current
    if not session_id:
        raise APIError(ErrorCode.SESSION_REQUIRED)

    result = await sessions.refresh_session(session_id, meta, max_age=body.max_age)
    if not result.valid:
        raise APIError(ErrorCode.SESSION_INVALID, detail=result.reason, extra={"reason": result.reason})

    if session_id == current:
        apply_session(response, result.session, update_remember_me=False)
    return {
        "message": "Session refreshed successfully",
        "session_id": result.session.session_id,
        "expires_at": result.session.expires_at.isoformat(),
        "max_age": result.session.max_age,
    }


@router.post("/destroy")
async def destroy_session(
    request: Request,
    response: Response,
    body: Optional[DestroySessionRequest] = None,
    user: User = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """Destroy one of the caller's sessions, or all of them with ``all_sessions``."""
    body = body or DestroySessionRequest()
    current = get_session_id(request)

    if body.all_sessions:
        destroyed = await sessions.destroy_all_user_sessions(user.id)
        clear_session_cookie(response)
        return {
            "message": "All sessions destroyed successfully",
            "destroyed_count": destroyed,
            "all_sessions": True,
        }

    target = body.session_id or current
    if not target:
        raise APIError(ErrorCode.SESSION_REQUIRED)

    owned = {s.session_id for s in await sessions.get_user_sessions(user.id)}
    if target not in owned:
        raise APIError(ErrorCode.RES_NOT_FOUND, detail="Session not found")

    await sessions.destroy_session(target, reason="user_logout")
    if target == current:
        clear_session_cookie(response)
    return {"message": "Session destroyed successfully", "session_id": target, "all_sessions": False}


@router.get("/user")
async def user_sessions(
    request: Request,
    user: User = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """Active sessions of the caller, newest first, current one flagged."""
    current = get_session_id(request)
    items = []
    for session in await sessions.get_user_sessions(user.id):
        data = session.public()
        data["is_current"] = session.session_id == current
        items.append(data)
    items.sort(key=lambda s: s["last_activity"], reverse=True)
    return {
        "sessions": items,
        "total_sessions": len(items),
        "active_sessions": sum(1 for s in items if s["is_active"]),
    }


@router.get("/stats", dependencies=[Depends(require_admin)])
async def session_stats(sessions: SessionService = Depends(get_session_service)) -> Dict[str, Any]:
    stats = await sessions.get_session_stats()
    return {
        "stats": {
            "total": stats.total,
            "active": stats.active,
            "expired": stats.expired,
            "redis_available": stats.redis_available,
            "by_store": stats.by_store,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/cleanup", dependencies=[Depends(require_admin)])
async def cleanup_sessions(sessions: SessionService = Depends(get_session_service)) -> Dict[str, Any]:
    cleaned = await sessions.cleanup_expired_sessions()
    remember_cleaned = await sessions.cleanup_expired_remember_me_tokens()
    logger.info(
        "Manual session cleanup",
        extra={"cleaned_count": cleaned, "remember_me_cleaned": remember_cleaned},
    )
    return {
        "message": "Session cleanup completed successfully",
        "cleaned_count": cleaned,
        "remember_me_cleaned": remember_cleaned,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/status")
async def session_status(
    request: Request,
    meta: RequestMeta = Depends(get_request_meta),
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """Session state without requiring authentication."""
    session_id = get_session_id(request)
    if not session_id:
        return {"has_session": False, "session_id": None}

    validation = await sessions.validate_session(session_id, meta)
    return {
        "has_session": validation.valid,
        "session_id": session_id,
        "valid": validation.valid,
        "reason": validation.reason,
        "user_id": validation.session.user_id if validation.valid else None,
    }
