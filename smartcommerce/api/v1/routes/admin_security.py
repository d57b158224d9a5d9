"""Admin API routes for login security.

Inspect failed-login counters and lift account lockouts or IP blocks
before they expire. Requires the ADMIN role.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from smartcommerce.api.shared.auth import require_admin
from smartcommerce.api.shared.dependencies import get_login_security_service
from smartcommerce.api.v1.routes.auth import normalize_identifier
from smartcommerce.db.models import User
from smartcommerce.logging_config import get_logger
from smartcommerce.services.login_security import LoginSecurityService

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/security", tags=["admin", "security"])


# =============================================================================
# Request Models
# =============================================================================


class UnlockUserRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email address or phone number")


class UnblockIPRequest(BaseModel):
    ip: str = Field(..., min_length=1)


# =============================================================================
# Routes
# =============================================================================


@router.get("/login-attempts")
async def login_attempt_stats(
    identifier: Optional[str] = Query(default=None),
    ip: Optional[str] = Query(default=None),
    admin: User = Depends(require_admin),
    security: LoginSecurityService = Depends(get_login_security_service),
) -> Dict[str, Any]:
    """Attempt counters and active blocks for an identifier and/or an IP."""
    normalized = normalize_identifier(identifier)[1] if identifier else None
    stats = await security.get_login_attempt_stats(identifier=normalized, ip=ip)
    return {"identifier": normalized, "ip": ip, "stats": stats}


@router.post("/unlock-user")
async def unlock_user(
    body: UnlockUserRequest,
    admin: User = Depends(require_admin),
    security: LoginSecurityService = Depends(get_login_security_service),
) -> Dict[str, Any]:
    _, identifier = normalize_identifier(body.identifier)
    unlocked = await security.unlock_user(identifier)
    logger.info(f"Admin {admin.id} unlocked {identifier}", extra={"unlocked": unlocked})
    return {
        "message": "User unlocked" if unlocked else "User was not locked",
        "identifier": identifier,
        "unlocked": unlocked,
    }


@router.post("/unblock-ip")
async def unblock_ip(
    body: UnblockIPRequest,
    admin: User = Depends(require_admin),
    security: LoginSecurityService = Depends(get_login_security_service),
) -> Dict[str, Any]:
    unblocked = await security.unblock_ip(body.ip)
    logger.info(f"Admin {admin.id} unblocked IP {body.ip}", extra={"unblocked": unblocked})
    return {
        "message": "IP unblocked" if unblocked else "IP was not blocked",
        "ip": body.ip,
        "unblocked": unblocked,
    }


@router.post("/cleanup")
async def cleanup_login_security(
    admin: User = Depends(require_admin),
    security: LoginSecurityService = Depends(get_login_security_service),
) -> Dict[str, Any]:
    fixed = await security.cleanup_expired_data()
    return {"message": "Login security cleanup completed", "cleaned_count": fixed}
