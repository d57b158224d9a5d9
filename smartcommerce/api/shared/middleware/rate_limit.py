"""Rate limiting dependency and standard rate limit headers.

Routes opt in per category with a dependency; the middleware copies the
resulting state onto every response:

Headers:
- X-RateLimit-Limit: Maximum requests allowed per window
- X-RateLimit-Remaining: Requests remaining in current window
- X-RateLimit-Reset: Unix timestamp when the limit resets
- Retry-After: Seconds until retry allowed (only on 429 responses)

Usage:
    from smartcommerce.api.shared.middleware.rate_limit import (
        RateLimitMiddleware,
        rate_limit,
    )

    app.add_middleware(RateLimitMiddleware)

    @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
    async def login(...):
        ...
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from fastapi import Depends, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from smartcommerce.api.shared.dependencies import get_rate_limiter
from smartcommerce.api.shared.helpers import APIError, ErrorCode, get_client_ip
from smartcommerce.config import get_config
from smartcommerce.logging_config import get_logger
from smartcommerce.services.rate_limiter import SlidingWindowRateLimiter, rate_limit_key

logger = get_logger(__name__)


# =============================================================================
# Rate Limit Constants
# =============================================================================


class RateLimitCategory(str, Enum):
    """Endpoint groups with separate budgets."""

    API = "api"
    AUTH = "auth"
    OTP = "otp"


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit.

    Attributes:
        requests: Number of requests allowed
        window_seconds: Time window in seconds
    """

    requests: int
    window_seconds: int

    @property
    def window_minutes(self) -> int:
        return self.window_seconds // 60

    @property
    def description(self) -> str:
        return f"{self.requests} requests per {self.window_minutes} minutes"


def get_rate_limit(category: RateLimitCategory | str) -> RateLimitConfig:
    """Limit for a category, read from configuration."""
    settings = get_config().rate_limit
    category = RateLimitCategory(category)
    requests = {
        RateLimitCategory.API: settings.max_requests,
        RateLimitCategory.AUTH: settings.auth_max_requests,
        RateLimitCategory.OTP: settings.otp_max_requests,
    }[category]
    return RateLimitConfig(requests=requests, window_seconds=settings.window_seconds)


# Header names (following RFC 6585 and draft-ietf-httpapi-ratelimit-headers)
HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"
HEADER_POLICY = "X-RateLimit-Policy"


# =============================================================================
# Header Generation
# =============================================================================


def get_rate_limit_headers(
    limit: int,
    remaining: int,
    reset_timestamp: int,
    policy: str | None = None,
) -> dict[str, str]:
    """Generate rate limit headers.

    Args:
        limit: Maximum requests allowed per window
        remaining: Requests remaining in current window
        reset_timestamp: Unix timestamp when the limit resets
        policy: Optional policy description

    Returns:
        Dict of header names to values
    """
    headers = {
        HEADER_LIMIT: str(limit),
        HEADER_REMAINING: str(max(0, remaining)),
        HEADER_RESET: str(reset_timestamp),
    }
    if policy:
        headers[HEADER_POLICY] = policy
    return headers


def get_rate_limit_exceeded_headers(
    limit: int,
    reset_timestamp: int,
    retry_after: int | None = None,
    policy: str | None = None,
) -> dict[str, str]:
    """Generate headers for a rate-limited response (429)."""
    if retry_after is None:
        retry_after = max(1, reset_timestamp - int(time.time()))

    headers = get_rate_limit_headers(
        limit=limit,
        remaining=0,
        reset_timestamp=reset_timestamp,
        policy=policy,
    )
    headers[HEADER_RETRY_AFTER] = str(retry_after)
    return headers


# =============================================================================
# Rate Limit Middleware
# =============================================================================


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Add rate limit headers to responses.

    Reads ``request.state.rate_limit_info`` set by the ``rate_limit``
    dependency. Routes without a limit get no headers.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        rate_limit_info = getattr(request.state, "rate_limit_info", None)
        if rate_limit_info:
            headers = get_rate_limit_headers(
                limit=rate_limit_info["limit"],
                remaining=rate_limit_info["remaining"],
                reset_timestamp=rate_limit_info["reset"],
                policy=rate_limit_info.get("policy"),
            )
            for header, value in headers.items():
                response.headers.setdefault(header, value)

        return response


# =============================================================================
# Rate Limit Dependency
# =============================================================================


def set_rate_limit_info(
    request: Request,
    limit: int,
    remaining: int,
    reset_timestamp: int,
    policy: str | None = None,
) -> None:
    """Set rate limit info on the request for middleware to pick up."""
    request.state.rate_limit_info = {
        "limit": limit,
        "remaining": remaining,
        "reset": reset_timestamp,
        "policy": policy,
    }


def rate_limit(category: RateLimitCategory | str = RateLimitCategory.API) -> Callable:
    """Dependency factory counting the request against ``category``.

    Clients are keyed by IP, plus the user id when the request was already
    authenticated earlier in the dependency chain.

    Raises:
        APIError: 429 with ``retry_after``, ``limit``, ``remaining`` and
            ``reset`` when the window is full
    """
    category = RateLimitCategory(category)

    async def dependency(
        request: Request,
        limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    ) -> None:
        config = get_rate_limit(category)
        user = getattr(request.state, "user", None)
        user_id: Optional[str] = str(user.id) if user is not None else None
        scope = None if category is RateLimitCategory.API else category.value
        key = rate_limit_key(get_client_ip(request), user_id=user_id, scope=scope)

        decision = await limiter.hit(key, config.requests, config.window_seconds)
        set_rate_limit_info(request, decision.limit, decision.remaining, decision.reset, config.description)

        if not decision.allowed:
            raise APIError(
                ErrorCode.LIMIT_RATE_EXCEEDED,
                headers=get_rate_limit_exceeded_headers(
                    limit=decision.limit,
                    reset_timestamp=decision.reset,
                    retry_after=decision.retry_after,
                    policy=config.description,
                ),
                extra={
                    "retry_after": decision.retry_after,
                    "limit": decision.limit,
                    "remaining": 0,
                    "reset": decision.reset,
                },
            )

    return dependency


__all__ = [
    "RateLimitCategory",
    "RateLimitConfig",
    "HEADER_LIMIT",
    "HEADER_REMAINING",
    "HEADER_RESET",
    "HEADER_RETRY_AFTER",
    "HEADER_POLICY",
    "get_rate_limit",
    "get_rate_limit_headers",
    "get_rate_limit_exceeded_headers",
    "set_rate_limit_info",
    "rate_limit",
    "RateLimitMiddleware",
]
