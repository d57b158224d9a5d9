"""HTTP middleware for the SmartCommerce API."""

from smartcommerce.api.shared.middleware.rate_limit import (
    RateLimitMiddleware,
    rate_limit,
    set_rate_limit_info,
)

__all__ = [
    "RateLimitMiddleware",
    "rate_limit",
    "set_rate_limit_info",
]
