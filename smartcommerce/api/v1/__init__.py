"""SmartCommerce API v1.

Collects the v1 routers under a single ``/api/v1`` router, together with
the OpenAPI tag metadata for the endpoints it contains.
"""

from fastapi import APIRouter, Depends

from smartcommerce.api.shared.middleware.rate_limit import rate_limit
from smartcommerce.api.v1.routes import (
    addresses,
    admin_security,
    auth,
    locations,
    sessions,
)

# v1-specific OpenAPI tags
V1_OPENAPI_TAGS = [
    {
        "name": "auth",
        "description": "Registration, login and logout with email or Bangladesh phone numbers. "
        "Issues JWT access tokens, phone OTP verification, password policy and remember-me.",
    },
    {
        "name": "sessions",
        "description": "Server-side sessions bound to a device fingerprint. Validate, refresh "
        "and destroy sessions, and list the active sessions of the current user.",
    },
    {
        "name": "locations",
        "description": "Bangladesh divisions, districts and upazilas for address forms, plus "
        "address validation. No authentication required.",
    },
    {
        "name": "addresses",
        "description": "Shipping and billing address book of the current user. Exactly one "
        "address is the default once any exist.",
    },
    {
        "name": "admin",
        "description": "Administrative endpoints. Requires the ADMIN role.",
    },
    {
        "name": "security",
        "description": "Login security administration. Inspect failed-login counters, unlock "
        "accounts and unblock IP addresses.",
    },
]

# Every v1 route counts against the general per-client limit; auth and
# OTP routes add their own stricter limits on top
v1_router = APIRouter(prefix="/api/v1", dependencies=[Depends(rate_limit("api"))])

# Include all v1 routers
v1_router.include_router(auth.router)
v1_router.include_router(sessions.router)
v1_router.include_router(locations.router)
v1_router.include_router(addresses.router)
v1_router.include_router(admin_security.router)

__all__ = ["v1_router", "V1_OPENAPI_TAGS"]
