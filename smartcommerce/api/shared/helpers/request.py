"""Request metadata helpers (client IP, user agent, fingerprint inputs)."""

from typing import Optional

from fastapi import Request

from smartcommerce.services.sessions import RequestMeta


def get_client_ip(request: Request) -> str:
    """Best-effort client IP.

    Order: first entry of ``X-Forwarded-For``, ``X-Real-IP``, then the
    socket peer address.
    """
    forwarded: Optional[str] = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_request_meta(request: Request) -> RequestMeta:
    """FastAPI dependency: values used for session binding and fingerprinting."""
    return RequestMeta(
        ip=get_client_ip(request),
        user_agent=request.headers.get("User-Agent", ""),
        accept_language=request.headers.get("Accept-Language", ""),
        accept_encoding=request.headers.get("Accept-Encoding", ""),
    )
