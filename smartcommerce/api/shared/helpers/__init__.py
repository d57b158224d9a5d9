"""Shared helpers for API routes."""

from smartcommerce.api.shared.helpers.errors import (
    ERROR_REGISTRY,
    APIError,
    ErrorCode,
    ErrorInfo,
    create_error_response,
    get_error_info,
)
from smartcommerce.api.shared.helpers.request import RequestMeta, get_client_ip, get_request_meta

__all__ = [
    "ERROR_REGISTRY",
    "APIError",
    "ErrorCode",
    "ErrorInfo",
    "create_error_response",
    "get_error_info",
    "RequestMeta",
    "get_client_ip",
    "get_request_meta",
]
