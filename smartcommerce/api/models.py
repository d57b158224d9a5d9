"""Pydantic models shared across API routes."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    detail: Optional[str] = Field(default=None, description="English error message")
    detail_bn: Optional[str] = Field(default=None, description="Bengali error message")
    error_code: Optional[str] = Field(default=None, description="Error code for client handling")
    action: Optional[str] = Field(default=None, description="What the user can do next")

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "error": "login_account_locked",
                "detail": "Account temporarily locked due to too many failed login attempts",
                "detail_bn": "অনেকবার ভুল লগইন চেষ্টার কারণে অ্যাকাউন্ট সাময়িকভাবে লক করা হয়েছে",
                "error_code": "ERR_LOGIN_002",
                "action": "Wait for the lockout to expire or contact support",
                "retry_after": 1800,
            }
        },
    )

