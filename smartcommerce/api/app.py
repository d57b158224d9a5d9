"""FastAPI application for the SmartCommerce API."""

import os
import uuid
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from starlette.middleware.base import BaseHTTPMiddleware

from smartcommerce.api.models import ErrorResponse
from smartcommerce.api.shared.helpers import APIError, ErrorCode, create_error_response
from smartcommerce.api.shared.middleware import RateLimitMiddleware
from smartcommerce.api.v1 import V1_OPENAPI_TAGS, v1_router
from smartcommerce.cache import RedisUnavailableError, close_redis_client, get_redis_gateway
from smartcommerce.config import get_config, validate_config
from smartcommerce.db.session import close_db, init_db
from smartcommerce.http_client import close_clients
from smartcommerce.logging_config import clear_context, configure_logging, get_logger, set_context
from smartcommerce.services.circuit_breaker import get_all_circuit_breakers

logger = get_logger(__name__)

HEALTH_PATHS = ("/health", "/health/ready", "GET /health", "GET /health/ready")


# Initialize Sentry if DSN is configured
def _init_sentry() -> None:
    """Initialize Sentry SDK with FastAPI integrations."""
    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        logger.info("SENTRY_DSN not configured, Sentry error tracking disabled")
        return

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("RELEASE_VERSION"),
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
        ],
        send_default_pii=False,  # phone numbers and emails stay out of Sentry
        traces_sampler=_traces_sampler,
    )
    logger.info("Sentry SDK initialized", extra={"environment": os.getenv("ENVIRONMENT", "development")})


def _traces_sampler(sampling_context: dict[str, Any]) -> float:
    """Skip health checks; sample everything else at SENTRY_TRACES_SAMPLE_RATE."""
    transaction_name = sampling_context.get("transaction_context", {}).get("name", "")
    if transaction_name in HEALTH_PATHS:
        return 0.0
    return float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))


# Initialize Sentry early
_init_sentry()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and a request id.

    The correlation id is taken from ``X-Correlation-ID`` when the caller
    sends one; the request id is always new. Both are echoed back and put
    in the logging context and the Sentry scope.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        set_context(correlation_id=correlation_id, request_id=request_id)
        sentry_sdk.set_tag("correlation_id", correlation_id)
        sentry_sdk.set_tag("request_id", request_id)

        try:
            response = await call_next(request)
            response.headers["X-Correlation-ID"] = correlation_id
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    config = get_config()
    configure_logging(
        level=config.logging.level,
        json_output=config.logging.format == "json",
        log_file=config.logging.file,
    )
    for warning in validate_config(config):
        logger.warning(f"Configuration: {warning}")

    logger.info("Starting SmartCommerce API", extra={"environment": config.environment})
    await init_db()

    gateway = await get_redis_gateway()
    if gateway.configured:
        try:
            await gateway.ping()
            logger.info("Redis connection established")
        except RedisUnavailableError as e:
            logger.warning(f"Redis unavailable at startup, using fallbacks: {e.reason}")
    else:
        logger.info("Redis not configured, sessions use the database")

    yield

    logger.info("Shutting down SmartCommerce API")
    await close_redis_client()
    await close_clients()
    await close_db()


OPENAPI_TAGS = [
    {
        "name": "health",
        "description": "Service health checks. Liveness and readiness checks for load balancers "
        "and orchestration systems.",
    },
    *V1_OPENAPI_TAGS,
]

# Create FastAPI app
app = FastAPI(
    title="SmartCommerce API",
    description="""
# SmartCommerce API

Accounts, sessions and addresses for a Bangladesh e-commerce storefront.

## Authentication

### Bearer Token (JWT)
```
Authorization: Bearer <access-token>
```

Access tokens are short lived; use `POST /api/v1/auth/refresh` to renew.

### Session
```
X-Session-ID: <session-id>
```

Browsers get the `sessionId` cookie on login. Session-protected endpoints
accept the header, the cookie or a `session_id` query parameter.

## Rate Limits

Rate limit headers are included in limited responses:
- `X-RateLimit-Limit`: Maximum requests allowed
- `X-RateLimit-Remaining`: Requests remaining in window
- `X-RateLimit-Reset`: Unix timestamp when limit resets

## Error Responses

All errors follow this format, with messages in English and Bengali:

```json
{
  "error": "login_account_locked",
  "detail": "Human-readable message",
  "detail_bn": "বাংলা বার্তা",
  "error_code": "ERR_LOGIN_002",
  "action": "What the user can do next"
}
```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

# Add correlation ID middleware first (before CORS)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(RateLimitMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-Correlation-ID",
        "X-Request-ID",
        "X-Session-ID",
        "X-Session-Expires-At",
        "X-Session-Max-Age",
        "X-Session-Security-Level",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
    ],
)

app.include_router(v1_router)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "SmartCommerce API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "register": "POST /api/v1/auth/register",
            "login": "POST /api/v1/auth/login",
            "send_otp": "POST /api/v1/auth/send-otp",
            "verify_otp": "POST /api/v1/auth/verify-otp",
            "sessions": "GET /api/v1/sessions/user",
            "divisions": "GET /api/v1/locations/divisions",
            "addresses": "GET /api/v1/addresses",
        },
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/ready", tags=["health"])
async def readiness_check():
    """Readiness check verifying backend dependencies.

    Returns 503 when PostgreSQL is down. Redis failures only mark the
    service degraded, since sessions and counters have fallbacks.
    """
    checks: dict[str, Any] = {}
    ready = True
    degraded = False

    try:
        from sqlalchemy import text

        from smartcommerce.db.session import engine

        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        checks["postgres"] = True
    except Exception as e:
        checks["postgres"] = False
        checks["postgres_error"] = str(e)
        ready = False
        logger.warning(f"PostgreSQL health check failed: {e}")

    gateway = await get_redis_gateway()
    if not gateway.configured:
        checks["redis"] = "skipped"
    else:
        try:
            await gateway.ping()
            checks["redis"] = True
        except RedisUnavailableError as e:
            checks["redis"] = False
            checks["redis_error"] = e.reason
            degraded = True
            logger.warning(f"Redis health check failed: {e.reason}")

    checks["circuits"] = {name: b.state.value for name, b in get_all_circuit_breakers().items()}

    if not ready:
        state = "not_ready"
    elif degraded:
        state = "degraded"
    else:
        state = "ready"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": state, "checks": checks},
    )


async def api_error_handler(request: Request, exc: APIError):
    """Return the structured error body without FastAPI's ``detail`` wrapper."""
    return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=create_error_response(ErrorCode.VAL_INVALID_FORMAT, extra={"errors": errors}),
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    sentry_sdk.capture_exception(exc)

    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    # Don't expose internal error details in production
    body = create_error_response(ErrorCode.SYS_INTERNAL_ERROR)
    if not get_config().is_production:
        body["debug"] = str(exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(**body).model_dump(exclude_none=True),
    )


def register_exception_handlers(target: FastAPI) -> None:
    """Install the error handlers on ``target`` (the app, or a test app)."""
    target.add_exception_handler(APIError, api_error_handler)
    target.add_exception_handler(RequestValidationError, validation_exception_handler)
    target.add_exception_handler(Exception, global_exception_handler)


register_exception_handlers(app)


def custom_openapi() -> dict[str, Any]:
    """Generate custom OpenAPI schema with security schemes."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=app.openapi_tags,
    )

    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Access token from login or refresh. "
            "Include in the Authorization header as `Bearer <token>`.",
        },
        "SessionAuth": {
            "type": "apiKey",
            "in": "header",
            "name": "X-Session-ID",
            "description": "Server-side session id. Browsers may send the `sessionId` cookie instead.",
        },
    }
    openapi_schema["security"] = [{"BearerAuth": []}, {"SessionAuth": []}]

    schemas = openapi_schema["components"].setdefault("schemas", {})
    schemas["ErrorResponse"] = ErrorResponse.model_json_schema()
    schemas["RateLimitError"] = {
        "type": "object",
        "properties": {
            "error": {"type": "string", "example": "limit_rate_exceeded"},
            "detail": {"type": "string", "example": "Too many requests. Please slow down."},
            "detail_bn": {"type": "string"},
            "error_code": {"type": "string", "example": "ERR_LIMIT_001"},
            "retry_after": {
                "type": "integer",
                "description": "Seconds until rate limit resets",
                "example": 60,
            },
        },
        "required": ["error", "detail", "error_code"],
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


# Override the default OpenAPI schema generator
app.openapi = custom_openapi


if __name__ == "__main__":
    import uvicorn

    # Run with: python -m smartcommerce.api.app
    uvicorn.run(
        "smartcommerce.api.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=get_config().environment == "development",
        log_level="info",
    )
