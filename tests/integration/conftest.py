"""Fixtures for API integration tests.

The v1 routers run in a bare FastAPI app with the production error
handlers and rate limit middleware. PostgreSQL is replaced by an
in-memory SQLite engine and Redis by fakeredis; both live on the
TestClient's event loop, so anything touching them from a test goes
through ``client.portal``.
"""

from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from smartcommerce.api.app import register_exception_handlers
from smartcommerce.api.shared.dependencies import (
    get_email_service,
    get_password_service,
    get_session_service,
    get_sms_service,
)
from smartcommerce.api.shared.middleware import RateLimitMiddleware
from smartcommerce.api.v1 import v1_router
from smartcommerce.cache import FallbackRedis, RedisGateway, get_fallback_redis, get_redis_gateway
from smartcommerce.config import PasswordPolicyConfig
from smartcommerce.db.models import Base, User, UserRole, UserStatus
from smartcommerce.db.session import get_db
from smartcommerce.services.circuit_breaker import CircuitBreaker
from smartcommerce.services.email import EmailResult
from smartcommerce.services.login_security import LoginSecurityService
from smartcommerce.services.passwords import PasswordService
from smartcommerce.services.sessions import SessionService
from smartcommerce.services.sms import SMSResult
from smartcommerce.services.tokens import TokenService

CLIENT_IP = "103.4.145.10"
PASSWORD = "Bazar-Shopping-2024!"


# =============================================================================
# Backends
# =============================================================================


@pytest.fixture
def api_redis():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def api_gateway(api_redis):
    return RedisGateway(api_redis, command_timeout=1.0, breaker=CircuitBreaker("redis-api-test"))


@pytest.fixture
def api_fallback(api_gateway):
    return FallbackRedis(api_gateway)


@pytest.fixture
def api_engine():
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def api_session_factory(api_engine):
    return async_sessionmaker(api_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def sms():
    """SMS sender that records codes instead of sending them."""
    mock = MagicMock()
    mock.send_otp = AsyncMock(side_effect=lambda phone, code: SMSResult(success=True, phone=phone, mock=True))
    return mock


@pytest.fixture
def emails():
    """Email sender that records links instead of sending them."""
    mock = MagicMock()
    for method in ("send_verification", "send_password_reset", "send_welcome"):
        setattr(
            mock,
            method,
            AsyncMock(side_effect=lambda to, *args: EmailResult(success=True, to=to, mock=True)),
        )
    return mock


@pytest.fixture
def passwords():
    return PasswordService(PasswordPolicyConfig(bcrypt_rounds=4))


# =============================================================================
# Application
# =============================================================================


@pytest.fixture
def app(api_gateway, api_fallback, api_session_factory, sms, emails, passwords):
    test_app = FastAPI()
    register_exception_handlers(test_app)
    test_app.add_middleware(RateLimitMiddleware)
    test_app.include_router(v1_router)

    async def override_get_db():
        async with api_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_gateway():
        return api_gateway

    async def override_fallback():
        return api_fallback

    async def override_session_service():
        return SessionService(api_gateway, api_session_factory, remember_store=api_fallback)

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_redis_gateway] = override_gateway
    test_app.dependency_overrides[get_fallback_redis] = override_fallback
    test_app.dependency_overrides[get_session_service] = override_session_service
    test_app.dependency_overrides[get_sms_service] = lambda: sms
    test_app.dependency_overrides[get_email_service] = lambda: emails
    test_app.dependency_overrides[get_password_service] = lambda: passwords
    return test_app


@pytest.fixture
def client(app, api_engine):
    async def create_schema():
        async with api_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    with TestClient(app, headers={"X-Forwarded-For": CLIENT_IP}) as test_client:
        test_client.portal.call(create_schema)
        yield test_client
        test_client.portal.call(api_engine.dispose)


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def create_user(client, api_session_factory, passwords):
    """Insert a user with a real password hash; returns the detached row."""

    def _create_user(**overrides) -> User:
        async def insert() -> User:
            values = {
                "email": "rahim@example.com",
                "phone": None,
                "first_name": "Rahim",
                "last_name": "Uddin",
                "role": UserRole.CUSTOMER,
                "status": UserStatus.ACTIVE,
            }
            values.update(overrides)
            password = values.pop("password", PASSWORD)
            values["password_hash"] = await passwords.hash_password(password)
            async with api_session_factory() as session:
                user = User(**values)
                session.add(user)
                await session.commit()
                return user

        return client.portal.call(insert)

    return _create_user


@pytest.fixture
def auth_headers(api_fallback):
    """Bearer header for a user, without going through login."""

    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {TokenService(api_fallback).create_access_token(user)}"}

    return _auth_headers


@pytest.fixture
def admin_headers(create_user, auth_headers):
    admin = create_user(email="admin@example.com", role=UserRole.ADMIN)
    return auth_headers(admin)


@pytest.fixture
def login_security(api_fallback):
    return LoginSecurityService(api_fallback)


@pytest.fixture
def last_otp(sms):
    """Code from the most recent OTP SMS."""
    return lambda: sms.send_otp.call_args.args[1]


@pytest.fixture
def last_email_token(emails):
    """Token from the most recent verification or reset email."""
    return lambda method="send_verification": getattr(emails, method).call_args.args[1]


@pytest.fixture
def login(client):
    def _login(identifier="rahim@example.com", password=PASSWORD, **extra):
        return client.post("/api/v1/auth/login", json={"identifier": identifier, "password": password, **extra})

    return _login
