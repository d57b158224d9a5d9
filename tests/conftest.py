"""Global pytest configuration and fixtures.

This module provides shared fixtures and configuration for all tests.
Environment variables are set before any ``smartcommerce`` import so the
process-wide configuration and the database module see test values.
"""

import os

# =============================================================================
# Environment Setup
# =============================================================================

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-signing-0123456789")
os.environ.setdefault("REDIS_URL", "memory://")
os.environ.setdefault("VERIFICATION_REQUIRED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import fakeredis.aioredis
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from smartcommerce.cache import FallbackRedis, RedisGateway, reset_redis_singletons
from smartcommerce.config import PasswordPolicyConfig, reset_config
from smartcommerce.db.models import Base, User, UserRole, UserStatus
from smartcommerce.services.circuit_breaker import CircuitBreaker

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


# =============================================================================
# Marker Registration
# =============================================================================


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests exercising the HTTP API through TestClient")


# =============================================================================
# Global State
# =============================================================================


@pytest.fixture(autouse=True)
def reset_global_state():
    """Forget cached configuration and Redis wrappers between tests."""
    reset_config()
    reset_redis_singletons()
    yield
    reset_config()
    reset_redis_singletons()


# =============================================================================
# Redis Fixtures
# =============================================================================


@pytest.fixture
def fake_redis():
    """Create a fake Redis client for testing."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def gateway(fake_redis):
    """Gateway over fakeredis with its own breaker."""
    return RedisGateway(
        fake_redis,
        command_timeout=1.0,
        breaker=CircuitBreaker("redis-test", failure_threshold=3, recovery_timeout=30.0),
    )


@pytest.fixture
def down_gateway():
    """Gateway with no client: every command raises RedisUnavailableError."""
    return RedisGateway(None, breaker=CircuitBreaker("redis-down", failure_threshold=3))


@pytest.fixture
def fallback(gateway):
    return FallbackRedis(gateway)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        SQLITE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fast_password_policy():
    """Default policy with cheap bcrypt rounds."""
    return PasswordPolicyConfig(bcrypt_rounds=4)


@pytest.fixture
def make_user(db):
    """Factory inserting a user row with sensible defaults."""

    async def _make_user(**overrides) -> User:
        values = {
            "email": "rahim@example.com",
            "phone": None,
            "password_hash": "not-a-real-hash",
            "first_name": "Rahim",
            "last_name": "Uddin",
            "role": UserRole.CUSTOMER,
            "status": UserStatus.ACTIVE,
        }
        values.update(overrides)
        user = User(**values)
        db.add(user)
        await db.commit()
        return user

    return _make_user
