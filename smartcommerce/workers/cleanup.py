"""Periodic cleanup of expired authentication data.

This module handles:
- Expired sessions in Redis (and their user indexes) and in the database
- Expired remember-me tokens
- Expired and old verified phone OTPs
- Expired email verification and password reset tokens
- Login security keys that lost their TTL

Each task runs on its own event loop via ``asyncio.run`` with its own Redis
client and unpooled database engine, and returns a status dict.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict

import redis.asyncio as aioredis
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smartcommerce.cache import FallbackRedis, RedisGateway
from smartcommerce.config import get_config
from smartcommerce.db.session import create_task_engine
from smartcommerce.services.email_tokens import EmailTokenService
from smartcommerce.services.login_security import LoginSecurityService
from smartcommerce.services.otp import OTPService
from smartcommerce.services.sessions import SessionService
from smartcommerce.workers.celery_app import celery_app

log = structlog.get_logger("smartcommerce.workers.cleanup")


@dataclass
class TaskResources:
    gateway: RedisGateway
    fallback: FallbackRedis
    session_factory: async_sessionmaker


@asynccontextmanager
async def task_resources() -> AsyncIterator[TaskResources]:
    """Redis gateway and database sessions scoped to one task run."""
    config = get_config()
    client = None
    if config.redis.url and config.redis.url != "memory://":
        client = aioredis.from_url(
            config.redis.url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=config.redis.command_timeout,
            socket_connect_timeout=config.redis.connect_timeout,
        )
    gateway = RedisGateway(client, command_timeout=config.redis.command_timeout)
    engine = create_task_engine()
    try:
        yield TaskResources(
            gateway=gateway,
            fallback=FallbackRedis(gateway),
            session_factory=async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        )
    finally:
        if client is not None:
            await client.aclose()
        await engine.dispose()


# =============================================================================
# Cleanup operations
# =============================================================================


async def cleanup_sessions(resources: TaskResources) -> Dict[str, Any]:
    service = SessionService(resources.gateway, resources.session_factory, remember_store=resources.fallback)
    return {"cleaned_count": await service.cleanup_expired_sessions()}


async def cleanup_remember_me(resources: TaskResources) -> Dict[str, Any]:
    service = SessionService(resources.gateway, resources.session_factory, remember_store=resources.fallback)
    return {"cleaned_count": await service.cleanup_expired_remember_me_tokens()}


async def cleanup_otps(resources: TaskResources) -> Dict[str, Any]:
    async with resources.session_factory() as db:
        deleted = await OTPService(db).cleanup_expired()
    return {"cleaned_count": deleted}


async def cleanup_email_tokens(resources: TaskResources) -> Dict[str, Any]:
    async with resources.session_factory() as db:
        deleted = await EmailTokenService(db).cleanup_expired()
    return {"cleaned_count": deleted}


async def cleanup_login_security(resources: TaskResources) -> Dict[str, Any]:
    service = LoginSecurityService(resources.fallback)
    return {"cleaned_count": await service.cleanup_expired_data()}


def run_cleanup(name: str, operation: Callable[[TaskResources], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Run ``operation`` on a fresh event loop and report the outcome.

    Failures are logged and reported as ``{"status": "error"}`` so beat
    keeps its schedule; the next run retries.
    """

    async def _run() -> Dict[str, Any]:
        async with task_resources() as resources:
            return await operation(resources)

    bound = log.bind(task=name)
    try:
        result = asyncio.run(_run())
    except Exception as e:
        bound.exception("cleanup_failed", error=str(e))
        return {"status": "error", "task": name, "error": str(e)}

    bound.info("cleanup_completed", **result)
    return {"status": "success", "task": name, **result}


# =============================================================================
# Celery tasks
# =============================================================================


@celery_app.task(name="smartcommerce.workers.cleanup.cleanup_expired_sessions_task")
def cleanup_expired_sessions_task() -> dict:
    """Hourly: drop expired sessions from Redis and the database."""
    return run_cleanup("sessions", cleanup_sessions)


@celery_app.task(name="smartcommerce.workers.cleanup.cleanup_remember_me_tokens_task")
def cleanup_remember_me_tokens_task() -> dict:
    """Daily: drop expired remember-me tokens."""
    return run_cleanup("remember_me", cleanup_remember_me)


@celery_app.task(name="smartcommerce.workers.cleanup.cleanup_expired_otps_task")
def cleanup_expired_otps_task() -> dict:
    """Hourly: drop expired OTPs and verified ones past retention."""
    return run_cleanup("otps", cleanup_otps)


@celery_app.task(name="smartcommerce.workers.cleanup.cleanup_email_tokens_task")
def cleanup_email_tokens_task() -> dict:
    """Hourly: drop expired email verification and reset tokens."""
    return run_cleanup("email_tokens", cleanup_email_tokens)


@celery_app.task(name="smartcommerce.workers.cleanup.cleanup_login_security_task")
def cleanup_login_security_task() -> dict:
    """Daily: give login security keys without a TTL an expiry."""
    return run_cleanup("login_security", cleanup_login_security)
