"""FastAPI dependency factories for the domain services.

Routes depend on these instead of constructing services, so tests can
swap any of them through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from smartcommerce.cache import FallbackRedis, RedisGateway, get_fallback_redis, get_redis_gateway
from smartcommerce.db.session import get_db, get_session_factory
from smartcommerce.services.addresses import AddressService
from smartcommerce.services.email import EmailService
from smartcommerce.services.email_tokens import EmailTokenService
from smartcommerce.services.login_security import LoginSecurityService
from smartcommerce.services.otp import OTPService
from smartcommerce.services.passwords import PasswordService
from smartcommerce.services.rate_limiter import SlidingWindowRateLimiter
from smartcommerce.services.sessions import SessionService
from smartcommerce.services.sms import SMSService
from smartcommerce.services.tokens import TokenService


async def get_token_service(redis: FallbackRedis = Depends(get_fallback_redis)) -> TokenService:
    return TokenService(redis)


async def get_session_service(
    gateway: RedisGateway = Depends(get_redis_gateway),
    fallback: FallbackRedis = Depends(get_fallback_redis),
) -> SessionService:
    return SessionService(gateway, get_session_factory(), remember_store=fallback)


async def get_login_security_service(
    redis: FallbackRedis = Depends(get_fallback_redis),
) -> LoginSecurityService:
    return LoginSecurityService(redis)


async def get_rate_limiter(redis: FallbackRedis = Depends(get_fallback_redis)) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(redis)


def get_password_service() -> PasswordService:
    return PasswordService()


@lru_cache(maxsize=1)
def get_sms_service() -> SMSService:
    """Shared SMS sender (one circuit breaker and HTTP client per process)."""
    return SMSService()


async def get_otp_service(
    db: AsyncSession = Depends(get_db),
    sms: SMSService = Depends(get_sms_service),
) -> OTPService:
    return OTPService(db, sms)


async def get_address_service(db: AsyncSession = Depends(get_db)) -> AddressService:
    return AddressService(db)


@lru_cache(maxsize=1)
def get_email_service() -> EmailService:
    """Shared email sender (one circuit breaker per process)."""
    return EmailService()


async def get_email_token_service(db: AsyncSession = Depends(get_db)) -> EmailTokenService:
    return EmailTokenService(db)
