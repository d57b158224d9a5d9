"""JWT access tokens with issuer/audience checks and a revocation list.

Tokens are HS256 and always carry ``iss``, ``aud`` and a unique ``jti``.
Revoked ``jti`` values are kept in Redis (memory fallback) until the token
would have expired anyway.
"""

import time
import uuid
from typing import TYPE_CHECKING, Any, Dict, Optional

import jwt

from smartcommerce.cache.commands import RedisCommands
from smartcommerce.config import JWTConfig, get_config
from smartcommerce.logging_config import get_logger

if TYPE_CHECKING:
    from smartcommerce.db.models import User

logger = get_logger(__name__)

BLACKLIST_PREFIX = "token_blacklist:"
# Used only outside production when JWT_SECRET is unset
DEVELOPMENT_SECRET = "smartcommerce-development-secret-do-not-use-in-production"


class TokenError(Exception):
    """Base class for token failures."""


class TokenExpiredError(TokenError):
    """The token's ``exp`` is in the past."""


class InvalidTokenError(TokenError):
    """Bad signature, issuer, audience or structure."""


class TokenRevokedError(InvalidTokenError):
    """The token's ``jti`` is on the blacklist."""


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header.

    Anything other than exactly two space separated parts with the
    ``Bearer`` scheme returns None.
    """
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


class TokenService:
    """Issues, verifies and revokes access tokens."""

    def __init__(self, redis: RedisCommands, config: Optional[JWTConfig] = None):
        self.redis = redis
        self.config = config or get_config().jwt
        self._secret = self.config.secret or DEVELOPMENT_SECRET

    @property
    def expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return self.config.access_token_minutes * 60

    def create_access_token(self, user: "User", session_id: Optional[str] = None) -> str:
        now = int(time.time())
        claims: Dict[str, Any] = {
            "sub": str(user.id),
            "user_id": str(user.id),
            "email": user.email,
            "phone": user.phone,
            "role": user.role.value if hasattr(user.role, "value") else user.role,
            "session_id": session_id,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + self.expires_in,
            "iss": self.config.issuer,
            "aud": self.config.audience,
        }
        return jwt.encode(claims, self._secret, algorithm=self.config.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """Verify signature, expiry, issuer and audience.

        Raises:
            TokenExpiredError: Token has expired
            InvalidTokenError: Any other verification failure
        """
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self.config.algorithm],
                issuer=self.config.issuer,
                audience=self.config.audience,
                options={"require": ["exp", "iat", "iss", "aud", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """Decode and reject revoked tokens.

        Raises:
            TokenExpiredError, InvalidTokenError, TokenRevokedError
        """
        claims = self.decode_token(token)
        if await self.is_revoked(claims["jti"]):
            raise TokenRevokedError("Token has been revoked")
        return claims

    async def revoke_token(self, claims: Dict[str, Any]) -> None:
        """Blacklist a token's ``jti`` until its expiry."""
        jti = claims.get("jti")
        if not jti:
            return
        remaining = int(claims.get("exp", 0)) - int(time.time())
        if remaining <= 0:
            return
        await self.redis.setex(f"{BLACKLIST_PREFIX}{jti}", remaining, "1")
        logger.debug("Token revoked", extra={"jti": jti, "user_id": claims.get("sub")})

    async def is_revoked(self, jti: str) -> bool:
        return bool(await self.redis.exists(f"{BLACKLIST_PREFIX}{jti}"))
