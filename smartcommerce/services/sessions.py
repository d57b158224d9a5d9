"""Server-side sessions stored in Redis with a database fallback.

Sessions are written to ``session:{id}`` with a TTL and indexed per user in
the sorted set ``user_sessions:{user_id}``. When Redis does not answer
within the gateway timeout, the full payload is written to the
``user_sessions`` table instead, and validation reads it back from there.

Remember-me tokens live at ``remember_me:{token}`` (30 days) and are
rotated each time they are exchanged for a new session.
"""

import hashlib
import json
import secrets
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from smartcommerce.cache import FallbackRedis, RedisGateway, RedisUnavailableError
from smartcommerce.config import SessionConfig, get_config
from smartcommerce.db.models import UserSession
from smartcommerce.logging_config import get_audit_logger, get_logger

logger = get_logger(__name__)
audit = get_audit_logger()

SESSION_PREFIX = "session:"
USER_SESSIONS_PREFIX = "user_sessions:"
REMEMBER_ME_PREFIX = "remember_me:"
USER_REMEMBER_ME_PREFIX = "user_remember_me:"

SECURITY_LEVELS = {"low": 0, "standard": 1, "high": 2}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


@dataclass(frozen=True)
class RequestMeta:
    """The parts of a request that sessions are bound to."""

    ip: str = ""
    user_agent: str = ""
    accept_language: str = ""
    accept_encoding: str = ""


@dataclass
class SessionData:
    """Session payload, identical in Redis and in the database row."""

    user_id: str
    session_id: str
    device_fingerprint: str
    ip: str
    user_agent: str
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    is_active: bool = True
    login_type: str = "password"
    remember_me: bool = False
    security_level: str = "standard"
    persistent: bool = False
    device_trusted: bool = False
    max_age: int = 24 * 60 * 60

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _now()) >= self.expires_at

    def ttl(self, now: Optional[datetime] = None) -> int:
        """Seconds left, at least 1 so SETEX accepts it."""
        return max(1, int((self.expires_at - (now or _now())).total_seconds()))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("created_at", "last_activity", "expires_at"):
            data[key] = data[key].isoformat()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionData":
        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        for key in ("created_at", "last_activity", "expires_at"):
            values[key] = _parse_dt(values[key])
        return cls(**values)

    @classmethod
    def from_json(cls, raw: str) -> "SessionData":
        return cls.from_dict(json.loads(raw))

    def public(self) -> Dict[str, Any]:
        """Fields safe to return to the session owner."""
        data = self.to_dict()
        data.pop("device_fingerprint", None)
        return data


@dataclass
class SessionValidation:
    valid: bool
    reason: Optional[str] = None
    session: Optional[SessionData] = None
    store: Optional[str] = None


@dataclass
class RememberMeToken:
    token: str
    user_id: str
    device_fingerprint: str
    created_at: datetime
    expires_at: datetime

    def to_json(self) -> str:
        return json.dumps({
            "user_id": self.user_id,
            "token": self.token,
            "device_fingerprint": self.device_fingerprint,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "is_active": True,
        })

    @classmethod
    def from_json(cls, raw: str) -> "RememberMeToken":
        data = json.loads(raw)
        return cls(
            token=data["token"],
            user_id=data["user_id"],
            device_fingerprint=data.get("device_fingerprint", ""),
            created_at=_parse_dt(data["created_at"]),
            expires_at=_parse_dt(data["expires_at"]),
        )


@dataclass
class RememberMeValidation:
    valid: bool
    reason: Optional[str] = None
    token: Optional[RememberMeToken] = None


@dataclass
class RememberMeRefresh:
    success: bool
    reason: Optional[str] = None
    session: Optional[SessionData] = None
    remember_token: Optional[RememberMeToken] = None


@dataclass
class SessionStats:
    total: int = 0
    active: int = 0
    expired: int = 0
    redis_available: bool = False
    by_store: Dict[str, int] = field(default_factory=dict)


def generate_session_id() -> str:
    """64 hex characters from the OS CSPRNG."""
    return secrets.token_hex(32)


def generate_device_fingerprint(user_agent: str, accept_language: str, accept_encoding: str) -> str:
    """First 32 hex chars of sha256 over ``ua|language|encoding``."""
    raw = f"{user_agent or ''}|{accept_language or ''}|{accept_encoding or ''}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def fingerprint_for(meta: RequestMeta) -> str:
    return generate_device_fingerprint(meta.user_agent, meta.accept_language, meta.accept_encoding)


def is_ip_change_allowed(old_ip: str, new_ip: str) -> bool:
    """Allow IPv4 changes within the same /16 (mobile carrier NAT pools)."""
    old_parts = (old_ip or "").split(".")
    new_parts = (new_ip or "").split(".")
    return len(old_parts) == 4 and len(new_parts) == 4 and old_parts[:2] == new_parts[:2]


def security_check(session: SessionData, meta: RequestMeta) -> Optional[str]:
    """Reason the request does not match the session, or None."""
    if session.ip and session.ip != meta.ip and not is_ip_change_allowed(session.ip, meta.ip):
        return "IP address mismatch"
    if session.user_agent and session.user_agent != meta.user_agent:
        return "User agent mismatch"
    if session.device_fingerprint and session.device_fingerprint != fingerprint_for(meta):
        return "Device fingerprint mismatch"
    return None


class SessionService:
    """Creates, validates and destroys sessions and remember-me tokens.

    Args:
        redis: Timeout-raced gateway; ``RedisUnavailableError`` switches
            session storage to the database
        session_factory: SQLAlchemy async session factory for the fallback
        config: Session TTLs (defaults to the global config)
        remember_store: Store for remember-me tokens (defaults to the
            gateway with an in-memory fallback)
    """

    def __init__(
        self,
        redis: RedisGateway,
        session_factory: async_sessionmaker,
        config: Optional[SessionConfig] = None,
        remember_store: Optional[FallbackRedis] = None,
    ):
        self.redis = redis
        self.session_factory = session_factory
        self.config = config or get_config().session
        self.remember_store = remember_store or FallbackRedis(redis)

    generate_session_id = staticmethod(generate_session_id)
    generate_device_fingerprint = staticmethod(generate_device_fingerprint)

    # =========================================================================
    # Storage helpers
    # =========================================================================

    async def _redis_store(self, session: SessionData, now: datetime) -> None:
        await self.redis.setex(f"{SESSION_PREFIX}{session.session_id}", session.ttl(now), session.to_json())
        index_key = f"{USER_SESSIONS_PREFIX}{session.user_id}"
        await self.redis.zadd(index_key, {session.session_id: _ms(now)})
        await self.redis.expire(index_key, self.config.user_index_ttl)

    async def _db_store(self, session: SessionData) -> None:
        async with self.session_factory() as db:
            row = (
                await db.execute(select(UserSession).where(UserSession.token == session.session_id))
            ).scalar_one_or_none()
            if row is None:
                row = UserSession(
                    user_id=UUID(str(session.user_id)),
                    token=session.session_id,
                    created_at=session.created_at,
                )
                db.add(row)
            row.data = session.to_dict()
            row.expires_at = session.expires_at
            row.last_activity = session.last_activity
            await db.commit()

    async def _db_load(self, session_id: str) -> Optional[SessionData]:
        async with self.session_factory() as db:
            row = (
                await db.execute(select(UserSession).where(UserSession.token == session_id))
            ).scalar_one_or_none()
        if row is None:
            return None
        if row.data:
            return SessionData.from_dict(row.data)
        # Rows without a payload only bind the user
        return SessionData(
            user_id=str(row.user_id),
            session_id=row.token,
            device_fingerprint="",
            ip="",
            user_agent="",
            created_at=row.created_at,
            last_activity=row.last_activity or row.created_at,
            expires_at=row.expires_at,
        )

    async def _db_delete(self, session_id: str) -> int:
        async with self.session_factory() as db:
            result = await db.execute(delete(UserSession).where(UserSession.token == session_id))
            await db.commit()
            return result.rowcount or 0

    async def _load(self, session_id: str) -> Tuple[Optional[SessionData], str]:
        """Session and the store it came from (``redis`` or ``database``)."""
        try:
            raw = await self.redis.get(f"{SESSION_PREFIX}{session_id}")
            if raw:
                return SessionData.from_json(raw), "redis"
        except RedisUnavailableError:
            pass
        return await self._db_load(session_id), "database"

    async def _save(self, session: SessionData, source: str, now: datetime) -> None:
        if source == "redis":
            try:
                await self.redis.setex(f"{SESSION_PREFIX}{session.session_id}", session.ttl(now), session.to_json())
                return
            except RedisUnavailableError:
                logger.warning(
                    "Redis unavailable while updating session, writing to database",
                    extra={"session_id": session.session_id},
                )
        await self._db_store(session)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(
        self,
        user_id: Any,
        request_meta: RequestMeta,
        remember_me: bool = False,
        login_type: str = "password",
        security_level: str = "standard",
        max_age: Optional[int] = None,
    ) -> SessionData:
        """Create a session; 7 days with remember-me, otherwise 24 hours."""
        now = _now()
        default_age = self.config.remember_me_max_age if remember_me else self.config.default_max_age
        max_age = max_age or default_age

        session = SessionData(
            user_id=str(user_id),
            session_id=generate_session_id(),
            device_fingerprint=fingerprint_for(request_meta),
            ip=request_meta.ip,
            user_agent=request_meta.user_agent,
            created_at=now,
            last_activity=now,
            expires_at=now + timedelta(seconds=max_age),
            login_type=login_type,
            remember_me=remember_me,
            security_level=security_level,
            persistent=remember_me,
            device_trusted=remember_me,
            max_age=max_age,
        )

        try:
            await self._redis_store(session, now)
            store = "redis"
        except RedisUnavailableError as e:
            logger.warning(
                f"Redis unavailable ({e.reason}), storing session in database",
                extra={"user_id": session.user_id},
            )
            await self._db_store(session)
            store = "database"

        audit.info(
            "session_created",
            user_id=session.user_id,
            session_id=session.session_id,
            ip=session.ip,
            login_type=login_type,
            remember_me=remember_me,
            max_age=max_age,
            store=store,
        )
        return session

    async def validate_session(self, session_id: Optional[str], request_meta: RequestMeta) -> SessionValidation:
        """Load a session and check it against the current request.

        Expired sessions and sessions that fail the IP, user-agent or
        fingerprint check are destroyed.
        """
        if not session_id:
            return SessionValidation(valid=False, reason="No session ID provided")

        session, source = await self._load(session_id)
        if session is None:
            audit.warning("invalid_session_attempt", session_id=session_id, ip=request_meta.ip)
            return SessionValidation(valid=False, reason="Session not found")

        now = _now()
        if session.is_expired(now) or not session.is_active:
            await self.destroy_session(session_id, reason="expired")
            return SessionValidation(valid=False, reason="Session expired")

        reason = security_check(session, request_meta)
        if reason:
            await self.destroy_session(session_id, reason="security_check_failed")
            audit.warning(
                "session_security_check_failed",
                user_id=session.user_id,
                session_id=session_id,
                reason=reason,
                ip=request_meta.ip,
                user_agent=request_meta.user_agent,
            )
            return SessionValidation(valid=False, reason=reason)

        session.last_activity = now
        await self._save(session, source, now)
        return SessionValidation(valid=True, session=session, store=source)

    async def refresh_session(
        self,
        session_id: str,
        request_meta: Optional[RequestMeta] = None,
        max_age: Optional[int] = None,
    ) -> SessionValidation:
        """Extend a session to ``now + max_age`` (24 hours by default).

        With ``request_meta`` the session is validated first.
        """
        if request_meta is not None:
            validation = await self.validate_session(session_id, request_meta)
            if not validation.valid:
                return validation
            session = validation.session
            source = validation.store
        else:
            session, source = await self._load(session_id)
            if session is None:
                return SessionValidation(valid=False, reason="Session not found")
            if session.is_expired():
                await self.destroy_session(session_id, reason="expired")
                return SessionValidation(valid=False, reason="Session expired")

        now = _now()
        session.max_age = max_age or self.config.default_max_age
        session.last_activity = now
        session.expires_at = now + timedelta(seconds=session.max_age)
        await self._save(session, source, now)

        audit.info(
            "session_refreshed",
            user_id=session.user_id,
            session_id=session_id,
            expires_at=session.expires_at.isoformat(),
        )
        return SessionValidation(valid=True, session=session, store=source)

    async def destroy_session(self, session_id: str, reason: str = "logout") -> bool:
        """Remove a session from Redis, its user index and the database."""
        removed = False
        user_id = None
        try:
            raw = await self.redis.get(f"{SESSION_PREFIX}{session_id}")
            if raw:
                user_id = SessionData.from_json(raw).user_id
                await self.redis.zrem(f"{USER_SESSIONS_PREFIX}{user_id}", session_id)
                removed = bool(await self.redis.delete(f"{SESSION_PREFIX}{session_id}"))
        except RedisUnavailableError:
            logger.warning("Redis unavailable while destroying session", extra={"session_id": session_id})

        if await self._db_delete(session_id):
            removed = True

        if removed:
            audit.info("session_destroyed", user_id=user_id, session_id=session_id, reason=reason)
        return removed

    async def _user_session_ids(self, user_id: str) -> Set[str]:
        ids: Set[str] = set()
        try:
            ids.update(await self.redis.zrange(f"{USER_SESSIONS_PREFIX}{user_id}", 0, -1))
        except RedisUnavailableError:
            pass
        async with self.session_factory() as db:
            result = await db.execute(select(UserSession.token).where(UserSession.user_id == UUID(str(user_id))))
            ids.update(result.scalars())
        return ids

    async def destroy_all_user_sessions(self, user_id: Any, except_session_id: Optional[str] = None) -> int:
        """Destroy every session of a user except ``except_session_id``."""
        destroyed = 0
        for session_id in await self._user_session_ids(str(user_id)):
            if session_id == except_session_id:
                continue
            if await self.destroy_session(session_id, reason="mass_logout"):
                destroyed += 1

        audit.info(
            "all_user_sessions_destroyed",
            user_id=str(user_id),
            destroyed_count=destroyed,
            except_session_id=except_session_id,
        )
        return destroyed

    async def get_user_sessions(self, user_id: Any) -> List[SessionData]:
        """Active, unexpired sessions, newest first."""
        now = _now()
        sessions: Dict[str, SessionData] = {}
        for session_id in await self._user_session_ids(str(user_id)):
            session, _ = await self._load(session_id)
            if session and session.is_active and not session.is_expired(now):
                sessions[session_id] = session
        return sorted(sessions.values(), key=lambda s: s.created_at, reverse=True)

    async def cleanup_expired_sessions(self) -> int:
        """Prune index entries of vanished sessions and expired database rows."""
        cleaned = 0
        try:
            for index_key in await self.redis.scan_keys(f"{USER_SESSIONS_PREFIX}*"):
                stale = [
                    session_id
                    for session_id in await self.redis.zrange(index_key, 0, -1)
                    if not await self.redis.exists(f"{SESSION_PREFIX}{session_id}")
                ]
                if stale:
                    await self.redis.zrem(index_key, *stale)
                    cleaned += len(stale)
        except RedisUnavailableError:
            logger.warning("Redis unavailable during session cleanup, cleaning database only")

        async with self.session_factory() as db:
            result = await db.execute(delete(UserSession).where(UserSession.expires_at < _now()))
            await db.commit()
            cleaned += result.rowcount or 0

        logger.info(f"Session cleanup removed {cleaned} entries", extra={"cleaned_count": cleaned})
        return cleaned

    async def get_session_stats(self) -> SessionStats:
        now = _now()
        stats = SessionStats()
        redis_count = 0
        try:
            for key in await self.redis.scan_keys(f"{SESSION_PREFIX}*"):
                raw = await self.redis.get(key)
                if not raw:
                    continue
                redis_count += 1
                if SessionData.from_json(raw).is_expired(now):
                    stats.expired += 1
                else:
                    stats.active += 1
            stats.redis_available = True
        except RedisUnavailableError:
            stats.redis_available = False

        async with self.session_factory() as db:
            total = (await db.execute(select(func.count()).select_from(UserSession))).scalar_one()
            active = (
                await db.execute(
                    select(func.count()).select_from(UserSession).where(UserSession.expires_at > now)
                )
            ).scalar_one()

        stats.active += active
        stats.expired += total - active
        stats.total = stats.active + stats.expired
        stats.by_store = {"redis": redis_count, "database": total}
        return stats

    # =========================================================================
    # Remember-me tokens
    # =========================================================================

    async def create_remember_me_token(self, user_id: Any, device_fingerprint: str) -> RememberMeToken:
        now = _now()
        ttl = self.config.remember_me_token_ttl
        token = RememberMeToken(
            token=generate_session_id(),
            user_id=str(user_id),
            device_fingerprint=device_fingerprint,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        await self.remember_store.setex(f"{REMEMBER_ME_PREFIX}{token.token}", ttl, token.to_json())
        index_key = f"{USER_REMEMBER_ME_PREFIX}{token.user_id}"
        await self.remember_store.zadd(index_key, {token.token: _ms(now)})
        await self.remember_store.expire(index_key, ttl)

        audit.info(
            "remember_me_token_created",
            user_id=token.user_id,
            expires_at=token.expires_at.isoformat(),
        )
        return token

    async def validate_remember_me_token(self, token: Optional[str]) -> RememberMeValidation:
        if not token:
            return RememberMeValidation(valid=False, reason="No remember me token provided")

        raw = await self.remember_store.get(f"{REMEMBER_ME_PREFIX}{token}")
        if not raw:
            return RememberMeValidation(valid=False, reason="Remember me token not found or expired")

        data = RememberMeToken.from_json(raw)
        if _now() >= data.expires_at:
            await self._delete_remember_me_token(data)
            return RememberMeValidation(valid=False, reason="Remember me token expired")
        return RememberMeValidation(valid=True, token=data)

    async def _delete_remember_me_token(self, token: RememberMeToken) -> None:
        await self.remember_store.delete(f"{REMEMBER_ME_PREFIX}{token.token}")
        await self.remember_store.zrem(f"{USER_REMEMBER_ME_PREFIX}{token.user_id}", token.token)

    async def refresh_from_remember_me_token(self, token: Optional[str], request_meta: RequestMeta) -> RememberMeRefresh:
        """Exchange a remember-me token for a new 7-day session.

        The device fingerprint must match the one the token was issued to.
        The old token is deleted and a new one issued.
        """
        validation = await self.validate_remember_me_token(token)
        if not validation.valid:
            return RememberMeRefresh(success=False, reason=validation.reason)

        stored = validation.token
        fingerprint = fingerprint_for(request_meta)
        if stored.device_fingerprint != fingerprint:
            audit.warning(
                "remember_me_device_mismatch",
                user_id=stored.user_id,
                ip=request_meta.ip,
                user_agent=request_meta.user_agent,
            )
            return RememberMeRefresh(success=False, reason="Device fingerprint mismatch")

        session = await self.create_session(
            stored.user_id,
            request_meta,
            remember_me=True,
            login_type="remember_me",
            max_age=self.config.remember_me_max_age,
        )
        await self._delete_remember_me_token(stored)
        new_token = await self.create_remember_me_token(stored.user_id, fingerprint)

        audit.info(
            "session_refreshed_from_remember_me",
            user_id=stored.user_id,
            session_id=session.session_id,
            ip=request_meta.ip,
        )
        return RememberMeRefresh(success=True, session=session, remember_token=new_token)

    async def revoke_remember_me_tokens(self, user_id: Any) -> int:
        """Delete every remember-me token of a user."""
        index_key = f"{USER_REMEMBER_ME_PREFIX}{user_id}"
        tokens = await self.remember_store.zrange(index_key, 0, -1)
        revoked = 0
        for token in tokens:
            revoked += await self.remember_store.delete(f"{REMEMBER_ME_PREFIX}{token}")
        await self.remember_store.delete(index_key)

        audit.info("remember_me_tokens_revoked", user_id=str(user_id), revoked_count=revoked)
        return revoked

    async def cleanup_expired_remember_me_tokens(self) -> int:
        """Delete expired tokens and prune index entries of vanished tokens."""
        now = _now()
        cleaned = 0
        for key in await self.remember_store.scan_keys(f"{REMEMBER_ME_PREFIX}*"):
            raw = await self.remember_store.get(key)
            if raw and now >= RememberMeToken.from_json(raw).expires_at:
                await self.remember_store.delete(key)
                cleaned += 1

        for index_key in await self.remember_store.scan_keys(f"{USER_REMEMBER_ME_PREFIX}*"):
            stale = [
                token
                for token in await self.remember_store.zrange(index_key, 0, -1)
                if not await self.remember_store.exists(f"{REMEMBER_ME_PREFIX}{token}")
            ]
            if stale:
                await self.remember_store.zrem(index_key, *stale)

        logger.info(f"Remember-me cleanup removed {cleaned} tokens", extra={"cleaned_count": cleaned})
        return cleaned
