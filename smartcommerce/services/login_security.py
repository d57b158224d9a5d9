"""Brute-force protection for the login endpoint.

Failed attempts are kept in sliding windows (sorted sets scored by
millisecond timestamps) per identifier and per IP. Crossing a threshold
writes a lockout or block record with its own TTL. All state lives in
Redis, or process memory while Redis is unreachable.

Redis keys:
    login_attempts:{identifier}    sorted set of failed attempts
    ip_attempts:{ip}               sorted set of failed attempts
    suspicious_activity:{ip}       hash with a 24h failure counter
    user_lockout:{identifier}      JSON lockout record (TTL = lockout)
    ip_block:{ip}                  JSON block record (TTL = block)
"""

import json
import re
import secrets
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from smartcommerce.cache.commands import RedisCommands
from smartcommerce.config import LoginSecurityConfig, get_config
from smartcommerce.logging_config import get_audit_logger, get_logger

logger = get_logger(__name__)
audit = get_audit_logger()

SUSPICIOUS_TTL = 24 * 60 * 60
CLEANUP_PATTERNS = (
    "login_attempts:*",
    "ip_attempts:*",
    "user_lockout:*",
    "ip_block:*",
    "suspicious_activity:*",
)

_MALICIOUS_AGENT = re.compile(r"bot|crawler|scanner|sqlmap|nikto|nmap", re.IGNORECASE)
_AUTOMATED_AGENT = re.compile(r"curl|wget|python|java|node", re.IGNORECASE)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


@dataclass
class BlockStatus:
    """Lockout or IP block currently in force."""

    reason: str
    attempts: int
    started_at: str
    expires_at: str
    remaining_seconds: int


@dataclass
class SuspiciousReport:
    is_suspicious: bool = False
    reasons: List[str] = field(default_factory=list)
    risk_score: int = 0


@dataclass
class LoginCheck:
    """Outcome of ``check_login_allowed``.

    ``reason`` is one of ``ip_blocked``, ``account_locked``,
    ``delay_required`` or ``captcha_required`` when not allowed.
    """

    allowed: bool
    reason: Optional[str] = None
    retry_after: int = 0
    delay_ms: int = 0
    captcha_required: bool = False
    lockout: Optional[BlockStatus] = None
    ip_block: Optional[BlockStatus] = None
    suspicious: SuspiciousReport = field(default_factory=SuspiciousReport)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LoginSecurityService:
    """Tracks failed logins and decides whether a login may proceed."""

    def __init__(self, redis: RedisCommands, config: Optional[LoginSecurityConfig] = None):
        self.redis = redis
        self.config = config or get_config().login_security

    @property
    def window_ms(self) -> int:
        return self.config.attempt_window_seconds * 1000

    async def _recent_attempts(self, key: str, now_ms: Optional[int] = None) -> int:
        """Trim the window and count what is left."""
        now_ms = now_ms or _now_ms()
        await self.redis.zremrangebyscore(key, "-inf", now_ms - self.window_ms)
        return await self.redis.zcard(key)

    async def _last_attempt_ms(self, key: str) -> Optional[int]:
        last = await self.redis.zrange(key, -1, -1, withscores=True)
        return int(last[0][1]) if last else None

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    async def check_login_allowed(self, identifier: str, ip: str, user_agent: str = "") -> LoginCheck:
        """Decide whether a login attempt may be evaluated.

        Order: IP block, account lockout, CAPTCHA requirement, then the
        progressive delay since the previous failure.
        """
        suspicious = await self.check_suspicious_patterns(ip, user_agent, identifier=identifier)

        ip_block = await self.is_ip_blocked(ip)
        if ip_block:
            audit.warning("login_blocked_ip", identifier=identifier, ip=ip, expires_at=ip_block.expires_at)
            return LoginCheck(
                allowed=False,
                reason="ip_blocked",
                retry_after=ip_block.remaining_seconds,
                ip_block=ip_block,
                suspicious=suspicious,
            )

        lockout = await self.is_user_locked_out(identifier)
        if lockout:
            audit.warning("login_blocked_lockout", identifier=identifier, ip=ip, expires_at=lockout.expires_at)
            return LoginCheck(
                allowed=False,
                reason="account_locked",
                retry_after=lockout.remaining_seconds,
                lockout=lockout,
                suspicious=suspicious,
            )

        user_key = f"login_attempts:{identifier}"
        now_ms = _now_ms()
        attempts = await self._recent_attempts(user_key, now_ms)

        if self.config.captcha_enabled and attempts >= self.config.captcha_threshold:
            return LoginCheck(allowed=False, reason="captcha_required", captcha_required=True, suspicious=suspicious)

        delay_ms = self.calculate_progressive_delay(attempts)
        if delay_ms:
            last_ms = await self._last_attempt_ms(user_key)
            wait_ms = (last_ms + delay_ms - now_ms) if last_ms else 0
            if wait_ms > 0:
                audit.info("login_delay_applied", identifier=identifier, ip=ip, delay_ms=delay_ms)
                return LoginCheck(
                    allowed=False,
                    reason="delay_required",
                    retry_after=max(1, -(-wait_ms // 1000)),
                    delay_ms=delay_ms,
                    suspicious=suspicious,
                )

        return LoginCheck(allowed=True, delay_ms=delay_ms, suspicious=suspicious)

    def calculate_progressive_delay(self, failed_attempts: int) -> int:
        """Milliseconds to wait after ``failed_attempts`` failures.

        1s after the first failure, doubling each time, capped at the
        configured maximum. No delay without failures.
        """
        if failed_attempts <= 0:
            return 0
        delay = self.config.base_delay_ms * (2 ** (failed_attempts - 1))
        return min(delay, self.config.max_delay_ms)

    async def _block_status(self, key: str) -> Optional[BlockStatus]:
        raw = await self.redis.get(key)
        if not raw:
            return None
        record = json.loads(raw)
        expires_ms = int(record["expires_at_ms"])
        return BlockStatus(
            reason=record.get("reason", "too_many_attempts"),
            attempts=int(record.get("attempts", 0)),
            started_at=record.get("started_at", ""),
            expires_at=_iso(expires_ms),
            remaining_seconds=max(0, -(-(expires_ms - _now_ms()) // 1000)),
        )

    async def is_user_locked_out(self, identifier: str) -> Optional[BlockStatus]:
        return await self._block_status(f"user_lockout:{identifier}")

    async def is_ip_blocked(self, ip: str) -> Optional[BlockStatus]:
        return await self._block_status(f"ip_block:{ip}")

    async def check_suspicious_patterns(
        self, ip: str, user_agent: str = "", identifier: Optional[str] = None
    ) -> SuspiciousReport:
        """Score an IP's recent failure volume and its user agent."""
        report = SuspiciousReport()

        activity = await self.redis.hgetall(f"suspicious_activity:{ip}")
        count = int(activity.get("count", 0)) if activity else 0
        if count > 10:
            report.reasons.append("high_attempt_volume")
            report.risk_score += 3
        if count > 5:
            report.reasons.append("rapid_attempts")
            report.risk_score += 2

        user_agent = user_agent or ""
        if _MALICIOUS_AGENT.search(user_agent):
            report.reasons.append("malicious_user_agent")
            report.risk_score += 5
        if report.risk_score > 0 and _AUTOMATED_AGENT.search(user_agent):
            report.reasons.append("automated_tool")
            report.risk_score += 2

        report.is_suspicious = report.risk_score >= self.config.suspicious_score_threshold
        if report.is_suspicious:
            audit.warning(
                "suspicious_login_pattern",
                identifier=identifier,
                ip=ip,
                user_agent=user_agent,
                reasons=report.reasons,
                risk_score=report.risk_score,
            )
        return report

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    async def record_failed_attempt(
        self, identifier: str, ip: str, user_agent: str = "", reason: str = "invalid_credentials"
    ) -> Dict[str, Any]:
        """Record a failure and apply a lockout or IP block if due.

        Returns:
            Dict with ``user_attempts``, ``ip_attempts``, ``locked`` and
            ``blocked``
        """
        now_ms = _now_ms()
        user_key = f"login_attempts:{identifier}"
        await self._add_attempt(user_key, now_ms)
        ip_attempts, blocked = await self._record_ip_failure(ip, now_ms)
        user_attempts = await self._recent_attempts(user_key, now_ms)

        locked = False
        if user_attempts >= self.config.max_attempts:
            await self._write_block(f"user_lockout:{identifier}", user_attempts, self.config.lockout_seconds, now_ms)
            locked = True
            audit.warning(
                "user_locked_out",
                identifier=identifier,
                ip=ip,
                attempts=user_attempts,
                lockout_seconds=self.config.lockout_seconds,
            )

        audit.info(
            "login_failed",
            identifier=identifier,
            identifier_type="email" if "@" in identifier else "phone",
            ip=ip,
            user_agent=user_agent,
            reason=reason,
        )
        return {
            "user_attempts": user_attempts,
            "ip_attempts": ip_attempts,
            "locked": locked,
            "blocked": blocked,
        }

    async def record_failed_ip_attempt(
        self, ip: str, user_agent: str = "", reason: str = "invalid_identifier"
    ) -> Dict[str, Any]:
        """Count a failure with no usable identifier against the IP only.

        Returns:
            Dict with ``ip_attempts`` and ``blocked``
        """
        ip_attempts, blocked = await self._record_ip_failure(ip, _now_ms())
        audit.info("login_failed", identifier_type="invalid", ip=ip, user_agent=user_agent, reason=reason)
        return {"ip_attempts": ip_attempts, "blocked": blocked}

    async def _add_attempt(self, key: str, now_ms: int) -> None:
        await self.redis.zadd(key, {f"{now_ms}-{secrets.token_hex(8)}": now_ms})
        await self.redis.expire(key, self.config.attempt_window_seconds)

    async def _record_ip_failure(self, ip: str, now_ms: int) -> Tuple[int, bool]:
        ip_key = f"ip_attempts:{ip}"
        suspicious_key = f"suspicious_activity:{ip}"
        await self._add_attempt(ip_key, now_ms)
        await self.redis.hincrby(suspicious_key, "count", 1)
        await self.redis.expire(suspicious_key, SUSPICIOUS_TTL)

        ip_attempts = await self._recent_attempts(ip_key, now_ms)
        if ip_attempts < self.config.ip_max_attempts:
            return ip_attempts, False
        await self._write_block(f"ip_block:{ip}", ip_attempts, self.config.ip_block_seconds, now_ms)
        audit.warning("ip_blocked", ip=ip, attempts=ip_attempts, block_seconds=self.config.ip_block_seconds)
        return ip_attempts, True

    async def _write_block(self, key: str, attempts: int, seconds: int, now_ms: int) -> None:
        record = {
            "reason": "too_many_attempts",
            "attempts": attempts,
            "started_at": _iso(now_ms),
            "expires_at_ms": now_ms + seconds * 1000,
        }
        await self.redis.setex(key, seconds, json.dumps(record))

    async def clear_failed_attempts(self, identifier: str, ip: str) -> None:
        """Forget an identifier's failures; the IP window is only trimmed."""
        await self.redis.delete(f"login_attempts:{identifier}", f"user_lockout:{identifier}")
        await self.redis.zremrangebyscore(f"ip_attempts:{ip}", "-inf", _now_ms() - self.window_ms)

    async def record_successful_login(self, identifier: str, ip: str, user_id: Optional[str] = None) -> None:
        await self.clear_failed_attempts(identifier, ip)
        audit.info("login_succeeded", identifier=identifier, ip=ip, user_id=user_id)

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def get_login_attempt_stats(
        self, identifier: Optional[str] = None, ip: Optional[str] = None
    ) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "user_attempts": 0,
            "ip_attempts": 0,
            "is_user_locked": False,
            "is_ip_blocked": False,
            "captcha_required": False,
            "progressive_delay_ms": 0,
            "lockout": None,
            "ip_block": None,
        }
        if identifier:
            attempts = await self._recent_attempts(f"login_attempts:{identifier}")
            lockout = await self.is_user_locked_out(identifier)
            stats["user_attempts"] = attempts
            stats["is_user_locked"] = lockout is not None
            stats["lockout"] = asdict(lockout) if lockout else None
            stats["captcha_required"] = (
                self.config.captcha_enabled and attempts >= self.config.captcha_threshold
            )
            stats["progressive_delay_ms"] = self.calculate_progressive_delay(attempts)
        if ip:
            block = await self.is_ip_blocked(ip)
            stats["ip_attempts"] = await self._recent_attempts(f"ip_attempts:{ip}")
            stats["is_ip_blocked"] = block is not None
            stats["ip_block"] = asdict(block) if block else None
        return stats

    async def unlock_user(self, identifier: str) -> bool:
        removed = await self.redis.delete(f"user_lockout:{identifier}", f"login_attempts:{identifier}")
        audit.info("user_unlocked", identifier=identifier)
        return removed > 0

    async def unblock_ip(self, ip: str) -> bool:
        removed = await self.redis.delete(f"ip_block:{ip}", f"ip_attempts:{ip}", f"suspicious_activity:{ip}")
        audit.info("ip_unblocked", ip=ip)
        return removed > 0

    async def cleanup_expired_data(self) -> int:
        """Give keys that lost their TTL a 24h expiry; returns how many."""
        fixed = 0
        for pattern in CLEANUP_PATTERNS:
            for key in await self.redis.scan_keys(pattern):
                if await self.redis.ttl(key) == -1:
                    await self.redis.expire(key, SUSPICIOUS_TTL)
                    fixed += 1
        logger.info(f"Login security cleanup fixed {fixed} keys", extra={"cleaned_count": fixed})
        return fixed
