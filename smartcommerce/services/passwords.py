"""Password policy, strength scoring, hashing and reuse history.

Strength combines the zxcvbn score with explicit policy rules. Feedback is
returned in English and Bengali so the client can show either.
"""

import asyncio
import re
import secrets
import string
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from zxcvbn import zxcvbn

from smartcommerce.config import PasswordPolicyConfig, get_config
from smartcommerce.db.models import PasswordHistory
from smartcommerce.db.models.base import utcnow
from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)

STRENGTH_LEVELS = ["very_weak", "weak", "fair", "good", "strong"]

STRENGTH_LABELS_BN = {
    "very_weak": "অত্যন্ত দুর্বল",
    "weak": "দুর্বল",
    "fair": "মোটামুটি",
    "good": "ভালো",
    "strong": "শক্তিশালী",
}

BANNED_TERMS = ("bangladesh", "dhaka", "taka", "bdt", "bd")

_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72
# zxcvbn gets slow on long inputs and scores them strong anyway
_ZXCVBN_MAX_CHARS = 72


@dataclass
class PasswordStrength:
    """Result of ``PasswordService.validate_strength``."""

    is_valid: bool = False
    score: int = 0
    strength: str = "very_weak"
    strength_bn: str = STRENGTH_LABELS_BN["very_weak"]
    meets_requirements: bool = False
    feedback: List[str] = field(default_factory=list)
    feedback_bn: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def add(self, message: str, message_bn: str) -> None:
        self.feedback.append(message)
        self.feedback_bn.append(message_bn)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def has_sequential_chars(password: str) -> bool:
    """True for any ascending or descending run of three, e.g. ``abc``, ``321``."""
    lowered = password.lower()
    for a, b, c in zip(lowered, lowered[1:], lowered[2:]):
        step = ord(b) - ord(a)
        if step in (1, -1) and ord(c) - ord(b) == step:
            return True
    return False


def has_repeated_chars(password: str) -> bool:
    """True when one character appears three times in a row."""
    return any(a == b == c for a, b, c in zip(password, password[1:], password[2:]))


class PasswordService:
    """Password rules backed by zxcvbn and bcrypt."""

    def __init__(self, policy: Optional[PasswordPolicyConfig] = None):
        self.policy = policy or get_config().password_policy

    def validate_strength(
        self, password: str, user_info: Optional[Dict[str, Optional[str]]] = None
    ) -> PasswordStrength:
        """Score a password and check it against the policy.

        Args:
            password: Candidate password
            user_info: Optional ``first_name``, ``last_name``, ``email``,
                ``phone`` used to reject personal information

        Returns:
            PasswordStrength, valid when every rule passes and the zxcvbn
            score reaches ``min_strength_score``
        """
        user_info = user_info or {}
        policy = self.policy
        result = PasswordStrength()
        password = password or ""

        if len(password) < policy.min_length:
            result.add(
                f"Password must be at least {policy.min_length} characters long",
                f"পাসওয়ার্ড অবশ্যই কমপক্ষে {policy.min_length} অক্ষরের হতে হবে",
            )
        if len(password) > policy.max_length:
            result.add(
                f"Password must not exceed {policy.max_length} characters",
                f"পাসওয়ার্ড {policy.max_length} অক্ষরের বেশি হতে পারবে না",
            )

        personal = [v for v in user_info.values() if v]
        scored = zxcvbn(password[:_ZXCVBN_MAX_CHARS], user_inputs=personal) if password else None
        if scored is not None:
            result.score = int(scored["score"])
            warning = scored["feedback"].get("warning")
            result.warnings = [warning] if warning else []
            result.suggestions = list(scored["feedback"].get("suggestions") or [])
        result.strength = STRENGTH_LEVELS[result.score]
        result.strength_bn = STRENGTH_LABELS_BN[result.strength]

        rules_ok = self._check_rules(password, user_info, result)
        length_ok = policy.min_length <= len(password) <= policy.max_length
        result.meets_requirements = rules_ok and length_ok
        result.is_valid = result.meets_requirements and result.score >= policy.min_strength_score
        return result

    def _check_rules(self, password: str, user_info: Dict[str, Optional[str]], result: PasswordStrength) -> bool:
        policy = self.policy
        before = len(result.feedback)

        if policy.require_uppercase and not re.search(r"[A-Z]", password):
            result.add(
                "Password must contain at least one uppercase letter",
                "পাসওয়ার্ডে অবশ্যই একটি বড় হাতের অক্ষর থাকতে হবে",
            )
        if policy.require_lowercase and not re.search(r"[a-z]", password):
            result.add(
                "Password must contain at least one lowercase letter",
                "পাসওয়ার্ডে অবশ্যই একটি ছোট হাতের অক্ষর থাকতে হবে",
            )
        if policy.require_digit and not re.search(r"\d", password):
            result.add(
                "Password must contain at least one number",
                "পাসওয়ার্ডে অবশ্যই একটি সংখ্যা থাকতে হবে",
            )
        if policy.require_special and not _SPECIAL_RE.search(password):
            result.add(
                "Password must contain at least one special character",
                "পাসওয়ার্ডে অবশ্যই একটি বিশেষ অক্ষর থাকতে হবে",
            )
        if has_sequential_chars(password):
            result.add(
                'Password cannot contain sequential characters (e.g., "123", "abc")',
                "পাসওয়ার্ডে ক্রমিক অক্ষর থাকতে পারে না",
            )
        if has_repeated_chars(password):
            result.add(
                'Password cannot contain repeated characters (e.g., "aaa", "111")',
                "পাসওয়ার্ডে পুনরাবৃত্তি অক্ষর থাকতে পারে না",
            )

        lowered = password.lower()
        for term in BANNED_TERMS:
            if term in lowered:
                result.add(
                    f'Password cannot contain common Bangladeshi terms like "{term}"',
                    f'পাসওয়ার্ডে "{term}" এর মতো সাধারণ বাংলাদেশী শব্দ থাকতে পারে না',
                )
                break

        first_name = user_info.get("first_name")
        if first_name and first_name.lower() in lowered:
            result.add(
                "Password cannot contain your first name",
                "পাসওয়ার্ডে আপনার প্রথম নাম থাকতে পারে না",
            )
        last_name = user_info.get("last_name")
        if last_name and last_name.lower() in lowered:
            result.add(
                "Password cannot contain your last name",
                "পাসওয়ার্ডে আপনার শেষ নাম থাকতে পারে না",
            )
        email = user_info.get("email")
        if email:
            local_part = email.split("@")[0].lower()
            if local_part and local_part in lowered:
                result.add(
                    "Password cannot contain your email username",
                    "পাসওয়ার্ডে আপনার ইমেল ব্যবহারকারী নাম থাকতে পারে না",
                )
        phone = user_info.get("phone")
        if phone:
            tail = re.sub(r"\D", "", phone)[-4:]
            if tail and tail in password:
                result.add(
                    "Password cannot contain parts of your phone number",
                    "পাসওয়ার্ডে আপনার ফোন নম্বরের অংশ থাকতে পারে না",
                )

        return len(result.feedback) == before

    # -------------------------------------------------------------------------
    # Hashing
    # -------------------------------------------------------------------------

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    async def hash_password(self, password: str) -> str:
        """bcrypt hash, computed off the event loop."""
        salt = bcrypt.gensalt(rounds=self.policy.bcrypt_rounds)
        hashed = await asyncio.to_thread(bcrypt.hashpw, self._encode(password), salt)
        return hashed.decode("utf-8")

    async def verify_password(self, password: str, password_hash: Optional[str]) -> bool:
        if not password or not password_hash:
            return False
        try:
            return await asyncio.to_thread(
                bcrypt.checkpw, self._encode(password), password_hash.encode("utf-8")
            )
        except ValueError:
            logger.warning("Stored password hash is not a valid bcrypt hash")
            return False

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def check_password_history(self, user_id: UUID, password: str, db: AsyncSession) -> bool:
        """True when ``password`` matches one of the user's recent passwords."""
        result = await db.execute(
            select(PasswordHistory.password_hash)
            .where(PasswordHistory.user_id == user_id)
            .order_by(PasswordHistory.created_at.desc())
            .limit(self.policy.history_size)
        )
        for previous_hash in result.scalars():
            if await self.verify_password(password, previous_hash):
                return True
        return False

    async def record_password_history(self, user_id: UUID, password_hash: str, db: AsyncSession) -> None:
        """Store a hash and keep only the newest ``history_size`` entries."""
        db.add(PasswordHistory(user_id=user_id, password_hash=password_hash, created_at=utcnow()))
        await db.flush()

        result = await db.execute(
            select(PasswordHistory.id)
            .where(PasswordHistory.user_id == user_id)
            .order_by(PasswordHistory.created_at.desc(), PasswordHistory.id)
            .offset(self.policy.history_size)
        )
        stale_ids = list(result.scalars())
        if stale_ids:
            await db.execute(delete(PasswordHistory).where(PasswordHistory.id.in_(stale_ids)))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def generate_strong_password(self, length: int = 12) -> str:
        """Random password with at least one of each character class.

        Regenerated until it passes the sequential and repeated checks.
        """
        length = max(length, 4)
        pools = [string.ascii_uppercase, string.ascii_lowercase, string.digits, "!@#$%^&*()_+-=[]{}|;:,.<>?"]
        alphabet = "".join(pools)
        rng = secrets.SystemRandom()

        while True:
            chars = [secrets.choice(pool) for pool in pools]
            chars += [secrets.choice(alphabet) for _ in range(length - len(pools))]
            rng.shuffle(chars)
            candidate = "".join(chars)
            lowered = candidate.lower()
            if (
                not has_sequential_chars(candidate)
                and not has_repeated_chars(candidate)
                and not any(term in lowered for term in BANNED_TERMS)
            ):
                return candidate

    def get_policy(self) -> Dict[str, Any]:
        policy = self.policy
        return {
            "min_length": policy.min_length,
            "max_length": policy.max_length,
            "require_uppercase": policy.require_uppercase,
            "require_lowercase": policy.require_lowercase,
            "require_numbers": policy.require_digit,
            "require_special_chars": policy.require_special,
            "prevent_sequential": True,
            "prevent_repeated": True,
            "prevent_personal_info": True,
            "prevent_common_patterns": True,
            "min_strength_score": policy.min_strength_score,
            "history_limit": policy.history_size,
        }
