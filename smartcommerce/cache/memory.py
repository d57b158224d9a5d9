"""In-process stand-in for Redis used while the server is unreachable.

Only the commands in ``RedisCommands`` are supported. Expiry is lazy: a
key is dropped the next time it is touched after its deadline. Data lives
in one process, so counters kept here are per-worker until Redis returns.
"""

import fnmatch
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from smartcommerce.cache.commands import Number, RedisCommands


def _score_bound(value: Number) -> Tuple[float, bool]:
    """Parse a Redis score bound into ``(score, exclusive)``.

    Accepts numbers, ``-inf`` and ``+inf``, and the ``(`` prefix that
    makes a bound exclusive.
    """
    if isinstance(value, str) and value.startswith("("):
        return float(value[1:]), True
    return float(value), False


class MemoryStore(RedisCommands):
    """Dictionary-backed subset of Redis with TTL support."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self._expires: Dict[str, float] = {}

    def _alive(self, name: str) -> bool:
        deadline = self._expires.get(name)
        if deadline is not None and deadline <= time.time():
            self._data.pop(name, None)
            self._expires.pop(name, None)
        return name in self._data

    def _zset(self, name: str, create: bool = False) -> Optional[Dict[str, float]]:
        if not self._alive(name):
            if not create:
                return None
            self._data[name] = {}
        return self._data[name]

    def clear(self) -> None:
        self._data.clear()
        self._expires.clear()

    async def _call(self, command: str, *args: Any, **kwargs: Any) -> Any:
        return getattr(self, f"_cmd_{command}")(*args, **kwargs)

    def _cmd_ping(self) -> bool:
        return True

    def _cmd_get(self, name: str) -> Optional[str]:
        if not self._alive(name):
            return None
        value = self._data[name]
        return value if isinstance(value, str) else None

    def _cmd_set(self, name: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> Optional[bool]:
        if nx and self._alive(name):
            return None
        self._data[name] = str(value)
        self._expires.pop(name, None)
        if ex:
            self._expires[name] = time.time() + ex
        return True

    def _cmd_setex(self, name: str, seconds: int, value: Any) -> bool:
        return bool(self._cmd_set(name, value, ex=int(seconds)))

    def _cmd_delete(self, *names: str) -> int:
        removed = 0
        for name in names:
            if self._alive(name):
                removed += 1
            self._data.pop(name, None)
            self._expires.pop(name, None)
        return removed

    def _cmd_exists(self, *names: str) -> int:
        return sum(1 for name in names if self._alive(name))

    def _cmd_expire(self, name: str, seconds: int) -> bool:
        if not self._alive(name):
            return False
        self._expires[name] = time.time() + int(seconds)
        return True

    def _cmd_ttl(self, name: str) -> int:
        if not self._alive(name):
            return -2
        deadline = self._expires.get(name)
        if deadline is None:
            return -1
        return max(0, int(round(deadline - time.time())))

    def _cmd_zadd(self, name: str, mapping: Mapping[str, float]) -> int:
        zset = self._zset(name, create=True)
        added = sum(1 for member in mapping if member not in zset)
        for member, score in mapping.items():
            zset[str(member)] = float(score)
        return added

    def _sorted(self, name: str) -> List[Tuple[str, float]]:
        zset = self._zset(name) or {}
        return sorted(zset.items(), key=lambda item: (item[1], item[0]))

    def _cmd_zrange(self, name: str, start: int, end: int, withscores: bool = False) -> List[Any]:
        items = self._sorted(name)
        stop = None if end == -1 else end + 1
        selected = items[start:stop]
        return selected if withscores else [member for member, _ in selected]

    def _cmd_zrangebyscore(self, name: str, min: Number, max: Number, withscores: bool = False) -> List[Any]:
        (low, low_open), (high, high_open) = _score_bound(min), _score_bound(max)
        selected = [
            (m, s)
            for m, s in self._sorted(name)
            if (low < s if low_open else low <= s) and (s < high if high_open else s <= high)
        ]
        return selected if withscores else [member for member, _ in selected]

    def _cmd_zrem(self, name: str, *members: str) -> int:
        zset = self._zset(name)
        if not zset:
            return 0
        removed = sum(1 for member in members if zset.pop(member, None) is not None)
        if not zset:
            self._cmd_delete(name)
        return removed

    def _cmd_zremrangebyscore(self, name: str, min: Number, max: Number) -> int:
        members = self._cmd_zrangebyscore(name, min, max)
        return self._cmd_zrem(name, *members) if members else 0

    def _cmd_zcard(self, name: str) -> int:
        zset = self._zset(name)
        return len(zset) if zset else 0

    def _cmd_hincrby(self, name: str, key: str, amount: int = 1) -> int:
        if not self._alive(name):
            self._data[name] = {}
        bucket = self._data[name]
        bucket[key] = str(int(bucket.get(key, 0)) + int(amount))
        return int(bucket[key])

    def _cmd_hset(self, name: str, mapping: Mapping[str, Any]) -> int:
        if not self._alive(name):
            self._data[name] = {}
        bucket = self._data[name]
        added = sum(1 for key in mapping if key not in bucket)
        bucket.update({k: str(v) for k, v in mapping.items()})
        return added

    def _cmd_hgetall(self, name: str) -> Dict[str, str]:
        if not self._alive(name):
            return {}
        return dict(self._data[name])

    def _cmd_scan_keys(self, match: str) -> List[str]:
        return [name for name in list(self._data) if self._alive(name) and fnmatch.fnmatchcase(name, match)]
