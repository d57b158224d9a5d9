"""Command surface shared by the Redis gateway and its fallbacks.

Services talk to Redis through this small, explicit subset of commands so
the same code runs against a real server, the in-memory store and the
fallback wrapper. Argument order follows ``redis.asyncio.Redis``.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

Number = Union[int, float, str]


class RedisCommands:
    """Dispatches every command through ``_call``."""

    async def _call(self, command: str, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError

    async def ping(self) -> bool:
        return await self._call("ping")

    async def get(self, name: str) -> Optional[str]:
        return await self._call("get", name)

    async def set(self, name: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> Any:
        return await self._call("set", name, value, ex=ex, nx=nx)

    async def setex(self, name: str, time: int, value: Any) -> Any:
        return await self._call("setex", name, time, value)

    async def delete(self, *names: str) -> int:
        return await self._call("delete", *names)

    async def exists(self, *names: str) -> int:
        return await self._call("exists", *names)

    async def expire(self, name: str, time: int) -> bool:
        return await self._call("expire", name, time)

    async def ttl(self, name: str) -> int:
        return await self._call("ttl", name)

    async def zadd(self, name: str, mapping: Mapping[str, float]) -> int:
        return await self._call("zadd", name, mapping)

    async def zrange(self, name: str, start: int, end: int, withscores: bool = False) -> List[Any]:
        return await self._call("zrange", name, start, end, withscores=withscores)

    async def zrangebyscore(
        self, name: str, min: Number, max: Number, withscores: bool = False
    ) -> List[Any]:
        return await self._call("zrangebyscore", name, min, max, withscores=withscores)

    async def zrem(self, name: str, *members: str) -> int:
        return await self._call("zrem", name, *members)

    async def zremrangebyscore(self, name: str, min: Number, max: Number) -> int:
        return await self._call("zremrangebyscore", name, min, max)

    async def zcard(self, name: str) -> int:
        return await self._call("zcard", name)

    async def hincrby(self, name: str, key: str, amount: int = 1) -> int:
        return await self._call("hincrby", name, key, amount)

    async def hset(self, name: str, mapping: Mapping[str, Any]) -> int:
        return await self._call("hset", name, mapping=mapping)

    async def hgetall(self, name: str) -> Dict[str, str]:
        return await self._call("hgetall", name)

    async def scan_keys(self, match: str) -> List[str]:
        """All keys matching a glob pattern."""
        return await self._call("scan_keys", match)
