"""Redis lease so only one process runs the abandoned-order sweep at a time.

SET key token NX EX ttl acquires; release deletes only our own token so a
lease that expired and was taken by another process is left alone. The sweep
is safe to run concurrently anyway (optimistic order updates, idempotent
release); the lease just avoids duplicate work.
"""

import uuid
from typing import Protocol

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class SweepLockProtocol(Protocol):
    async def acquire(self) -> bool: ...

    async def release(self) -> None: ...


class RedisSweepLock:
    def __init__(self, redis: aioredis.Redis, ttl_seconds: int, key: str = "lock:order-sweep") -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._key = key
        self._token = uuid.uuid4().hex

    async def acquire(self) -> bool:
        return bool(await self._redis.set(self._key, self._token, nx=True, ex=self._ttl))

    async def release(self) -> None:
        await self._redis.eval(_RELEASE_SCRIPT, 1, self._key, self._token)
