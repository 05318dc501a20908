import logging
import uuid
from typing import Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from medlink.core.config import settings
from medlink.utils.redis_pool import get_redis

log = logging.getLogger(__name__)


class GuardUnavailable(RuntimeError):
    """The lock backend could not be reached."""


_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class SingleFlightGuard(Protocol):
    """Per-key guard that rejects a second holder instead of queueing it."""

    async def acquire(self, key: str) -> bool:
        ...

    async def release(self, key: str) -> None:
        ...

    async def is_held(self, key: str) -> bool:
        ...


class SingleFlight:
    """In-process guard; enough when a single worker serves all writes."""

    def __init__(self):
        self._held: set[str] = set()

    async def acquire(self, key: str) -> bool:
        if key in self._held:
            return False
        self._held.add(key)
        return True

    async def release(self, key: str) -> None:
        self._held.discard(key)

    async def is_held(self, key: str) -> bool:
        return key in self._held


class RedisSingleFlight:
    """
    Advisory lock in Redis shared by every worker.

    One SET NX attempt per acquire, no retries. The TTL only frees keys whose
    holder crashed; release checks the token so an expired holder never
    deletes a newer lock.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        *,
        ttl: int = 30,
        prefix: str = "lock:relationship",
    ):
        self._client = client
        self.ttl = ttl
        self.prefix = prefix
        self._tokens: dict[str, str] = {}

    def _name(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def acquire(self, key: str) -> bool:
        name = self._name(key)
        token = str(uuid.uuid4())
        try:
            client = await self._redis()
            acquired = await client.set(name, token, nx=True, ex=self.ttl)
        except RedisError as e:
            log.error("Failed to acquire lock %s: %s", name, e)
            raise GuardUnavailable(str(e)) from e

        if not acquired:
            log.debug("Lock busy: %s", name)
            return False
        self._tokens[key] = token
        log.debug("Lock acquired: %s", name)
        return True

    async def release(self, key: str) -> None:
        token = self._tokens.pop(key, None)
        if token is None:
            return
        name = self._name(key)
        try:
            client = await self._redis()
            await client.eval(_RELEASE_SCRIPT, 1, name, token)
            log.debug("Lock released: %s", name)
        except RedisError as e:
            # the TTL frees the key eventually
            log.error("Failed to release lock %s: %s", name, e)

    async def is_held(self, key: str) -> bool:
        try:
            client = await self._redis()
            return bool(await client.exists(self._name(key)))
        except RedisError as e:
            raise GuardUnavailable(str(e)) from e


def build_guard() -> SingleFlightGuard:
    if settings.REDIS_URL:
        return RedisSingleFlight(ttl=settings.SINGLE_FLIGHT_TTL, prefix=settings.SINGLE_FLIGHT_PREFIX)
    return SingleFlight()
