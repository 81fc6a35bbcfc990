"""
Distributed fixed-window rate limit backend using Redis.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from afkmate_shared.errors import BackendUnavailableError
from afkmate_shared.logging import get_logger
from .policies import AdmissionResult, RateLimitBackend, RateLimitPolicy, make_key

# Increment and expiry run as one script so concurrent instances never lose
# an update or leave a counter without a TTL.
_ADMIT_LUA = """
local count = redis.call("INCR", KEYS[1])
local ttl = redis.call("TTL", KEYS[1])
if count == 1 or ttl < 0 then
  redis.call("EXPIRE", KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


class RedisRateLimitBackend(RateLimitBackend):
    """Counters shared by every instance through Redis. Keys expire natively."""

    name = "redis"

    def __init__(self, redis_url: Optional[str] = None, *, client: Optional[redis.Redis] = None,
                 socket_timeout: float = 0.5):
        if redis_url is None and client is None:
            raise ValueError("redis_url or client is required")
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self._redis: Optional[redis.Redis] = client
        self.logger = get_logger("api.rate_limiter.redis")

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout,
            )
        return self._redis

    async def admit(self, client_id: str, policy: RateLimitPolicy) -> AdmissionResult:
        key = make_key(client_id, policy)
        redis_client = await self._get_redis()

        try:
            count, ttl = await redis_client.eval(_ADMIT_LUA, 1, key, policy.window_seconds)
        except RedisError as e:
            raise BackendUnavailableError(self.name, str(e)) from e

        count = int(count)
        ttl = int(ttl)
        if ttl < 0:
            ttl = policy.window_seconds

        allowed = count <= policy.limit
        if not allowed:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                policy=policy.name,
                current_count=count,
                limit=policy.limit
            )

        return AdmissionResult(
            allowed=allowed,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_in_seconds=ttl,
            backend=self.name,
        )

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
