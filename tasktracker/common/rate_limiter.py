import logging
import time
from uuid import uuid4
from slowapi import Limiter
from slowapi.util import get_remote_address

from tasktracker.common.redis import RedisClient

logger = logging.getLogger(__name__)


def create_rate_limiter(rate_limit: str, storage_uri: str) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        application_limits=[rate_limit],
        storage_uri=storage_uri,
    )


# Returns 0 when the hit was admitted, otherwise the milliseconds until the
# oldest hit in the window expires.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local now_ms = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)

local current = redis.call('ZCARD', key)
if current < limit then
    redis.call('ZADD', key, now_ms, member)
    redis.call('PEXPIRE', key, window_ms)
    return 0
end

local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local retry_after = tonumber(oldest[2]) + window_ms - now_ms
if retry_after < 1 then
    retry_after = 1
end
return retry_after
"""


class SlidingWindowRateLimiter:
    """Redis-backed sliding window shared by every process using the same key.

    Expired hits are trimmed from the window on each check, so the sorted set
    never holds more than ``limit`` entries.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        *,
        key: str,
        limit: int,
        window_seconds: float,
    ) -> None:
        self.redis_client = redis_client
        self.key = f"ratelimit:{key}"
        self.limit = limit
        self.window_ms = int(window_seconds * 1000)
        self._script = redis_client.register_script(SLIDING_WINDOW_SCRIPT)

    def hit(self) -> float:
        """Record a hit if the window has room.

        Returns 0.0 if admitted, otherwise the seconds to wait before retrying.
        """
        now_ms = int(time.time() * 1000)
        retry_after_ms = self._script(
            keys=[self.key],
            args=[self.limit, self.window_ms, now_ms, f"{now_ms}:{uuid4().hex}"],
        )
        return int(retry_after_ms) / 1000

    def acquire(self, max_wait_seconds: float | None = None) -> None:
        """Block until a hit is admitted."""
        waited = 0.0
        while True:
            retry_after = self.hit()
            if retry_after == 0:
                return
            if max_wait_seconds is not None and waited + retry_after > max_wait_seconds:
                raise TimeoutError(
                    f"Rate limit '{self.key}' still saturated after {waited:.2f}s"
                )
            logger.debug(f"Rate limit '{self.key}' reached, waiting {retry_after:.3f}s")
            time.sleep(retry_after)
            waited += retry_after
