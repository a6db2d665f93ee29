import json
import logging
from typing import Any

from tasktracker.common.redis import RedisClient

logger = logging.getLogger(__name__)


class CacheService:
    """JSON cache on top of Redis.

    Cache failures never reach the caller: reads degrade to a miss and writes
    or deletes become no-ops, with a warning logged.
    """

    def __init__(self, *, redis_client: RedisClient, default_ttl: int = 300) -> None:
        self.redis_client = redis_client
        self.default_ttl = default_ttl

    def get(self, key: str) -> Any | None:
        try:
            cached = self.redis_client.get(key)
        except Exception as e:
            logger.warning(f"Error getting cache key '{key}': {e}")
            return None

        if cached is None:
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            value = json.loads(cached)
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache key '{key}': {e}")
            return None

        logger.debug(f"Cache hit: {key}")
        return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            serialized = json.dumps(value)
            self.redis_client.set(key, serialized, ex=ttl or self.default_ttl)
            logger.debug(f"Set cache key: {key}")
        except Exception as e:
            logger.warning(f"Error setting cache key '{key}': {e}")

    def delete(self, key: str) -> bool:
        try:
            return self.redis_client.delete(key) > 0
        except Exception as e:
            logger.warning(f"Error deleting cache key '{key}': {e}")
            return False

    def delete_by_prefix(self, prefix: str) -> int:
        try:
            keys = [key for key in self.redis_client.scan_iter(match=f"{prefix}*")]
            if not keys:
                return 0
            deleted = self.redis_client.delete(*keys)
            logger.debug(f"Deleted {deleted} cache keys with prefix: {prefix}")
            return deleted
        except Exception as e:
            logger.warning(f"Error deleting cache keys with prefix '{prefix}': {e}")
            return 0
