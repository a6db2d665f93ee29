from fastapi import Depends

from tasktracker.cache.service import CacheService
from tasktracker.common.redis import RedisClient, get_redis_client
from tasktracker.config import Settings, get_settings


def get_cache_service(
    redis_client: RedisClient = Depends(get_redis_client),
    settings: Settings = Depends(get_settings),
) -> CacheService:
    return CacheService(
        redis_client=redis_client, default_ttl=settings.CACHE_TTL_SECONDS
    )
