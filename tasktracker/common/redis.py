from fastapi import Request
from redis import Redis
from typing import TYPE_CHECKING


RedisClient = Redis
if TYPE_CHECKING:
    RedisClient = Redis[str]  # type: ignore


def create_redis_client(
    redis_url: str, *, socket_timeout: float | None = None
) -> RedisClient:
    """Client used by the cache, the worker rate limiter and the healthcheck.

    Every value stored is JSON or a sorted-set member, so responses are
    decoded to ``str``. A short ``socket_timeout`` keeps an unreachable Redis
    from stalling requests that would otherwise fall back to the database.
    """
    try:
        return Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
    except Exception as e:
        raise RuntimeError("Failed to create Redis client") from e


def get_redis_client(request: Request) -> RedisClient:
    return request.app.state.redis_client
