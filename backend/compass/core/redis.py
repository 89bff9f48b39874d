"""
Redis connection and stream names.

Celery tasks and the metrics emitter publish job events on Redis streams.
"""

from typing import Optional
from redis import Redis
from compass.core.config import settings

redis_client: Optional[Redis] = None


def get_redis() -> Redis:
    """Get the shared synchronous Redis client."""
    global redis_client
    if redis_client is None:
        redis_client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global redis_client

    if redis_client is not None:
        redis_client.close()
        redis_client = None


class StreamNames:
    """Redis Stream names for ROI job events."""

    PORTFOLIO_ROI = "portfolio-roi"
    ALERTS = "alerts"
    METRICS = "metrics"
