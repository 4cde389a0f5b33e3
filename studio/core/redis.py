"""
Redis Connection
Shared connection pool for RQ queues, workers and health checks.
"""

import logging
from typing import Optional
from redis import Redis, ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError

from studio.core.config import settings

logger = logging.getLogger(__name__)

_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None


class Queues:
    """RQ queue names."""
    DEFAULT = "default"
    JOBS = "jobs"                # Delayed resume of compute jobs
    MAINTENANCE = "maintenance"  # Periodic sweep of stale jobs

    ALL = (JOBS, MAINTENANCE, DEFAULT)


def masked_url(url: str) -> str:
    """Redis URL with any credentials hidden, for logs and health output."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[-1]}"


def get_redis() -> Redis:
    """Process-wide Redis client. RQ needs raw bytes, so responses are not decoded."""
    global _pool, _client
    if _client is None:
        _pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=10,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            decode_responses=False,
        )
        _client = Redis(connection_pool=_pool)
        logger.info(f"Connected Redis pool to {masked_url(settings.REDIS_URL)}")
    return _client


def close_redis():
    global _pool, _client
    if _pool is not None:
        _pool.disconnect()
        logger.info("Redis connection pool closed")
    _pool = None
    _client = None


def redis_health_check() -> dict:
    """Ping Redis and report its version, or the connection error."""
    url = masked_url(settings.REDIS_URL)
    try:
        client = get_redis()
        client.ping()
        version = client.info("server").get("redis_version", "unknown")
    except (ConnectionError, TimeoutError) as e:
        logger.error(f"Redis health check failed: {e}")
        return {"connected": False, "error": str(e), "url": url}

    return {"connected": True, "redis_version": version, "url": url}
