"""
Redis client utilities for stayline_core.

Provides lazy-initialized Redis client to avoid import-time connections.
"""

import functools
from typing import Any

import redis

from stayline_core.settings import get_settings


@functools.lru_cache()
def get_redis_client() -> redis.Redis:
    """
    Get Redis client (cached).

    This function lazily initializes the Redis client to avoid import-time connections.
    """
    return redis.from_url(get_settings().REDIS_URL, decode_responses=True)


def read_stream_tail(
    client: redis.Redis,
    stream_name: str,
    count: int = 20,
) -> list[tuple[str, dict[str, Any]]]:
    """
    Read the newest entries of a stream, newest first.

    Args:
        client: Redis client
        stream_name: Name of the Redis stream
        count: Maximum entries to return

    Returns:
        List of (entry_id, data) tuples
    """
    return [(entry_id, data) for entry_id, data in client.xrevrange(stream_name, count=count)]
