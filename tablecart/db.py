"""
Redis client for the realtime cart channel.

One asyncio client per process, created on first use from ``REDIS_URL``.
"""

import os
from typing import Optional

from redis.asyncio import Redis, from_url

from tablecart.errors import ERROR_REDIS_MISSING

_redis_client: Optional[Redis] = None


def get_redis() -> Redis:
    """
    Get async Redis client (singleton).

    Responses are decoded to str so stream fields can go straight to json.
    """
    global _redis_client

    if _redis_client is None:
        url = os.environ.get("REDIS_URL", "")
        if not url:
            raise ValueError(ERROR_REDIS_MISSING)
        _redis_client = from_url(url, decode_responses=True)

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class RedisKeys:
    """Redis key prefixes for the cart channel."""

    CART_STREAM = "stream:realtime:cart:"  # stream:realtime:cart:{session_id}

    @staticmethod
    def cart_stream(session_id: str) -> str:
        return f"{RedisKeys.CART_STREAM}{session_id}"


class TTL:
    """Stream retention in seconds."""

    # Idle session streams are dropped after a day
    CART_STREAM = 24 * 60 * 60
