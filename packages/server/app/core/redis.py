"""Redis client for activity fan-out.

Only created when ``TW_ACTIVITY_PUBSUB_ENABLED`` is set; the rest of the
server never touches Redis.
"""

from __future__ import annotations

import redis.asyncio as redis
import structlog

from app.core.config import get_settings

log = structlog.get_logger()

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get or lazily create the shared client."""
    global _client
    if _client is None:
        _client = redis.from_url(get_settings().redis_url, decode_responses=True)
        log.info("redis.client_created")
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
