"""
Redis pub/sub fan-out for stylist sessions, OR silent no-op.
Controlled by FF_USE_REDIS flag.

Each session publishes on its own channel, ``{prefix}:{session_id}``, so a
frontend that lost its SSE connection can follow the workflow from Redis.
"""

import json
import logging
from typing import Optional

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

_redis_client = None


async def _get_redis():
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        settings = get_settings()
        if not settings.redis_url:
            raise ValueError("REDIS_URL not configured")
        _redis_client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _redis_client


def session_channel(session_id: str) -> str:
    return f"{get_settings().redis_channel_prefix}:{session_id}"


async def publish_session_event(
    session_id: str,
    event_type: str,
    data: Optional[dict] = None,
    run_id: Optional[int] = None,
) -> None:
    """
    Publish one session event as JSON:
      {"type": ..., "session_id": ..., "run_id": ..., "data": {...}}
    No-op when Redis is disabled. Publish errors are logged, never raised.
    """
    if not get_flags().use_redis:
        return

    channel = session_channel(session_id)
    try:
        client = await _get_redis()
        payload = json.dumps({
            "type": event_type,
            "session_id": session_id,
            "run_id": run_id,
            "data": data or {},
        })
        await client.publish(channel, payload)
    except Exception as e:
        # Never crash the workflow on notification failure
        logger.warning("Redis publish failed (channel=%s, event=%s): %s", channel, event_type, e)


async def ping() -> Optional[bool]:
    """Redis reachability for /health. None when Redis is disabled."""
    if not get_flags().use_redis:
        return None
    try:
        client = await _get_redis()
        return bool(await client.ping())
    except Exception as e:
        logger.warning("Redis ping failed: %s", e)
        return False


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
