"""Redis connection pool and pub/sub helpers."""

import json
import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Create the shared Redis client."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Return the shared Redis client (FastAPI dependency)."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def user_channel(user_id: int) -> str:
    return f"ws:user:{user_id}"


async def publish_json(client: object, channel: str, payload: dict) -> bool:
    """Publish a JSON payload, swallowing transport errors.

    Pub/sub delivery is best effort: subscribers that miss a message read the
    same data back through the REST API.
    """
    if client is None:
        return False
    try:
        await client.publish(channel, json.dumps(payload, default=str))  # type: ignore[union-attr]
    except Exception:
        logger.warning("Failed to publish to %s", channel, exc_info=True)
        return False
    return True
