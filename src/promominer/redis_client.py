"""Shared redis.asyncio client for pub/sub events and rate-limit counters."""

import json
from typing import Any

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> redis.Redis:
    """Create the process-wide client. The API and the worker each call this once."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Return the client; RuntimeError until init_redis() has run."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


async def publish_json(client: Any, channel: str, payload: dict[str, Any]) -> int:  # noqa: ANN401
    """Publish ``payload`` as JSON; returns the number of subscribers reached."""
    return await client.publish(channel, json.dumps(payload, default=str))
