"""
Cache layer — async Redis with an in-process fallback.

Used by the weather ingestion job (per grid cell, 10-minute TTL) and the
aggregator (last aggregate rainfall).  When Redis is unreachable every
helper degrades silently to a small in-process TTL dict, so a laptop
demo behaves the same as production minus cross-process sharing.

Usage:
    from monsoon.app.core.cache import cache_get, cache_set

    await cache_set("weather:28.6:77.2", data, ttl=600)
    cached = await cache_get("weather:28.6:77.2")
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as aioredis

from monsoon.app.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[aioredis.Redis] = None
_redis_disabled = False

# key → (expires_at, json)
_local: Dict[str, Tuple[float, str]] = {}


async def _get_redis() -> Optional[aioredis.Redis]:
    """Get or create the Redis client; None once it has proven unreachable."""
    global _redis_client, _redis_disabled
    if _redis_disabled:
        return None
    if _redis_client is None:
        try:
            client = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=1,
            )
            await client.ping()
            _redis_client = client
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as e:
            logger.warning("Redis unavailable: %s — using in-process cache", e)
            _redis_disabled = True
            return None
    return _redis_client


def _local_get(key: str) -> Optional[Any]:
    entry = _local.get(key)
    if entry is None:
        return None
    expires_at, raw = entry
    if expires_at < time.monotonic():
        _local.pop(key, None)
        return None
    return json.loads(raw)


async def cache_get(key: str) -> Optional[Any]:
    """Return the cached value or None on miss/error."""
    client = await _get_redis()
    if client is None:
        return _local_get(key)
    try:
        raw = await client.get(key)
        if raw is not None:
            return json.loads(raw)
    except Exception as e:
        logger.warning("Cache GET error for %s: %s", key, e)
        return _local_get(key)
    return None


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    ttl = ttl or settings.REDIS_CACHE_TTL
    serialised = json.dumps(value, default=str)
    client = await _get_redis()
    if client is not None:
        try:
            await client.set(key, serialised, ex=ttl)
            return True
        except Exception as e:
            logger.warning("Cache SET error for %s: %s", key, e)
    _local[key] = (time.monotonic() + ttl, serialised)
    return True


async def redis_available() -> bool:
    return await _get_redis() is not None


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
