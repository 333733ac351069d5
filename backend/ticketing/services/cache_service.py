"""
Redis caching service for resource search listings.

CACHING STRATEGY
================

What we cache:
  - Resource search responses (paginated, JSON-serialized)
  - Cache key pattern:
    "resources:list:kind={kind}&from={origin}&to={destination}&page={page}&size={size}"

Invalidation strategy:
  - On reservation or cancellation: available_count changed, drop all listings
  - On resource creation: drop all listings
  - TTL-based expiry as safety net

  All listing keys share the "resources:list:" prefix, so invalidation is
  a SCAN + DELETE over a small keyspace.

Why NOT cache seat maps or single resources:
  - Seat selection needs live unit status; a stale "available" seat only
    leads to a SeatUnavailable rejection on submit
"""

import json
from typing import Optional

from ticketing.core.config import get_settings
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_cache_operation
from ticketing.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

LIST_PREFIX = "resources:list:"


def _make_resource_list_key(
    kind: Optional[str],
    origin: Optional[str],
    destination: Optional[str],
    page: int,
    page_size: int,
) -> str:
    origin = (origin or "").strip().lower()
    destination = (destination or "").strip().lower()
    return f"{LIST_PREFIX}kind={kind or ''}&from={origin}&to={destination}&page={page}&size={page_size}"


async def get_cached_resources(
    kind: Optional[str],
    origin: Optional[str],
    destination: Optional[str],
    page: int,
    page_size: int,
) -> Optional[dict]:
    """Retrieve cached resource list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_resource_list_key(kind, origin, destination, page, page_size)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_resources(
    kind: Optional[str],
    origin: Optional[str],
    destination: Optional[str],
    page: int,
    page_size: int,
    data: dict,
) -> None:
    """Cache resource list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_resource_list_key(kind, origin, destination, page, page_size)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_resource_cache() -> None:
    """Invalidate all cached resource listings."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
