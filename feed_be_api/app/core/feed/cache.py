"""
Redis cache for generated feeds.

The cache is best effort: Redis failures are logged and behave like a miss,
so feed requests keep working without Redis.
"""

import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import redis.asyncio as aioredis
from pydantic import BaseModel, ValidationError


logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600  # 1 hour
KEY_PREFIX = "merchant-feed"


class CachedFeedMetadata(BaseModel):
    generated_at: int  # epoch ms
    product_count: int
    variant_count: int = 0
    item_count: int = 0
    error_count: int = 0
    generation_time_ms: int = 0


class CachedFeed(BaseModel):
    xml: str
    metadata: CachedFeedMetadata


def cache_key(
    feed_type: str,
    filtered: bool = False,
    prioritized: bool = False,
    page: Optional[int] = None,
    catalog_size: Optional[int] = None
) -> str:
    """
    Build a cache key, e.g. "merchant-feed:google:filtered" or
    "merchant-feed:google:page:2:n:12000".
    """
    parts = [KEY_PREFIX, feed_type]
    if filtered:
        parts.append("filtered")
    if prioritized:
        parts.append("prioritized")
    if page is not None:
        parts.extend(["page", str(page)])
        if catalog_size is not None:
            parts.extend(["n", str(catalog_size)])
    return ":".join(parts)


def _now_ms() -> int:
    return int(time.time() * 1000)


class FeedCache:
    """Feed storage in Redis."""

    def __init__(self, redis_client: aioredis.Redis, ttl: int = DEFAULT_TTL):
        """
        Initialize feed cache.

        Args:
            redis_client: Redis async client (decode_responses=True)
            ttl: Default time to live in seconds
        """
        self.redis = redis_client
        self.ttl = ttl

    async def get(self, key: str) -> Optional[CachedFeed]:
        """Return cached feed, or None on miss, bad payload or Redis error."""
        try:
            raw = await self.redis.get(key)
        except aioredis.RedisError as e:
            logger.error(f"Error retrieving cached feed {key}: {e}")
            return None

        if not raw:
            logger.debug(f"Feed cache miss: {key}")
            return None

        try:
            cached = CachedFeed.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding malformed cached feed {key}: {e}")
            return None

        logger.info(
            f"Feed cache hit: {key}, age_ms={_now_ms() - cached.metadata.generated_at}, "
            f"product_count={cached.metadata.product_count}"
        )
        return cached

    async def set(self, key: str, feed: CachedFeed, ttl: Optional[int] = None) -> None:
        ttl = ttl or self.ttl
        try:
            await self.redis.set(key, feed.model_dump_json(), ex=ttl)
        except aioredis.RedisError as e:
            logger.error(f"Error storing feed in cache {key}: {e}")
            return

        logger.info(
            f"Feed stored in cache: {key}, ttl={ttl}, size_kb={round(len(feed.xml) / 1024)}, "
            f"product_count={feed.metadata.product_count}"
        )

    async def invalidate(self, feed_type: str) -> List[str]:
        """
        Delete every cached variant of a publisher's feed, including pages.

        Returns:
            Keys that were targeted
        """
        keys = [
            cache_key(feed_type),
            cache_key(feed_type, filtered=True),
            cache_key(feed_type, prioritized=True),
            cache_key(feed_type, filtered=True, prioritized=True),
        ]
        try:
            async for key in self.redis.scan_iter(match=f"{KEY_PREFIX}:{feed_type}:page:*"):
                keys.append(key)
            await self.redis.delete(*keys)
        except aioredis.RedisError as e:
            logger.error(f"Error invalidating feed cache for {feed_type}: {e}")
            return keys

        logger.info(f"Feed cache invalidated: feed_type={feed_type}, keys={len(keys)}")
        return keys

    async def should_regenerate(self, key: str, current_product_count: int) -> bool:
        """
        True when nothing is cached, the product count drifted by more than
        1%, or the cached feed is older than the TTL.
        """
        cached = await self.get(key)
        if not cached:
            return True

        count_diff = abs(current_product_count - cached.metadata.product_count)
        if count_diff > cached.metadata.product_count * 0.01:
            logger.info(
                f"Significant product count change: cached={cached.metadata.product_count}, "
                f"current={current_product_count}"
            )
            return True

        age_ms = _now_ms() - cached.metadata.generated_at
        if age_ms > self.ttl * 1000:
            logger.info(f"Cached feed expired: age_ms={age_ms}")
            return True

        return False

    async def get_or_generate(
        self,
        key: str,
        generate_fn: Callable[[], Awaitable[CachedFeed]]
    ) -> CachedFeed:
        """Serve from cache, otherwise generate and store."""
        cached = await self.get(key)
        if cached:
            return cached

        logger.info(f"Generating new feed for cache key {key}")
        feed = await generate_fn()
        await self.set(key, feed)
        return feed

    async def warm(
        self,
        feed_types: Iterable[str],
        generate_fn: Callable[[str], Awaitable[Optional[CachedFeed]]],
        filtered: bool = True,
        prioritized: bool = False
    ) -> Dict[str, Dict[str, object]]:
        """
        Pre-generate feeds, e.g. from a scheduled job. Feeds are stored under
        the key of the given filter/prioritize variant.

        generate_fn returns None when the cached feed is still current; nothing
        is stored then. A failing feed type is logged and reported; the others
        still run.
        """
        results: Dict[str, Dict[str, object]] = {}
        start = time.monotonic()

        for feed_type in feed_types:
            type_start = time.monotonic()
            try:
                feed = await generate_fn(feed_type)
                if feed is not None:
                    await self.set(cache_key(feed_type, filtered, prioritized), feed)
                results[feed_type] = {"success": True, "regenerated": feed is not None}
            except Exception as e:
                logger.exception(f"Error warming cache for {feed_type}: {e}")
                results[feed_type] = {"success": False, "error": str(e)}
            results[feed_type]["time_ms"] = round((time.monotonic() - type_start) * 1000)

        logger.info(f"Feed cache warming complete in {round((time.monotonic() - start) * 1000)}ms: {results}")
        return results
