"""
Dependency injection for FastAPI.

Long-lived clients are created in the application lifespan (see main.py)
and stored on app.state; these helpers hand them to route handlers.
"""

import redis.asyncio as aioredis
from fastapi import Request

from app.config import Settings, get_settings
from app.core.cosmos_client import CosmosClient
from app.core.feed.cache import FeedCache


def create_redis(settings: Settings) -> aioredis.Redis:
    """Create Redis client with lazy connection."""
    return aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=1.0,
        socket_timeout=3.0,
        retry_on_timeout=True,
        health_check_interval=30,
        socket_keepalive=True,
    )


def create_cosmos_client(settings: Settings) -> CosmosClient:
    return CosmosClient(
        base_url=settings.cosmos_api_base_url,
        api_key=settings.cosmos_api_key,
        timeout=settings.cosmos_timeout,
    )


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_cosmos_client(request: Request) -> CosmosClient:
    return request.app.state.cosmos_client


def get_redis(request: Request) -> aioredis.Redis:
    return request.app.state.redis


def get_feed_cache(request: Request) -> FeedCache:
    settings = get_app_settings(request)
    return FeedCache(request.app.state.redis, ttl=settings.feed_cache_ttl)
