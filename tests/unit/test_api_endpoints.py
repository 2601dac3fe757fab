"""
Unit tests for the feed API endpoints.
"""
import time
import xml.etree.ElementTree as ET
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient, ASGITransport

from app.config import Settings
from app.core.cosmos_client import CosmosError
from app.core.feed.cache import CachedFeed, CachedFeedMetadata
from app.main import app


@pytest.fixture
def cosmos_client(sample_catalog):
    client = MagicMock()
    client.fetch_all_products = AsyncMock(return_value=sample_catalog)
    return client


@pytest.fixture
def redis_client():
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock()
    redis.ping = AsyncMock(return_value=True)

    async def scan_iter(match=None):
        for key in ():
            yield key

    redis.scan_iter = MagicMock(side_effect=scan_iter)
    return redis


@pytest.fixture
async def http_client(cosmos_client, redis_client):
    """App client with mocked COSMOS and Redis on app.state."""
    app.state.settings = Settings(
        site_name="Test Store",
        site_url="https://shop.example.com",
        feed_products_per_page=2,
        feed_batch_size=2,
    )
    app.state.cosmos_client = cosmos_client
    app.state.redis = redis_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestStreamingFeed:
    """Tests for GET /api/feed."""

    @pytest.mark.asyncio
    async def test_streams_filtered_feed(self, http_client):
        response = await http_client.get("/api/feed")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert response.headers["X-Publisher"] == "google"
        assert response.headers["X-Total-Products"] == "5"
        assert response.headers["X-Product-Count"] == "3"
        assert response.headers["X-Batch-Size"] == "2"
        assert response.headers["X-Cache"] == "MISS"
        assert response.headers["Cache-Control"] == "public, max-age=3600, s-maxage=7200"

        root = ET.fromstring(response.content)
        assert len(root.find("channel").findall("item")) == 4

    @pytest.mark.asyncio
    async def test_unfiltered_feed_includes_drafts(self, http_client):
        response = await http_client.get("/api/feed", params={"filter": "false", "publisher": "bing"})

        assert response.status_code == 200
        assert response.headers["X-Product-Count"] == "5"
        assert response.headers["X-Publisher"] == "bing"

    @pytest.mark.asyncio
    async def test_unsupported_publisher(self, http_client, cosmos_client):
        response = await http_client.get("/api/feed", params={"publisher": "yahoo"})

        assert response.status_code == 400
        assert "Unsupported publisher" in response.text
        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
        cosmos_client.fetch_all_products.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_catalog(self, http_client, cosmos_client):
        cosmos_client.fetch_all_products.return_value = []

        response = await http_client.get("/api/feed")

        assert response.status_code == 404
        assert response.text == "No products found"

    @pytest.mark.asyncio
    async def test_upstream_failure(self, http_client, cosmos_client):
        cosmos_client.fetch_all_products.side_effect = CosmosError("COSMOS API error: 502", status_code=502)

        response = await http_client.get("/api/feed")

        assert response.status_code == 500
        assert response.text == "Error generating feed"
        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    @pytest.mark.asyncio
    async def test_served_from_cache(self, http_client, cosmos_client, redis_client):
        cached = CachedFeed(
            xml="<rss><channel/></rss>",
            metadata=CachedFeedMetadata(generated_at=int(time.time() * 1000), product_count=3),
        )
        redis_client.get.return_value = cached.model_dump_json()

        response = await http_client.get("/api/feed")

        assert response.status_code == 200
        assert response.headers["X-Cache"] == "HIT"
        assert response.text == "<rss><channel/></rss>"
        redis_client.get.assert_awaited_once_with("merchant-feed:google:filtered")
        cosmos_client.fetch_all_products.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publisher_alias(self, http_client):
        response = await http_client.get("/api/feed/bing-merchant")

        assert response.status_code == 200
        assert response.headers["X-Publisher"] == "bing"


class TestPaginatedFeed:
    """Tests for the feed index and pages."""

    @pytest.mark.asyncio
    async def test_index(self, http_client):
        response = await http_client.get("/api/feed/index", params={"publisher": "bing"})

        assert response.status_code == 200
        assert response.headers["X-Total-Pages"] == "2"
        assert response.headers["X-Total-Products"] == "3"
        assert response.headers["X-Products-Per-Page"] == "2"
        assert "https://shop.example.com/api/feed/pages/2?publisher=bing" in response.text

    @pytest.mark.asyncio
    async def test_page(self, http_client, redis_client):
        response = await http_client.get("/api/feed/pages/2")

        assert response.status_code == 200
        assert response.headers["X-Page"] == "2"
        assert response.headers["X-Products-In-Page"] == "1"
        assert response.headers["X-Has-Next-Page"] == "false"
        assert 'rel="prev"' in response.headers["Link"]

        root = ET.fromstring(response.content)
        assert len(root.find("channel").findall("item")) == 1
        assert "Page 2 of 2" in root.find("channel").findtext("description")

        redis_client.set.assert_awaited_once()
        assert redis_client.set.call_args.args[0] == "merchant-feed:google:page:2:n:3"

    @pytest.mark.asyncio
    async def test_malformed_page(self, http_client, cosmos_client):
        response = await http_client.get("/api/feed/pages/abc")

        assert response.status_code == 400
        assert response.text == "Invalid page number format"
        cosmos_client.fetch_all_products.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_page_zero(self, http_client):
        response = await http_client.get("/api/feed/pages/0")

        assert response.status_code == 400
        assert response.text == "Page number must be greater than 0"

    @pytest.mark.asyncio
    async def test_page_out_of_range(self, http_client):
        response = await http_client.get("/api/feed/pages/5")

        assert response.status_code == 404
        assert response.text == "Page 5 does not exist (total pages: 2)"

    @pytest.mark.asyncio
    async def test_page_one_of_empty_catalog(self, http_client, cosmos_client):
        cosmos_client.fetch_all_products.return_value = []

        response = await http_client.get("/api/feed/pages/1")

        assert response.status_code == 404
        assert response.text == "No products found"
        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    @pytest.mark.asyncio
    async def test_page_one_when_nothing_is_eligible(self, http_client, cosmos_client, product_factory):
        """A catalog of drafts has zero pages, so page 1 is out of range."""
        cosmos_client.fetch_all_products.return_value = [
            product_factory("1", tags=["draft"]),
            product_factory("2", tags=["hidden"]),
        ]

        response = await http_client.get("/api/feed/pages/1")

        assert response.status_code == 404
        assert response.text == "Page 1 does not exist (total pages: 0)"

    @pytest.mark.asyncio
    async def test_publisher_alias_page(self, http_client):
        response = await http_client.get("/api/feed/google-merchant/pages/1")

        assert response.status_code == 200
        assert response.headers["X-Publisher"] == "google"
        assert response.headers["X-Products-In-Page"] == "2"


class TestCacheManagement:
    """Tests for cache invalidation and warming."""

    @pytest.mark.asyncio
    async def test_invalidate(self, http_client, redis_client):
        response = await http_client.delete("/api/feed/cache", params={"publisher": "bing"})

        assert response.status_code == 200
        data = response.json()
        assert data["publisher"] == "bing"
        assert "merchant-feed:bing:filtered" in data["keys"]
        redis_client.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_warm(self, http_client, redis_client):
        response = await http_client.post("/api/feed/cache/warm", params={"publisher": "google"})

        assert response.status_code == 200
        assert response.json()["results"]["google"]["success"] is True
        assert redis_client.set.call_args.args[0] == "merchant-feed:google:filtered"

    @pytest.mark.asyncio
    async def test_warm_skips_current_feed(self, http_client, redis_client):
        """A fresh cached feed for the same catalog size is left in place."""
        cached = CachedFeed(
            xml="<rss/>",
            metadata=CachedFeedMetadata(generated_at=int(time.time() * 1000), product_count=3),
        )
        redis_client.get.return_value = cached.model_dump_json()

        response = await http_client.post("/api/feed/cache/warm", params={"publisher": "google"})

        assert response.status_code == 200
        result = response.json()["results"]["google"]
        assert result["success"] is True
        assert result["regenerated"] is False
        redis_client.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_warm_force_regenerates(self, http_client, redis_client):
        cached = CachedFeed(
            xml="<rss/>",
            metadata=CachedFeedMetadata(generated_at=int(time.time() * 1000), product_count=3),
        )
        redis_client.get.return_value = cached.model_dump_json()

        response = await http_client.post("/api/feed/cache/warm", params={"publisher": "google", "force": "true"})

        assert response.json()["results"]["google"]["regenerated"] is True
        redis_client.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_warm_reports_failures(self, http_client, cosmos_client):
        cosmos_client.fetch_all_products.side_effect = CosmosError("down")

        response = await http_client.post("/api/feed/cache/warm")

        assert response.status_code == 200
        results = response.json()["results"]
        assert set(results) == {"google", "bing"}
        assert results["bing"]["success"] is False
        assert results["bing"]["error"] == "down"


class TestHealth:
    """Tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, http_client):
        response = await http_client.get("/api/health")
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_redis_health(self, http_client, redis_client):
        response = await http_client.get("/api/health/redis")
        assert response.json()["redis"] == "connected"

        redis_client.ping.side_effect = ConnectionError("refused")
        response = await http_client.get("/api/health/redis")
        assert response.json() == {"ok": False, "redis": "disconnected", "error": "refused"}
