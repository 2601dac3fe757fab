"""
Merchant feed API endpoints.
"""

import logging
import sys
import time
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from app.config import Settings
from app.deps import get_app_settings, get_cosmos_client, get_feed_cache
from app.core.cosmos_client import CosmosClient
from app.core.feed.cache import CachedFeed, CachedFeedMetadata, FeedCache, cache_key
from app.core.feed.formatter import SUPPORTED_PUBLISHERS, UnsupportedPublisherError, validate_publisher
from app.core.feed.models import MerchantFeedType
from app.core.feed.pagination import (
    DEFAULT_CACHE_MAX_AGE,
    DEFAULT_CACHE_S_MAX_AGE,
    NO_CACHE_HEADERS,
    calculate_optimal_page_size,
    calculate_pagination_metadata,
    generate_index_headers,
    generate_pagination_headers,
    generate_pagination_links,
    validate_page_number,
)
from app.core.feed.service import (
    EmptyCatalogError,
    build_feed_config,
    load_feed_products,
    render_feed_page,
    render_full_feed,
)
from app.core.feed.streaming import FeedStream, estimate_feed_size
from app.core.feed.xml_writer import generate_feed_index_xml
from app.schemas.feed import CacheInvalidateResponse, CacheWarmResponse

router = APIRouter(prefix="/feed", tags=["Feeds"])

logger = logging.getLogger(__name__)

FEED_PATH = "api/feed"
XML_MEDIA_TYPE = "application/xml; charset=utf-8"
FEED_CACHE_CONTROL = f"public, max-age={DEFAULT_CACHE_MAX_AGE}, s-maxage={DEFAULT_CACHE_S_MAX_AGE}"


def _error_response(message: str, status_code: int) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code, headers=NO_CACHE_HEADERS)


def _elapsed_ms(start: float) -> str:
    return str(round((time.monotonic() - start) * 1000))


async def _load_or_error(
    client: CosmosClient,
    settings: Settings,
    feed_type: MerchantFeedType,
    filter_enabled: bool = True,
    prioritize: bool = False
):
    """
    Load feed products, or build the error response to return instead.

    Returns:
        ((all_products, products), None) or (None, error_response)
    """
    try:
        return await load_feed_products(client, settings, filter_enabled, prioritize), None
    except EmptyCatalogError:
        logger.warning(f"No products available for {feed_type} feed")
        return None, _error_response("No products found", 404)
    except Exception as e:
        logger.exception(f"Error generating {feed_type} feed: {e}")
        return None, _error_response("Error generating feed", 500)


async def _stream_feed(
    feed_type: MerchantFeedType,
    filter_enabled: bool,
    prioritize: bool,
    batch_size: Optional[int],
    settings: Settings,
    client: CosmosClient,
    cache: FeedCache
) -> Response:
    start = time.monotonic()

    key = cache_key(feed_type, filtered=filter_enabled, prioritized=prioritize)
    cached = await cache.get(key)
    if cached:
        return Response(
            content=cached.xml,
            media_type=XML_MEDIA_TYPE,
            headers={
                "Cache-Control": FEED_CACHE_CONTROL,
                "X-Cache": "HIT",
                "X-Publisher": feed_type,
                "X-Product-Count": str(cached.metadata.product_count),
                "X-Generation-Time-Ms": str(cached.metadata.generation_time_ms),
            },
        )

    loaded, error = await _load_or_error(client, settings, feed_type, filter_enabled, prioritize)
    if error:
        return error
    all_products, products = loaded

    config = build_feed_config(settings, feed_type, batch_size)
    stream = FeedStream(
        products,
        config,
        all_products=all_products,
        progress_log_interval_ms=settings.feed_progress_log_interval_ms,
    )
    logger.info(
        f"Streaming {feed_type} feed: products={len(products)}, "
        f"estimated_size_kb={round(estimate_feed_size(len(products)) / 1024)}"
    )

    return StreamingResponse(
        stream,
        media_type=XML_MEDIA_TYPE,
        headers={
            "Cache-Control": FEED_CACHE_CONTROL,
            "X-Cache": "MISS",
            "X-Total-Products": str(len(all_products)),
            "X-Product-Count": str(len(products)),
            "X-Generation-Time-Ms": _elapsed_ms(start),
            "X-Publisher": feed_type,
            "X-Batch-Size": str(config.batch_size),
        },
    )


async def _feed_index(
    feed_type: MerchantFeedType,
    settings: Settings,
    client: CosmosClient
) -> Response:
    start = time.monotonic()

    loaded, error = await _load_or_error(client, settings, feed_type)
    if error:
        return error
    _, products = loaded

    per_page = settings.feed_products_per_page
    metadata = calculate_pagination_metadata(len(products), 1, per_page)
    logger.info(
        f"{feed_type} feed index: total_products={metadata.total_products}, "
        f"total_pages={metadata.total_pages}, suggested={calculate_optimal_page_size(len(products))}"
    )

    xml = generate_feed_index_xml(settings.site_url, FEED_PATH, metadata.total_pages, feed_type)
    headers = generate_index_headers(metadata.total_products, metadata.total_pages, per_page)
    headers["X-Generation-Time-Ms"] = _elapsed_ms(start)
    headers["X-Publisher"] = feed_type
    return Response(content=xml, media_type=XML_MEDIA_TYPE, headers=headers)


def _link_header(links: Dict[str, str]) -> str:
    return ", ".join(f'<{url}>; rel="{rel}"' for rel, url in links.items())


async def _feed_page(
    feed_type: MerchantFeedType,
    page: str,
    settings: Settings,
    client: CosmosClient,
    cache: FeedCache
) -> Response:
    start = time.monotonic()

    # Reject malformed page numbers before touching the catalog
    precheck = validate_page_number(page, sys.maxsize)
    if not precheck.is_valid:
        return _error_response(precheck.error, precheck.status_code)

    loaded, error = await _load_or_error(client, settings, feed_type)
    if error:
        return error
    _, products = loaded

    per_page = settings.feed_products_per_page
    total_pages = calculate_pagination_metadata(len(products), 1, per_page).total_pages
    validation = validate_page_number(precheck.page_number, total_pages)
    if not validation.is_valid:
        logger.info(f"Rejected {feed_type} feed page request: {validation.error}")
        return _error_response(validation.error, validation.status_code)

    metadata = calculate_pagination_metadata(len(products), validation.page_number, per_page)
    config = build_feed_config(settings, feed_type)

    async def generate() -> CachedFeed:
        rendered = render_feed_page(products, metadata, config, per_page)
        return CachedFeed(
            xml=rendered.xml,
            metadata=CachedFeedMetadata(
                generated_at=int(time.time() * 1000),
                product_count=metadata.products_in_page,
                variant_count=rendered.variant_count,
                item_count=rendered.item_count,
                error_count=rendered.error_count,
                generation_time_ms=int(_elapsed_ms(start)),
            ),
        )

    key = cache_key(feed_type, page=metadata.current_page, catalog_size=len(products))
    feed = await cache.get_or_generate(key, generate)

    headers = generate_pagination_headers(metadata, feed.metadata.item_count, feed.metadata.error_count)
    headers["Link"] = _link_header(generate_pagination_links(settings.site_url, FEED_PATH, metadata))
    headers["X-Generation-Time-Ms"] = _elapsed_ms(start)
    headers["X-Publisher"] = feed_type
    return Response(content=feed.xml, media_type=XML_MEDIA_TYPE, headers=headers)


@router.get("")
async def get_feed(
    publisher: Optional[str] = Query(None, description="google or bing"),
    filter_enabled: bool = Query(True, alias="filter"),
    prioritize: bool = Query(False),
    batch_size: Optional[int] = Query(None, ge=1, le=1000),
    settings: Settings = Depends(get_app_settings),
    client: CosmosClient = Depends(get_cosmos_client),
    cache: FeedCache = Depends(get_feed_cache)
):
    """Stream the complete merchant feed for a publisher."""
    try:
        feed_type = validate_publisher(publisher)
    except UnsupportedPublisherError as e:
        return _error_response(str(e), 400)
    return await _stream_feed(feed_type, filter_enabled, prioritize, batch_size, settings, client, cache)


@router.get("/index")
async def get_feed_index(
    publisher: Optional[str] = Query(None),
    settings: Settings = Depends(get_app_settings),
    client: CosmosClient = Depends(get_cosmos_client)
):
    """Sitemap index listing every page of the paginated feed."""
    try:
        feed_type = validate_publisher(publisher)
    except UnsupportedPublisherError as e:
        return _error_response(str(e), 400)
    return await _feed_index(feed_type, settings, client)


@router.get("/pages/{page}")
async def get_feed_page(
    page: str,
    publisher: Optional[str] = Query(None),
    settings: Settings = Depends(get_app_settings),
    client: CosmosClient = Depends(get_cosmos_client),
    cache: FeedCache = Depends(get_feed_cache)
):
    """One page of the paginated feed as a complete RSS document."""
    try:
        feed_type = validate_publisher(publisher)
    except UnsupportedPublisherError as e:
        return _error_response(str(e), 400)
    return await _feed_page(feed_type, page, settings, client, cache)


@router.delete("/cache", response_model=CacheInvalidateResponse)
async def invalidate_feed_cache(
    publisher: Optional[str] = Query(None),
    cache: FeedCache = Depends(get_feed_cache)
):
    """Drop cached feeds and pages for a publisher."""
    try:
        feed_type = validate_publisher(publisher)
    except UnsupportedPublisherError as e:
        return _error_response(str(e), 400)
    keys = await cache.invalidate(feed_type)
    return CacheInvalidateResponse(publisher=feed_type, keys=keys)


@router.post("/cache/warm", response_model=CacheWarmResponse)
async def warm_feed_cache(
    publisher: Optional[str] = Query(None, description="Warm one publisher; all when omitted"),
    force: bool = Query(False),
    settings: Settings = Depends(get_app_settings),
    client: CosmosClient = Depends(get_cosmos_client),
    cache: FeedCache = Depends(get_feed_cache)
):
    """
    Pre-generate the default (filtered) feed so GET /feed is served from cache.

    Unless force is set, a publisher whose cached feed is still fresh and
    matches the current catalog size is left as is.
    """
    if publisher is None:
        feed_types = list(SUPPORTED_PUBLISHERS)
    else:
        try:
            feed_types = [validate_publisher(publisher)]
        except UnsupportedPublisherError as e:
            return _error_response(str(e), 400)

    async def generate(feed_type: MerchantFeedType) -> Optional[CachedFeed]:
        all_products, products = await load_feed_products(client, settings)
        key = cache_key(feed_type, filtered=True)
        if not force and not await cache.should_regenerate(key, len(products)):
            logger.info(f"Cached {feed_type} feed is current, skipping regeneration")
            return None
        config = build_feed_config(settings, feed_type)
        return await render_full_feed(all_products, products, config)

    results = await cache.warm(feed_types, generate)
    return CacheWarmResponse(results=results)


def _register_publisher_routes(feed_type: MerchantFeedType) -> None:
    """Fixed-publisher aliases, e.g. /feed/google-merchant."""
    base = f"/{feed_type}-merchant"

    async def publisher_feed(
        filter_enabled: bool = Query(True, alias="filter"),
        prioritize: bool = Query(False),
        batch_size: Optional[int] = Query(None, ge=1, le=1000),
        settings: Settings = Depends(get_app_settings),
        client: CosmosClient = Depends(get_cosmos_client),
        cache: FeedCache = Depends(get_feed_cache)
    ):
        return await _stream_feed(feed_type, filter_enabled, prioritize, batch_size, settings, client, cache)

    async def publisher_index(
        settings: Settings = Depends(get_app_settings),
        client: CosmosClient = Depends(get_cosmos_client)
    ):
        return await _feed_index(feed_type, settings, client)

    async def publisher_page(
        page: str,
        settings: Settings = Depends(get_app_settings),
        client: CosmosClient = Depends(get_cosmos_client),
        cache: FeedCache = Depends(get_feed_cache)
    ):
        return await _feed_page(feed_type, page, settings, client, cache)

    router.add_api_route(base, publisher_feed, methods=["GET"])
    router.add_api_route(f"{base}/index", publisher_index, methods=["GET"])
    router.add_api_route(f"{base}/pages/{{page}}", publisher_page, methods=["GET"])


for _feed_type in SUPPORTED_PUBLISHERS:
    _register_publisher_routes(_feed_type)
