"""
Feed generation service - orchestrates fetch, selection and rendering.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from app.config import Settings
from app.core.cosmos_client import CosmosClient
from app.schemas.products import Product
from .cache import CachedFeed, CachedFeedMetadata
from .eligibility import filter_feed_eligible_products, prioritize_products
from .formatter import default_item_formatter, process_product_variants
from .models import FeedConfig, MerchantFeedType, ShippingConfig
from .pagination import PaginationMetadata, generate_pagination_comment, get_products_for_page
from .streaming import FeedStream
from .xml_writer import generate_feed_xml


logger = logging.getLogger(__name__)


class EmptyCatalogError(Exception):
    """Upstream returned no products at all."""


@dataclass
class RenderedPage:
    xml: str
    item_count: int
    error_count: int
    variant_count: int


def publisher_label(feed_type: MerchantFeedType) -> str:
    return feed_type.capitalize()


def build_feed_config(
    settings: Settings,
    feed_type: MerchantFeedType,
    batch_size: Optional[int] = None,
    description: Optional[str] = None
) -> FeedConfig:
    """Build FeedConfig from settings and request options."""
    if description is None:
        description = (
            f"{settings.site_name} - {settings.site_description} "
            f"({publisher_label(feed_type)} Merchant Feed)"
        )
    return FeedConfig(
        feed_type=feed_type,
        site_name=settings.site_name,
        site_url=settings.site_url,
        description=description,
        batch_size=batch_size or settings.feed_batch_size,
        price_currency=settings.price_currency,
        image_base_url=settings.image_base_url,
        shipping=ShippingConfig(
            country=settings.shipping_country,
            service=settings.shipping_service,
            price=settings.shipping_price,
        ),
    )


async def load_feed_products(
    client: CosmosClient,
    settings: Settings,
    filter_enabled: bool = True,
    prioritize: bool = False
) -> Tuple[List[Product], List[Product]]:
    """
    Fetch the catalog and select the products that go into the feed.

    Returns:
        (all_products, feed_products)

    Raises:
        EmptyCatalogError: If the catalog is empty
        CosmosError: If fetching fails
    """
    all_products = await client.fetch_all_products(settings.feed_fetch_page_size)
    logger.info(f"Fetched {len(all_products)} products from API")

    if not all_products:
        raise EmptyCatalogError("No products found")

    products = filter_feed_eligible_products(all_products) if filter_enabled else all_products
    logger.info(
        f"Selected {len(products)} feed products: skipped={len(all_products) - len(products)}, "
        f"filter_enabled={filter_enabled}"
    )

    if prioritize:
        products = prioritize_products(products)
        logger.info("Products prioritized by variants and update date")

    return all_products, products


def render_feed_page(
    products: List[Product],
    metadata: PaginationMetadata,
    config: FeedConfig,
    products_per_page: int
) -> RenderedPage:
    """Render one page of a paginated feed as a complete document."""
    page_products = get_products_for_page(products, metadata.current_page, products_per_page)
    format_item = default_item_formatter(config.feed_type, config.shipping)

    items: List[str] = []
    error_count = 0
    variant_count = 0
    for product in page_products:
        result = process_product_variants(
            product,
            config.site_url,
            config.site_name,
            config.image_base_url,
            format_item,
            config.price_currency,
        )
        items.extend(result.items)
        error_count += len(result.errors)
        variant_count += len(product.variants)

    xml = generate_feed_xml(
        items,
        config.site_name,
        config.site_url,
        f"Product feed for {publisher_label(config.feed_type)} Merchant Center - "
        f"Page {metadata.current_page} of {metadata.total_pages}",
        config.feed_type,
    ) + generate_pagination_comment(metadata)
    return RenderedPage(xml=xml, item_count=len(items), error_count=error_count, variant_count=variant_count)


async def render_full_feed(
    all_products: List[Product],
    products: List[Product],
    config: FeedConfig
) -> CachedFeed:
    """Run a FeedStream to completion and keep the result, for caching."""
    start = time.monotonic()
    stream = FeedStream(products, config, all_products=all_products)
    chunks = [chunk async for chunk in stream]

    return CachedFeed(
        xml=b''.join(chunks).decode('utf-8'),
        metadata=CachedFeedMetadata(
            generated_at=int(time.time() * 1000),
            product_count=len(products),
            variant_count=sum(len(p.variants) for p in products),
            item_count=stream.item_count,
            error_count=stream.error_count,
            generation_time_ms=round((time.monotonic() - start) * 1000),
        ),
    )
