"""
Product selection and ordering for large feeds.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.schemas.products import Product


EXCLUDED_TAGS = frozenset({"hidden", "internal", "draft", "test"})

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def is_feed_eligible(product: Product) -> bool:
    """A product needs variants, images and no excluded tag."""
    if not product.variants:
        return False
    if any(tag.strip().lower() in EXCLUDED_TAGS for tag in product.tags):
        return False
    if not any(image.src for image in product.images):
        return False
    return True


def filter_feed_eligible_products(products: List[Product]) -> List[Product]:
    """Drop products that must not appear in a merchant feed. Order is kept."""
    return [p for p in products if is_feed_eligible(p)]


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def prioritize_products(products: List[Product]) -> List[Product]:
    """
    Order products with more variants first, then most recently updated.
    The sort is stable, so remaining ties keep their input order.
    """
    return sorted(
        products,
        key=lambda p: (len(p.variants), _parse_timestamp(p.updated_at)),
        reverse=True,
    )


def chunk_products_by_category(products: List[Product]) -> Dict[str, List[Product]]:
    """Group products by product_type for better cache locality."""
    chunks: Dict[str, List[Product]] = {}
    for product in products:
        category = product.product_type or "uncategorized"
        chunks.setdefault(category, []).append(product)
    return chunks


@dataclass
class FeedStatistics:
    total_products: int
    total_variants: int
    eligible_products: int
    skipped_products: int
    total_errors: int
    processing_time_ms: float
    average_time_per_product: float


def calculate_feed_stats(
    all_products: List[Product],
    eligible_products: List[Product],
    error_count: int,
    start_time: float
) -> FeedStatistics:
    """
    Summarize a generation run.

    Args:
        all_products: Catalog as fetched
        eligible_products: Products that went into the feed
        error_count: Number of item errors
        start_time: time.monotonic() at generation start
    """
    processing_time_ms = (time.monotonic() - start_time) * 1000
    total_variants = sum(len(p.variants) for p in eligible_products)

    return FeedStatistics(
        total_products=len(all_products),
        total_variants=total_variants,
        eligible_products=len(eligible_products),
        skipped_products=len(all_products) - len(eligible_products),
        total_errors=error_count,
        processing_time_ms=processing_time_ms,
        average_time_per_product=(
            processing_time_ms / len(eligible_products) if eligible_products else 0.0
        ),
    )
