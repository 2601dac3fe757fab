"""
Turn COSMOS products into merchant feed items.

One feed item is produced per variant. Problems with a single variant or
product are collected as FeedGenerationError entries instead of raising, so
that one bad record never aborts a feed.
"""

import html
import json
import logging
import math
import re
from typing import Callable, List, Optional, Tuple
from urllib.parse import urljoin

from pydantic import ValidationError

from app.schemas.products import Product, ProductOption, Variant
from .models import (
    FeedGenerationError,
    FeedItemData,
    MerchantFeedType,
    ProcessVariantsResult,
    ShippingConfig,
    VariantPricing,
)
from .xml_writer import format_feed_item_xml, get_namespace_prefix


logger = logging.getLogger(__name__)

SUPPORTED_PUBLISHERS: Tuple[str, ...] = ("google", "bing")
DEFAULT_GOOGLE_CATEGORY = "166"  # Apparel & Accessories

# product_type (lowercased) -> Google product taxonomy id
GOOGLE_CATEGORY_MAP = {
    # Apparel & Accessories
    "accessories": "166",
    "apparel & accessories": "166",
    "bags & cases": "3032",
    "clothing": "1604",
    "dressing gown": "2271",
    "pajama set": "2271",
    "fitted sheet": "493",
    "flat sheet": "493",
    "duvet cover": "472",
    "coverlet": "472",
    "shoes": "187",
    "watches": "201",
    "jewelry": "188",
    # Automotive
    "automotive": "888",
    "automotive tools": "888",
    "air compressor": "4635",
    "air compressors": "4635",
    "floor mats": "2594",
    "headlights": "3703",
    "tail lights": "3703",
    "radiators": "3703",
    "steering wheels": "2609",
    "wheels": "2609",
    "workbenches": "4196",
    "work benches": "4196",
    # Electronics
    "electronics": "172",
    "microphones": "172",
    "tripods": "172",
    "camera accessories": "172",
    "radios": "172",
    "headsets": "172",
    # Furniture
    "furniture": "632",
    "furniture set": "632",
    "cabinets & storage": "4196",
    "cabinet": "4196",
    "credenza": "4196",
    "dining chairs": "4579",
    "chair": "4579",
    "sofa": "4579",
    "loveseat": "4579",
    "ottoman": "4579",
    "recliner": "4579",
    "sectional": "4579",
    # Other
    "diet/training plan": "499",
    "aircraft manual": "784",
    "espresso machine": "3117",
}

_TAG_RE = re.compile(r'<[^>]+>')
_WS_RE = re.compile(r'\s+')
_GTIN_RE = re.compile(r'^(\d{8}|\d{12}|\d{13}|\d{14})$')
_PRODUCT_TYPE_LEAD_RE = re.compile(r'^[>/\-\s]+')
_PRODUCT_TYPE_SPLIT_RE = re.compile(r'[>/]')


class FeedItemError(ValueError):
    """A variant lacks data required by the merchant feed schema."""


class UnsupportedPublisherError(ValueError):
    """Requested publisher has no feed format."""


def validate_publisher(publisher: Optional[str]) -> MerchantFeedType:
    """
    Normalize the publisher query parameter.

    Returns "google" when no publisher is given.

    Raises:
        UnsupportedPublisherError: For anything other than google/bing
    """
    if not publisher:
        return "google"

    normalized = publisher.strip().lower()
    if normalized not in SUPPORTED_PUBLISHERS:
        raise UnsupportedPublisherError(
            f"Unsupported publisher: {publisher}. "
            f"Supported publishers: {', '.join(SUPPORTED_PUBLISHERS)}"
        )
    return normalized  # type: ignore[return-value]


def strip_html(description: Optional[str]) -> str:
    """Strip HTML tags and entities from description, returning plain text."""
    if not description:
        return ''
    description = _TAG_RE.sub(' ', description)
    description = html.unescape(description)
    return _WS_RE.sub(' ', description).strip()


def format_price(amount: Optional[float], currency: str = "USD") -> str:
    """Format amount as merchant price, e.g. "29.99 USD"."""
    value = amount if isinstance(amount, (int, float)) and math.isfinite(amount) else 0.0
    return f"{value:.2f} {currency}"


def format_weight(grams: Optional[float]) -> str:
    """Shipping weight in grams; 100 g when unknown."""
    g = grams if isinstance(grams, (int, float)) and grams > 0 else 100
    if float(g).is_integer():
        g = int(g)
    return f"{g} g"


def is_likely_gtin(value: Optional[str]) -> bool:
    """True for 8, 12, 13 or 14 digit codes."""
    if not value:
        return False
    return bool(_GTIN_RE.match(_WS_RE.sub('', value)))


def normalize_product_type(value: Optional[str]) -> str:
    """Normalize "a/b > c" style hierarchies to "a > b > c"."""
    if not value:
        return "General"
    trimmed = _PRODUCT_TYPE_LEAD_RE.sub('', value.strip())
    parts = [p.strip() for p in _PRODUCT_TYPE_SPLIT_RE.split(trimmed) if p.strip()]
    return " > ".join(parts) if parts else "General"


def get_google_category(product_type: Optional[str]) -> str:
    if not product_type:
        return DEFAULT_GOOGLE_CATEGORY
    return GOOGLE_CATEGORY_MAP.get(product_type.strip().lower(), DEFAULT_GOOGLE_CATEGORY)


def get_variant_option_value(variant: Variant, options: List[ProductOption], option_name: str) -> str:
    """
    Resolve an option by name (case-insensitive) to the variant's
    option1/option2/option3 value.
    """
    wanted = option_name.lower()
    for index, option in enumerate(options[:3]):
        if option.name.lower() == wanted:
            return getattr(variant, f"option{index + 1}") or ''
    return ''


def calculate_variant_pricing(variant: Variant, currency: str = "USD") -> VariantPricing:
    """
    A compare-at price above the price means the variant is on sale: the
    compare-at price becomes the base price and the price the sale price.
    """
    price = variant.price
    compare = variant.compare_at_price

    if compare is not None and price is not None and compare > price:
        return VariantPricing(
            base_price=format_price(compare, currency),
            sale_price=format_price(price, currency),
        )
    return VariantPricing(base_price=format_price(price, currency))


def _resolve_image_url(src: str, image_base_url: Optional[str]) -> str:
    if image_base_url and not src.startswith(('http://', 'https://', '//')):
        return urljoin(image_base_url.rstrip('/') + '/', src.lstrip('/'))
    return src


def get_variant_image_url(
    variant: Variant,
    product: Product,
    fallback_url: str,
    image_base_url: Optional[str] = None
) -> str:
    """
    Pick the variant's featured image, then the product's first image,
    then the fallback.
    """
    featured = variant.featured_image
    src = None
    if isinstance(featured, dict) and featured.get('src'):
        src = featured['src']
    elif isinstance(featured, str) and featured:
        src = featured
    else:
        src = next((image.src for image in product.images if image.src), None)

    if not src:
        return fallback_url
    return _resolve_image_url(src, image_base_url)


def parse_product_data(product: Product) -> Product:
    """Use the full record from raw_json when the listing carries one."""
    if not product.raw_json:
        return product
    return Product.model_validate(json.loads(product.raw_json))


def build_feed_item_data(
    product: Product,
    variant: Variant,
    options: List[ProductOption],
    site_url: str,
    site_name: str,
    image_base_url: Optional[str] = None,
    currency: str = "USD"
) -> FeedItemData:
    """
    Build normalized item data for one variant.

    Raises:
        FeedItemError: If the variant has no price or no availability
    """
    if variant.price is None:
        raise FeedItemError("missing price")
    if variant.available is None:
        raise FeedItemError("missing availability")

    pricing = calculate_variant_pricing(variant, currency)
    site_url = site_url.rstrip('/')
    title = f"{product.title} - {variant.title}" if variant.title else product.title

    return FeedItemData(
        id=str(variant.id),
        title=title,
        description=strip_html(product.body_html) or product.title,
        link=f"{site_url}/products/{product.handle}?variant={variant.id}",
        image_link=get_variant_image_url(
            variant, product, f"{site_url}/placeholder.svg", image_base_url
        ),
        availability="in stock" if variant.available else "out of stock",
        price=pricing.base_price,
        sale_price=pricing.sale_price,
        brand=product.vendor or site_name,
        condition="new",
        product_type=normalize_product_type(product.product_type),
        google_product_category=get_google_category(product.product_type),
        mpn=variant.sku or str(variant.id),
        gtin=variant.sku if is_likely_gtin(variant.sku) else '',
        color=get_variant_option_value(variant, options, "color"),
        size=get_variant_option_value(variant, options, "size"),
        shipping_weight=format_weight(variant.grams),
    )


def default_item_formatter(
    feed_type: MerchantFeedType = "google",
    shipping: Optional[ShippingConfig] = None
) -> Callable[[FeedItemData], str]:
    ns = get_namespace_prefix(feed_type)
    return lambda data: format_feed_item_xml(data, ns, shipping)


def process_product_variants(
    product: Product,
    site_url: str,
    site_name: str,
    image_base_url: Optional[str] = None,
    format_item: Optional[Callable[[FeedItemData], str]] = None,
    currency: str = "USD"
) -> ProcessVariantsResult:
    """
    Generate one XML item per variant of a product.

    Args:
        product: Product (raw_json is honoured)
        site_url: Storefront URL for item links
        site_name: Brand fallback when the product has no vendor
        image_base_url: Base for relative image paths
        format_item: Renders FeedItemData to XML; Google format by default
        currency: Price currency code

    Returns:
        ProcessVariantsResult with rendered items and per-variant errors
    """
    result = ProcessVariantsResult()
    format_item = format_item or default_item_formatter()

    try:
        product_data = parse_product_data(product)
    except (ValueError, ValidationError) as e:
        result.errors.append(FeedGenerationError(product_id=product.id, message=f"invalid raw_json: {e}"))
        return result

    for variant in product_data.variants:
        try:
            item_data = build_feed_item_data(
                product_data,
                variant,
                product_data.options,
                site_url,
                site_name,
                image_base_url,
                currency,
            )
            result.items.append(format_item(item_data))
        except Exception as e:
            logger.debug(f"Skipping variant {variant.id} of product {product.id}: {e}")
            result.errors.append(FeedGenerationError(
                product_id=product.id,
                variant_id=variant.id,
                message=str(e) or type(e).__name__,
            ))

    return result
