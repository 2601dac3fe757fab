"""
Feed data models.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Literal


MerchantFeedType = Literal["google", "bing"]


@dataclass
class ShippingConfig:
    """Flat shipping rate advertised on every item."""
    country: str = "US"
    service: str = "Standard"
    price: str = "9.99 USD"


@dataclass
class FeedConfig:
    """Feed generation configuration."""
    feed_type: MerchantFeedType
    site_name: str
    site_url: str
    description: str = ""
    batch_size: int = 100
    price_currency: str = "USD"
    image_base_url: Optional[str] = None
    shipping: ShippingConfig = field(default_factory=ShippingConfig)


@dataclass
class FeedItemData:
    """Normalized feed item data, one per product variant."""
    # Identifiers
    id: str
    title: str = ''
    description: str = ''
    link: str = ''
    image_link: str = ''

    availability: Literal["in stock", "out of stock"] = 'in stock'
    price: str = ''  # e.g. "29.99 USD"
    sale_price: Optional[str] = None
    brand: str = ''
    condition: Literal["new", "used", "refurbished"] = 'new'
    product_type: str = 'General'
    google_product_category: str = ''
    mpn: str = ''
    gtin: str = ''
    color: str = ''
    size: str = ''
    shipping_weight: str = ''


@dataclass
class FeedGenerationError:
    """A product or variant that could not be turned into a feed item."""
    product_id: str
    message: str
    variant_id: Optional[str] = None

    def __str__(self) -> str:
        if self.variant_id is not None:
            return f"product {self.product_id} variant {self.variant_id}: {self.message}"
        return f"product {self.product_id}: {self.message}"


@dataclass
class ProcessVariantsResult:
    items: List[str] = field(default_factory=list)
    errors: List[FeedGenerationError] = field(default_factory=list)


@dataclass
class VariantPricing:
    base_price: str
    sale_price: Optional[str] = None
