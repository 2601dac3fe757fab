"""
Pytest configuration and fixtures.
"""
import pytest

from app.core.feed.models import FeedConfig
from app.schemas.products import Product


def build_product(
    product_id="1",
    title="Linen Shirt",
    variant_count=1,
    tags=None,
    image_count=1,
    updated_at="2024-01-01T00:00:00Z",
    price=29.99,
    available=True,
    **extra,
) -> Product:
    """Build a COSMOS product with simple variants."""
    data = {
        "id": product_id,
        "title": title,
        "handle": f"product-{product_id}",
        "body_html": "<p>Soft &amp; breathable</p>",
        "vendor": "Acme",
        "product_type": "Clothing",
        "tags": tags or [],
        "images": [
            {"id": f"{product_id}-img-{i}", "src": f"https://cdn.example.com/{product_id}-{i}.jpg"}
            for i in range(image_count)
        ],
        "variants": [
            {
                "id": f"{product_id}-{i}",
                "title": f"Size {i}",
                "sku": f"SKU-{product_id}-{i}",
                "price": price,
                "available": available,
                "grams": 250,
            }
            for i in range(variant_count)
        ],
        "updated_at": updated_at,
    }
    data.update(extra)
    return Product.model_validate(data)


@pytest.fixture
def product_factory():
    """Factory for sample products."""
    return build_product


@pytest.fixture
def sample_catalog():
    """Five products, two of them drafts."""
    return [
        build_product("1"),
        build_product("2", tags=["draft"]),
        build_product("3", variant_count=2),
        build_product("4", tags=[" Draft "]),
        build_product("5"),
    ]


@pytest.fixture
def feed_config():
    """Google feed configuration for tests."""
    return FeedConfig(
        feed_type="google",
        site_name="Test Store",
        site_url="https://shop.example.com",
        description="Test feed",
        batch_size=2,
    )
