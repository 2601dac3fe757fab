"""
Unit tests for feed item formatting.
"""
import json
import xml.etree.ElementTree as ET

import pytest

from app.core.feed.formatter import (
    UnsupportedPublisherError,
    build_feed_item_data,
    calculate_variant_pricing,
    format_price,
    format_weight,
    get_google_category,
    get_variant_image_url,
    is_likely_gtin,
    normalize_product_type,
    process_product_variants,
    strip_html,
    validate_publisher,
)
from app.core.feed.xml_writer import G_NS, generate_feed_index_xml, generate_feed_xml
from app.schemas.products import Variant

SITE = "https://shop.example.com"


def _parse_item(fragment):
    """Wrap an item fragment in a namespaced root so it can be parsed."""
    root = ET.fromstring(f'<rss xmlns:g="{G_NS}">{fragment}</rss>')
    return root.find("item")


class TestPublisher:
    """Tests for validate_publisher."""

    def test_defaults_to_google(self):
        assert validate_publisher(None) == "google"
        assert validate_publisher("") == "google"

    def test_normalizes_case(self):
        assert validate_publisher(" Bing ") == "bing"

    def test_rejects_unknown(self):
        with pytest.raises(UnsupportedPublisherError) as exc_info:
            validate_publisher("yahoo")
        assert str(exc_info.value) == "Unsupported publisher: yahoo. Supported publishers: google, bing"


class TestHelpers:
    """Tests for small formatting helpers."""

    def test_strip_html(self):
        assert strip_html("<p>Soft &amp;  <b>warm</b></p>") == "Soft & warm"
        assert strip_html(None) == ""

    def test_format_price(self):
        assert format_price(29.9) == "29.90 USD"
        assert format_price(None, "EUR") == "0.00 EUR"
        assert format_price(float("nan")) == "0.00 USD"

    def test_format_weight(self):
        assert format_weight(250) == "250 g"
        assert format_weight(0) == "100 g"
        assert format_weight(12.5) == "12.5 g"

    def test_gtin(self):
        assert is_likely_gtin("012345678905")
        assert not is_likely_gtin("SKU-1")
        assert not is_likely_gtin(None)

    def test_product_type_and_category(self):
        assert normalize_product_type("/Home/Furniture > Chairs") == "Home > Furniture > Chairs"
        assert normalize_product_type(None) == "General"
        assert get_google_category("Clothing") == "1604"
        assert get_google_category("Spaceships") == "166"

    def test_sale_pricing(self):
        variant = Variant(id="1", price=20, compare_at_price=30)
        pricing = calculate_variant_pricing(variant)
        assert pricing.base_price == "30.00 USD"
        assert pricing.sale_price == "20.00 USD"

        variant = Variant(id="2", price=20, compare_at_price=10)
        assert calculate_variant_pricing(variant).sale_price is None

    def test_variant_image_preference(self, product_factory):
        product = product_factory("1")
        featured = Variant(id="1", featured_image={"src": "/img/v.jpg"})
        plain = Variant(id="2")

        assert get_variant_image_url(featured, product, "fb", "https://img.example.com") == "https://img.example.com/img/v.jpg"
        assert get_variant_image_url(plain, product, "fb") == "https://cdn.example.com/1-0.jpg"
        assert get_variant_image_url(plain, product_factory("2", image_count=0), "fb") == "fb"


class TestFeedItems:
    """Tests for per-variant item generation."""

    def test_item_xml_carries_required_fields(self, product_factory):
        """Rendered items parse back to the variant's id, price and availability."""
        product = product_factory("42", variant_count=1, price=19.5, available=False)

        result = process_product_variants(product, SITE, "Test Store")

        assert result.errors == []
        assert len(result.items) == 1
        item = _parse_item(result.items[0])
        assert item.findtext(f"{{{G_NS}}}id") == "42-0"
        assert item.findtext(f"{{{G_NS}}}price") == "19.50 USD"
        assert item.findtext(f"{{{G_NS}}}availability") == "out of stock"
        assert item.findtext(f"{{{G_NS}}}shipping/{{{G_NS}}}country") == "US"
        assert item.findtext("link") == f"{SITE}/products/product-42?variant=42-0"

    def test_fragment_has_no_namespace_declaration(self, product_factory):
        result = process_product_variants(product_factory("1"), SITE, "Test Store")
        assert "xmlns" not in result.items[0]

    def test_special_characters_are_escaped(self, product_factory):
        """Titles with markup characters still produce well-formed XML."""
        product = product_factory("1", title='Tom & Jerry <"Deluxe">')
        result = process_product_variants(product, SITE, "Test Store")

        item = _parse_item(result.items[0])
        assert item.findtext("title").startswith('Tom & Jerry <"Deluxe">')

    def test_control_characters_are_removed(self, product_factory):
        """Characters XML 1.0 forbids never reach the output."""
        product = product_factory("1", title="Vase\x0b Blue\x00", body_html="Hand\x01made")
        result = process_product_variants(product, SITE, "Test Store")

        item = _parse_item(result.items[0])
        assert item.findtext("title") == "Vase Blue - Size 0"
        assert item.findtext(f"{{{G_NS}}}description") == "Handmade"

    def test_image_without_src_falls_through(self, product_factory):
        product = product_factory(
            "1", images=[{"src": None}, {"src": "https://cdn.example.com/second.jpg"}]
        )
        plain = Variant(id="2")
        assert get_variant_image_url(plain, product, "fb") == "https://cdn.example.com/second.jpg"

    def test_missing_price_is_recorded_not_raised(self, product_factory):
        """A bad variant is skipped and the others still render."""
        product = product_factory("1", variant_count=2)
        product.variants[0].price = None

        result = process_product_variants(product, SITE, "Test Store")

        assert len(result.items) == 1
        assert len(result.errors) == 1
        assert result.errors[0].variant_id == "1-0"
        assert result.errors[0].message == "missing price"

    def test_missing_availability_raises_in_builder(self, product_factory):
        product = product_factory("1")
        product.variants[0].available = None

        with pytest.raises(ValueError, match="missing availability"):
            build_feed_item_data(product, product.variants[0], product.options, SITE, "Test Store")

    def test_raw_json_overrides_listing(self, product_factory):
        """The full record in raw_json is used when present."""
        full = product_factory("1", variant_count=3).model_dump()
        product = product_factory("1", variant_count=1, raw_json=json.dumps(full))

        result = process_product_variants(product, SITE, "Test Store")

        assert len(result.items) == 3

    def test_invalid_raw_json_is_one_error(self, product_factory):
        product = product_factory("1", raw_json="{not json")

        result = process_product_variants(product, SITE, "Test Store")

        assert result.items == []
        assert len(result.errors) == 1

    def test_color_and_size_options(self, product_factory):
        product = product_factory(
            "1",
            options=[{"name": "Color", "values": ["Red"]}, {"name": "Size", "values": ["M"]}],
        )
        product.variants[0].option1 = "Red"
        product.variants[0].option2 = "M"

        item = _parse_item(process_product_variants(product, SITE, "Test Store").items[0])

        assert item.findtext(f"{{{G_NS}}}color") == "Red"
        assert item.findtext(f"{{{G_NS}}}size") == "M"


class TestDocuments:
    """Tests for whole-document rendering."""

    def test_feed_document_is_well_formed(self, product_factory):
        items = process_product_variants(product_factory("1", variant_count=2), SITE, "Test Store").items

        xml = generate_feed_xml(items, "A & B", SITE, "desc", "bing")

        root = ET.fromstring(xml)
        channel = root.find("channel")
        assert channel.findtext("title") == "A & B - Product Feed"
        assert len(channel.findall("item")) == 2

    def test_index_lists_every_page(self):
        xml = generate_feed_index_xml(SITE + "/", "/api/feed/", 3, "bing")

        root = ET.fromstring(xml)
        ns = {"s": "http://www.sitemaps.org/schemas/sitemap/0.9"}
        locs = [el.text for el in root.findall("s:sitemap/s:loc", ns)]
        assert locs == [f"{SITE}/api/feed/pages/{n}?publisher=bing" for n in (1, 2, 3)]
