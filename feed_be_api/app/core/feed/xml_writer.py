"""
XML Writer for Google Merchant Center and Bing Merchant Center feeds.
"""

import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import List, Optional, Dict, Tuple
from xml.sax.saxutils import escape

from .models import FeedItemData, ShippingConfig, MerchantFeedType


# Google Shopping namespace
G_NS = 'http://base.google.com/ns/1.0'
SITEMAP_NS = 'http://www.sitemaps.org/schemas/sitemap/0.9'

# Bing Merchant Center ingests the Google schema, so both publishers
# share the same prefix and URI.
PUBLISHER_NAMESPACES: Dict[str, Tuple[str, str]] = {
    "google": ("g", G_NS),
    "bing": ("g", G_NS),
}
_PREFIX_URIS: Dict[str, str] = {prefix: uri for prefix, uri in PUBLISHER_NAMESPACES.values()}

for _prefix, _uri in _PREFIX_URIS.items():
    ET.register_namespace(_prefix, _uri)

_XMLNS_ATTR = re.compile(r'\s+xmlns:\w+="[^"]*"')
# Characters XML 1.0 does not allow, even escaped
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')


def get_namespace_prefix(feed_type: MerchantFeedType) -> str:
    """Namespace prefix used for item fields of a publisher."""
    return PUBLISHER_NAMESPACES[feed_type][0]


def get_xml_namespace(feed_type: MerchantFeedType) -> str:
    """xmlns declaration for the rss root element."""
    prefix, uri = PUBLISHER_NAMESPACES[feed_type]
    return f'xmlns:{prefix}="{uri}"'


def strip_control_chars(value: str) -> str:
    return _CONTROL_CHARS.sub('', value)


def escape_xml(value: Optional[str]) -> str:
    """Escape & < > " ' for use in text or attribute values."""
    if not value:
        return ''
    return escape(strip_control_chars(str(value)), {'"': '&quot;', "'": '&apos;'})


def format_feed_item_xml(
    data: FeedItemData,
    ns: str = "g",
    shipping: Optional[ShippingConfig] = None
) -> str:
    """
    Render one <item> fragment.

    The fragment carries no namespace declaration; it is meant to be placed
    inside a document whose rss element declares the prefix.
    """
    shipping = shipping or ShippingConfig()
    uri = _PREFIX_URIS[ns]

    def tag(name: str) -> str:
        return f'{{{uri}}}{name}'

    item = ET.Element('item')
    ET.SubElement(item, 'title').text = data.title
    ET.SubElement(item, 'link').text = data.link
    ET.SubElement(item, 'description').text = data.description

    ET.SubElement(item, tag('id')).text = data.id
    ET.SubElement(item, tag('title')).text = data.title
    ET.SubElement(item, tag('description')).text = data.description
    ET.SubElement(item, tag('link')).text = data.link
    ET.SubElement(item, tag('image_link')).text = data.image_link
    ET.SubElement(item, tag('availability')).text = data.availability
    ET.SubElement(item, tag('price')).text = data.price

    # Only on sale
    if data.sale_price:
        ET.SubElement(item, tag('sale_price')).text = data.sale_price

    ET.SubElement(item, tag('brand')).text = data.brand
    ET.SubElement(item, tag('condition')).text = data.condition
    ET.SubElement(item, tag('product_type')).text = data.product_type
    ET.SubElement(item, tag('google_product_category')).text = data.google_product_category
    ET.SubElement(item, tag('mpn')).text = data.mpn

    if data.gtin:
        ET.SubElement(item, tag('gtin')).text = data.gtin
    if data.color:
        ET.SubElement(item, tag('color')).text = data.color
    if data.size:
        ET.SubElement(item, tag('size')).text = data.size

    ET.SubElement(item, tag('shipping_weight')).text = data.shipping_weight

    shipping_elem = ET.SubElement(item, tag('shipping'))
    ET.SubElement(shipping_elem, tag('country')).text = shipping.country
    ET.SubElement(shipping_elem, tag('service')).text = shipping.service
    ET.SubElement(shipping_elem, tag('price')).text = shipping.price

    for elem in item.iter():
        if elem.text:
            elem.text = strip_control_chars(elem.text)

    ET.indent(item, space='  ', level=2)
    xml_string = ET.tostring(item, encoding='unicode', method='xml')
    # Drop the xmlns:g declaration ElementTree puts on the fragment root
    xml_string = _XMLNS_ATTR.sub('', xml_string, count=1)
    return f"\n    {xml_string}"


def render_feed_header(
    site_name: str,
    site_url: str,
    description: str,
    feed_type: MerchantFeedType
) -> str:
    """XML declaration, rss root and channel metadata, left open."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<rss version="2.0" {get_xml_namespace(feed_type)}>\n'
        '  <channel>\n'
        f'    <title>{escape_xml(site_name)} - Product Feed</title>\n'
        f'    <link>{escape_xml(site_url)}</link>\n'
        f'    <description>{escape_xml(description)}</description>\n'
    )


def render_feed_footer() -> str:
    return '\n  </channel>\n</rss>'


def generate_feed_xml(
    items: List[str],
    site_name: str,
    site_url: str,
    description: str,
    feed_type: MerchantFeedType
) -> str:
    """Generate a complete feed document from pre-rendered item fragments."""
    return (
        render_feed_header(site_name, site_url, description, feed_type)
        + ''.join(items)
        + render_feed_footer()
    )


def generate_feed_index_xml(
    site_url: str,
    feed_path: str,
    total_pages: int,
    publisher: MerchantFeedType = "google"
) -> str:
    """
    Generate a sitemap index listing every feed page, for submitting a
    paginated feed to Google/Bing Merchant Center.

    Args:
        site_url: Base URL of the site
        feed_path: Feed path relative to the site (e.g. "api/feed")
        total_pages: Number of pages
        publisher: Publisher query parameter added to each page URL

    Returns:
        Sitemap index XML string
    """
    lastmod = datetime.now(timezone.utc).isoformat()
    base = site_url.rstrip('/')
    path = feed_path.strip('/')

    root = ET.Element('sitemapindex', {'xmlns': SITEMAP_NS})
    for page in range(1, total_pages + 1):
        sitemap = ET.SubElement(root, 'sitemap')
        ET.SubElement(sitemap, 'loc').text = f"{base}/{path}/pages/{page}?publisher={publisher}"
        ET.SubElement(sitemap, 'lastmod').text = lastmod

    ET.indent(root, space='  ')
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding='unicode')
