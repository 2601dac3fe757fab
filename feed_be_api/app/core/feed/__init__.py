"""
Merchant feed generation core module.
"""

from .models import FeedConfig, FeedItemData, FeedGenerationError, ProcessVariantsResult
from .eligibility import filter_feed_eligible_products, prioritize_products
from .formatter import process_product_variants, validate_publisher, UnsupportedPublisherError
from .pagination import calculate_pagination_metadata, validate_page_number
from .progress import FeedProgress
from .streaming import FeedStream
from .cache import FeedCache

__all__ = [
    'FeedConfig',
    'FeedItemData',
    'FeedGenerationError',
    'ProcessVariantsResult',
    'filter_feed_eligible_products',
    'prioritize_products',
    'process_product_variants',
    'validate_publisher',
    'UnsupportedPublisherError',
    'calculate_pagination_metadata',
    'validate_page_number',
    'FeedProgress',
    'FeedStream',
    'FeedCache',
]
