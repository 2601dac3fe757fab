"""
Streaming feed generator.

Large catalogs (hundreds of thousands of products) are rendered batch by
batch so that only one batch of XML is held in memory at a time. The stream
is pull-based: the next batch is formatted only when the consumer asks for
more data, so a slow client pauses generation.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Iterator, List, Optional, Sequence, TypeVar

from app.schemas.products import Product
from .eligibility import calculate_feed_stats
from .formatter import default_item_formatter, process_product_variants
from .models import FeedConfig
from .progress import FeedProgress, get_memory_usage
from .xml_writer import render_feed_footer, render_feed_header


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 100
AVG_ITEM_BYTES = 2 * 1024
HEADER_FOOTER_BYTES = 1024


class StreamState(str, Enum):
    PENDING = "pending"
    HEADER_SENT = "header_sent"
    EMITTING_BATCHES = "emitting_batches"
    FOOTER_SENT = "footer_sent"
    CLOSED = "closed"


@dataclass
class BatchResult:
    xml: str
    item_count: int
    error_count: int


def generate_feed_header(config: FeedConfig) -> str:
    return render_feed_header(config.site_name, config.site_url, config.description, config.feed_type)


def generate_feed_footer() -> str:
    return render_feed_footer()


def batch_iterator(items: Sequence[T], batch_size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most batch_size items."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    for i in range(0, len(items), batch_size):
        yield items[i:i + batch_size]


def process_batch(products: Sequence[Product], config: FeedConfig) -> BatchResult:
    """Render every variant of every product in the batch."""
    format_item = default_item_formatter(config.feed_type, config.shipping)
    parts: List[str] = []
    item_count = 0
    error_count = 0

    for product in products:
        result = process_product_variants(
            product,
            config.site_url,
            config.site_name,
            config.image_base_url,
            format_item,
            config.price_currency,
        )
        parts.extend(result.items)
        item_count += len(result.items)
        error_count += len(result.errors)

    return BatchResult(xml=''.join(parts), item_count=item_count, error_count=error_count)


def estimate_feed_size(product_count: int) -> int:
    """Rough feed size in bytes, about 2 KiB per product."""
    return product_count * AVG_ITEM_BYTES + HEADER_FOOTER_BYTES


class FeedStream:
    """
    Single-pass async iterator of encoded XML chunks.

    Chunks: the header, one chunk per batch, then the footer together with a
    statistics comment. A product that fails to format adds to error_count
    and contributes no items; it never aborts the feed.
    """

    def __init__(
        self,
        products: List[Product],
        config: FeedConfig,
        all_products: Optional[List[Product]] = None,
        progress_log_interval_ms: int = 10000
    ):
        """
        Args:
            products: Products to render, in output order
            config: Feed configuration (publisher, site, batch size)
            all_products: Catalog before filtering, for statistics
            progress_log_interval_ms: Minimum gap between progress logs
        """
        self.products = products
        self.config = config
        self.all_products = all_products if all_products is not None else products
        self.batch_size = config.batch_size or DEFAULT_BATCH_SIZE
        self.progress = FeedProgress(len(products), progress_log_interval_ms)

        self.state = StreamState.PENDING
        self.processed_count = 0
        self.item_count = 0
        self.error_count = 0
        self.batches_sent = 0
        self.cancelled = False
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("FeedStream can only be consumed once")
        self._consumed = True
        return self._generate()

    def _stats_comment(self, start_time: float) -> str:
        stats = calculate_feed_stats(self.all_products, self.products, self.error_count, start_time)
        return (
            "\n<!-- Feed Statistics\n"
            f"  Total Products: {stats.total_products}\n"
            f"  Eligible Products: {stats.eligible_products}\n"
            f"  Total Variants: {stats.total_variants}\n"
            f"  Items Generated: {self.item_count}\n"
            f"  Skipped Products: {stats.skipped_products}\n"
            f"  Errors: {stats.total_errors}\n"
            f"  Processing Time: {stats.processing_time_ms / 1000:.2f}s\n"
            f"  Avg Time/Product: {stats.average_time_per_product:.2f}ms\n"
            "-->"
        )

    async def _generate(self) -> AsyncIterator[bytes]:
        start_time = time.monotonic()
        feed_type = self.config.feed_type

        try:
            self.state = StreamState.HEADER_SENT
            yield generate_feed_header(self.config).encode('utf-8')
            logger.info(f"Started {feed_type} feed stream: products={len(self.products)}, batch_size={self.batch_size}, memory={get_memory_usage()}")

            for batch in batch_iterator(self.products, self.batch_size):
                self.state = StreamState.EMITTING_BATCHES
                result = process_batch(batch, self.config)

                self.processed_count += len(batch)
                self.item_count += result.item_count
                self.error_count += result.error_count
                self.progress.increment(len(batch))

                if self.progress.should_log():
                    logger.info(f"Feed generation progress: {self.progress.get_progress()}, errors={self.error_count}, memory={get_memory_usage()}")

                self.batches_sent += 1
                yield result.xml.encode('utf-8')
                # Let other requests run between batches
                await asyncio.sleep(0)

            self.state = StreamState.FOOTER_SENT
            logger.info(
                f"Feed generation complete: feed_type={feed_type}, products={self.processed_count}, "
                f"items={self.item_count}, errors={self.error_count}, memory={get_memory_usage()}"
            )
            yield (generate_feed_footer() + self._stats_comment(start_time)).encode('utf-8')

        except (GeneratorExit, asyncio.CancelledError):
            if self.state is not StreamState.FOOTER_SENT:
                self.cancelled = True
                logger.warning(
                    f"Feed generation cancelled by client: processed={self.processed_count}, total={len(self.products)}"
                )
            raise
        finally:
            self.state = StreamState.CLOSED
