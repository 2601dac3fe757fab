"""
Pagination for merchant feeds that are too large for a single document.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, TypeVar, Union


T = TypeVar("T")

PRODUCTS_PER_PAGE = 5000
DEFAULT_CACHE_MAX_AGE = 3600  # 1 hour
DEFAULT_CACHE_S_MAX_AGE = 7200  # 2 hours (CDN)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}


@dataclass
class PaginationMetadata:
    current_page: int
    total_pages: int
    total_products: int
    start_index: int
    end_index: int
    products_in_page: int
    has_next_page: bool
    has_previous_page: bool


@dataclass
class PageValidation:
    is_valid: bool
    page_number: int
    error: Optional[str] = None

    @property
    def status_code(self) -> int:
        """HTTP status for the caller: 200, 400 for bad input, 404 for out of range."""
        if self.is_valid:
            return 200
        if self.page_number >= 1:
            return 404
        return 400


def calculate_pagination_metadata(
    total_products: int,
    current_page: int,
    products_per_page: int = PRODUCTS_PER_PAGE
) -> PaginationMetadata:
    """
    Compute page boundaries. Recomputed for every request from the current
    product count.
    """
    if products_per_page < 1:
        raise ValueError("products_per_page must be >= 1")

    total_pages = math.ceil(total_products / products_per_page)
    start_index = (current_page - 1) * products_per_page
    end_index = min(start_index + products_per_page, total_products)
    products_in_page = max(end_index - start_index, 0)

    return PaginationMetadata(
        current_page=current_page,
        total_pages=total_pages,
        total_products=total_products,
        start_index=start_index,
        end_index=end_index,
        products_in_page=products_in_page,
        has_next_page=current_page < total_pages,
        has_previous_page=current_page > 1,
    )


def validate_page_number(page: Union[str, int], total_pages: int) -> PageValidation:
    """
    Validate a 1-based page number against the page count.

    Problems are reported in the result, not raised.
    """
    if isinstance(page, int) and not isinstance(page, bool):
        page_number = page
    else:
        try:
            page_number = int(str(page).strip())
        except ValueError:
            return PageValidation(is_valid=False, page_number=0, error="Invalid page number format")

    if page_number < 1:
        return PageValidation(
            is_valid=False,
            page_number=page_number,
            error="Page number must be greater than 0",
        )

    if page_number > total_pages:
        return PageValidation(
            is_valid=False,
            page_number=page_number,
            error=f"Page {page_number} does not exist (total pages: {total_pages})",
        )

    return PageValidation(is_valid=True, page_number=page_number)


def get_products_for_page(
    all_products: Sequence[T],
    page_number: int,
    products_per_page: int = PRODUCTS_PER_PAGE
) -> Sequence[T]:
    start_index = (page_number - 1) * products_per_page
    return all_products[start_index:start_index + products_per_page]


def generate_pagination_headers(
    metadata: PaginationMetadata,
    item_count: int = 0,
    error_count: int = 0
) -> Dict[str, str]:
    """Response headers for one feed page."""
    return {
        "Content-Type": "application/xml; charset=utf-8",
        "Cache-Control": (
            f"public, max-age={DEFAULT_CACHE_MAX_AGE}, s-maxage={DEFAULT_CACHE_S_MAX_AGE}, "
            "stale-while-revalidate=86400"
        ),
        "X-Page": str(metadata.current_page),
        "X-Total-Pages": str(metadata.total_pages),
        "X-Products-In-Page": str(metadata.products_in_page),
        "X-Total-Products": str(metadata.total_products),
        "X-Items-Generated": str(item_count),
        "X-Errors": str(error_count),
        "X-Has-Next-Page": str(metadata.has_next_page).lower(),
        "X-Has-Previous-Page": str(metadata.has_previous_page).lower(),
    }


def generate_index_headers(
    total_products: int,
    total_pages: int,
    products_per_page: int = PRODUCTS_PER_PAGE
) -> Dict[str, str]:
    """Response headers for the feed index."""
    return {
        "Content-Type": "application/xml; charset=utf-8",
        "Cache-Control": f"public, max-age={DEFAULT_CACHE_MAX_AGE}, s-maxage={DEFAULT_CACHE_S_MAX_AGE}",
        "X-Total-Pages": str(total_pages),
        "X-Total-Products": str(total_products),
        "X-Products-Per-Page": str(products_per_page),
    }


def generate_pagination_links(
    base_url: str,
    feed_path: str,
    metadata: PaginationMetadata
) -> Dict[str, str]:
    """self/first/last plus next/prev when they exist."""
    def build_url(page: int) -> str:
        return f"{base_url.rstrip('/')}/{feed_path.strip('/')}/pages/{page}"

    links = {
        "self": build_url(metadata.current_page),
        "first": build_url(1),
        "last": build_url(metadata.total_pages),
    }
    if metadata.has_next_page:
        links["next"] = build_url(metadata.current_page + 1)
    if metadata.has_previous_page:
        links["prev"] = build_url(metadata.current_page - 1)
    return links


def generate_pagination_comment(metadata: PaginationMetadata) -> str:
    return (
        "\n<!-- Pagination Information\n"
        f"  Current Page: {metadata.current_page} of {metadata.total_pages}\n"
        f"  Products in Page: {metadata.products_in_page}\n"
        f"  Total Products: {metadata.total_products}\n"
        f"  Range: {metadata.start_index + 1}-{metadata.end_index}\n"
        "-->"
    )


def calculate_optimal_page_size(total_products: int) -> Dict[str, Union[int, str]]:
    """Suggest a page size for a catalog of the given size."""
    if total_products <= 1000:
        return {
            "page_size": max(total_products, 1),
            "total_pages": 1,
            "reason": "Small catalog, single page recommended",
        }

    if total_products <= 10000:
        page_size, reason = 2500, "Medium catalog, 2.5k products per page"
    elif total_products <= 100000:
        page_size, reason = 5000, "Large catalog, 5k products per page"
    else:
        page_size, reason = 10000, "Very large catalog, 10k products per page"

    return {
        "page_size": page_size,
        "total_pages": math.ceil(total_products / page_size),
        "reason": reason,
    }
