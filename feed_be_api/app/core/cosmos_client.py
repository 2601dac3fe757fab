"""
COSMOS product API client.
"""

import logging
from typing import Optional, Dict, List, Any
import httpx
from pydantic import ValidationError

from app.core.security import sanitize_dict_for_logging, sanitize_string_for_logging
from app.schemas.products import Product, ProductPage, ProductPageMeta, ProductResponse


logger = logging.getLogger(__name__)

# Upstream rejects larger pages
MAX_PAGE_LIMIT = 100
DEFAULT_FETCH_PAGE_SIZE = 250


class CosmosError(Exception):
    """Raised when a COSMOS API request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CosmosClient:
    """
    Async COSMOS REST API client.

    One instance is created at application startup and shared by all
    requests; call aclose() on shutdown.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize COSMOS client.

        Args:
            base_url: API base URL (e.g., https://api.example.com)
            api_key: Value for the X-API-Key header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport
        )

    def _build_url(self, endpoint: str) -> str:
        path = endpoint if endpoint.startswith('/') else f'/{endpoint}'
        return f"{self.base_url}/cosmos{path}"

    def _build_headers(self) -> Dict[str, str]:
        return {
            "X-API-Key": self.api_key,
            "User-Agent": "OriGenZ/1.0",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make HTTP request and decode the JSON body.

        Raises:
            CosmosError: On transport errors, non-2xx status or invalid JSON
        """
        url = self._build_url(endpoint)
        logger.debug(f"COSMOS API request: {method} {endpoint} params={sanitize_dict_for_logging(params or {})}")

        try:
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                headers=self._build_headers()
            )
        except httpx.RequestError as e:
            logger.error(f"COSMOS API request failed: {endpoint}: {e}")
            raise CosmosError(f"COSMOS API request error: {e}") from e

        if not response.is_success:
            logger.error(f"COSMOS API error: {endpoint}: HTTP {response.status_code}")
            raise CosmosError(
                f"COSMOS API error: {response.status_code} {response.reason_phrase} - {sanitize_string_for_logging(response.text[:200])}",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CosmosError(f"COSMOS API returned invalid JSON for {endpoint}") from e

        logger.debug(f"COSMOS API response received: {endpoint}")
        return data

    @staticmethod
    def _page_params(page: int, limit: int, fields: Optional[str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            'page': page,
            'limit': min(limit, MAX_PAGE_LIMIT),
        }
        if fields:
            params['fields'] = fields
        return params

    @staticmethod
    def _parse_page(data: Any, endpoint: str) -> ProductPage:
        """
        Validate a product listing one product at a time.

        Malformed products are logged and counted in `skipped`; the rest of
        the page is kept.

        Raises:
            CosmosError: If the listing itself is not a product page
        """
        if not isinstance(data, dict) or not isinstance(data.get("products") or [], list):
            raise CosmosError(f"COSMOS API returned an unexpected listing for {endpoint}")

        products: List[Product] = []
        skipped = 0
        for raw in data.get("products") or []:
            try:
                products.append(Product.model_validate(raw))
            except ValidationError as e:
                skipped += 1
                product_id = raw.get("id") if isinstance(raw, dict) else None
                logger.warning(
                    f"Skipping malformed product {product_id} from {endpoint}: {e.error_count()} validation error(s)"
                )

        meta = None
        if data.get("meta"):
            try:
                meta = ProductPageMeta.model_validate(data["meta"])
            except ValidationError:
                logger.warning(f"Ignoring malformed page meta from {endpoint}")

        return ProductPage(products=products, meta=meta, skipped=skipped)

    async def get_products(
        self,
        page: int = 1,
        limit: int = 50,
        fields: Optional[str] = None
    ) -> ProductPage:
        """
        Get one page of products. The limit is capped at 100.
        """
        data = await self._request("GET", "/products", params=self._page_params(page, limit, fields))
        return self._parse_page(data, "/products")

    async def search_products(
        self,
        query: str,
        page: int = 1,
        limit: int = 50,
        fields: Optional[str] = None
    ) -> ProductPage:
        """Search products by free text."""
        params = {'q': query, **self._page_params(page, limit, fields)}
        data = await self._request("GET", "/products/search", params=params)
        return self._parse_page(data, "/products/search")

    async def get_product(self, key: str) -> Product:
        """Get a single product by id or handle."""
        data = await self._request("GET", f"/products/{key}")
        try:
            return ProductResponse.model_validate(data).product
        except ValidationError as e:
            raise CosmosError(f"COSMOS API returned a malformed product for {key}") from e

    async def get_collection(
        self,
        handle: str,
        page: int = 1,
        limit: int = 50,
        fields: Optional[str] = None
    ) -> ProductPage:
        """Get products of a collection."""
        data = await self._request(
            "GET", f"/collections/{handle}", params=self._page_params(page, limit, fields)
        )
        return self._parse_page(data, f"/collections/{handle}")

    def get_image_url(self, path: str) -> str:
        """Build image URL served through the COSMOS CDN proxy."""
        image_path = path if path.startswith('/') else f'/{path}'
        return f"{self.base_url}/cosmos/cdn{image_path}"

    async def fetch_all_products(self, page_size: int = DEFAULT_FETCH_PAGE_SIZE) -> List[Product]:
        """
        Fetch the whole catalog page by page (for feeds and bulk operations).

        Stops at the first empty page or the first page shorter than the
        effective per-request limit. Nothing is cached and nothing is
        retried: any failing page raises and everything fetched so far is
        discarded. Malformed products are skipped but still count towards
        the page length.

        Args:
            page_size: Requested page size; capped at MAX_PAGE_LIMIT per request

        Returns:
            All products, in upstream order

        Raises:
            CosmosError: If any page request fails
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        effective_limit = min(page_size, MAX_PAGE_LIMIT)
        all_products: List[Product] = []
        skipped = 0
        page = 1

        while True:
            response = await self.get_products(page=page, limit=effective_limit)
            products = response.products
            received = len(products) + response.skipped

            if not received:
                break

            all_products.extend(products)
            skipped += response.skipped
            logger.debug(f"Fetched page {page}: count={len(products)}, skipped={response.skipped}, total={len(all_products)}")

            if received < effective_limit:
                break
            page += 1

        logger.info(f"Fetched {len(all_products)} products from COSMOS in {page} page(s), skipped={skipped}")
        return all_products

    async def aclose(self):
        """Close HTTP client."""
        await self.client.aclose()
