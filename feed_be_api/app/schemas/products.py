"""
Product schemas for the COSMOS product API.
"""

from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional, List, Union, Dict, Any


class ProductImage(BaseModel):
    """Product image."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    src: Optional[str] = None
    alt: Optional[str] = None
    position: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v) if v is not None else None


class ProductOption(BaseModel):
    """Product option (e.g. Color, Size)."""
    model_config = ConfigDict(extra="ignore")

    name: str
    position: Optional[int] = None
    values: List[str] = []


class Variant(BaseModel):
    """
    Product variant. Price and availability stay optional here so that one
    incomplete variant does not reject the whole product page.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    sku: Optional[str] = None
    price: Optional[float] = None
    compare_at_price: Optional[float] = None
    available: Optional[bool] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    grams: Optional[float] = None
    featured_image: Optional[Union[str, Dict[str, Any]]] = None
    updated_at: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v)


class Product(BaseModel):
    """Product as returned by the COSMOS API."""
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    handle: str = ""
    body_html: Optional[str] = ""
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: List[str] = []
    images: List[ProductImage] = []
    variants: List[Variant] = []
    options: List[ProductOption] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    raw_json: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, v):
        """Upstream sends tags as a list, a comma-separated string or null."""
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    @field_validator("images", "variants", "options", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []


class ProductPageMeta(BaseModel):
    """Pagination info attached to a product page."""
    total: Optional[int] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    total_pages: Optional[int] = None


class ProductPage(BaseModel):
    """Paginated product listing response."""
    products: List[Product] = []
    meta: Optional[ProductPageMeta] = None
    skipped: int = 0  # malformed products dropped while parsing

    @field_validator("products", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []


class ProductResponse(BaseModel):
    """Single product response."""
    product: Product
