"""
Feed management schemas.
"""

from pydantic import BaseModel
from typing import Dict, List, Literal, Optional


class CacheInvalidateResponse(BaseModel):
    """Result of dropping cached feeds for a publisher."""
    publisher: Literal["google", "bing"]
    keys: List[str]


class CacheWarmResult(BaseModel):
    success: bool
    regenerated: bool = False
    time_ms: int = 0
    error: Optional[str] = None


class CacheWarmResponse(BaseModel):
    """Per-publisher outcome of cache warming."""
    results: Dict[str, CacheWarmResult]
