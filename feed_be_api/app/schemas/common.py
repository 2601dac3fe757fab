"""
Common schemas.
"""

from pydantic import BaseModel
from typing import Optional


class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool = True


class RedisHealthResponse(BaseModel):
    ok: bool
    redis: str
    error: Optional[str] = None
