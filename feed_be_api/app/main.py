"""
FastAPI application entry point.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.api.feeds import router as feeds_router
from app.config import get_settings
from app.deps import create_cosmos_client, create_redis
from app.schemas.common import HealthResponse, RedisHealthResponse

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    # Startup
    app.state.settings = settings
    app.state.cosmos_client = create_cosmos_client(settings)
    app.state.redis = create_redis(settings)
    logger.info(f"Feed API started: cosmos={settings.cosmos_api_base_url}, site={settings.site_url}")
    yield
    # Shutdown
    await app.state.cosmos_client.aclose()
    await app.state.redis.aclose()


app = FastAPI(
    title="Merchant Feed API",
    description="Google and Bing Merchant Center product feeds from the COSMOS catalog",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify allowed origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(feeds_router, prefix="/api")


@app.get("/api/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(ok=True)


@app.get("/api/health/redis", response_model=RedisHealthResponse, tags=["health"])
async def health_check_redis(request: Request):
    """Check Redis connection health."""
    try:
        await request.app.state.redis.ping()
        return RedisHealthResponse(ok=True, redis="connected")
    except Exception as e:
        return RedisHealthResponse(ok=False, redis="disconnected", error=str(e))


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Merchant Feed API",
        "version": "1.0.0",
        "docs": "/docs",
        "feeds": ["/api/feed", "/api/feed/index", "/api/feed/pages/{page}"],
    }
