"""
Diagnostics endpoints for a running cache.

The application is built around an explicit SWRCache; there is no global
instance.
"""
import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from config.settings import Settings, settings as default_settings
from .manager import SWRCache

logger = logging.getLogger("cache.api")


class InvalidateRequest(BaseModel):
    tags: List[str] = Field(..., min_length=1)


def create_app(cache: SWRCache, settings: Optional[Settings] = None) -> FastAPI:
    """Build a FastAPI app exposing stats and invalidation for cache."""
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="SWR Cache Diagnostics",
        description="Statistics and invalidation for an in-process SWR cache",
    )

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/cache/stats")
    def cache_stats():
        """Get cache statistics."""
        return cache.get_stats()

    @app.post("/cache/invalidate")
    def invalidate_tags(request: InvalidateRequest):
        """Invalidate every entry carrying any of the given tags."""
        count = cache.invalidate_by_tags(request.tags)
        logger.info(f"Invalidation requested for tags {request.tags}: {count} removed")
        return {"invalidated": count}

    @app.delete("/cache/{key}")
    def invalidate_key(key: str):
        """Invalidate a single entry."""
        if not cache.invalidate(key):
            raise HTTPException(status_code=404, detail=f"No cache entry for {key}")
        return {"invalidated": True}

    @app.delete("/cache")
    def clear_cache():
        """Clear all cached data."""
        return {"cleared": cache.clear()}

    return app
