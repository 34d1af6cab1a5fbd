"""Metrics, PageSpeed and health endpoints."""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from page_compressor.models.schemas import (
    ErrorResponse,
    HealthResponse,
    MetricsResponse,
    PageSpeedResponse,
    StoreMetricsRequest,
    StoreMetricsResponse,
)
from page_compressor.services.cache import get_metrics_store
from page_compressor.services.errors import InvalidInput
from page_compressor.services.pagespeed import run_pagespeed
from page_compressor.services.urls import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter()

BAD_REQUEST = {400: {"model": ErrorResponse, "description": "Missing or invalid parameters"}}
NOT_FOUND = {404: {"model": ErrorResponse, "description": "Nothing stored for this URL"}}
UPSTREAM_FAILED = {500: {"model": ErrorResponse, "description": "PageSpeed request failed"}}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/api/metrics", response_model=StoreMetricsResponse, responses=BAD_REQUEST)
async def store_metrics(request: StoreMetricsRequest):
    """Store performance metrics reported for a URL."""
    if not request.url or not request.metrics:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "URL and metrics are required"},
        )

    get_metrics_store().put(request.url, {**request.metrics, "timestamp": _now()})
    return StoreMetricsResponse(success=True, url=request.url)


@router.get("/api/metrics", response_model=MetricsResponse, responses={**BAD_REQUEST, **NOT_FOUND})
async def get_metrics(url: Optional[str] = None):
    """Get stored metrics for a URL."""
    if not url:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "URL parameter is required"},
        )

    store = get_metrics_store()
    metrics = store.get(url)
    if metrics is None:
        # optimize runs store under the normalized URL
        try:
            metrics = store.get(normalize_url(url))
        except InvalidInput:
            metrics = None
    if metrics is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Metrics not found for this URL"},
        )

    return MetricsResponse(url=url, metrics=metrics)


@router.get(
    "/api/pagespeed",
    response_model=PageSpeedResponse,
    response_model_by_alias=True,
    responses={**BAD_REQUEST, **UPSTREAM_FAILED},
)
async def pagespeed(url: Optional[str] = None, strategy: str = "mobile"):
    """Fetch Google PageSpeed Insights metrics for a URL."""
    try:
        target = normalize_url(url)
        return await run_pagespeed(target, strategy)
    except InvalidInput as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    except Exception as e:
        logger.error("PageSpeed error: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to run PageSpeed", "message": str(e)},
        )


@router.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(status="ok", timestamp=_now())
