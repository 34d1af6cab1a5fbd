"""Pydantic models for API requests and responses."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Metrics(BaseModel):
    """Before/after comparison for one optimization run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    before_load_time: float
    after_load_time: float
    load_time_reduction: float  # signed
    load_time_reduction_percent: float = 0.0
    before_size: int
    after_size: int
    size_reduction: int  # signed
    size_reduction_percent: float = 0.0
    images_removed: int = 0
    css_removed: int = 0
    videos_removed: int = 0
    fonts_removed: int = 0
    total_resources_removed: int = 0
    performance_gain_percent: float = 0.0  # clamped at 0, display only
    timestamp: Optional[str] = None


class OptimizeRequest(BaseModel):
    """Request to fetch and optimize a page."""

    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    remove_css: bool = Field(True, alias="removeCSS")
    remove_images: bool = Field(True, alias="removeImages")
    remove_videos: bool = Field(True, alias="removeVideos")
    remove_fonts: bool = Field(True, alias="removeFonts")


class OptimizeResponse(BaseModel):
    """Optimized page plus metrics."""

    model_config = ConfigDict(populate_by_name=True)

    optimized_html: str = Field(alias="optimizedHTML")
    metrics: Dict[str, Any]
    cached: bool
    url: str


class StoreMetricsRequest(BaseModel):
    """Metrics reported by a client for a URL."""

    url: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None


class StoreMetricsResponse(BaseModel):
    success: bool
    url: str


class MetricsResponse(BaseModel):
    """Stored metrics for a URL."""

    url: str
    metrics: Dict[str, Any]


class PageSpeedMetrics(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    fcp_ms: Optional[float] = None
    lcp_ms: Optional[float] = None
    tbt_ms: Optional[float] = None
    cls: Optional[float] = None
    si_ms: Optional[float] = None


class PageSpeedDisplay(BaseModel):
    fcp: Optional[str] = None
    lcp: Optional[str] = None
    tbt: Optional[str] = None
    cls: Optional[str] = None
    si: Optional[str] = None


class PageSpeedResponse(BaseModel):
    """Summary of a PageSpeed Insights run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    strategy: str
    performance_score: Optional[int] = None
    metrics: PageSpeedMetrics
    display: PageSpeedDisplay


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx JSON response. ``message`` is only set on 500s."""

    error: str
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
