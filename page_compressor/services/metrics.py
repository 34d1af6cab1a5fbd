"""Metrics calculator service.

Turns a baseline measurement and a post-optimization measurement into the
``Metrics`` shown on the dashboard. Reduction fields keep their sign (an
optimization can make a page slower or bigger, e.g. because of the injected
reset styles); only ``performance_gain_percent`` is clamped at zero.

Removal counts come from whichever optimizer ran. The client counts live
nodes at mutation time, the server counts nodes in a static parse tree, so
the two are not expected to agree for the same URL.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from page_compressor.models.schemas import Metrics
from page_compressor.services.classifier import ResourceClass, ResourceDescriptor, classify
from page_compressor.services.optimizer import RemovalCounts

# Server-side estimate: roughly 1 ms of load time per KiB saved
BYTES_PER_MS = 1024
MIN_LOAD_TIME_FRACTION = 0.1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ResourceCounts:
    images: int = 0
    css: int = 0
    videos: int = 0
    fonts: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"images": self.images, "css": self.css, "videos": self.videos, "fonts": self.fonts}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResourceCounts":
        data = data or {}
        return cls(**{k: int(data.get(k, 0) or 0) for k in ("images", "css", "videos", "fonts")})


@dataclass
class PerformanceSample:
    """One reading of the browser's performance timeline."""

    load_time_ms: float = 0.0
    total_size: int = 0
    resource_counts: ResourceCounts = field(default_factory=ResourceCounts)
    resource_count: int = 0


@dataclass(frozen=True)
class Baseline:
    """The "before" measurement of a document."""

    load_time_ms: float
    html_byte_size: int
    resource_counts: ResourceCounts = field(default_factory=ResourceCounts)
    captured_at: datetime = field(default_factory=utcnow)
    # True when no optimization-off reading existed and the page was measured
    # as optimization started, so "before" may already be partly optimized
    fallback: bool = False

    def __post_init__(self):
        if self.load_time_ms < 0 or self.html_byte_size < 0:
            raise ValueError("Baseline measurements must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loadTimeMs": self.load_time_ms,
            "htmlByteSize": self.html_byte_size,
            "resourceCounts": self.resource_counts.to_dict(),
            "capturedAt": self.captured_at.isoformat(),
            "fallback": self.fallback,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Baseline":
        captured = data.get("capturedAt")
        return cls(
            load_time_ms=max(0.0, float(data.get("loadTimeMs", 0) or 0)),
            html_byte_size=max(0, int(data.get("htmlByteSize", 0) or 0)),
            resource_counts=ResourceCounts.from_dict(data.get("resourceCounts")),
            captured_at=datetime.fromisoformat(captured) if captured else utcnow(),
            fallback=bool(data.get("fallback", False)),
        )


@dataclass(frozen=True)
class Measurement:
    """The "after" side: load time of the optimized page and its byte size."""

    load_time_ms: float
    byte_size: int


def measure(navigation: Optional[Dict[str, Any]], resources: Iterable[Dict[str, Any]]) -> PerformanceSample:
    """
    Summarize performance timeline entries.

    ``navigation`` is a serialized PerformanceNavigationTiming entry and
    ``resources`` the PerformanceResourceTiming entries, as returned by
    ``performance.getEntriesByType(...).map(e => e.toJSON())``.
    """
    counts = ResourceCounts()
    total_size = 0
    resource_count = 0

    for entry in resources:
        resource_count += 1
        total_size += int(entry.get("transferSize") or 0)
        resource_class = classify(
            ResourceDescriptor(
                url=(entry.get("name") or "").lower(),
                initiator_type=entry.get("initiatorType"),
            )
        )
        if resource_class == ResourceClass.IMAGE:
            counts.images += 1
        elif resource_class == ResourceClass.STYLESHEET:
            counts.css += 1
        elif resource_class == ResourceClass.VIDEO:
            counts.videos += 1
        elif resource_class == ResourceClass.FONT:
            counts.fonts += 1

    load_time = 0.0
    if navigation:
        total_size += int(navigation.get("transferSize") or 0)
        load_time = float(navigation.get("loadEventEnd") or 0) - float(navigation.get("fetchStart") or 0)

    return PerformanceSample(
        load_time_ms=max(0.0, load_time),
        total_size=total_size,
        resource_counts=counts,
        resource_count=resource_count,
    )


def baseline_from_sample(sample: PerformanceSample, fallback: bool = False) -> Baseline:
    return Baseline(
        load_time_ms=sample.load_time_ms,
        html_byte_size=sample.total_size,
        resource_counts=sample.resource_counts,
        fallback=fallback,
    )


def resolve_baseline(stored: Optional[Baseline], current: Optional[PerformanceSample]) -> Baseline:
    """Use the stored optimization-off baseline, or measure now as a fallback."""
    if stored is not None:
        return stored
    if current is None:
        raise ValueError("A current sample is needed when no baseline was stored")
    return baseline_from_sample(current, fallback=True)


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


def derive(baseline: Baseline, after: Measurement, removed: Optional[RemovalCounts] = None) -> Metrics:
    """Compare before and after. Raw reductions stay signed."""
    removed = removed or RemovalCounts()
    load_time_reduction = baseline.load_time_ms - after.load_time_ms
    size_reduction = baseline.html_byte_size - after.byte_size
    load_time_percent = _percent(load_time_reduction, baseline.load_time_ms)

    return Metrics(
        before_load_time=baseline.load_time_ms,
        after_load_time=after.load_time_ms,
        load_time_reduction=load_time_reduction,
        load_time_reduction_percent=load_time_percent,
        before_size=baseline.html_byte_size,
        after_size=after.byte_size,
        size_reduction=size_reduction,
        size_reduction_percent=_percent(size_reduction, baseline.html_byte_size),
        images_removed=removed.images,
        css_removed=removed.css,
        videos_removed=removed.videos,
        fonts_removed=removed.fonts,
        total_resources_removed=removed.total,
        performance_gain_percent=max(0.0, load_time_percent),
        timestamp=utcnow().isoformat(),
    )


def estimate_after_load_time(load_time_ms: float, size_reduction: int) -> float:
    """
    Rough load time of the optimized page, assuming ~1 ms per KiB saved.

    This is a proxy, not a measurement. It never drops below 10% of the
    original load time.
    """
    return max(load_time_ms - size_reduction / BYTES_PER_MS, load_time_ms * MIN_LOAD_TIME_FRACTION)


def calculate_server_metrics(baseline: Baseline, optimized_html: str, removed: RemovalCounts) -> Metrics:
    """Metrics for a fetch-and-parse run, where "after" is estimated."""
    optimized_size = len(optimized_html.encode("utf-8"))
    after_load_time = estimate_after_load_time(
        baseline.load_time_ms, baseline.html_byte_size - optimized_size
    )
    return derive(baseline, Measurement(load_time_ms=round(after_load_time), byte_size=optimized_size), removed)
