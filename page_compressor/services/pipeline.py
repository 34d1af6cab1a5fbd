"""Server-side optimization pipeline: validate, fetch, optimize, measure, cache."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from page_compressor.models.schemas import Metrics
from page_compressor.services.cache import CacheKey, CacheStore, OptimizedPage, get_cache, get_metrics_store
from page_compressor.services.fetcher import FetchResult, fetch_website
from page_compressor.services.metrics import Baseline, calculate_server_metrics
from page_compressor.services.optimizer import OptimizeOptions, optimize_html
from page_compressor.services.snapshot import OptimizedArtifact
from page_compressor.services.urls import normalize_url

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[FetchResult]]


@dataclass
class PipelineResult:
    """Outcome of one optimize request."""

    url: str
    html: str
    metrics: Optional[Metrics]
    cached: bool

    def metrics_dict(self) -> Dict:
        return self.metrics.model_dump(by_alias=True) if self.metrics is not None else {}


class OptimizationPipeline:
    """
    Runs fetch + parse optimization for a URL and caches the result.

    Concurrent requests for the same uncached key wait on one per-key lock, so
    a single process fetches each key at most once per TTL window. Separate
    processes can still both fetch; the later write wins.
    """

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        metrics_store: Optional[CacheStore] = None,
        fetcher: Optional[Fetcher] = None,
    ):
        self.cache = cache if cache is not None else get_cache()
        self.metrics_store = metrics_store if metrics_store is not None else get_metrics_store()
        self.fetcher = fetcher or fetch_website
        self._locks: Dict[CacheKey, asyncio.Lock] = {}

    def _lock_for(self, key: CacheKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _from_cache(self, url: str, key: CacheKey) -> Optional[PipelineResult]:
        page = self.cache.get(key)
        if page is None:
            return None
        logger.info("Cache hit for %s", url)
        return PipelineResult(url=url, html=page.artifact.html, metrics=page.metrics, cached=True)

    async def optimize(self, url: Optional[str], options: Optional[OptimizeOptions] = None) -> PipelineResult:
        """
        Optimize a page, serving from cache when possible.

        Raises:
            InvalidInput: malformed or missing URL (nothing is fetched).
            UpstreamFetchFailure: the target could not be fetched. The cache
                is left untouched.
        """
        options = options or OptimizeOptions()
        target = normalize_url(url)
        key = CacheKey.for_options(target, options)

        hit = self._from_cache(target, key)
        if hit is not None:
            return hit

        lock = self._lock_for(key)
        try:
            async with lock:
                hit = self._from_cache(target, key)
                if hit is not None:
                    return hit
                return await self._run(target, key, options)
        finally:
            if not lock.locked():
                self._locks.pop(key, None)

    async def _run(self, url: str, key: CacheKey, options: OptimizeOptions) -> PipelineResult:
        fetched = await self.fetcher(url)
        result = optimize_html(fetched.html, options)

        baseline = Baseline(load_time_ms=fetched.load_time_ms, html_byte_size=fetched.original_size)
        metrics = calculate_server_metrics(baseline, result.html, result.counts)
        artifact = OptimizedArtifact(
            html=result.html,
            byte_size=metrics.after_size,
            derived_from=baseline,
        )

        self.cache.put(key, OptimizedPage(artifact=artifact, metrics=metrics))
        self.metrics_store.put(url, metrics.model_dump(by_alias=True))
        logger.info(
            "Optimized %s: %d -> %d bytes, %d resources removed",
            url,
            metrics.before_size,
            metrics.after_size,
            metrics.total_resources_removed,
        )
        return PipelineResult(url=url, html=result.html, metrics=metrics, cached=False)


# Global pipeline instance
_pipeline: Optional[OptimizationPipeline] = None


def get_pipeline() -> OptimizationPipeline:
    """Get the global pipeline instance."""
    global _pipeline
    if _pipeline is None:
        _pipeline = OptimizationPipeline()
    return _pipeline
