"""Page session: the per-document side of the client runtime.

When a document loads with optimization off, the session records a
baseline. With optimization on, it strips the live document, keeps
watching it for new content, and once the page has loaded and settled it
measures again, builds a snapshot and reports metrics to the background
service.

Every background answer is checked against the navigation it was issued
for; answers for a page that has since navigated away are dropped.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from page_compressor.client.messaging import MessageChannel
from page_compressor.config import Config
from page_compressor.models.schemas import Metrics
from page_compressor.services.live_dom import LiveDocument, LiveDomOptimizer
from page_compressor.services.metrics import (
    Baseline,
    Measurement,
    PerformanceSample,
    baseline_from_sample,
    derive,
    resolve_baseline,
)
from page_compressor.services.optimizer import OptimizeOptions, RemovalCounts
from page_compressor.services.snapshot import OptimizedArtifact, SnapshotBuilder
from page_compressor.services.urls import hostname_of

logger = logging.getLogger(__name__)

OPTIMIZED_MARKER = "data-compressor-optimized"

PerformanceProbe = Callable[[], Awaitable[PerformanceSample]]
AsyncAction = Callable[[], Awaitable[None]]


async def _noop() -> None:
    return None


class PageSession:
    """Optimization lifecycle of the documents shown in one tab."""

    def __init__(
        self,
        channel: MessageChannel,
        document: LiveDocument,
        probe: PerformanceProbe,
        wait_loaded: Optional[AsyncAction] = None,
        reload: Optional[AsyncAction] = None,
        settle_delay_seconds: Optional[float] = None,
        snapshot_builder: Optional[SnapshotBuilder] = None,
    ):
        self.channel = channel
        self.document = document
        self._probe = probe
        self._wait_loaded = wait_loaded or _noop
        self._reload = reload or _noop
        self.settle_delay_seconds = (
            settle_delay_seconds if settle_delay_seconds is not None else Config.settle_delay_seconds()
        )
        self.snapshot_builder = snapshot_builder or SnapshotBuilder()
        self.optimizer = LiveDomOptimizer()
        self.navigation_id = 0
        self.is_optimized = False
        self.counts = RemovalCounts()
        self.baseline: Optional[Baseline] = None
        self.metrics: Optional[Metrics] = None
        self.artifact: Optional[OptimizedArtifact] = None

    @property
    def url(self) -> str:
        return self.document.url

    def navigate(self, document: LiveDocument) -> int:
        """Swap in a new document. Pending answers for the old one become stale."""
        self.optimizer.disconnect()
        self.optimizer = LiveDomOptimizer()
        self.document = document
        self.navigation_id += 1
        self.is_optimized = False
        self.counts = RemovalCounts()
        self.baseline = None
        self.metrics = None
        self.artifact = None
        return self.navigation_id

    def _is_current(self, navigation_id: int) -> bool:
        if navigation_id != self.navigation_id:
            logger.debug("Dropping stale response for navigation %d", navigation_id)
            return False
        return True

    def _is_own_site(self) -> bool:
        return hostname_of(self.url) in Config.exempt_hosts()

    async def check_and_apply(self) -> None:
        """Entry point on document load: record a baseline or optimize."""
        navigation_id = self.navigation_id
        if self._is_own_site():
            return

        state = await self.channel.request("getState")
        if not self._is_current(navigation_id) or not state:
            return

        if not state.get("extensionEnabled"):
            await self.capture_baseline(navigation_id)
            return

        root = self.document.root
        if root.get(OPTIMIZED_MARKER) == "1":
            return
        root[OPTIMIZED_MARKER] = "1"
        await self.optimize_page(navigation_id, remove_css=state.get("cssRemovalEnabled") is not False)

    async def capture_baseline(self, navigation_id: int) -> Optional[Baseline]:
        """Measure the unoptimized page after load and store it as the baseline."""
        await self._wait_loaded()
        if not self._is_current(navigation_id):
            return None
        baseline = baseline_from_sample(await self._probe())
        await self.channel.request("storeBaseline", url=self.url, baseline=baseline.to_dict())
        self.baseline = baseline
        return baseline

    async def optimize_page(self, navigation_id: int, remove_css: bool) -> Optional[Metrics]:
        if self.is_optimized:
            return self.metrics

        response = await self.channel.request("getBaseline", url=self.url)
        if not self._is_current(navigation_id):
            return None

        stored = None
        if response and response.get("baseline"):
            stored = Baseline.from_dict(response["baseline"])
        # Without an optimization-off baseline, "before" is measured right now
        current = await self._probe() if stored is None else None
        self.baseline = resolve_baseline(stored, current)

        options = OptimizeOptions(remove_css=remove_css)
        self.counts = self.optimizer.apply(self.document, options)
        self.optimizer.observe(self.document, options)
        self.is_optimized = True

        await self._wait_loaded()
        if self.settle_delay_seconds:
            await asyncio.sleep(self.settle_delay_seconds)
        if not self._is_current(navigation_id):
            return None

        after = await self._probe()
        self.artifact = self.snapshot_builder.build(
            self.document.soup,
            title=self.document.title,
            derived_from=self.baseline,
        )
        removed = self.counts + self.optimizer.dynamic_counts
        self.metrics = derive(self.baseline, Measurement(after.load_time_ms, self.artifact.byte_size), removed)
        metrics = self.metrics.model_dump(by_alias=True)

        await self.channel.request("storeMetrics", url=self.url, metrics=metrics)
        await self.channel.request(
            "setCachedData",
            url=self.url,
            cssRemovalEnabled=remove_css,
            data={"html": self.artifact.html, "htmlBytes": self.artifact.byte_size, "metrics": metrics},
        )
        return self.metrics

    async def handle_message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Pushes from the background service."""
        action = message.get("action")
        if action == "applyState" and message.get("state"):
            state = message["state"]
            if not state.get("extensionEnabled"):
                # Heavy DOM changes can't be undone piecemeal; reload instead
                await self._reload()
                return {"success": True}
            options = OptimizeOptions(remove_css=state.get("cssRemovalEnabled") is not False)
            self.counts = self.counts + self.optimizer.apply(self.document, options)
            return {"success": True}
        if action == "getMetrics":
            return {"metrics": self.metrics.model_dump(by_alias=True) if self.metrics else None}
        return None
