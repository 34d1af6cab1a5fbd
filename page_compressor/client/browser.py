"""Headless browser driver for the client runtime.

Loads pages in Chromium through Playwright. Every request goes through
``route_request`` first, so blocked images, media, fonts, stylesheets and
scripts are aborted before any of their bytes are downloaded. After load,
the DOM is handed to a ``PageSession`` as a ``LiveDocument`` and the
optimized document is rendered back into the page.

Content the page adds afterwards is reported by an injected
MutationObserver through an exposed binding, optimized by the session's
live optimizer and written back in place of the original node.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import (
    Page,
    Request,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from page_compressor.client.background import BackgroundService
from page_compressor.client.messaging import MessageChannel
from page_compressor.client.page import PageSession
from page_compressor.config import Config
from page_compressor.models.schemas import Metrics
from page_compressor.services.classifier import ResourceDescriptor
from page_compressor.services.errors import UpstreamFetchFailure
from page_compressor.services.live_dom import LiveDocument
from page_compressor.services.metrics import PerformanceSample, measure
from page_compressor.services.optimizer import RemovalCounts
from page_compressor.services.snapshot import OptimizedArtifact

logger = logging.getLogger(__name__)

PERFORMANCE_SCRIPT = """
() => {
  const nav = performance.getEntriesByType('navigation')[0];
  return {
    navigation: nav ? nav.toJSON() : null,
    resources: performance.getEntriesByType('resource').map((e) => e.toJSON()),
  };
}
"""

SUBTREE_BINDING = "compressorSubtreeAdded"
NODE_ID_ATTR = "data-compressor-node"

# Tags each added element once, so nodes written back by REPLACE_SCRIPT are not reported again
OBSERVER_SCRIPT = """
([binding, attr]) => {
  let nextId = 0;
  const observer = new MutationObserver((mutations) => {
    for (const mutation of mutations) {
      for (const node of mutation.addedNodes) {
        if (node.nodeType !== Node.ELEMENT_NODE || node.hasAttribute(attr)) continue;
        const id = String(++nextId);
        node.setAttribute(attr, id);
        window[binding](id, node.outerHTML);
      }
    }
  });
  observer.observe(document.documentElement, { childList: true, subtree: true });
}
"""

REPLACE_SCRIPT = """
({ attr, id, html }) => {
  const node = document.querySelector(`[${attr}="${id}"]`);
  if (!node) return false;
  if (html) node.outerHTML = html;
  else node.remove();
  return true;
}
"""

@dataclass
class VisitResult:
    """What a browser visit produced."""

    url: str
    optimized: bool
    counts: RemovalCounts
    metrics: Optional[Metrics] = None
    artifact: Optional[OptimizedArtifact] = None


async def measure_page(page: Page) -> PerformanceSample:
    """Read the page's performance timeline."""
    data = await page.evaluate(PERFORMANCE_SCRIPT)
    return measure(data.get("navigation"), data.get("resources") or [])


class BrowserRuntime:
    """Visits pages with the background service's blocking rules in force."""

    def __init__(
        self,
        background: BackgroundService,
        headless: bool = True,
        navigation_timeout: Optional[float] = None,
        settle_delay_seconds: Optional[float] = None,
    ):
        self.background = background
        self.headless = headless
        self.navigation_timeout = (
            navigation_timeout if navigation_timeout is not None else Config.fetch_timeout_seconds()
        )
        self.settle_delay_seconds = settle_delay_seconds
        self.blocked_requests = 0

    async def route_request(self, route: Route, request: Request) -> None:
        """Abort requests the current rule set blocks; let everything else through."""
        if request.resource_type == "document":
            await route.continue_()
            return

        rule = self.background.policy.match(
            ResourceDescriptor(url=request.url, resource_type=request.resource_type)
        )
        if rule is None:
            await route.continue_()
            return

        self.blocked_requests += 1
        logger.debug("Blocked %s request: %s", rule.resource_class.value, request.url)
        await route.abort("blockedbyclient")

    async def sync_added_subtree(self, page: Page, session: PageSession, node_id: str, markup: str) -> str:
        """Optimize one subtree the page added and write the result back over it."""
        added = session.document.insert(markup)
        optimized = "".join(str(node) for node in added if not node.decomposed)
        await page.evaluate(REPLACE_SCRIPT, {"attr": NODE_ID_ATTR, "id": node_id, "html": optimized})
        return optimized

    async def watch_added_content(self, page: Page, session: PageSession) -> None:
        """Route nodes the page adds from now on through the session's live optimizer."""

        async def on_added(source, node_id: str, markup: str) -> None:
            await self.sync_added_subtree(page, session, node_id, markup)

        await page.expose_binding(SUBTREE_BINDING, on_added)

    async def visit(self, url: str) -> VisitResult:
        """Load a URL, run the page session on it and return the outcome."""
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=self.headless)
            page = await browser.new_page()
            page.set_default_navigation_timeout(self.navigation_timeout * 1000)
            try:
                await page.route("**/*", self.route_request)
                logger.info("Loading %s", url)
                try:
                    await page.goto(url, wait_until="load")
                except PlaywrightTimeoutError as e:
                    raise UpstreamFetchFailure(f"Timed out loading {url}: {e}") from e

                document = LiveDocument(await page.content(), url=page.url)

                async def reload() -> None:
                    await page.reload(wait_until="load")

                async def probe() -> PerformanceSample:
                    return await measure_page(page)

                async def wait_loaded() -> None:
                    await page.wait_for_load_state("load")

                session = PageSession(
                    MessageChannel(self.background.handle),
                    document,
                    probe=probe,
                    wait_loaded=wait_loaded,
                    reload=reload,
                    settle_delay_seconds=self.settle_delay_seconds,
                )
                self.background.attach_tab(page.url, session.handle_message)
                await session.check_and_apply()

                if session.is_optimized:
                    await self.watch_added_content(page, session)
                    await page.set_content(document.serialize(), wait_until="domcontentloaded")
                    await page.evaluate(OBSERVER_SCRIPT, [SUBTREE_BINDING, NODE_ID_ATTR])
                    if session.settle_delay_seconds:
                        await asyncio.sleep(session.settle_delay_seconds)
            finally:
                self.background.attach_tab("", None)
                await browser.close()

        return VisitResult(
            url=document.url,
            optimized=session.is_optimized,
            counts=session.counts + session.optimizer.dynamic_counts,
            metrics=session.metrics,
            artifact=session.artifact,
        )
