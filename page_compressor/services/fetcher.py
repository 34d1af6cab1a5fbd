"""Website fetcher service.

Fetches HTML content from websites, follows redirects and measures load time.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from page_compressor.config import Config
from page_compressor.services.errors import UpstreamFetchFailure

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Upgrade-Insecure-Requests": "1",
}


@dataclass
class FetchResult:
    """A fetched page. ``status_code`` may be an error status when the body is usable."""

    html: str
    original_size: int
    load_time_ms: int
    status_code: int
    final_url: str

    @property
    def is_error_page(self) -> bool:
        return self.status_code >= 400


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


async def fetch_website(url: str, client: Optional[httpx.AsyncClient] = None) -> FetchResult:
    """
    Fetch a page's HTML.

    An error status that still carries a body counts as a successful fetch,
    so error pages can be optimized too. Timeouts, connection errors and
    error statuses without a body raise ``UpstreamFetchFailure``.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(
            timeout=Config.fetch_timeout_seconds(),
            follow_redirects=True,
            max_redirects=Config.fetch_max_redirects(),
            headers=BROWSER_HEADERS,
        )

    timeout = Config.fetch_timeout_seconds()
    start = time.perf_counter()
    try:
        # httpx timeouts are per phase; this caps the whole fetch, body included
        response = await asyncio.wait_for(client.get(url), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise UpstreamFetchFailure(f"Timed out fetching {url} after {timeout:g}s") from e
    except httpx.TimeoutException as e:
        raise UpstreamFetchFailure(f"Timed out fetching {url}: {e}") from e
    except httpx.TooManyRedirects as e:
        raise UpstreamFetchFailure(f"Too many redirects: {e}") from e
    except httpx.RequestError as e:
        raise UpstreamFetchFailure(f"No response from server: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    load_time = _elapsed_ms(start)
    html = response.text or ""

    if response.is_error and not html:
        raise UpstreamFetchFailure(f"Server responded with status {response.status_code} and no content")
    if response.is_error:
        logger.info("Fetched error page for %s (status %d), optimizing it anyway", url, response.status_code)

    return FetchResult(
        html=html,
        original_size=len(html.encode("utf-8")),
        load_time_ms=load_time,
        status_code=response.status_code,
        final_url=str(response.url),
    )
