"""PageSpeed Insights service (Google PSI).

Works without an API key but is rate limited. If PAGESPEED_API_KEY is set,
it is sent along.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from page_compressor.config import Config
from page_compressor.models.schemas import PageSpeedDisplay, PageSpeedMetrics, PageSpeedResponse
from page_compressor.services.errors import InvalidInput, UpstreamFetchFailure

logger = logging.getLogger(__name__)

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
STRATEGIES = ("mobile", "desktop")
PAGESPEED_TIMEOUT_SECONDS = 30.0


def _audit(audits: Dict[str, Any], audit_id: str, key: str) -> Any:
    return (audits.get(audit_id) or {}).get(key)


def summarize(url: str, strategy: str, data: Dict[str, Any]) -> PageSpeedResponse:
    """Pick the headline numbers out of a PSI response body."""
    lighthouse = data.get("lighthouseResult") or {}
    categories = lighthouse.get("categories") or {}
    audits = lighthouse.get("audits") or {}
    score = (categories.get("performance") or {}).get("score")

    return PageSpeedResponse(
        url=url,
        strategy=strategy,
        performance_score=round(score * 100) if score is not None else None,
        metrics=PageSpeedMetrics(
            fcp_ms=_audit(audits, "first-contentful-paint", "numericValue"),
            lcp_ms=_audit(audits, "largest-contentful-paint", "numericValue"),
            tbt_ms=_audit(audits, "total-blocking-time", "numericValue"),
            cls=_audit(audits, "cumulative-layout-shift", "numericValue"),
            si_ms=_audit(audits, "speed-index", "numericValue"),
        ),
        display=PageSpeedDisplay(
            fcp=_audit(audits, "first-contentful-paint", "displayValue"),
            lcp=_audit(audits, "largest-contentful-paint", "displayValue"),
            tbt=_audit(audits, "total-blocking-time", "displayValue"),
            cls=_audit(audits, "cumulative-layout-shift", "displayValue"),
            si=_audit(audits, "speed-index", "displayValue"),
        ),
    )


async def run_pagespeed(
    url: str,
    strategy: str = "mobile",
    client: Optional[httpx.AsyncClient] = None,
) -> PageSpeedResponse:
    """Run PSI for a URL and summarize it."""
    if strategy not in STRATEGIES:
        raise InvalidInput(f"strategy must be one of: {', '.join(STRATEGIES)}")

    params = {"url": url, "strategy": strategy}
    key = Config.pagespeed_api_key()
    if key:
        params["key"] = key

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=PAGESPEED_TIMEOUT_SECONDS)
    try:
        response = await client.get(PAGESPEED_ENDPOINT, params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise UpstreamFetchFailure(f"PageSpeed request failed: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    return summarize(url, strategy, data)
