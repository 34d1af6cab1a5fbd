"""Shared fixtures."""
import pytest
from fastapi.testclient import TestClient

from page_compressor.main import create_app
from page_compressor.services import cache as cache_module
from page_compressor.services import pipeline as pipeline_module
from page_compressor.services.cache import CacheStore
from page_compressor.services.errors import UpstreamFetchFailure
from page_compressor.services.fetcher import FetchResult
from page_compressor.services.pipeline import OptimizationPipeline

SAMPLE_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Example Domain</title>
  <link rel="stylesheet" href="/static/main.css">
  <link rel="preload" as="font" href="/fonts/inter.woff2">
  <style>body { color: red; } @font-face { font-family: Inter; src: url(/fonts/inter.woff2); }</style>
  <script src="/static/app.js"></script>
</head>
<body style="margin:0">
  <h1>Example Domain</h1>
  <img src="/img/logo.png" alt="Logo">
  <img src="/img/hero.jpg">
  <img alt="lazy, no source yet">
  <div style="background-image:url(/img/bg.png);padding:4px">Banner</div>
  <video src="/media/intro.mp4"></video>
  <iframe src="https://www.youtube.com/embed/abc123"></iframe>
  <p>This domain is for use in illustrative examples.</p>
  <noscript>Enable JavaScript</noscript>
</body>
</html>
"""


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeFetcher:
    """Stands in for fetch_website; records calls."""

    def __init__(self, html: str = SAMPLE_HTML, error: Exception = None):
        self.html = html
        self.error = error
        self.calls = []

    async def __call__(self, url: str) -> FetchResult:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return FetchResult(
            html=self.html,
            original_size=len(self.html.encode("utf-8")),
            load_time_ms=1200,
            status_code=200,
            final_url=url,
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stores(monkeypatch):
    page_cache = CacheStore(600)
    metrics_store = CacheStore(3600)
    monkeypatch.setattr(cache_module, "_page_cache", page_cache)
    monkeypatch.setattr(cache_module, "_metrics_store", metrics_store)
    return page_cache, metrics_store


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def client(monkeypatch, stores, fetcher):
    page_cache, metrics_store = stores
    pipeline = OptimizationPipeline(cache=page_cache, metrics_store=metrics_store, fetcher=fetcher)
    monkeypatch.setattr(pipeline_module, "_pipeline", pipeline)
    return TestClient(create_app())


@pytest.fixture
def failing_client(monkeypatch, stores):
    page_cache, metrics_store = stores
    fetcher = FakeFetcher(error=UpstreamFetchFailure("No response from server: connection refused"))
    pipeline = OptimizationPipeline(cache=page_cache, metrics_store=metrics_store, fetcher=fetcher)
    monkeypatch.setattr(pipeline_module, "_pipeline", pipeline)
    return TestClient(create_app())
