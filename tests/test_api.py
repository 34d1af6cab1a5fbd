"""End-to-end tests for the HTTP API."""
from bs4 import BeautifulSoup

from page_compressor.api import metrics as metrics_api
from page_compressor.services.errors import UpstreamFetchFailure
from page_compressor.services.optimizer import PARSER
from tests.conftest import SAMPLE_HTML


def _images_with_source(html):
    return len([img for img in BeautifulSoup(html, PARSER).find_all("img") if img.get("src")])


class TestOptimizeEndpoint:
    def test_optimize(self, client, fetcher):
        response = client.post("/api/optimize", json={"url": "https://example.com"})

        assert response.status_code == 200
        data = response.json()
        assert data["url"] == "https://example.com/"
        assert data["cached"] is False
        assert data["metrics"]["imagesRemoved"] == _images_with_source(SAMPLE_HTML)
        assert data["metrics"]["totalResourcesRemoved"] == 9
        assert fetcher.calls == ["https://example.com/"]

        soup = BeautifulSoup(data["optimizedHTML"], PARSER)
        assert soup.find("style") is None
        assert soup.find("link", rel="stylesheet") is None
        assert soup.find("script") is None

    def test_repeat_request_is_cached(self, client, fetcher):
        client.post("/api/optimize", json={"url": "https://example.com"})
        response = client.post("/api/optimize", json={"url": "https://example.com/"})

        assert response.json()["cached"] is True
        assert len(fetcher.calls) == 1

    def test_keep_css(self, client):
        response = client.post("/api/optimize", json={"url": "https://example.com", "removeCSS": False})

        data = response.json()
        assert response.status_code == 200
        assert data["metrics"]["cssRemoved"] == 0
        assert "stylesheet" in data["optimizedHTML"]

    def test_missing_url(self, client, fetcher):
        response = client.post("/api/optimize", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "URL is required"}
        assert fetcher.calls == []

    def test_malformed_url(self, client, fetcher):
        for url in ("not a url", "https://exa mple.com/"):
            response = client.post("/api/optimize", json={"url": url})
            assert response.status_code == 400
            assert response.json() == {"error": "Invalid URL format"}
        assert fetcher.calls == []

    def test_invalid_body(self, client):
        response = client.post("/api/optimize", json={"url": "https://example.com", "removeCSS": "sometimes"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_fetch_failure(self, failing_client, stores):
        response = failing_client.post("/api/optimize", json={"url": "https://unreachable.example"})

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Failed to optimize website"
        assert "No response from server" in data["message"]
        page_cache, _ = stores
        assert page_cache.size() == 0


class TestOptimizedPage:
    def test_serves_html(self, client):
        response = client.get("/optimize", params={"url": "https://example.com"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Example Domain" in response.text
        assert "<style" not in response.text

    def test_missing_url(self, client):
        response = client.get("/optimize")
        assert response.status_code == 400
        assert response.headers["content-type"].startswith("text/html")
        assert "URL parameter is required" in response.text

    def test_malformed_url(self, client):
        response = client.get("/optimize", params={"url": "nope"})
        assert response.status_code == 400
        assert "Invalid URL format" in response.text

    def test_fetch_failure(self, failing_client):
        response = failing_client.get("/optimize", params={"url": "https://unreachable.example"})
        assert response.status_code == 500
        assert "Failed to optimize website" in response.text


class TestMetricsEndpoints:
    def test_store_and_get(self, client):
        stored = client.post(
            "/api/metrics",
            json={"url": "https://example.com/", "metrics": {"beforeLoadTime": 1000, "afterLoadTime": 300}},
        )
        assert stored.status_code == 200
        assert stored.json() == {"success": True, "url": "https://example.com/"}

        response = client.get("/api/metrics", params={"url": "https://example.com/"})
        assert response.status_code == 200
        data = response.json()
        assert data["metrics"]["afterLoadTime"] == 300
        assert "timestamp" in data["metrics"]

    def test_store_requires_url_and_metrics(self, client):
        assert client.post("/api/metrics", json={"url": "https://example.com/"}).status_code == 400
        assert client.post("/api/metrics", json={"metrics": {"a": 1}}).status_code == 400

    def test_get_requires_url(self, client):
        response = client.get("/api/metrics")
        assert response.status_code == 400
        assert response.json() == {"error": "URL parameter is required"}

    def test_unknown_url(self, client):
        response = client.get("/api/metrics", params={"url": "https://nothing.example/"})
        assert response.status_code == 404
        assert response.json() == {"error": "Metrics not found for this URL"}

    def test_optimize_run_is_queryable(self, client):
        client.post("/api/optimize", json={"url": "https://example.com"})
        response = client.get("/api/metrics", params={"url": "https://example.com"})

        assert response.status_code == 200
        assert response.json()["metrics"]["imagesRemoved"] == 2


class TestPageSpeedEndpoint:
    def test_requires_url(self, client):
        response = client.get("/api/pagespeed")
        assert response.status_code == 400

    def test_bad_strategy(self, client):
        response = client.get("/api/pagespeed", params={"url": "https://example.com", "strategy": "tablet"})
        assert response.status_code == 400

    def test_upstream_failure(self, client, monkeypatch):
        async def broken(url, strategy="mobile"):
            raise UpstreamFetchFailure("PageSpeed request failed: quota")

        monkeypatch.setattr(metrics_api, "run_pagespeed", broken)
        response = client.get("/api/pagespeed", params={"url": "https://example.com"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to run PageSpeed", "message": "PageSpeed request failed: quota"}


class TestServiceEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["timestamp"]

    def test_root_lists_endpoints(self, client):
        data = client.get("/").json()
        assert data["endpoints"]["optimize"] == "POST /api/optimize"

    def test_openapi_documents_error_bodies(self, client):
        schema = client.get("/openapi.json").json()

        assert set(schema["components"]["schemas"]["ErrorResponse"]["properties"]) == {"error", "message"}
        optimize_responses = schema["paths"]["/api/optimize"]["post"]["responses"]
        assert optimize_responses["400"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
        assert "500" in optimize_responses
        assert "404" in schema["paths"]["/api/metrics"]["get"]["responses"]
