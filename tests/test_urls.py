"""Tests for URL normalization."""
import pytest

from page_compressor.services.errors import InvalidInput
from page_compressor.services.urls import hostname_of, normalize_url


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("https://example.com", "https://example.com/"),
            ("HTTPS://Example.COM/Path?q=1#top", "https://example.com/Path?q=1"),
            ("http://example.com:8080/a", "http://example.com:8080/a"),
            ("  https://example.com/  ", "https://example.com/"),
            ("http://[::1]:3000/x", "http://[::1]:3000/x"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_url(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "not a url",
            "ftp://example.com/",
            "example.com",
            "https://",
            "http://host:notaport/",
            "https://exa mple.com/",
            "https://example..com/",
            "http://exa\x01mple.com/",
        ],
    )
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidInput, match="Invalid URL format"):
            normalize_url(raw)

    @pytest.mark.parametrize("raw", [None, ""])
    def test_requires_url(self, raw):
        with pytest.raises(InvalidInput, match="URL is required"):
            normalize_url(raw)


def test_hostname_of():
    assert hostname_of("http://LocalHost:5173/app") == "localhost"
    assert hostname_of("not a url") == ""
