"""Tests for resource classification."""

import pytest

from page_compressor.services.classifier import (
    ResourceClass,
    ResourceDescriptor,
    classify,
    classify_url,
    path_extension,
)


class TestClassify:
    """First-match classification rules."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://cdn.example.com/a.JPG", ResourceClass.IMAGE),
            ("https://cdn.example.com/icons/favicon.ico", ResourceClass.IMAGE),
            ("https://cdn.example.com/clip.webm", ResourceClass.VIDEO),
            ("https://cdn.example.com/fonts/inter.woff2", ResourceClass.FONT),
            ("https://cdn.example.com/site.css", ResourceClass.STYLESHEET),
            ("https://cdn.example.com/bundle.js", ResourceClass.SCRIPT),
            ("https://example.com/api/data", ResourceClass.OTHER),
        ],
    )
    def test_extension_rules(self, url, expected):
        assert classify_url(url) == expected

    def test_query_string_after_extension(self):
        """Extension is read from the path, not the trailing characters."""
        assert classify_url("https://cdn.example.com/photo.png?w=800&fmt=webp") == ResourceClass.IMAGE
        assert classify_url("https://cdn.example.com/theme.css?v=3#x") == ResourceClass.STYLESHEET

    def test_extension_only_in_query_does_not_match(self):
        assert classify_url("https://example.com/render?file=photo.png") == ResourceClass.OTHER

    def test_video_host(self):
        assert classify_url("https://www.youtube.com/embed/abc") == ResourceClass.VIDEO
        assert classify_url("https://player.vimeo.com/video/1") == ResourceClass.VIDEO

    def test_video_css_tie_break_is_stylesheet(self):
        """A path mentioning video with a .css extension is a stylesheet."""
        assert classify_url("/assets/video.css") == ResourceClass.STYLESHEET
        assert classify_url("https://example.com/assets/video.css") == ResourceClass.STYLESHEET

    def test_video_host_beats_stylesheet(self):
        """The host rule comes before the stylesheet rule."""
        assert classify_url("https://www.youtube.com/s/player/base.css") == ResourceClass.VIDEO

    def test_image_beats_link_initiator(self):
        descriptor = ResourceDescriptor(url="https://example.com/favicon.ico", initiator_type="link")
        assert classify(descriptor) == ResourceClass.IMAGE

    def test_link_initiator_is_stylesheet(self):
        descriptor = ResourceDescriptor(url="https://fonts.googleapis.com/css2?family=Inter", initiator_type="link")
        assert classify(descriptor) == ResourceClass.STYLESHEET

    def test_browser_resource_type_fallback(self):
        descriptor = ResourceDescriptor(url="https://example.com/stream", resource_type="media")
        assert classify(descriptor) == ResourceClass.VIDEO
        descriptor = ResourceDescriptor(url="https://example.com/x", resource_type="xhr")
        assert classify(descriptor) == ResourceClass.OTHER

    def test_path_extension(self):
        assert path_extension("https://example.com/a/b.tar.gz?x=1") == "gz"
        assert path_extension("https://example.com/") == ""
