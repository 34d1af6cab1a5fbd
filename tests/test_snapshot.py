"""Tests for bounded text snapshots."""
import re

from bs4 import BeautifulSoup

from page_compressor.services.metrics import Baseline
from page_compressor.services.optimizer import PARSER
from page_compressor.services.snapshot import (
    EMPTY_TEXT,
    MIN_TRUNCATED_CHARS,
    SnapshotBuilder,
    byte_size,
    visible_text,
)

TARGET = 50 * 1024


def _pre_text(page):
    return BeautifulSoup(page, PARSER).pre.get_text()


class TestVisibleText:
    def test_skips_hidden_content(self):
        soup = BeautifulSoup(
            "<html><head><title>T</title><style>p{}</style></head><body>"
            "<h1>Heading</h1><script>var x = 1;</script><!-- note -->"
            "<noscript>no js</noscript><p>  Body   text </p></body></html>",
            PARSER,
        )
        assert visible_text(soup) == "Heading\nBody   text"

    def test_fragment_without_body(self):
        soup = BeautifulSoup("<div>only<span>this</span></div>", PARSER)
        assert visible_text(soup) == "only\nthis"


class TestSnapshotBuilder:
    def test_small_page_within_budget(self):
        soup = BeautifulSoup("<html><head><title>Hi</title></head><body><p>a &lt; b</p></body></html>", PARSER)
        artifact = SnapshotBuilder(TARGET).build(soup)

        assert not artifact.truncated
        assert artifact.byte_size == byte_size(artifact.html)
        assert artifact.byte_size <= TARGET
        assert "<title>Hi</title>" in artifact.html
        assert "a &lt; b" in artifact.html

    def test_empty_page_gets_placeholder_text(self):
        soup = BeautifulSoup("<html><body><img></body></html>", PARSER)
        artifact = SnapshotBuilder(TARGET).build(soup)
        assert _pre_text(artifact.html) == EMPTY_TEXT

    def test_title_markup_is_escaped(self):
        artifact = SnapshotBuilder(TARGET).build_from_text("x", title="<b>Bold</b>")
        assert "<title>&lt;b&gt;Bold&lt;/b&gt;</title>" in artifact.html

    def test_title_entities_are_escaped(self):
        artifact = SnapshotBuilder(TARGET).build_from_text("x", title="Q&A \"live\"")
        assert "<title>Q&amp;A &quot;live&quot;</title>" in artifact.html
        assert BeautifulSoup(artifact.html, PARSER).title.string == "Q&A \"live\""

    def test_missing_title_defaults(self):
        artifact = SnapshotBuilder(TARGET).build_from_text("x", title="   ")
        assert "<title>Optimized</title>" in artifact.html

    def test_large_ascii_text_is_truncated_into_budget(self):
        text = "lorem ipsum " * 20000
        untruncated = SnapshotBuilder(10 ** 9).build_from_text(text)
        artifact = SnapshotBuilder(TARGET).build_from_text(text)

        assert artifact.truncated
        assert artifact.byte_size < untruncated.byte_size
        assert artifact.byte_size <= TARGET
        assert artifact.byte_size == byte_size(artifact.html)

    def test_multibyte_text_shrinks(self):
        text = "é" * 60000
        artifact = SnapshotBuilder(TARGET).build_from_text(text)
        assert artifact.truncated
        assert artifact.byte_size < byte_size(text)
        assert set(_pre_text(artifact.html)) == {"é"}

    def test_truncation_keeps_at_least_minimum_chars(self):
        """Only one retry is made, so a tiny budget can still be exceeded."""
        artifact = SnapshotBuilder(target_bytes=300).build_from_text("x" * 5000)

        assert artifact.truncated
        assert len(_pre_text(artifact.html)) == MIN_TRUNCATED_CHARS
        assert artifact.byte_size > 300

    def test_derived_from_is_carried(self):
        baseline = Baseline(load_time_ms=1000, html_byte_size=5000)
        artifact = SnapshotBuilder(TARGET).build_from_text("x", derived_from=baseline)
        assert artifact.derived_from is baseline

    def test_default_budget_is_50_kib(self):
        assert SnapshotBuilder().target_bytes == TARGET

    def test_shell_is_minimal(self):
        artifact = SnapshotBuilder(TARGET).build_from_text("hello")
        assert re.search(r"<script|<img|<link", artifact.html) is None
