"""Bounded-size text snapshots of optimized pages.

The snapshot is a plain-text rendition of the page wrapped in a small fixed
HTML shell, meant for caching and display. Its size is measured in UTF-8
bytes against a budget of 50 KiB by default.

Truncation is a single retry: if the first build is over budget, the text is
cut in proportion to the overshoot (with a 10% margin, never below 500
characters) and the shell is rebuilt once. That second result is accepted as
is, so text heavy in multi-byte characters can still end up slightly over.
"""
import html
from dataclasses import dataclass
from typing import Optional, Union

from bs4 import BeautifulSoup, Tag
from bs4.element import Comment, Declaration, Doctype, ProcessingInstruction

from page_compressor.config import Config
from page_compressor.services.metrics import Baseline

EMPTY_TEXT = "(no text content)"
MIN_TRUNCATED_CHARS = 500
SAFETY_MARGIN = 0.9

_HIDDEN_TAGS = ["script", "style", "noscript", "template", "head", "title"]
_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)
_SHELL_CSS = (
    "body{font-family:system-ui,-apple-system,Segoe UI,sans-serif;line-height:1.6;margin:0;padding:14px;color:#111}"
    "a{color:#2563eb}pre{white-space:pre-wrap;word-break:break-word}"
)


@dataclass(frozen=True)
class OptimizedArtifact:
    """Snapshot HTML plus its byte size. Replaced, never edited."""

    html: str
    byte_size: int
    derived_from: Optional[Baseline] = None
    truncated: bool = False


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


def visible_text(document: Union[BeautifulSoup, Tag]) -> str:
    """Text a reader would see in the body, one stripped string per line."""
    root = document
    if isinstance(document, BeautifulSoup) and document.body is not None:
        root = document.body
    lines = []
    for string in root.find_all(string=True):
        if isinstance(string, _SKIPPED_STRINGS):
            continue
        if string.find_parent(_HIDDEN_TAGS) is not None:
            continue
        stripped = string.strip()
        if stripped:
            lines.append(stripped)
    return "\n".join(lines).replace("\x00", "").strip()


def render_shell(title: str, text: str) -> str:
    return (
        '<!doctype html><html><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width,initial-scale=1">'
        f"<title>{title}</title><style>{_SHELL_CSS}</style></head>"
        f"<body><pre>{html.escape(text)}</pre></body></html>"
    )


class SnapshotBuilder:
    """Builds the cached text snapshot for a document."""

    def __init__(self, target_bytes: Optional[int] = None):
        self.target_bytes = target_bytes if target_bytes is not None else Config.snapshot_target_bytes()

    def build(
        self,
        document: Union[BeautifulSoup, Tag],
        title: Optional[str] = None,
        derived_from: Optional[Baseline] = None,
    ) -> OptimizedArtifact:
        if title is None and isinstance(document, BeautifulSoup) and document.title and document.title.string:
            title = document.title.string
        return self.build_from_text(visible_text(document), title, derived_from)

    def build_from_text(
        self,
        text: str,
        title: Optional[str] = None,
        derived_from: Optional[Baseline] = None,
    ) -> OptimizedArtifact:
        safe_title = html.escape((title or "").strip()) or "Optimized"
        text = text or EMPTY_TEXT

        page = render_shell(safe_title, text)
        size = byte_size(page)
        if size <= self.target_bytes:
            return OptimizedArtifact(html=page, byte_size=size, derived_from=derived_from)

        ratio = self.target_bytes / size
        next_len = max(MIN_TRUNCATED_CHARS, int(len(text) * ratio * SAFETY_MARGIN))
        page = render_shell(safe_title, text[:next_len])
        return OptimizedArtifact(
            html=page,
            byte_size=byte_size(page),
            derived_from=derived_from,
            truncated=True,
        )
