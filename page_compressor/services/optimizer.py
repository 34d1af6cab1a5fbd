"""HTML optimizer service.

Parses HTML with BeautifulSoup and strips:

- CSS (stylesheet links, style tags, inline styles)
- images (empties src, keeps alt text as a placeholder)
- videos, iframes and other heavy embeds
- web fonts
- scripts

The tree helpers here are shared with the live document optimizer in
``live_dom``; both implement the ``Optimizer`` capability and return the same
``RemovalCounts``.
"""
import html as html_lib
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple, Union

from bs4 import BeautifulSoup, Tag

from page_compressor.services.classifier import ResourceClass, classify_url, is_video_host
from page_compressor.services.errors import ParseFailure

logger = logging.getLogger(__name__)

PARSER = "html.parser"

RESET_STYLE_ID = "compressor-reset"
FONTS_STYLE_ID = "compressor-fonts"
NO_ANIM_STYLE_ID = "compressor-no-anim"
OWNED_STYLE_IDS = frozenset({RESET_STYLE_ID, FONTS_STYLE_ID, NO_ANIM_STYLE_ID})

ORIGINAL_SRC_ATTR = "data-original-src"
PLACEHOLDER_ATTR = "data-compressor-placeholder"

PLACEHOLDER_STYLE = (
    "background:#f0f0f0;min-height:50px;display:flex;align-items:center;"
    "justify-content:center;color:#666;font-size:12px;border:1px dashed #ccc"
)
BACKGROUND_FILL = "#f0f0f0"

RESET_CSS = "".join([
    "*{font-family:system-ui,-apple-system,BlinkMacSystemFont,'Segoe UI',sans-serif !important;box-sizing:border-box}",
    "body{background:#fff !important;color:#111 !important;margin:0;padding:8px;line-height:1.5}",
    "img{background:#f0f0f0;min-height:40px;display:flex;align-items:center;justify-content:center;"
    "color:#666;font-size:12px;border:1px dashed #ccc}",
    "a{color:#2563eb}",
])
SYSTEM_FONTS_CSS = "*{font-family:system-ui,-apple-system,sans-serif !important}"
NO_ANIM_CSS = "*{animation:none!important;transition:none!important;scroll-behavior:auto!important}"

HEAVY_TAGS = ("picture", "source", "svg", "canvas", "audio", "object", "embed", "iframe")
# Only these can carry a video through src; scripts and images never count as video
MEDIA_TAGS = ("audio", "source", "embed", "object", "iframe")
FONT_FACE_PATTERN = re.compile(r"@font-face\s*\{[^}]*\}", re.IGNORECASE)

FALLBACK_SHELL = (
    '<html><head><meta charset="UTF-8"><title>Optimized Page</title></head>'
    "<body>{body}</body></html>"
)


@dataclass
class OptimizeOptions:
    """Which resource families to strip."""

    remove_css: bool = True
    remove_images: bool = True
    remove_videos: bool = True
    remove_fonts: bool = True


@dataclass
class RemovalCounts:
    """Number of nodes removed or neutralized per resource family."""

    images: int = 0
    css: int = 0
    videos: int = 0
    fonts: int = 0

    def __add__(self, other: "RemovalCounts") -> "RemovalCounts":
        return RemovalCounts(
            images=self.images + other.images,
            css=self.css + other.css,
            videos=self.videos + other.videos,
            fonts=self.fonts + other.fonts,
        )

    @property
    def total(self) -> int:
        return self.images + self.css + self.videos + self.fonts


class Optimizer(Protocol):
    """Anything that strips heavy resources from a document tree in place."""

    def apply(self, document, options: OptimizeOptions) -> RemovalCounts:
        ...


@dataclass
class OptimizationResult:
    """Serialized output of a server-side optimization run."""

    html: str
    counts: RemovalCounts = field(default_factory=RemovalCounts)


# --- tree helpers ---------------------------------------------------------

def iter_tags(root: Union[BeautifulSoup, Tag], predicate: Callable[[Tag], bool]) -> List[Tag]:
    """Return root (when it is an element) and its descendants matching predicate."""
    found: List[Tag] = []
    if isinstance(root, Tag) and not isinstance(root, BeautifulSoup) and predicate(root):
        found.append(root)
    found.extend(root.find_all(predicate))
    return found


def _rel_values(tag: Tag) -> List[str]:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return [value.lower() for value in rel]


def is_owned(tag: Tag) -> bool:
    """True for nodes the optimizer itself created or restyled."""
    return tag.get("id") in OWNED_STYLE_IDS or tag.has_attr(PLACEHOLDER_ATTR)


def is_stylesheet_link(tag: Tag) -> bool:
    return tag.name == "link" and "stylesheet" in _rel_values(tag)


def is_font_link(tag: Tag) -> bool:
    if tag.name != "link":
        return False
    if "preload" in _rel_values(tag) and (tag.get("as") or "").lower() == "font":
        return True
    href = tag.get("href") or ""
    return bool(href) and classify_url(href) == ResourceClass.FONT


def is_style_preload(tag: Tag) -> bool:
    return (
        tag.name == "link"
        and "preload" in _rel_values(tag)
        and (tag.get("as") or "").lower() == "style"
    )


def is_style_tag(tag: Tag) -> bool:
    return tag.name == "style" and not is_owned(tag)


def has_inline_style(tag: Tag) -> bool:
    return tag.has_attr("style") and not is_owned(tag)


def is_removable_image(tag: Tag) -> bool:
    return tag.name == "img" and bool((tag.get("src") or "").strip())


def is_video_node(tag: Tag) -> bool:
    """Video elements, video-host iframes and media elements whose src is a video file."""
    if tag.name == "video":
        return True
    if tag.name not in MEDIA_TAGS:
        return False
    src = tag.get("src") or ""
    if not src:
        return False
    if tag.name == "iframe" and (is_video_host(src) or "video" in src.lower()):
        return True
    return classify_url(src) == ResourceClass.VIDEO


def is_heavy_node(tag: Tag) -> bool:
    return tag.name in HEAVY_TAGS or is_video_node(tag)


def parse_style(style: str) -> List[Tuple[str, str]]:
    declarations = []
    for chunk in style.split(";"):
        name, sep, value = chunk.partition(":")
        if sep and name.strip():
            declarations.append((name.strip().lower(), value.strip()))
    return declarations


def format_style(declarations: List[Tuple[str, str]]) -> str:
    return ";".join(f"{name}:{value}" for name, value in declarations)


def has_background_image(tag: Tag) -> bool:
    for name, value in parse_style(tag.get("style") or ""):
        lowered = value.lower()
        if name == "background-image" and lowered not in ("", "none"):
            return True
        if name == "background" and "url(" in lowered:
            return True
    return False


def clear_background_image(tag: Tag) -> None:
    kept = [
        (name, value)
        for name, value in parse_style(tag.get("style") or "")
        if name not in ("background-image", "background", "background-color")
    ]
    kept += [("background-image", "none"), ("background-color", BACKGROUND_FILL)]
    tag["style"] = format_style(kept)


def placeholder_text(tag: Tag) -> str:
    alt = (tag.get("alt") or "").strip()
    return f"[Image: {alt}]" if alt else "[Image removed]"


def strip_image(tag: Tag, styled: bool = True) -> None:
    """Stash the source, drop it and leave a text placeholder."""
    tag[ORIGINAL_SRC_ATTR] = tag.get("src")
    del tag["src"]
    if tag.has_attr("srcset"):
        del tag["srcset"]
    if styled:
        tag["style"] = PLACEHOLDER_STYLE
        tag[PLACEHOLDER_ATTR] = "1"
    tag.string = placeholder_text(tag)


def make_style(soup: BeautifulSoup, style_id: str, css: str) -> Tag:
    tag = soup.new_tag("style", id=style_id)
    tag.string = css
    return tag


def ensure_style(soup: BeautifulSoup, style_id: str, css: str) -> bool:
    """Inject a marker style once. Returns False if it was already there."""
    if soup.find(id=style_id) is not None:
        return False
    container = soup.head or soup.find("html") or soup
    container.append(make_style(soup, style_id, css))
    return True


def remove_each(nodes: List[Tag], describe: str) -> int:
    """Decompose nodes, skipping ones already gone with an ancestor."""
    removed = 0
    for node in nodes:
        if node.decomposed:
            continue
        try:
            node.decompose()
            removed += 1
        except Exception as e:  # pylint: disable=broad-except
            logger.warning("Failed to remove %s node: %s", describe, e)
    return removed


def mutate_each(nodes: List[Tag], mutate: Callable[[Tag], None], describe: str) -> int:
    """Apply a mutation per node; a failing node contributes zero."""
    changed = 0
    for node in nodes:
        try:
            mutate(node)
            changed += 1
        except Exception as e:  # pylint: disable=broad-except
            logger.warning("Failed to rewrite %s node: %s", describe, e)
    return changed


# --- parsing --------------------------------------------------------------

def _parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, PARSER)
    except Exception as e:  # pylint: disable=broad-except
        raise ParseFailure(str(e)) from e


def load_document(html: str) -> BeautifulSoup:
    """
    Parse fetched HTML, always returning a document with an <html> element.

    Fragments are wrapped in a minimal shell. Input the parser cannot handle
    at all is escaped and shown as text rather than failing the request.
    """
    try:
        soup = _parse(html)
    except ParseFailure as e:
        logger.warning("Could not parse document, wrapping raw text: %s", e)
        return BeautifulSoup(FALLBACK_SHELL.format(body=f"<pre>{html_lib.escape(html)}</pre>"), PARSER)

    if soup.find("html") is None:
        soup = BeautifulSoup(FALLBACK_SHELL.format(body=html), PARSER)
    return soup


# --- server optimizer -----------------------------------------------------

class HtmlOptimizer:
    """Optimizer for a static, parsed document (server runtime)."""

    def apply(self, document: BeautifulSoup, options: OptimizeOptions) -> RemovalCounts:
        counts = RemovalCounts()

        if options.remove_css:
            counts = counts + self._remove_css(document)
        else:
            # Text mode must stay style free, so these only go in when CSS is kept
            ensure_style(document, FONTS_STYLE_ID, SYSTEM_FONTS_CSS)
            ensure_style(document, NO_ANIM_STYLE_ID, NO_ANIM_CSS)

        if options.remove_images:
            counts.images += self._remove_images(document, styled=not options.remove_css)

        if options.remove_videos:
            counts.videos += remove_each(iter_tags(document, is_heavy_node), "video")

        if options.remove_fonts:
            counts.fonts += self._remove_fonts(document)

        remove_each(document.find_all(["script", "noscript"]), "script")
        return counts

    def _remove_css(self, document: BeautifulSoup) -> RemovalCounts:
        counts = RemovalCounts()
        counts.fonts += remove_each(iter_tags(document, is_font_link), "font link")
        counts.css += remove_each(iter_tags(document, is_stylesheet_link), "stylesheet link")
        remove_each(iter_tags(document, is_style_preload), "style preload")
        counts.css += remove_each(iter_tags(document, is_style_tag), "style")

        def drop_style(tag: Tag) -> None:
            del tag["style"]

        counts.css += mutate_each(iter_tags(document, has_inline_style), drop_style, "inline style")
        return counts

    def _remove_images(self, document: BeautifulSoup, styled: bool) -> int:
        removed = mutate_each(
            iter_tags(document, is_removable_image),
            lambda tag: strip_image(tag, styled=styled),
            "image",
        )
        mutate_each(iter_tags(document, has_background_image), clear_background_image, "background")
        return removed

    def _remove_fonts(self, document: BeautifulSoup) -> int:
        removed = remove_each(iter_tags(document, is_font_link), "font link")
        for style in document.find_all("style"):
            content = style.string or ""
            if "@font-face" in content.lower():
                style.string = FONT_FACE_PATTERN.sub("", content)
        return removed


def optimize_html(html: str, options: Optional[OptimizeOptions] = None) -> OptimizationResult:
    """Parse, optimize and serialize a fetched page."""
    options = options or OptimizeOptions()
    document = load_document(html)
    counts = HtmlOptimizer().apply(document, options)
    return OptimizationResult(html=str(document), counts=counts)

