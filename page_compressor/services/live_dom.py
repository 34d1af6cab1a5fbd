"""Live document optimizer for the client runtime.

A ``LiveDocument`` is the page as the client sees it: a mutable tree that
keeps node identity across passes and notifies subscribers when new
content is inserted (lazy-loaded images, client-rendered widgets).

``LiveDomOptimizer`` strips images, video and CSS from it. Unlike the
server optimizer it can undo CSS removal without a reload, because it keeps
the removed stylesheet nodes and inline style values around.
"""
import copy
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag

from page_compressor.services.optimizer import (
    FONTS_STYLE_ID,
    NO_ANIM_CSS,
    NO_ANIM_STYLE_ID,
    PARSER,
    RESET_CSS,
    RESET_STYLE_ID,
    SYSTEM_FONTS_CSS,
    OptimizeOptions,
    RemovalCounts,
    clear_background_image,
    ensure_style,
    has_background_image,
    has_inline_style,
    is_font_link,
    is_heavy_node,
    is_removable_image,
    is_style_preload,
    is_style_tag,
    is_stylesheet_link,
    iter_tags,
    mutate_each,
    remove_each,
    strip_image,
)

logger = logging.getLogger(__name__)

SubtreeObserver = Callable[[Tag], None]


class LiveDocument:
    """A mutable document with subtree-added notifications."""

    def __init__(self, html: str = "", url: str = ""):
        self.soup = BeautifulSoup(html or "<html><head></head><body></body></html>", PARSER)
        self.url = url
        self._observers: List[SubtreeObserver] = []

    @property
    def title(self) -> str:
        if self.soup.title and self.soup.title.string:
            return self.soup.title.string.strip()
        return ""

    @property
    def root(self) -> Tag:
        return self.soup.find("html") or self.soup

    def serialize(self) -> str:
        return str(self.soup)

    def subscribe(self, observer: SubtreeObserver) -> Callable[[], None]:
        """Register an observer; returns a function that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def insert(self, markup: Union[str, Tag], parent: Optional[Tag] = None) -> List[Tag]:
        """Append new content under parent (default: body) and notify observers."""
        target = parent or self.soup.body or self.root
        if isinstance(markup, Tag):
            added = [markup]
        else:
            fragment = BeautifulSoup(markup, PARSER)
            added = [node for node in fragment.contents if isinstance(node, Tag)]

        for node in added:
            target.append(node.extract())

        for node in added:
            for observer in list(self._observers):
                if node.decomposed:
                    break
                observer(node)
        return added


@dataclass
class CssStash:
    """Removed stylesheet nodes and inline style values, kept for restore."""

    links: List[Tag] = field(default_factory=list)
    styles: List[Tag] = field(default_factory=list)
    inline: List[Tuple[Tag, str]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.links or self.styles or self.inline)

    def clear(self) -> None:
        self.links.clear()
        self.styles.clear()
        self.inline.clear()


class LiveDomOptimizer:
    """Optimizer for a live document (client runtime)."""

    def __init__(self):
        self.stash = CssStash()
        self.dynamic_counts = RemovalCounts()
        self._options: Optional[OptimizeOptions] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def apply(self, document: LiveDocument, options: OptimizeOptions) -> RemovalCounts:
        """Run one full pass. Re-running with the same options changes nothing."""
        soup = document.soup
        counts = RemovalCounts()

        if options.remove_css:
            counts = counts + self.remove_css(soup, soup)
        else:
            self.restore_css(soup)

        ensure_style(soup, NO_ANIM_STYLE_ID, NO_ANIM_CSS)

        if options.remove_images:
            counts.images += self.remove_images(soup)
        if options.remove_videos:
            counts.videos += self.remove_videos(soup)

        ensure_style(soup, FONTS_STYLE_ID, SYSTEM_FONTS_CSS)
        self._options = options
        return counts

    def remove_css(self, soup: BeautifulSoup, root: Union[BeautifulSoup, Tag]) -> RemovalCounts:
        """Stash, then strip stylesheets, style tags and inline styles under root."""
        counts = RemovalCounts()
        font_links = iter_tags(root, is_font_link)
        preloads = iter_tags(root, is_style_preload)
        links = iter_tags(root, is_stylesheet_link)
        styles = iter_tags(root, is_style_tag)

        self.stash.links.extend(copy.copy(node) for node in links if not is_font_link(node))
        self.stash.styles.extend(copy.copy(node) for node in styles)

        counts.fonts += remove_each(font_links, "font link")
        remove_each(preloads, "style preload")
        counts.css += remove_each(links, "stylesheet link")
        counts.css += remove_each(styles, "style")

        # root itself may have been one of the removed nodes
        if not root.decomposed:
            inline = iter_tags(root, has_inline_style)
            self.stash.inline.extend((node, node["style"]) for node in inline)

            def drop_style(tag: Tag) -> None:
                del tag["style"]

            counts.css += mutate_each(inline, drop_style, "inline style")

        ensure_style(soup, RESET_STYLE_ID, RESET_CSS)
        return counts

    def restore_css(self, soup: BeautifulSoup) -> None:
        """Undo remove_css without reloading: drop the reset, re-attach stashed CSS."""
        reset = soup.find(id=RESET_STYLE_ID)
        if reset is not None:
            reset.decompose()

        if self.stash.empty:
            return

        head = soup.head or soup.find("html") or soup
        for node in self.stash.links + self.stash.styles:
            head.append(copy.copy(node))
        for node, value in self.stash.inline:
            if not node.decomposed:
                node["style"] = value
        logger.debug(
            "Restored %d links, %d styles, %d inline styles",
            len(self.stash.links),
            len(self.stash.styles),
            len(self.stash.inline),
        )
        self.stash.clear()

    def remove_images(self, root: Union[BeautifulSoup, Tag]) -> int:
        removed = mutate_each(iter_tags(root, is_removable_image), strip_image, "image")
        mutate_each(iter_tags(root, has_background_image), clear_background_image, "background")
        return removed

    def remove_videos(self, root: Union[BeautifulSoup, Tag]) -> int:
        return remove_each(iter_tags(root, is_heavy_node), "video")

    # --- dynamic content ---------------------------------------------------

    def observe(self, document: LiveDocument, options: OptimizeOptions) -> None:
        """Keep optimizing content inserted after the initial pass."""
        if self._unsubscribe is not None:
            return
        self._options = options
        self._unsubscribe = document.subscribe(lambda node: self.on_subtree_added(document, node))

    def disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_subtree_added(self, document: LiveDocument, node: Tag) -> RemovalCounts:
        """Re-apply the CSS, image and video steps to one new subtree only."""
        options = self._options or OptimizeOptions()
        counts = RemovalCounts()

        if options.remove_css and not node.decomposed:
            counts = counts + self.remove_css(document.soup, node)
        if options.remove_images and not node.decomposed:
            counts.images += self.remove_images(node)
        if options.remove_videos and not node.decomposed:
            counts.videos += self.remove_videos(node)

        self.dynamic_counts = self.dynamic_counts + counts
        return counts
