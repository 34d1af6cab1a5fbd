"""Resource classification shared by network interception and DOM scans.

Rules are applied in order and the first match wins:

1. image file extension
2. video file extension, or a video-hosting hostname
3. font file extension
4. ``.css`` extension, or a resource initiated by a ``<link>`` element
5. script file extension
6. resource type reported by the browser
7. other

Extensions are matched against the URL path only, so query strings and
fragments never hide them. Because the hostname check sits at step 2, a
stylesheet served from a video host classifies as video, while
``/assets/video.css`` on any other host is a stylesheet.
"""
import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit


class ResourceClass(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    FONT = "font"
    STYLESHEET = "stylesheet"
    SCRIPT = "script"
    OTHER = "other"


IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg", "ico"})
VIDEO_EXTENSIONS = frozenset({"mp4", "webm", "ogg", "mov"})
FONT_EXTENSIONS = frozenset({"woff", "woff2", "ttf", "otf", "eot"})
SCRIPT_EXTENSIONS = frozenset({"js", "mjs"})
VIDEO_HOST_MARKERS = ("youtube", "vimeo")

# Playwright's request.resource_type values
_BROWSER_TYPES = {
    "image": ResourceClass.IMAGE,
    "media": ResourceClass.VIDEO,
    "font": ResourceClass.FONT,
    "stylesheet": ResourceClass.STYLESHEET,
    "script": ResourceClass.SCRIPT,
}


@dataclass(frozen=True)
class ResourceDescriptor:
    """What is known about a resource: its URL and, optionally, how it was requested."""

    url: str
    initiator_type: Optional[str] = None
    resource_type: Optional[str] = None


def _split(url: str):
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return "", ""
    host = (parts.hostname or "").lower() if parts.netloc else ""
    return host, parts.path.lower()


def path_extension(url: str) -> str:
    """Return the lowercased extension of the URL's path, without the dot."""
    _, path = _split(url)
    ext = posixpath.splitext(path)[1]
    return ext[1:] if ext else ""


def is_video_host(url: str) -> bool:
    host, _ = _split(url)
    return any(marker in host for marker in VIDEO_HOST_MARKERS)


def classify(descriptor: ResourceDescriptor) -> ResourceClass:
    """Classify a resource. Pure function."""
    ext = path_extension(descriptor.url)

    if ext in IMAGE_EXTENSIONS:
        return ResourceClass.IMAGE
    if ext in VIDEO_EXTENSIONS or is_video_host(descriptor.url):
        return ResourceClass.VIDEO
    if ext in FONT_EXTENSIONS:
        return ResourceClass.FONT
    if ext == "css" or (descriptor.initiator_type or "").lower() == "link":
        return ResourceClass.STYLESHEET
    if ext in SCRIPT_EXTENSIONS:
        return ResourceClass.SCRIPT

    return _BROWSER_TYPES.get((descriptor.resource_type or "").lower(), ResourceClass.OTHER)


def classify_url(url: str, initiator_type: Optional[str] = None) -> ResourceClass:
    """Shorthand for classifying a bare URL."""
    return classify(ResourceDescriptor(url=url, initiator_type=initiator_type))
