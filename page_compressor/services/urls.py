"""Target URL validation and normalization."""
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from page_compressor.services.errors import InvalidInput

_ALLOWED_SCHEMES = ("http", "https")


def _valid_host(host: Optional[str]) -> bool:
    """Reject hosts no resolver would accept: blank, whitespace, control chars, bad labels."""
    if not host or not host.strip():
        return False
    if any(ch.isspace() or ord(ch) < 32 or ord(ch) == 127 for ch in host):
        return False
    try:
        host.encode("idna")
    except UnicodeError:
        return False
    return True


def normalize_url(url: Optional[str]) -> str:
    """
    Validate an absolute http(s) URL and return its normalized form.

    Scheme and host are lowercased, an empty path becomes "/" and the
    fragment is dropped, so "https://Example.com" and "https://example.com/#top"
    share one cache key.

    Raises:
        InvalidInput: if the URL is missing or not absolute.
    """
    if not url or not isinstance(url, str):
        raise InvalidInput("URL is required")

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as e:
        raise InvalidInput("Invalid URL format") from e

    if parts.scheme.lower() not in _ALLOWED_SCHEMES or not _valid_host(parts.hostname):
        raise InvalidInput("Invalid URL format")

    netloc = parts.hostname.lower()
    if ":" in netloc:
        netloc = f"[{netloc}]"
    if port is not None:
        netloc = f"{netloc}:{port}"
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((parts.scheme.lower(), netloc, parts.path or "/", parts.query, ""))


def hostname_of(url: str) -> str:
    """Return the lowercased hostname of a URL, or an empty string."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""
