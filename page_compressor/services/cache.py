"""In-memory TTL caches for optimized pages and reported metrics."""
import threading
import time
from typing import Any, Callable, Dict, Generic, Hashable, NamedTuple, Optional, TypeVar

from page_compressor.config import Config
from page_compressor.models.schemas import Metrics
from page_compressor.services.optimizer import OptimizeOptions
from page_compressor.services.snapshot import OptimizedArtifact

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CacheKey(NamedTuple):
    """Normalized URL plus the optimization mode.

    Two CSS modes for one URL are distinct entries. The other flags default to
    on, which is the only mode the client runtime uses.
    """

    url: str
    remove_css: bool = True
    remove_images: bool = True
    remove_videos: bool = True
    remove_fonts: bool = True

    @classmethod
    def for_options(cls, url: str, options: OptimizeOptions) -> "CacheKey":
        return cls(url, options.remove_css, options.remove_images, options.remove_videos, options.remove_fonts)


class CacheEntry(Generic[V]):
    """A cached value and when it was written."""

    def __init__(self, value: V, created_at: float):
        self.value = value
        self.created_at = created_at

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        """Check if this entry has expired."""
        return now - self.created_at > ttl_seconds


class OptimizedPage(NamedTuple):
    """What the optimization cache holds: the page and its metrics."""

    artifact: OptimizedArtifact
    metrics: Optional[Metrics]


class CacheStore(Generic[K, V]):
    """
    Thread-safe key-value store with a fixed TTL per entry.

    Expiry is checked lazily on read; ``evict_expired`` sweeps everything.
    Writes are last-write-wins. There is no size bound besides the TTL.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[K, CacheEntry[V]] = {}
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> Optional[V]:
        """Get the value if present and not expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._ttl, self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def get_entry(self, key: K) -> Optional[CacheEntry[V]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._ttl, self._clock()):
                del self._entries[key]
                return None
            return entry

    def put(self, key: K, value: V) -> None:
        """Store a value, replacing any previous entry for the key."""
        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock())

    def delete(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def evict_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(self._ttl, now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self):
        """Clear all cache entries."""
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        """Return the number of stored entries, expired or not."""
        with self._lock:
            return len(self._entries)


# Global cache instances
_page_cache: Optional[CacheStore[CacheKey, OptimizedPage]] = None
_metrics_store: Optional[CacheStore[str, Dict[str, Any]]] = None


def get_cache() -> CacheStore[CacheKey, OptimizedPage]:
    """Get the global optimized page cache."""
    global _page_cache
    if _page_cache is None:
        _page_cache = CacheStore(Config.cache_ttl_seconds())
    return _page_cache


def get_metrics_store() -> CacheStore[str, Dict[str, Any]]:
    """Get the global per-URL metrics store."""
    global _metrics_store
    if _metrics_store is None:
        _metrics_store = CacheStore(Config.metrics_ttl_seconds())
    return _metrics_store
