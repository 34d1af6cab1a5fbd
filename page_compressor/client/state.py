"""Client state store.

Holds everything the client runtime keeps between pages: the two toggles,
the per-URL snapshot cache, reported metrics and optimization-off
baselines. It is process scoped and in memory. It is initialized by
``on_installed`` and carries no schema version; ``reset`` is the migration
path when the stored format changes.
"""
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from page_compressor.config import Config
from page_compressor.services.blocking import ToggleState
from page_compressor.services.cache import CacheKey, CacheStore
from page_compressor.services.metrics import Baseline

EXTENSION_ENABLED = "extensionEnabled"
CSS_REMOVAL_ENABLED = "cssRemovalEnabled"


class StateStore:
    """Toggle flags plus the cache, metrics and baseline maps."""

    def __init__(self, cache_ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        ttl = cache_ttl_seconds if cache_ttl_seconds is not None else Config.cache_ttl_seconds()
        self._flags: Dict[str, bool] = {}
        self.cache: CacheStore[CacheKey, Dict[str, Any]] = CacheStore(ttl, clock)
        self._metrics: Dict[str, Dict[str, Any]] = {}
        self._baselines: Dict[str, Baseline] = {}

    def on_installed(self) -> None:
        """Default state for a fresh install: optimization off, CSS removal on."""
        self._flags[EXTENSION_ENABLED] = False
        self._flags[CSS_REMOVAL_ENABLED] = True

    def reset(self) -> None:
        """Hard reset: drop every stored value and reinstall defaults."""
        self._flags.clear()
        self.cache.clear()
        self._metrics.clear()
        self._baselines.clear()
        self.on_installed()

    @property
    def state(self) -> ToggleState:
        return ToggleState(
            enabled=bool(self._flags.get(EXTENSION_ENABLED, False)),
            css_removal_enabled=self._flags.get(CSS_REMOVAL_ENABLED, True) is not False,
        )

    def state_dict(self) -> Dict[str, bool]:
        state = self.state
        return {EXTENSION_ENABLED: state.enabled, CSS_REMOVAL_ENABLED: state.css_removal_enabled}

    def set_state(self, enabled: Optional[bool] = None, css_removal_enabled: Optional[bool] = None) -> ToggleState:
        """Update only the flags that were given as booleans."""
        if isinstance(enabled, bool):
            self._flags[EXTENSION_ENABLED] = enabled
        if isinstance(css_removal_enabled, bool):
            self._flags[CSS_REMOVAL_ENABLED] = css_removal_enabled
        return self.state

    # --- snapshot cache ---

    def get_cached(self, url: str, css_removal_enabled: bool) -> Optional[Dict[str, Any]]:
        return self.cache.get(CacheKey(url, bool(css_removal_enabled)))

    def set_cached(self, url: str, data: Dict[str, Any], css_removal_enabled: Optional[bool]) -> None:
        self.cache.put(CacheKey(url, css_removal_enabled is not False), data)

    # --- metrics and baselines ---

    def store_metrics(self, url: str, metrics: Dict[str, Any]) -> None:
        self._metrics[url] = {**metrics, "timestamp": datetime.now(timezone.utc).isoformat()}

    def get_metrics(self, url: str) -> Optional[Dict[str, Any]]:
        return self._metrics.get(url)

    def store_baseline(self, url: str, baseline: Baseline) -> None:
        self._baselines[url] = baseline

    def get_baseline(self, url: str) -> Optional[Baseline]:
        return self._baselines.get(url)
