"""Background service for the client runtime.

Answers messages from page sessions, owns the state store and keeps the
network blocking rules in step with the toggles. Whenever a toggle changes
the rules are rebuilt and swapped in one step, then the active page is
told to re-apply its DOM optimizations via an ``applyState`` push.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from page_compressor.client.state import StateStore
from page_compressor.services.blocking import BlockingPolicy, ToggleState
from page_compressor.services.metrics import Baseline

logger = logging.getLogger(__name__)

TabListener = Callable[[Dict[str, Any]], Awaitable[Any]]
Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


class BackgroundService:
    """Message handler over the shared client state."""

    def __init__(self, store: Optional[StateStore] = None, policy: Optional[BlockingPolicy] = None):
        self.store = store or StateStore()
        self.policy = policy or BlockingPolicy()
        self._active_url = ""
        self._active_listener: Optional[TabListener] = None
        self._handlers: Dict[str, Handler] = {
            "getState": self._get_state,
            "setState": self._set_state,
            "toggleExtension": self._toggle_extension,
            "toggleCSSRemoval": self._toggle_css_removal,
            "getCachedData": self._get_cached_data,
            "setCachedData": self._set_cached_data,
            "storeMetrics": self._store_metrics,
            "getMetrics": self._get_metrics,
            "storeBaseline": self._store_baseline,
            "getBaseline": self._get_baseline,
            "getCurrentUrl": self._get_current_url,
        }

    def install(self) -> None:
        """First run: write default state and install matching (empty) rules."""
        self.store.on_installed()
        self.policy.apply(self.store.state)

    def attach_tab(self, url: str, listener: Optional[TabListener]) -> None:
        """Mark a page as the active tab; listener receives pushes."""
        self._active_url = url
        self._active_listener = listener

    async def handle(self, message: Dict[str, Any]) -> Any:
        """Dispatch one request. Unknown actions get no response."""
        handler = self._handlers.get(message.get("action", ""))
        if handler is None:
            logger.debug("Ignoring unknown action %r", message.get("action"))
            return None
        return await handler(message)

    async def _apply_state(self, state: ToggleState) -> None:
        self.policy.apply(state)
        await self._broadcast(state)

    async def _broadcast(self, state: ToggleState) -> None:
        if self._active_listener is None:
            return
        push = {
            "action": "applyState",
            "state": {"extensionEnabled": state.enabled, "cssRemovalEnabled": state.css_removal_enabled},
        }
        try:
            await self._active_listener(push)
        except Exception as e:  # pylint: disable=broad-except
            # The page may have navigated away or never had a session
            logger.debug("applyState push to %s failed: %s", self._active_url, e)

    # --- handlers ---

    async def _get_state(self, message: Dict[str, Any]) -> Dict[str, bool]:
        return self.store.state_dict()

    async def _set_state(self, message: Dict[str, Any]) -> Dict[str, bool]:
        state = self.store.set_state(
            enabled=message.get("extensionEnabled"),
            css_removal_enabled=message.get("cssRemovalEnabled"),
        )
        await self._apply_state(state)
        return {"success": True}

    async def _toggle_extension(self, message: Dict[str, Any]) -> Dict[str, bool]:
        enabled = not self.store.state.enabled
        # Turning the extension on always starts in CSS removal mode
        state = self.store.set_state(enabled=enabled, css_removal_enabled=True if enabled else None)
        await self._apply_state(state)
        return {"enabled": state.enabled}

    async def _toggle_css_removal(self, message: Dict[str, Any]) -> Dict[str, bool]:
        state = self.store.set_state(css_removal_enabled=not self.store.state.css_removal_enabled)
        await self._apply_state(state)
        return {"enabled": state.css_removal_enabled}

    async def _get_cached_data(self, message: Dict[str, Any]) -> Dict[str, Any]:
        data = self.store.get_cached(message.get("url", ""), message.get("cssRemovalEnabled", True) is not False)
        return {"data": data}

    async def _set_cached_data(self, message: Dict[str, Any]) -> Dict[str, bool]:
        self.store.set_cached(message.get("url", ""), message.get("data") or {}, message.get("cssRemovalEnabled"))
        return {"success": True}

    async def _store_metrics(self, message: Dict[str, Any]) -> Dict[str, bool]:
        self.store.store_metrics(message.get("url", ""), message.get("metrics") or {})
        return {"success": True}

    async def _get_metrics(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return {"metrics": self.store.get_metrics(message.get("url", ""))}

    async def _store_baseline(self, message: Dict[str, Any]) -> Dict[str, bool]:
        self.store.store_baseline(message.get("url", ""), Baseline.from_dict(message.get("baseline") or {}))
        return {"success": True}

    async def _get_baseline(self, message: Dict[str, Any]) -> Dict[str, Any]:
        baseline = self.store.get_baseline(message.get("url", ""))
        return {"baseline": baseline.to_dict() if baseline is not None else None}

    async def _get_current_url(self, message: Dict[str, Any]) -> Dict[str, str]:
        return {"url": self._active_url}
