"""Network blocking rules derived from the toggle state."""
import logging
import threading
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Tuple

from page_compressor.config import Config
from page_compressor.services.classifier import ResourceClass, ResourceDescriptor, classify
from page_compressor.services.urls import hostname_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleState:
    """Client toggle state: extension on/off and CSS removal on/off."""

    enabled: bool = False
    css_removal_enabled: bool = True


@dataclass(frozen=True)
class BlockRule:
    """Block every request of one resource class, except to exempt hosts."""

    resource_class: ResourceClass
    exempt_hosts: FrozenSet[str]

    def is_exempt(self, host: str) -> bool:
        host = host.lower()
        return any(host == exempt or host.endswith("." + exempt) for exempt in self.exempt_hosts)

    def matches(self, resource_class: ResourceClass, host: str) -> bool:
        return resource_class == self.resource_class and not self.is_exempt(host)


def build_rules(state: ToggleState, exempt_hosts: Optional[Iterable[str]] = None) -> Tuple[BlockRule, ...]:
    """
    Build the ordered rule set for a toggle state.

    Images, video and fonts are blocked whenever the extension is enabled.
    With CSS removal on, stylesheets and scripts are blocked as well: text mode
    strips scripts too, which is what gets most pages near the 50 KB target.
    """
    if not state.enabled:
        return ()

    exempt = frozenset(h.lower() for h in (exempt_hosts if exempt_hosts is not None else Config.exempt_hosts()))
    classes = [ResourceClass.IMAGE, ResourceClass.VIDEO, ResourceClass.FONT]
    if state.css_removal_enabled:
        classes += [ResourceClass.STYLESHEET, ResourceClass.SCRIPT]
    return tuple(BlockRule(resource_class=c, exempt_hosts=exempt) for c in classes)


class BlockingPolicy:
    """Holds the active rule set and swaps it as a whole on every state change."""

    def __init__(self, exempt_hosts: Optional[Iterable[str]] = None):
        self._exempt_hosts = list(exempt_hosts) if exempt_hosts is not None else None
        self._lock = threading.Lock()
        self._rules: Tuple[BlockRule, ...] = ()
        self._state = ToggleState()

    @property
    def rules(self) -> Tuple[BlockRule, ...]:
        return self._rules

    @property
    def state(self) -> ToggleState:
        return self._state

    def apply(self, state: ToggleState) -> Tuple[BlockRule, ...]:
        """Recompute rules for a new state and install them in one step."""
        rules = build_rules(state, self._exempt_hosts)
        with self._lock:
            self._rules = rules
            self._state = state
        logger.info(
            "Blocking rules updated: %s",
            ", ".join(r.resource_class.value for r in rules) or "none",
        )
        return rules

    def match(self, descriptor: ResourceDescriptor) -> Optional[BlockRule]:
        """Return the rule that blocks this request, if any."""
        rules = self._rules  # one snapshot per decision
        if not rules:
            return None
        resource_class = classify(descriptor)
        host = hostname_of(descriptor.url)
        for rule in rules:
            if rule.matches(resource_class, host):
                return rule
        return None

    def should_block(self, descriptor: ResourceDescriptor) -> bool:
        return self.match(descriptor) is not None
