"""
Capability Registry with Entry Points Discovery.

Capabilities are looked up by name at dispatch time. External packages can
contribute capabilities in their pyproject.toml:

    [project.entry-points."deliverygate.capabilities"]
    oracle = "mypackage.agents:OracleCapability"

Each entry point must load a CapabilityInterface subclass constructible
without arguments, or a ready instance.
"""

import logging
import threading
from collections.abc import Iterable
from importlib.metadata import entry_points

from deliverygate.domain.exceptions import CapabilityNotFound, ConfigurationError
from deliverygate.domain.interfaces import (
    CapabilityInterface,
    CapabilityProviderInterface,
)

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "deliverygate.capabilities"


class CapabilityRegistry(CapabilityProviderInterface):
    """
    Name-keyed registry of CapabilityInterface implementations.

    One instance is built per control plane and injected where needed.

    Example usage:
        registry = CapabilityRegistry()
        registry.register("eval", EvalCapability())
        registry.require(["eval", "oracle"])  # fail at startup, not mid-phase
    """

    def __init__(self) -> None:
        self._capabilities: dict[str, CapabilityInterface] = {}
        self._lock = threading.RLock()

    def register(self, name: str, capability: CapabilityInterface) -> None:
        """
        Register a capability under a name, replacing any previous one.

        Args:
            name: Capability identifier (e.g., "oracle")
            capability: Implementation of CapabilityInterface
        """
        if not isinstance(capability, CapabilityInterface):
            raise TypeError(f"{name}: {type(capability).__name__} is not a CapabilityInterface")
        with self._lock:
            self._capabilities[name] = capability

    def get(self, name: str) -> CapabilityInterface:
        """
        Raises:
            CapabilityNotFound: If name is not registered
        """
        with self._lock:
            if name not in self._capabilities:
                raise CapabilityNotFound(name, self.names())
            return self._capabilities[name]

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._capabilities

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._capabilities))

    def require(self, names: Iterable[str]) -> None:
        """
        Validate that every named capability is registered.

        Raises:
            ConfigurationError: Listing every missing capability
        """
        missing = sorted({n for n in names if not self.has(n)})
        if missing:
            raise ConfigurationError(
                f"Missing capabilities: {', '.join(missing)}. "
                f"Registered: {', '.join(self.names()) or '(none)'}"
            )

    def discover(self) -> tuple[str, ...]:
        """
        Load capabilities from the entry point group.

        Returns:
            Names registered by this call
        """
        loaded = []
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                target = ep.load()
                capability = target() if isinstance(target, type) else target
                self.register(ep.name, capability)
            except Exception as e:
                logger.warning("Failed to load capability '%s' from entry point: %s", ep.name, e)
                continue
            loaded.append(ep.name)
        if loaded:
            logger.info("Discovered capabilities: %s", ", ".join(loaded))
        return tuple(loaded)

    def clear(self) -> None:
        with self._lock:
            self._capabilities.clear()
