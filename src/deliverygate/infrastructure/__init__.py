"""
Infrastructure layer for the delivery control plane.

Contains adapters for external concerns (persistence, capabilities, registry).
"""

from deliverygate.infrastructure.capabilities import DryRunCapability, MockCapability
from deliverygate.infrastructure.persistence import (
    FilesystemIncidentStore,
    FilesystemOutputSink,
    FilesystemWorkflowStateStore,
    InMemoryIncidentStore,
    InMemoryOutputSink,
    InMemorySettingsStore,
    InMemoryWorkflowStateStore,
    YamlSettingsStore,
)
from deliverygate.infrastructure.registry import CapabilityRegistry

__all__ = [
    # Persistence
    "FilesystemIncidentStore",
    "FilesystemOutputSink",
    "FilesystemWorkflowStateStore",
    "InMemoryIncidentStore",
    "InMemoryOutputSink",
    "InMemorySettingsStore",
    "InMemoryWorkflowStateStore",
    "YamlSettingsStore",
    # Capabilities
    "DryRunCapability",
    "MockCapability",
    # Registry
    "CapabilityRegistry",
]
