"""
Persistence adapters for configuration, workflow state and incidents.
"""

from deliverygate.infrastructure.persistence.filesystem import (
    FilesystemIncidentStore,
    FilesystemOutputSink,
    FilesystemWorkflowStateStore,
    YamlSettingsStore,
)
from deliverygate.infrastructure.persistence.memory import (
    InMemoryIncidentStore,
    InMemoryOutputSink,
    InMemorySettingsStore,
    InMemoryWorkflowStateStore,
)

__all__ = [
    "FilesystemIncidentStore",
    "FilesystemOutputSink",
    "FilesystemWorkflowStateStore",
    "InMemoryIncidentStore",
    "InMemoryOutputSink",
    "InMemorySettingsStore",
    "InMemoryWorkflowStateStore",
    "YamlSettingsStore",
]
