"""
Capability implementations shipped with the control plane.

Real collaborators (oracle, eval, validator, ...) are contributed through the
``deliverygate.capabilities`` entry-point group.
"""

from deliverygate.infrastructure.capabilities.mock import (
    DryRunCapability,
    MockCapability,
    RecordedCall,
)

__all__ = [
    "DryRunCapability",
    "MockCapability",
    "RecordedCall",
]
