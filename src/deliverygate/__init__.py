"""
deliverygate: control plane for multi-phase, agent-driven software delivery.

Drives a project through ordered delivery phases, runs validation gates over
implementations, resolves autonomy settings and enforces safe mode and
emergency stop interlocks.

Example:
    from deliverygate import ProjectType, build_control_plane

    plane = build_control_plane(".", ProjectType.GREENFIELD, dry_run=True)
    results = plane.engine.run()
    print(plane.engine.report()["progress"])
"""

# Application layer (orchestration)
from deliverygate.application import (
    AutonomyPolicyStore,
    EmergencyStop,
    EventBus,
    PhaseOrchestrator,
    PhaseStateMachine,
    SafeMode,
    SafetyInterlocks,
    ValidationGatePipeline,
    WorkflowEngine,
)

# Wiring
from deliverygate.bootstrap import ControlPlane, build_control_plane

# Domain exceptions
from deliverygate.domain.exceptions import (
    ControlPlaneError,
    GateFailed,
    WorkflowHalted,
)

# Domain interfaces (for custom capabilities and adapters)
from deliverygate.domain.interfaces import (
    CapabilityInterface,
    CheckpointResolverInterface,
    ConfirmationInterface,
)
from deliverygate.domain.models import (
    CapabilityResult,
    GateSubject,
    PhaseDefinition,
    PhaseResult,
    PhaseStatus,
    ProjectType,
    Step,
)

# Infrastructure (explicit import encouraged for dependency injection)
from deliverygate.infrastructure import CapabilityRegistry, MockCapability

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Wiring
    "ControlPlane",
    "build_control_plane",
    # Application
    "AutonomyPolicyStore",
    "EmergencyStop",
    "EventBus",
    "PhaseOrchestrator",
    "PhaseStateMachine",
    "SafeMode",
    "SafetyInterlocks",
    "ValidationGatePipeline",
    "WorkflowEngine",
    # Exceptions
    "ControlPlaneError",
    "GateFailed",
    "WorkflowHalted",
    # Interfaces
    "CapabilityInterface",
    "CheckpointResolverInterface",
    "ConfirmationInterface",
    # Models
    "CapabilityResult",
    "GateSubject",
    "PhaseDefinition",
    "PhaseResult",
    "PhaseStatus",
    "ProjectType",
    "Step",
    # Infrastructure
    "CapabilityRegistry",
    "MockCapability",
]
