"""
Domain layer for the delivery control plane.

Pure data structures, ports and rules. No dependency on the application or
infrastructure layers.
"""

from deliverygate.domain.autonomy import AutonomyLevel, CheckpointApproval
from deliverygate.domain.conditions import (
    ArtifactComplete,
    ArtifactExists,
    CoverageThreshold,
    DeclaredCondition,
    PhaseCompleted,
    ValidationPassed,
    parse_condition,
)
from deliverygate.domain.events import ControlEvent, EventType
from deliverygate.domain.exceptions import (
    ActionNotAllowed,
    AlreadyActive,
    AlreadyStopped,
    BlockingConditionTriggered,
    CapabilityError,
    CapabilityNotFound,
    CheckpointRejected,
    ConfigurationError,
    ControlPlaneError,
    EmergencyStopActive,
    ExitConditionNotMet,
    GateFailed,
    InvalidProfile,
    InvalidTransition,
    NotActive,
    NotStopped,
    PrerequisiteNotMet,
    StepFailed,
    WorkflowHalted,
)
from deliverygate.domain.interfaces import (
    CapabilityInterface,
    CapabilityProviderInterface,
    CheckpointResolverInterface,
    ConditionInterface,
    ConfirmationInterface,
    IncidentStoreInterface,
    OutputSinkInterface,
    SettingsStoreInterface,
    WorkflowStateStoreInterface,
)
from deliverygate.domain.models import (
    AutoTransition,
    BlockingCondition,
    CapabilityResult,
    CheckpointLevel,
    CheckpointResolution,
    GateDefinition,
    GateReport,
    GateResult,
    GateSubject,
    HumanCheckpoint,
    ParallelGroup,
    PhaseDefinition,
    PhaseResult,
    PhaseStatus,
    ProjectType,
    Step,
)

__all__ = [
    # Models
    "AutoTransition",
    "BlockingCondition",
    "CapabilityResult",
    "CheckpointLevel",
    "CheckpointResolution",
    "GateDefinition",
    "GateReport",
    "GateResult",
    "GateSubject",
    "HumanCheckpoint",
    "ParallelGroup",
    "PhaseDefinition",
    "PhaseResult",
    "PhaseStatus",
    "ProjectType",
    "Step",
    # Autonomy
    "AutonomyLevel",
    "CheckpointApproval",
    # Conditions
    "ArtifactComplete",
    "ArtifactExists",
    "CoverageThreshold",
    "DeclaredCondition",
    "PhaseCompleted",
    "ValidationPassed",
    "parse_condition",
    # Events
    "ControlEvent",
    "EventType",
    # Interfaces
    "CapabilityInterface",
    "CapabilityProviderInterface",
    "CheckpointResolverInterface",
    "ConditionInterface",
    "ConfirmationInterface",
    "IncidentStoreInterface",
    "OutputSinkInterface",
    "SettingsStoreInterface",
    "WorkflowStateStoreInterface",
    # Exceptions
    "ActionNotAllowed",
    "AlreadyActive",
    "AlreadyStopped",
    "BlockingConditionTriggered",
    "CapabilityError",
    "CapabilityNotFound",
    "CheckpointRejected",
    "ConfigurationError",
    "ControlPlaneError",
    "EmergencyStopActive",
    "ExitConditionNotMet",
    "GateFailed",
    "InvalidProfile",
    "InvalidTransition",
    "NotActive",
    "NotStopped",
    "PrerequisiteNotMet",
    "StepFailed",
    "WorkflowHalted",
]
