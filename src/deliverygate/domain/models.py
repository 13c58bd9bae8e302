"""
Domain models for the delivery control plane.

These are pure data structures for phases, steps, gates and safety state.
Models are immutable (frozen dataclasses); phases are static configuration
loaded once and never mutated at runtime.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from deliverygate.domain.interfaces import ConditionInterface


class ProjectType(str, Enum):
    """Kind of project the workflow is delivering."""

    GREENFIELD = "greenfield"
    BROWNFIELD = "brownfield"


# =============================================================================
# COLLABORATOR CONTRACT
# =============================================================================


@dataclass(frozen=True)
class CapabilityResult:
    """Structured result returned by a collaborator capability."""

    success: bool
    outputs: Mapping[str, Any] = field(default_factory=dict)
    message: str = ""
    coverage: Mapping[str, float] = field(default_factory=dict)  # type -> percent


# =============================================================================
# PHASE DEFINITION
# =============================================================================


@dataclass(frozen=True)
class Step:
    """Single unit of phase work delegated to a named capability."""

    step_id: str
    capability: str
    task: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()  # paths the step promises to populate
    blocking: bool = False
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParallelGroup:
    """Steps dispatched concurrently; the phase waits for all of them."""

    steps: tuple[Step, ...]
    group_id: str = "parallel"


class CheckpointLevel(str, Enum):
    """How significant a human checkpoint is (drives approval granularity)."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


@dataclass(frozen=True)
class HumanCheckpoint:
    """Pause point surfaced to a human before the phase may transition."""

    purpose: str
    questions: tuple[str, ...] = ()
    level: CheckpointLevel = CheckpointLevel.MAJOR


@dataclass(frozen=True)
class AutoTransition:
    """Automatic advance of the state machine after a successful phase."""

    next_phase: str
    message: str = ""


HALT_WORKFLOW = "HALT workflow"


@dataclass(frozen=True)
class BlockingCondition:
    """Named failure pattern that escalates a phase failure to a halt."""

    key: str
    action: str = HALT_WORKFLOW
    message: str = ""

    def matches(self, message: str, kind: str | None = None) -> bool:
        if kind is not None and kind == self.key:
            return True
        return self.key in message


@dataclass(frozen=True)
class PhaseDefinition:
    """Static configuration of one workflow phase."""

    phase_id: str
    prerequisites: tuple["ConditionInterface", ...] = ()
    body: tuple[Step | ParallelGroup, ...] = ()
    exit_conditions: tuple["ConditionInterface", ...] = ()
    human_checkpoint: HumanCheckpoint | None = None
    auto_transition: AutoTransition | None = None
    blocking_conditions: tuple[BlockingCondition, ...] = ()
    validation_gates: bool = False  # story/feature completion phase
    gate_failure_step: Step | None = None
    description: str = ""

    def find_blocking_condition(
        self, message: str, kind: str | None = None
    ) -> BlockingCondition | None:
        """Typed kinds take precedence over substring matches."""
        if kind is not None:
            for condition in self.blocking_conditions:
                if condition.key == kind:
                    return condition
        for condition in self.blocking_conditions:
            if condition.matches(message):
                return condition
        return None

    def steps(self) -> tuple[Step, ...]:
        """All steps of the body in declared order, groups flattened."""
        flat: list[Step] = []
        for item in self.body:
            if isinstance(item, ParallelGroup):
                flat.extend(item.steps)
            else:
                flat.append(item)
        return tuple(flat)


@dataclass(frozen=True)
class ConditionContext:
    """Read-only view of workflow state used to evaluate conditions."""

    workspace: Path
    completed_phases: frozenset[str] = frozenset()
    validation_status: Mapping[str, bool] = field(default_factory=dict)
    coverage: Mapping[str, float] = field(default_factory=dict)


# =============================================================================
# PHASE EXECUTION RESULT
# =============================================================================


class PhaseStatus(str, Enum):
    """Outcome of a phase execution that did not raise."""

    SUCCESS = "success"
    AWAITING_CHECKPOINT = "awaiting_checkpoint"


@dataclass(frozen=True)
class StepOutcome:
    """Record of one step invocation."""

    step_id: str
    capability: str
    success: bool
    blocking: bool
    outputs: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_kind: str | None = None


@dataclass(frozen=True)
class CheckpointResolution:
    """Recorded human decision on a checkpoint."""

    approved: bool
    resolved_by: str
    notes: str = ""
    resolved_at: str = ""  # ISO 8601


@dataclass(frozen=True)
class PhaseResult:
    """Result of ``PhaseOrchestrator.execute``."""

    phase_id: str
    status: PhaseStatus
    outputs: Mapping[str, Any] = field(default_factory=dict)
    step_outcomes: tuple[StepOutcome, ...] = ()
    failures: tuple[StepOutcome, ...] = ()  # non-blocking failures
    gate_reports: tuple["GateReport", ...] = ()
    transitioned_to: str | None = None
    checkpoint: HumanCheckpoint | None = None
    warnings: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.status == PhaseStatus.SUCCESS


@dataclass(frozen=True)
class TransitionRecord:
    """Single state machine transition."""

    from_phase: str | None
    to_phase: str
    timestamp: str


@dataclass(frozen=True)
class WorkflowStatus:
    """Snapshot of the phase state machine."""

    current_phase: str | None
    project_type: ProjectType
    progress: int  # percent
    completed_phases: tuple[str, ...]
    valid_transitions: tuple[str, ...]
    halted: bool
    halt_reason: str | None = None
    pending_checkpoint: str | None = None
    history: tuple[TransitionRecord, ...] = ()


# =============================================================================
# VALIDATION GATES
# =============================================================================


@dataclass(frozen=True)
class GateSubject:
    """The story or feature a gate pipeline run validates."""

    subject_id: str
    implementation: str | None = None
    test_dataset: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def template_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = dict(self.attributes)
        fields.update(
            id=self.subject_id,
            implementation=self.implementation or "",
            test_dataset=self.test_dataset
            or f"test-datasets/story-{self.subject_id}-tests.json",
        )
        return fields


@dataclass(frozen=True)
class GateDefinition:
    """One named validation check of the gate pipeline."""

    ordinal: int
    name: str
    capability: str
    task: str
    failure_reason: str
    inputs: tuple[str, ...] = ()  # str.format templates over GateSubject fields
    options: Mapping[str, Any] = field(default_factory=dict)
    applies_to: frozenset[ProjectType] = frozenset()  # empty: every project type
    blocking_setting: str | None = None  # autonomy key deciding if failure blocks

    def applies(self, project_type: ProjectType) -> bool:
        return not self.applies_to or project_type in self.applies_to


@dataclass(frozen=True)
class GateResult:
    """Outcome of a single gate."""

    gate: int
    name: str
    passed: bool
    reason: str | None = None


@dataclass(frozen=True)
class GateReport:
    """Aggregate of every applicable gate's result."""

    passed: bool
    results: tuple[GateResult, ...]

    @property
    def failures(self) -> tuple[GateResult, ...]:
        return tuple(r for r in self.results if not r.passed)


# =============================================================================
# AUTONOMY POLICY
# =============================================================================


@dataclass(frozen=True)
class ValidationReport:
    """Result of validating a configuration document."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


# =============================================================================
# SAFETY STATE
# =============================================================================


@dataclass(frozen=True)
class SafeModeStatus:
    """Safe mode status snapshot."""

    active: bool
    start_time: str | None = None
    duration: float | None = None  # seconds
    restrictions: tuple[str, ...] = ()


@dataclass(frozen=True)
class StateSnapshot:
    """Point-in-time capture of in-flight work at emergency stop."""

    timestamp: str
    reason: str
    current_phase: str | None = None
    active_capabilities: tuple[str, ...] = ()
    pending_steps: tuple[str, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IncidentReport:
    """Durable report produced by an emergency stop."""

    report_id: str
    title: str
    timestamp: str
    reason: str
    snapshot: StateSnapshot
    recommendations: tuple[str, ...]


@dataclass(frozen=True)
class EmergencyStopStatus:
    """Emergency stop status snapshot."""

    stopped: bool
    stop_time: str | None = None
    reason: str | None = None
    duration: float | None = None  # seconds, only while stopped


@dataclass(frozen=True)
class ResumeRecord:
    """Audit entry written when an emergency stop is cleared."""

    approved_by: str
    duration: float  # seconds spent stopped
    timestamp: str
    stop_time: str
    stop_reason: str
