"""
Domain exceptions for the delivery control plane.

These represent rule violations of the phase state machine, the validation
gate pipeline, the autonomy policy and the safety interlocks.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deliverygate.domain.models import GateReport, GateResult


class ControlPlaneError(Exception):
    """Base class for every error raised by the control plane."""


class ConfigurationError(ControlPlaneError):
    """Raised when configuration files or phase catalogs are invalid or missing."""


# =============================================================================
# COLLABORATORS
# =============================================================================


class CapabilityError(Exception):
    """
    Raised by a collaborator capability when an invocation fails.

    The optional ``kind`` is a typed failure category. Blocking conditions
    match on it before falling back to a substring match on the message.
    """

    def __init__(self, message: str, kind: str | None = None):
        super().__init__(message)
        self.kind = kind


class CapabilityNotFound(ControlPlaneError):
    """Raised when a capability name is not registered."""

    def __init__(self, name: str, available: tuple[str, ...] = ()):
        listing = ", ".join(available) or "(none)"
        super().__init__(f"Capability '{name}' not found. Available: {listing}")
        self.name = name
        self.available = available


# =============================================================================
# PHASE ORCHESTRATION
# =============================================================================


class PrerequisiteNotMet(ControlPlaneError):
    """Raised before any step runs when a phase prerequisite does not hold."""

    def __init__(self, phase_id: str, prerequisite: str):
        super().__init__(f"Prerequisite not met: {prerequisite}")
        self.phase_id = phase_id
        self.prerequisite = prerequisite


class ExitConditionNotMet(ControlPlaneError):
    """Raised after the phase body when an exit condition does not hold."""

    def __init__(self, phase_id: str, condition: str):
        super().__init__(f"Exit condition not met: {condition}")
        self.phase_id = phase_id
        self.condition = condition


class StepFailed(ControlPlaneError):
    """
    Raised when a step fails.

    Only blocking steps abort a phase; non-blocking failures are recorded on
    the phase result and carry the same shape.
    """

    def __init__(
        self,
        step_id: str,
        cause: str,
        blocking: bool,
        kind: str | None = None,
    ):
        prefix = "Blocking step failed" if blocking else "Step failed"
        super().__init__(f"{prefix}: {step_id}: {cause}")
        self.step_id = step_id
        self.cause = cause
        self.blocking = blocking
        self.kind = kind


class BlockingConditionTriggered(ControlPlaneError):
    """
    Raised when a failure matches one of the phase's blocking conditions.

    Unlike ordinary phase failures this is not retryable: the state machine
    has been driven into the halt super-state (for ``HALT workflow``) and a
    human must clear it.
    """

    def __init__(self, phase_id: str, key: str, action: str, message: str):
        super().__init__(message)
        self.phase_id = phase_id
        self.key = key
        self.action = action
        self.message = message


class CheckpointRejected(ControlPlaneError):
    """Raised when a human checkpoint resolution rejects the phase."""

    def __init__(self, phase_id: str, resolved_by: str, notes: str = ""):
        detail = f": {notes}" if notes else ""
        super().__init__(f"Checkpoint for {phase_id} rejected by {resolved_by}{detail}")
        self.phase_id = phase_id
        self.resolved_by = resolved_by
        self.notes = notes


class WorkflowHalted(ControlPlaneError):
    """Raised when work is requested from a halted state machine."""

    def __init__(self, reason: str | None = None):
        message = "Workflow is halted"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.reason = reason


class InvalidTransition(ControlPlaneError):
    """Raised when the state machine is asked to move to a non-successor phase."""

    def __init__(self, current: str | None, requested: str, valid: tuple[str, ...]):
        listing = ", ".join(valid) or "(none)"
        super().__init__(
            f"Invalid transition from {current} to {requested}. "
            f"Valid transitions: {listing}"
        )
        self.current = current
        self.requested = requested
        self.valid = valid


# =============================================================================
# VALIDATION GATES
# =============================================================================


class GateFailed(ControlPlaneError):
    """Raised by the gate pipeline when at least one gate failed."""

    def __init__(self, report: "GateReport"):
        self.report = report
        self.failures: tuple[GateResult, ...] = tuple(
            r for r in report.results if not r.passed
        )
        lines = [f"Gate {f.gate} ({f.name}): {f.reason}" for f in self.failures]
        super().__init__("Validation gates failed: " + "; ".join(lines))

    @property
    def gate(self) -> str | None:
        """Name of the first failing gate."""
        return self.failures[0].name if self.failures else None


# =============================================================================
# AUTONOMY POLICY
# =============================================================================


class InvalidProfile(ControlPlaneError):
    """Raised when an unknown autonomy profile name is applied."""

    def __init__(self, name: str, valid: tuple[str, ...]):
        super().__init__(
            f"Invalid autonomy level: {name}. Must be one of: {', '.join(valid)}"
        )
        self.name = name
        self.valid = valid


# =============================================================================
# SAFETY INTERLOCKS
# =============================================================================


class AlreadyActive(ControlPlaneError):
    """Raised when safe mode is activated twice."""

    def __init__(self) -> None:
        super().__init__("Safe mode already active")


class NotActive(ControlPlaneError):
    """Raised when safe mode is deactivated while inactive."""

    def __init__(self) -> None:
        super().__init__("Safe mode not active")


class AlreadyStopped(ControlPlaneError):
    """Raised when an emergency stop is executed while already stopped."""

    def __init__(self) -> None:
        super().__init__("System already in emergency stop state")


class NotStopped(ControlPlaneError):
    """Raised when resume is requested without a prior emergency stop."""

    def __init__(self) -> None:
        super().__init__("System is not in emergency stop state")


class EmergencyStopActive(ControlPlaneError):
    """Raised when work is dispatched while the emergency stop is engaged."""

    def __init__(self, action: str):
        super().__init__(f"Emergency stop active: '{action}' is not permitted")
        self.action = action


class ActionNotAllowed(ControlPlaneError):
    """Raised when safe mode forbids an action or its confirmation was withheld."""

    def __init__(self, action: str, reason: str):
        super().__init__(f"Action '{action}' not allowed: {reason}")
        self.action = action
        self.reason = reason
