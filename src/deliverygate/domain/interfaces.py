"""
Domain interfaces (Ports) for the delivery control plane.

These abstract base classes define the contracts that collaborators and
adapters must satisfy. They have no external dependencies.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from deliverygate.domain.models import (
        CapabilityResult,
        CheckpointResolution,
        ConditionContext,
        HumanCheckpoint,
        IncidentReport,
        ResumeRecord,
        StateSnapshot,
    )


class CapabilityInterface(ABC):
    """
    Port for a collaborator capability (an "agent").

    The control plane never looks inside a capability: it invokes it by name
    with a task label, input references and options, and reads back a
    structured result. Failures surface as ``CapabilityError`` whose message
    is consulted for blocking-condition matching.
    """

    @abstractmethod
    def invoke(
        self,
        task: str,
        inputs: Sequence[str],
        options: Mapping[str, Any],
    ) -> "CapabilityResult":
        """
        Run a task.

        Args:
            task: Task label (e.g. 'run-eval-tests')
            inputs: Free-form input references (usually workspace paths)
            options: Extra invocation options (mode, validates, outputs...)

        Returns:
            CapabilityResult with success flag and produced outputs
        """
        pass


class CapabilityProviderInterface(ABC):
    """Port for looking up capabilities by name (implemented by the registry)."""

    @abstractmethod
    def get(self, name: str) -> CapabilityInterface:
        """
        Raises:
            CapabilityNotFound: If no capability is registered under name
        """
        pass


class ConditionInterface(ABC):
    """Predicate over workflow state used for prerequisites and exit conditions."""

    @abstractmethod
    def evaluate(self, context: "ConditionContext") -> bool:
        pass

    @abstractmethod
    def describe(self) -> str:
        """Human-readable form reported in PrerequisiteNotMet / ExitConditionNotMet."""
        pass


class OutputSinkInterface(ABC):
    """Port for durably recording step outputs at caller-declared paths."""

    @abstractmethod
    def write(self, path: str, value: Any) -> str:
        """
        Record an output.

        Returns:
            Location the output was written to
        """
        pass


class SettingsStoreInterface(ABC):
    """Port for persisting configuration documents (autonomy profile et al.)."""

    @abstractmethod
    def load(self, name: str) -> dict[str, Any] | None:
        """Return the stored document or None if never saved."""
        pass

    @abstractmethod
    def save(self, name: str, document: Mapping[str, Any]) -> None:
        pass


class WorkflowStateStoreInterface(ABC):
    """Port for persisting the phase state machine."""

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """Return the last saved state or None."""
        pass

    @abstractmethod
    def save(self, state: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def load_backup(self) -> dict[str, Any] | None:
        """Return the newest backup or None if there is none."""
        pass


class IncidentStoreInterface(ABC):
    """Port for emergency stop snapshots, incident reports and resume logs."""

    @abstractmethod
    def save_snapshot(self, snapshot: "StateSnapshot") -> str:
        pass

    @abstractmethod
    def save_report(self, report: "IncidentReport") -> str:
        pass

    @abstractmethod
    def append_resume(self, record: "ResumeRecord") -> None:
        pass

    @abstractmethod
    def load_active_stop(self) -> "StateSnapshot | None":
        """Snapshot of a stop that has not been resumed yet, if any."""
        pass

    @abstractmethod
    def clear_active_stop(self) -> None:
        pass


class CheckpointResolverInterface(ABC):
    """
    Port for resolving human checkpoints.

    ``resolve`` blocks until a decision is available; there is no timeout.
    """

    @abstractmethod
    def resolve(
        self, phase_id: str, checkpoint: "HumanCheckpoint"
    ) -> "CheckpointResolution":
        pass


class ConfirmationInterface(ABC):
    """Port for confirming actions that safe mode gates behind a human."""

    @abstractmethod
    def confirm(self, action: str, detail: str = "") -> bool:
        pass
