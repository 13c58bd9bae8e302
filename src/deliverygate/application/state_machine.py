"""
PhaseStateMachine: the current-phase pointer and its bookkeeping.

Transitions are directional, each phase has exactly one successor, and the
halt super-state is reachable from any phase. Every mutation is persisted
through the workflow state store when one is given.
"""

import logging
import threading
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from deliverygate.application.event_bus import EventBus
from deliverygate.domain.events import EventType
from deliverygate.domain.exceptions import (
    ActionNotAllowed,
    ConfigurationError,
    InvalidTransition,
    WorkflowHalted,
)
from deliverygate.domain.interfaces import WorkflowStateStoreInterface
from deliverygate.domain.models import (
    CheckpointResolution,
    ConditionContext,
    ProjectType,
    TransitionRecord,
    WorkflowStatus,
)

logger = logging.getLogger(__name__)

SOURCE = "state-machine"

GREENFIELD_ORDER: tuple[str, ...] = (
    "domain_research",
    "eval_foundation",
    "discovery",
    "architecture",
    "planning",
    "development",
)

BROWNFIELD_ORDER: tuple[str, ...] = (
    "codebase_discovery",
    "domain_research",
    "eval_foundation",
    "compatibility_analysis",
    "discovery",
    "architecture",
    "planning",
    "development",
)


def default_order(project_type: ProjectType) -> tuple[str, ...]:
    if project_type == ProjectType.BROWNFIELD:
        return BROWNFIELD_ORDER
    return GREENFIELD_ORDER


def _now() -> str:
    return datetime.now(UTC).isoformat()


class PhaseStateMachine:
    """
    Ordered phase pointer with history, completion and validation records.

    Only the orchestrator and the workflow engine drive it; other
    components observe it through ``status()`` and bus notifications.
    """

    def __init__(
        self,
        project_type: ProjectType = ProjectType.GREENFIELD,
        store: WorkflowStateStoreInterface | None = None,
        bus: EventBus | None = None,
        order: Sequence[str] | None = None,
    ):
        """
        Args:
            project_type: Selects the default phase order
            store: Persistence for the machine (None keeps it in memory)
            bus: Receives transition and halt notifications
            order: Custom phase order overriding the project type default
        """
        self._store = store
        self._bus = bus
        self._custom_order = tuple(order) if order else None
        if self._custom_order is not None and len(set(self._custom_order)) != len(
            self._custom_order
        ):
            raise ConfigurationError("Phase order must not repeat a phase")
        self._lock = threading.RLock()
        self._set_project_type(project_type)
        self._clear()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load persisted state, or persist the initial state if there is none."""
        state = self._store.load() if self._store is not None else None
        if state is not None:
            self._restore(state)
            logger.info("Loaded workflow state: %s", self.current_phase)
        else:
            self._save()
            logger.info("Initialized workflow state: %s", self.current_phase)

    def recover(self) -> bool:
        """
        Reload persisted state, falling back to the newest backup.

        Returns:
            True if a state was restored
        """
        if self._store is None:
            return False
        try:
            state = self._store.load()
        except (OSError, ValueError) as e:
            logger.warning("Failed to load state, attempting backup recovery: %s", e)
            state = None
        if state is not None:
            self._restore(state)
            return True

        backup = self._store.load_backup()
        if backup is None:
            logger.warning("No backup available to recover from")
            return False
        self._restore(backup)
        self._save()
        logger.info("Recovered state from backup: %s", self.current_phase)
        return True

    def reset(self) -> None:
        """Start over from the first phase."""
        with self._lock:
            self._clear()
            self._save()
        logger.info("State machine reset to %s", self.current_phase)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def order(self) -> tuple[str, ...]:
        return self._order

    @property
    def project_type(self) -> ProjectType:
        return self._project_type

    @property
    def current_phase(self) -> str | None:
        return self._current

    @property
    def halted(self) -> bool:
        return self._halted

    @property
    def halt_reason(self) -> str | None:
        return self._halt_reason

    @property
    def pending_checkpoint(self) -> str | None:
        return self._pending_checkpoint

    def valid_transitions(self) -> tuple[str, ...]:
        with self._lock:
            if self._current not in self._order:
                return ()
            index = self._order.index(self._current)
            return self._order[index + 1 : index + 2]

    def successor(self, phase_id: str) -> str | None:
        if phase_id not in self._order:
            return None
        index = self._order.index(phase_id)
        return self._order[index + 1] if index + 1 < len(self._order) else None

    def is_complete(self, phase_id: str) -> bool:
        return phase_id in self._completed

    @property
    def finished(self) -> bool:
        """The last phase has completed."""
        return bool(self._order) and self._order[-1] in self._completed

    def validation_status(self, validator: str) -> bool:
        return self._validation.get(validator, False)

    def coverage(self, kind: str) -> float:
        return self._coverage.get(kind, 0.0)

    def coverage_metrics(self) -> dict[str, float]:
        with self._lock:
            return dict(self._coverage)

    def checkpoint_resolution(self, phase_id: str) -> CheckpointResolution | None:
        return self._resolutions.get(phase_id)

    def condition_context(self, workspace: Path) -> ConditionContext:
        with self._lock:
            return ConditionContext(
                workspace=workspace,
                completed_phases=frozenset(self._completed),
                validation_status=dict(self._validation),
                coverage=dict(self._coverage),
            )

    def status(self) -> WorkflowStatus:
        with self._lock:
            total = len(self._order)
            if self.finished:
                progress = 100
            elif self._current in self._order and total:
                progress = round(self._order.index(self._current) / total * 100)
            else:
                progress = 0
            return WorkflowStatus(
                current_phase=self._current,
                project_type=self._project_type,
                progress=progress,
                completed_phases=tuple(self._completed),
                valid_transitions=self.valid_transitions(),
                halted=self._halted,
                halt_reason=self._halt_reason,
                pending_checkpoint=self._pending_checkpoint,
                history=tuple(self._history),
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def transition(self, next_phase: str) -> TransitionRecord:
        """
        Complete the current phase and advance to its successor.

        Raises:
            WorkflowHalted: If the machine is halted
            InvalidTransition: If next_phase is not the successor
        """
        with self._lock:
            if self._halted:
                raise WorkflowHalted(self._halt_reason)
            valid = self.valid_transitions()
            if next_phase not in valid:
                raise InvalidTransition(self._current, next_phase, valid)

            previous = self._current
            if previous is not None:
                self._mark_complete(previous)
            record = TransitionRecord(from_phase=previous, to_phase=next_phase, timestamp=_now())
            self._history.append(record)
            self._current = next_phase
            if self._pending_checkpoint == previous:
                self._pending_checkpoint = None
            self._save()

        logger.info("State transition: %s -> %s", previous, next_phase)
        self._publish(
            EventType.PHASE_TRANSITIONED,
            {"from_phase": previous, "to_phase": next_phase},
        )
        return record

    def mark_complete(self, phase_id: str) -> None:
        """Record a phase as complete without moving the pointer."""
        with self._lock:
            self._mark_complete(phase_id)
            self._save()

    def set_validation_status(self, validator: str, passed: bool) -> None:
        with self._lock:
            self._validation[validator] = bool(passed)
            self._save()

    def record_coverage(self, kind: str, percent: float) -> None:
        with self._lock:
            self._coverage[kind] = float(percent)
            self._save()

    def set_pending_checkpoint(self, phase_id: str | None) -> None:
        with self._lock:
            self._pending_checkpoint = phase_id
            self._save()

    def record_checkpoint(self, phase_id: str, resolution: CheckpointResolution) -> None:
        with self._lock:
            self._resolutions[phase_id] = resolution
            if resolution.approved and self._pending_checkpoint == phase_id:
                self._pending_checkpoint = None
            self._save()

    def halt(self, reason: str) -> None:
        """Enter the halt super-state; no transition is possible until cleared."""
        with self._lock:
            self._halted = True
            self._halt_reason = reason
            self._save()
        logger.error("Workflow halted: %s", reason)
        self._publish(EventType.WORKFLOW_HALTED, {"reason": reason, "phase": self._current})

    def clear_halt(self, approved_by: str) -> None:
        """
        Leave the halt super-state.

        Raises:
            ActionNotAllowed: If no approver is named
        """
        if not approved_by or not approved_by.strip():
            raise ActionNotAllowed("clear-halt", "an approver is required")
        with self._lock:
            if not self._halted:
                logger.info("Workflow is not halted")
                return
            reason = self._halt_reason
            self._halted = False
            self._halt_reason = None
            self._save()
        logger.warning("Workflow halt (%s) cleared by %s", reason, approved_by)
        self._publish(
            EventType.WORKFLOW_HALT_CLEARED,
            {"approved_by": approved_by, "reason": reason},
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "current_phase": self._current,
                "project_type": self._project_type.value,
                "order": list(self._order),
                "history": [
                    {"from": r.from_phase, "to": r.to_phase, "timestamp": r.timestamp}
                    for r in self._history
                ],
                "completed_phases": list(self._completed),
                "validation_status": dict(self._validation),
                "coverage": dict(self._coverage),
                "halted": self._halted,
                "halt_reason": self._halt_reason,
                "pending_checkpoint": self._pending_checkpoint,
                "checkpoints": {
                    phase_id: {
                        "approved": r.approved,
                        "resolved_by": r.resolved_by,
                        "notes": r.notes,
                        "resolved_at": r.resolved_at,
                    }
                    for phase_id, r in self._resolutions.items()
                },
                "last_updated": _now(),
            }

    def _restore(self, state: dict[str, Any]) -> None:
        with self._lock:
            self._set_project_type(ProjectType(state.get("project_type", "greenfield")))
            if state.get("order") and self._custom_order is None:
                self._order = tuple(state["order"])
            first = self._order[0] if self._order else None
            self._current = state.get("current_phase", first)
            self._history = [
                TransitionRecord(
                    from_phase=h.get("from"),
                    to_phase=h["to"],
                    timestamp=h.get("timestamp", ""),
                )
                for h in state.get("history", [])
            ]
            self._completed = list(state.get("completed_phases", []))
            self._validation = {
                k: bool(v) for k, v in state.get("validation_status", {}).items()
            }
            self._coverage = {k: float(v) for k, v in state.get("coverage", {}).items()}
            self._halted = bool(state.get("halted", False))
            self._halt_reason = state.get("halt_reason")
            self._pending_checkpoint = state.get("pending_checkpoint")
            self._resolutions = {
                phase_id: CheckpointResolution(**r)
                for phase_id, r in state.get("checkpoints", {}).items()
            }

    def _save(self) -> None:
        if self._store is not None:
            self._store.save(self.to_dict())

    def _set_project_type(self, project_type: ProjectType) -> None:
        self._project_type = project_type
        self._order = self._custom_order or default_order(project_type)

    def _clear(self) -> None:
        self._current: str | None = self._order[0] if self._order else None
        self._history: list[TransitionRecord] = []
        self._completed: list[str] = []
        self._validation: dict[str, bool] = {}
        self._coverage: dict[str, float] = {}
        self._halted = False
        self._halt_reason: str | None = None
        self._pending_checkpoint: str | None = None
        self._resolutions: dict[str, CheckpointResolution] = {}

    def _mark_complete(self, phase_id: str) -> None:
        if phase_id not in self._completed:
            self._completed.append(phase_id)

    def _publish(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self._bus is not None:
            self._bus.publish(event_type, SOURCE, payload)
