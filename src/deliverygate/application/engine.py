"""WorkflowEngine: drives the phase catalog from the current phase onward."""

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from deliverygate.application.orchestrator import PhaseOrchestrator
from deliverygate.domain.exceptions import ActionNotAllowed, ConfigurationError
from deliverygate.domain.models import (
    GateSubject,
    PhaseDefinition,
    PhaseResult,
    PhaseStatus,
)

logger = logging.getLogger(__name__)

REPORTED_VALIDATORS: tuple[str, ...] = ("oracle", "validator", "eval")


class WorkflowEngine:
    """
    Runs phases one after another until the workflow completes, halts,
    waits on a human checkpoint or stops advancing.

    Phase errors propagate unchanged; retrying is the caller's decision.
    """

    def __init__(
        self,
        orchestrator: PhaseOrchestrator,
        phases: Mapping[str, PhaseDefinition],
        subjects: Mapping[str, Sequence[GateSubject]] | None = None,
    ):
        """
        Args:
            orchestrator: Executes individual phases
            phases: Phase catalog keyed by phase id
            subjects: Gate subjects per phase id (validation gate phases)
        """
        self._orchestrator = orchestrator
        self._machine = orchestrator.state_machine
        self._phases = dict(phases)
        self._subjects = dict(subjects or {})

        missing = [p for p in self._machine.order if p not in self._phases]
        if missing:
            raise ConfigurationError(f"Phase catalog is missing: {', '.join(missing)}")

    def phase(self, phase_id: str) -> PhaseDefinition:
        try:
            return self._phases[phase_id]
        except KeyError:
            raise ConfigurationError(f"Phase not found: {phase_id}") from None

    def run(self, max_phases: int | None = None) -> list[PhaseResult]:
        """
        Execute from the current phase.

        Args:
            max_phases: Stop after this many phase executions

        Returns:
            Results of every phase executed in this call
        """
        results: list[PhaseResult] = []
        logger.info("Starting workflow execution at %s", self._machine.current_phase)

        while max_phases is None or len(results) < max_phases:
            status = self._machine.status()
            if status.halted:
                logger.warning("Workflow is halted: %s", status.halt_reason)
                break
            if self._machine.finished:
                logger.info("Workflow complete")
                break
            if status.pending_checkpoint:
                logger.info("Awaiting checkpoint for %s", status.pending_checkpoint)
                break
            if status.current_phase is None:
                break
            if self._machine.is_complete(status.current_phase):
                logger.info("%s complete, awaiting manual advance", status.current_phase)
                break

            result = self.execute_phase(status.current_phase)
            results.append(result)
            if result.status == PhaseStatus.AWAITING_CHECKPOINT:
                break
            if result.transitioned_to is None:
                # Last phase, or auto-transition disabled by policy.
                break

        return results

    def execute_phase(self, phase_id: str) -> PhaseResult:
        phase = self.phase(phase_id)
        logger.info("PHASE: %s", phase_id.upper())
        try:
            return self._orchestrator.execute(phase, self._subjects.get(phase_id, ()))
        except Exception as e:
            logger.error("Phase %s failed: %s", phase_id, e)
            raise

    def resolve_checkpoint(
        self,
        resolved_by: str,
        approved: bool = True,
        notes: str = "",
    ) -> str | None:
        """Resolve the pending checkpoint; returns the phase transitioned to."""
        phase_id = self._machine.pending_checkpoint
        if phase_id is None:
            raise ActionNotAllowed("resolve-checkpoint", "no checkpoint is pending")
        return self._orchestrator.resolve_checkpoint(
            phase_id,
            resolved_by,
            approved=approved,
            notes=notes,
            phase=self.phase(phase_id),
        )

    def advance(self) -> str:
        """Manually move past a completed phase (auto-transition disabled)."""
        current = self._machine.current_phase
        if current is None or not self._machine.is_complete(current):
            raise ActionNotAllowed("advance", f"{current} has not completed")
        successor = self._machine.successor(current)
        if successor is None:
            raise ActionNotAllowed("advance", f"{current} is the last phase")
        self._machine.transition(successor)
        return successor

    def resume(self, approved_by: str) -> list[PhaseResult]:
        """Clear a halt and re-drive from the current phase."""
        self._machine.clear_halt(approved_by)
        logger.info("Workflow resumed by %s", approved_by)
        return self.run()

    def reset(self) -> None:
        self._machine.reset()
        logger.info("Workflow reset to initial state")

    def report(self) -> dict[str, Any]:
        status = self._machine.status()
        return {
            "generated": datetime.now(UTC).isoformat(),
            "project_type": status.project_type.value,
            "current_phase": status.current_phase,
            "progress": status.progress,
            "completed_phases": list(status.completed_phases),
            "validation_status": {
                name: self._machine.validation_status(name) for name in REPORTED_VALIDATORS
            },
            "coverage": self._machine.coverage_metrics(),
            "halted": status.halted,
            "halt_reason": status.halt_reason,
            "pending_checkpoint": status.pending_checkpoint,
            "history": [
                {"from": r.from_phase, "to": r.to_phase, "timestamp": r.timestamp}
                for r in status.history
            ],
        }
