"""
PhaseOrchestrator: executes one phase against the state machine.

Execution order for ``execute(phase)``:

1. Prerequisites (nothing is dispatched if one fails)
2. Body: sequential steps and parallel groups, with output capture
3. Validation gates for story/feature completion phases
4. Exit conditions
5. Human checkpoint, when the autonomy policy asks for one
6. Auto-transition, when the autonomy policy enables goal mode

Safety interlocks are consulted before every step dispatch. Failures whose
message or kind matches a blocking condition halt the whole machine.
"""

import logging
import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from deliverygate.application.event_bus import EventBus
from deliverygate.application.gates import ValidationGatePipeline
from deliverygate.application.interlocks import SafetyInterlocks
from deliverygate.application.policy_store import AutonomyPolicyStore
from deliverygate.application.state_machine import PhaseStateMachine
from deliverygate.domain.autonomy import CheckpointApproval
from deliverygate.domain.events import ControlEvent, EventType
from deliverygate.domain.exceptions import (
    ActionNotAllowed,
    BlockingConditionTriggered,
    CapabilityError,
    CheckpointRejected,
    ConfigurationError,
    ControlPlaneError,
    EmergencyStopActive,
    ExitConditionNotMet,
    GateFailed,
    PrerequisiteNotMet,
    StepFailed,
    WorkflowHalted,
)
from deliverygate.domain.interfaces import (
    CapabilityProviderInterface,
    CheckpointResolverInterface,
    ConfirmationInterface,
    OutputSinkInterface,
)
from deliverygate.domain.models import (
    HALT_WORKFLOW,
    CheckpointLevel,
    CheckpointResolution,
    GateReport,
    GateSubject,
    HumanCheckpoint,
    ParallelGroup,
    PhaseDefinition,
    PhaseResult,
    PhaseStatus,
    Step,
    StepOutcome,
)

logger = logging.getLogger(__name__)

SOURCE = "orchestrator"

GOAL_MODE_KEY = "autonomy-settings.goal_mode.enabled"
CHECKPOINT_APPROVAL_KEY = "autonomy-settings.goal_mode.checkpoint_approval"
BACKGROUND_ENABLED_KEY = "autonomy-settings.background_agents.enabled"
MAX_CONCURRENT_KEY = "autonomy-settings.background_agents.max_concurrent"

# Checkpoint levels that still need a human at each approval granularity.
CHECKPOINT_LEVELS: dict[CheckpointApproval, frozenset[CheckpointLevel]] = {
    CheckpointApproval.ALL: frozenset(CheckpointLevel),
    CheckpointApproval.MAJOR_MILESTONES_ONLY: frozenset(
        {CheckpointLevel.CRITICAL, CheckpointLevel.MAJOR}
    ),
    CheckpointApproval.MINIMAL: frozenset({CheckpointLevel.CRITICAL}),
    CheckpointApproval.NONE: frozenset(),
}

POLICY_APPROVER = "autonomy-policy"


def _now() -> str:
    return datetime.now(UTC).isoformat()


class PhaseOrchestrator:
    """
    Drives phases through the state machine.

    All collaborators are injected. The orchestrator reads autonomy settings
    at the moment it needs them, so a policy or safety change takes effect
    for the next dispatched step.
    """

    def __init__(
        self,
        state_machine: PhaseStateMachine,
        capabilities: CapabilityProviderInterface,
        policy: AutonomyPolicyStore,
        bus: EventBus,
        workspace: Path | str = ".",
        interlocks: SafetyInterlocks | None = None,
        outputs: OutputSinkInterface | None = None,
        gates: ValidationGatePipeline | None = None,
        checkpoint_resolver: CheckpointResolverInterface | None = None,
        confirmer: ConfirmationInterface | None = None,
    ):
        """
        Args:
            state_machine: Phase pointer to advance
            capabilities: Resolves step capabilities by name
            policy: Source of autonomy settings
            bus: Halt signals in, phase notifications out
            workspace: Root that conditions and outputs are relative to
            interlocks: Safe mode and emergency stop checks before dispatch
            outputs: Where declared step outputs are recorded
            gates: Pipeline run for phases with validation gates
            checkpoint_resolver: Blocks for human checkpoint decisions; without
                one a phase stops at AWAITING_CHECKPOINT
            confirmer: Confirms actions that safe mode gates behind a human
        """
        self._machine = state_machine
        self._capabilities = capabilities
        self._policy = policy
        self._bus = bus
        self._workspace = Path(workspace)
        self._interlocks = interlocks
        self._outputs = outputs
        self._gates = gates
        self._resolver = checkpoint_resolver
        self._confirmer = confirmer

        self._lock = threading.RLock()
        self._halt_signal = threading.Event()
        self._current: str | None = None
        self._active: dict[str, str] = {}  # step_id -> capability
        self._pending: list[str] = []
        self._awaiting: dict[str, PhaseDefinition] = {}

        bus.subscribe(self._on_stop, EventType.EMERGENCY_STOP, subscriber=SOURCE)
        bus.subscribe(self._on_resume, EventType.EMERGENCY_RESUMED, subscriber=SOURCE)
        if interlocks is not None and interlocks.emergency_stop.is_stopped:
            self._halt_signal.set()

    @property
    def state_machine(self) -> PhaseStateMachine:
        return self._machine

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self,
        phase: PhaseDefinition,
        subjects: Sequence[GateSubject] = (),
    ) -> PhaseResult:
        """
        Execute a phase.

        Args:
            phase: Static phase definition
            subjects: Stories or features to gate (validation gate phases)

        Returns:
            PhaseResult with SUCCESS, or AWAITING_CHECKPOINT when a human
            decision is needed and no resolver is available

        Raises:
            WorkflowHalted: The machine is in the halt super-state
            EmergencyStopActive / ActionNotAllowed: Interlocks refused dispatch
            PrerequisiteNotMet / ExitConditionNotMet: Retryable phase failures
            StepFailed: A blocking step failed
            GateFailed: Blocking validation gates failed
            CheckpointRejected: A human rejected the checkpoint
            BlockingConditionTriggered: A blocking condition matched
        """
        if self._machine.halted:
            raise WorkflowHalted(self._machine.halt_reason)
        if self._halt_signal.is_set():
            raise EmergencyStopActive(f"execute {phase.phase_id}")

        logger.info("Starting %s phase", phase.phase_id)
        self._bus.publish(EventType.PHASE_STARTED, SOURCE, {"phase": phase.phase_id})
        with self._lock:
            self._current = phase.phase_id
            self._pending = [step.step_id for step in phase.steps()]

        failures: list[StepOutcome] = []
        try:
            self._check_prerequisites(phase)
            outcomes, outputs = self._run_body(phase, failures)
            self._check_recorded_failures(phase, failures)
            gate_reports, warnings = self._run_gates(phase, subjects)
            self._check_exit_conditions(phase)

            if phase.human_checkpoint is not None:
                awaiting = self._checkpoint(phase, phase.human_checkpoint)
                if awaiting:
                    return PhaseResult(
                        phase_id=phase.phase_id,
                        status=PhaseStatus.AWAITING_CHECKPOINT,
                        outputs=outputs,
                        step_outcomes=tuple(outcomes),
                        failures=tuple(failures),
                        gate_reports=gate_reports,
                        checkpoint=phase.human_checkpoint,
                        warnings=warnings,
                    )

            transitioned_to = self._complete(phase)
        except (
            WorkflowHalted,
            EmergencyStopActive,
            ActionNotAllowed,
            BlockingConditionTriggered,
        ) as error:
            self._publish_failure(phase, str(error))
            raise
        except ControlPlaneError as error:
            self._publish_failure(phase, str(error))
            self._escalate(phase, error)
            raise
        finally:
            with self._lock:
                self._current = None
                self._pending = []

        return PhaseResult(
            phase_id=phase.phase_id,
            status=PhaseStatus.SUCCESS,
            outputs=outputs,
            step_outcomes=tuple(outcomes),
            failures=tuple(failures),
            gate_reports=gate_reports,
            transitioned_to=transitioned_to,
            warnings=warnings,
        )

    def resolve_checkpoint(
        self,
        phase_id: str,
        resolved_by: str,
        approved: bool = True,
        notes: str = "",
        phase: PhaseDefinition | None = None,
    ) -> str | None:
        """
        Record the decision for a phase left at AWAITING_CHECKPOINT.

        Args:
            phase_id: Phase whose checkpoint is pending
            resolved_by: Identity of the human deciding
            approved: Whether the phase may proceed
            notes: Free-text rationale
            phase: Definition to complete with, when this orchestrator did
                not execute the phase itself (e.g. a new process)

        Returns:
            The phase transitioned to, if any

        Raises:
            ActionNotAllowed: No checkpoint is pending for phase_id
            CheckpointRejected: The decision was a rejection
        """
        if self._machine.pending_checkpoint != phase_id:
            raise ActionNotAllowed("resolve-checkpoint", f"no checkpoint pending for {phase_id}")
        if not resolved_by or not resolved_by.strip():
            raise ActionNotAllowed("resolve-checkpoint", "a resolver identity is required")

        resolution = CheckpointResolution(
            approved=approved,
            resolved_by=resolved_by,
            notes=notes,
            resolved_at=_now(),
        )
        self._record_resolution(phase_id, resolution)
        definition = self._awaiting.pop(phase_id, None) or phase

        if not approved:
            self._machine.set_pending_checkpoint(None)
            raise CheckpointRejected(phase_id, resolved_by, notes)
        if definition is None:
            raise ConfigurationError(f"No definition available to complete {phase_id}")
        return self._complete(definition)

    def snapshot(self) -> dict[str, Any]:
        """In-flight work, reported to the emergency stop."""
        with self._lock:
            return {
                "current_phase": self._current or self._machine.current_phase,
                "active_capabilities": [
                    f"{capability} ({step_id})" for step_id, capability in self._active.items()
                ],
                "pending_steps": list(self._pending),
                "halted": self._machine.halted,
            }

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def _check_prerequisites(self, phase: PhaseDefinition) -> None:
        context = self._machine.condition_context(self._workspace)
        for condition in phase.prerequisites:
            if not condition.evaluate(context):
                logger.warning("%s: prerequisite not met: %s", phase.phase_id, condition.describe())
                raise PrerequisiteNotMet(phase.phase_id, condition.describe())

    def _check_exit_conditions(self, phase: PhaseDefinition) -> None:
        context = self._machine.condition_context(self._workspace)
        for condition in phase.exit_conditions:
            if not condition.evaluate(context):
                logger.warning("%s: exit condition not met: %s", phase.phase_id, condition.describe())
                raise ExitConditionNotMet(phase.phase_id, condition.describe())
            logger.debug("%s: %s holds", phase.phase_id, condition.describe())

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def _run_body(
        self,
        phase: PhaseDefinition,
        failures: list[StepOutcome],
    ) -> tuple[list[StepOutcome], dict[str, Any]]:
        outcomes: list[StepOutcome] = []
        outputs: dict[str, Any] = {}

        for item in phase.body:
            if isinstance(item, ParallelGroup):
                batch = self._run_group(phase, item)
                steps = item.steps
            else:
                batch = [self._run_step(phase, item)]
                steps = (item,)
            outcomes.extend(batch)

            for outcome in batch:
                if not outcome.success and outcome.blocking:
                    logger.error("%s: blocking step %s failed", phase.phase_id, outcome.step_id)
                    raise StepFailed(
                        outcome.step_id,
                        outcome.error or "failed",
                        blocking=True,
                        kind=outcome.error_kind,
                    )

            for step, outcome in zip(steps, batch):
                if outcome.success:
                    self._capture_outputs(step, outcome)
                    outputs.update(outcome.outputs)
                else:
                    logger.warning("%s: step %s failed: %s", phase.phase_id, step.step_id, outcome.error)
                    failures.append(outcome)

        return outcomes, outputs

    def _run_group(self, phase: PhaseDefinition, group: ParallelGroup) -> list[StepOutcome]:
        width = self._parallel_width(len(group.steps))
        logger.info(
            "%s: executing %d parallel step(s) in %s (width %d)",
            phase.phase_id,
            len(group.steps),
            group.group_id,
            width,
        )
        with ThreadPoolExecutor(max_workers=width, thread_name_prefix=group.group_id) as pool:
            futures = [pool.submit(self._run_step, phase, step) for step in group.steps]
            wait(futures)

        # Every step has finished or failed before anything is used.
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error
        return [future.result() for future in futures]

    def _parallel_width(self, size: int) -> int:
        if not self._policy.resolve(BACKGROUND_ENABLED_KEY, True):
            return 1
        # One confirmation prompt at a time.
        if self._interlocks is not None and self._interlocks.requires_confirmation("invoke-agent"):
            return 1
        limit = self._policy.resolve(MAX_CONCURRENT_KEY, 2)
        if not isinstance(limit, int) or limit < 1:
            return max(size, 1)
        return max(min(limit, size), 1)

    def _run_step(self, phase: PhaseDefinition, step: Step) -> StepOutcome:
        self._authorize(
            "invoke-agent", f"{step.capability}: {step.task} ({phase.phase_id}/{step.step_id})"
        )

        with self._lock:
            self._active[step.step_id] = step.capability
        logger.info("%s: %s -> %s", phase.phase_id, step.step_id, step.capability)

        options = dict(step.options)
        options["outputs"] = list(step.outputs)
        try:
            capability = self._capabilities.get(step.capability)
            result = capability.invoke(step.task, list(step.inputs), options)
        except CapabilityError as e:
            return StepOutcome(
                step_id=step.step_id,
                capability=step.capability,
                success=False,
                blocking=step.blocking,
                error=str(e),
                error_kind=e.kind,
            )
        except Exception as e:
            # Untyped collaborator errors still take part in blocking-condition matching.
            return StepOutcome(
                step_id=step.step_id,
                capability=step.capability,
                success=False,
                blocking=step.blocking,
                error=str(e),
            )
        finally:
            with self._lock:
                self._active.pop(step.step_id, None)
                if step.step_id in self._pending:
                    self._pending.remove(step.step_id)

        for kind, percent in result.coverage.items():
            self._machine.record_coverage(kind, percent)
        records = step.options.get("records_validation")
        if records:
            self._machine.set_validation_status(str(records), result.success)

        return StepOutcome(
            step_id=step.step_id,
            capability=step.capability,
            success=result.success,
            blocking=step.blocking,
            outputs=dict(result.outputs),
            error=None if result.success else (result.message or "capability reported failure"),
        )

    def _capture_outputs(self, step: Step, outcome: StepOutcome) -> None:
        if self._outputs is None or not step.outputs:
            return
        produced = [
            (path, self._match_output(path, outcome.outputs)) for path in step.outputs
        ]
        produced = [(path, value) for path, value in produced if value is not None]
        if not produced:
            return

        self._authorize("write-file", f"outputs of {step.step_id}")
        for path, value in produced:
            location = self._outputs.write(path, value)
            logger.info("Saved: %s", location)

    @staticmethod
    def _match_output(path: str, outputs: Mapping[str, Any]) -> Any:
        if path in outputs:
            return outputs[path]
        return outputs.get(Path(path).name)

    # ------------------------------------------------------------------
    # Validation gates
    # ------------------------------------------------------------------

    def _run_gates(
        self,
        phase: PhaseDefinition,
        subjects: Sequence[GateSubject],
    ) -> tuple[tuple[GateReport, ...], tuple[str, ...]]:
        if not phase.validation_gates or not subjects:
            return (), ()
        if self._gates is None:
            raise ConfigurationError(f"{phase.phase_id} requires a validation gate pipeline")

        reports: list[GateReport] = []
        warnings: list[str] = []
        for subject in subjects:
            if self._halt_signal.is_set():
                raise EmergencyStopActive(f"gates for {subject.subject_id}")
            try:
                report = self._gates.execute_all(subject)
            except GateFailed as error:
                self._record_gate_status(error.report)
                blocking = self._gates.blocking_failures(error.failures, self._policy.resolve)
                if not blocking:
                    logger.warning("%s: non-blocking gate failures: %s", subject.subject_id, error)
                    warnings.append(str(error))
                    reports.append(error.report)
                    continue
                self._run_gate_failure_step(phase, subject, error)
                raise
            self._record_gate_status(report)
            reports.append(report)
        return tuple(reports), tuple(warnings)

    def _record_gate_status(self, report: GateReport) -> None:
        for result in report.results:
            self._machine.set_validation_status(result.name, result.passed)

    def _run_gate_failure_step(
        self, phase: PhaseDefinition, subject: GateSubject, error: GateFailed
    ) -> None:
        """Run the failure analysis step; its own failure never blocks."""
        template = phase.gate_failure_step
        if template is None:
            return
        fields = subject.template_fields()
        step = replace(
            template,
            inputs=template.inputs + (subject.subject_id, str(error)),
            outputs=tuple(path.format(**fields) for path in template.outputs),
            blocking=False,
        )
        outcome = self._run_step(phase, step)
        if outcome.success:
            self._capture_outputs(step, outcome)
        else:
            logger.warning("%s: failure analysis step failed: %s", phase.phase_id, outcome.error)

    # ------------------------------------------------------------------
    # Checkpoint and transition
    # ------------------------------------------------------------------

    def _checkpoint(self, phase: PhaseDefinition, checkpoint: HumanCheckpoint) -> bool:
        """Returns True when the phase must wait for an external resolution."""
        approval = self._checkpoint_approval()
        if checkpoint.level not in CHECKPOINT_LEVELS[approval]:
            logger.info(
                "%s: %s checkpoint auto-approved (checkpoint_approval=%s)",
                phase.phase_id,
                checkpoint.level.value,
                approval.value,
            )
            self._machine.record_checkpoint(
                phase.phase_id,
                CheckpointResolution(
                    approved=True,
                    resolved_by=POLICY_APPROVER,
                    notes=f"checkpoint_approval={approval.value}",
                    resolved_at=_now(),
                ),
            )
            return False

        logger.info("%s: human checkpoint required: %s", phase.phase_id, checkpoint.purpose)
        self._bus.publish(
            EventType.CHECKPOINT_PENDING,
            SOURCE,
            {
                "phase": phase.phase_id,
                "purpose": checkpoint.purpose,
                "questions": list(checkpoint.questions),
            },
        )

        if self._resolver is None:
            self._machine.set_pending_checkpoint(phase.phase_id)
            self._awaiting[phase.phase_id] = phase
            return True

        resolution = self._resolver.resolve(phase.phase_id, checkpoint)
        self._record_resolution(phase.phase_id, resolution)
        if not resolution.approved:
            raise CheckpointRejected(phase.phase_id, resolution.resolved_by, resolution.notes)
        return False

    def _checkpoint_approval(self) -> CheckpointApproval:
        value = self._policy.resolve(CHECKPOINT_APPROVAL_KEY)
        try:
            return CheckpointApproval(value)
        except ValueError:
            logger.warning("Unknown checkpoint_approval %r, requiring every checkpoint", value)
            return CheckpointApproval.ALL

    def _record_resolution(self, phase_id: str, resolution: CheckpointResolution) -> None:
        self._machine.record_checkpoint(phase_id, resolution)
        self._bus.publish(
            EventType.CHECKPOINT_RESOLVED,
            SOURCE,
            {
                "phase": phase_id,
                "approved": resolution.approved,
                "resolved_by": resolution.resolved_by,
            },
        )

    def _complete(self, phase: PhaseDefinition) -> str | None:
        transition = phase.auto_transition
        transitioned_to = None

        if transition is None:
            self._machine.mark_complete(phase.phase_id)
        elif not self._policy.resolve(GOAL_MODE_KEY, True):
            logger.info("%s complete; auto-transition disabled by autonomy policy", phase.phase_id)
            self._machine.mark_complete(phase.phase_id)
        elif self._machine.current_phase != phase.phase_id:
            logger.info(
                "%s complete; not the current phase (%s), pointer unchanged",
                phase.phase_id,
                self._machine.current_phase,
            )
            self._machine.mark_complete(phase.phase_id)
        else:
            if transition.message:
                logger.info(transition.message)
            self._machine.transition(transition.next_phase)
            transitioned_to = transition.next_phase

        logger.info("%s phase complete", phase.phase_id)
        self._bus.publish(
            EventType.PHASE_COMPLETED,
            SOURCE,
            {"phase": phase.phase_id, "transitioned_to": transitioned_to},
        )
        return transitioned_to

    # ------------------------------------------------------------------
    # Failures and interlocks
    # ------------------------------------------------------------------

    def _check_recorded_failures(
        self, phase: PhaseDefinition, failures: Sequence[StepOutcome]
    ) -> None:
        for outcome in failures:
            message = outcome.error or ""
            condition = phase.find_blocking_condition(message, outcome.error_kind)
            if condition is not None:
                error = StepFailed(
                    outcome.step_id, message, blocking=False, kind=outcome.error_kind
                )
                self._escalate(phase, error)

    def _escalate(self, phase: PhaseDefinition, error: ControlPlaneError) -> None:
        """Route a failure matching a blocking condition to its action."""
        kind = getattr(error, "kind", None)
        condition = phase.find_blocking_condition(str(error), kind)
        if condition is None:
            return

        logger.error(
            "BLOCKING CONDITION %s in %s (action: %s): %s",
            condition.key,
            phase.phase_id,
            condition.action,
            condition.message,
        )
        if condition.action == HALT_WORKFLOW:
            self._machine.halt(f"{phase.phase_id}: {condition.key}")
        raise BlockingConditionTriggered(
            phase.phase_id,
            condition.key,
            condition.action,
            condition.message or str(error),
        ) from error

    def _authorize(self, action: str, detail: str) -> None:
        if self._halt_signal.is_set():
            raise EmergencyStopActive(action)
        if self._interlocks is not None:
            self._interlocks.authorize(action, self._confirmer, detail)

    def _publish_failure(self, phase: PhaseDefinition, reason: str) -> None:
        logger.error("%s phase failed: %s", phase.phase_id, reason)
        self._bus.publish(EventType.PHASE_FAILED, SOURCE, {"phase": phase.phase_id, "reason": reason})

    def _on_stop(self, event: ControlEvent) -> None:
        self._halt_signal.set()

    def _on_resume(self, event: ControlEvent) -> None:
        self._halt_signal.clear()
