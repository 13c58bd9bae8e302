"""Tests for WorkflowEngine driving a whole catalog."""

from collections.abc import Callable

import pytest

from deliverygate.application import (
    GREENFIELD_ORDER,
    AutonomyPolicyStore,
    PhaseOrchestrator,
    PhaseStateMachine,
    WorkflowEngine,
)
from deliverygate.domain.exceptions import (
    ActionNotAllowed,
    BlockingConditionTriggered,
    CapabilityError,
    ConfigurationError,
    StepFailed,
)
from deliverygate.domain.models import (
    AutoTransition,
    BlockingCondition,
    HumanCheckpoint,
    PhaseDefinition,
    PhaseStatus,
    Step,
)
from deliverygate.infrastructure import MockCapability


def catalog(**overrides: PhaseDefinition) -> dict[str, PhaseDefinition]:
    """One single-step phase per greenfield phase, chained by auto-transitions."""
    phases = {}
    for index, phase_id in enumerate(GREENFIELD_ORDER):
        successor = GREENFIELD_ORDER[index + 1] if index + 1 < len(GREENFIELD_ORDER) else None
        phases[phase_id] = PhaseDefinition(
            phase_id=phase_id,
            body=(Step(step_id=f"{phase_id}_work", capability="worker", task=phase_id),),
            auto_transition=AutoTransition(next_phase=successor) if successor else None,
        )
    phases.update(overrides)
    return phases


@pytest.fixture
def worker(capability: Callable[..., MockCapability]) -> MockCapability:
    return capability("worker")


@pytest.fixture
def engine(orchestrator: PhaseOrchestrator, worker: MockCapability) -> WorkflowEngine:
    return WorkflowEngine(orchestrator, catalog())


class TestRun:
    """Tests for run()."""

    def test_runs_every_phase_to_completion(
        self, engine: WorkflowEngine, machine: PhaseStateMachine, worker: MockCapability
    ) -> None:
        results = engine.run()

        assert [r.phase_id for r in results] == list(GREENFIELD_ORDER)
        assert all(r.success for r in results)
        assert machine.finished
        assert worker.call_count == len(GREENFIELD_ORDER)

    def test_max_phases(self, engine: WorkflowEngine, machine: PhaseStateMachine) -> None:
        results = engine.run(max_phases=2)

        assert [r.phase_id for r in results] == ["domain_research", "eval_foundation"]
        assert machine.current_phase == "discovery"

    def test_finished_workflow_runs_nothing(self, engine: WorkflowEngine) -> None:
        engine.run()

        assert engine.run() == []

    def test_stops_at_pending_checkpoint(
        self,
        orchestrator: PhaseOrchestrator,
        machine: PhaseStateMachine,
        worker: MockCapability,
    ) -> None:
        research = catalog()["domain_research"]
        gated = PhaseDefinition(
            phase_id="domain_research",
            body=research.body,
            auto_transition=research.auto_transition,
            human_checkpoint=HumanCheckpoint(purpose="Review domain truth"),
        )
        engine = WorkflowEngine(orchestrator, catalog(domain_research=gated))

        results = engine.run()

        assert [r.status for r in results] == [PhaseStatus.AWAITING_CHECKPOINT]
        assert engine.run() == []
        assert machine.pending_checkpoint == "domain_research"

    def test_phase_errors_propagate(
        self,
        orchestrator: PhaseOrchestrator,
        capability: Callable[..., MockCapability],
        worker: MockCapability,
    ) -> None:
        capability("pm", CapabilityError("no brief"))
        failing = PhaseDefinition(
            phase_id="domain_research",
            body=(Step(step_id="create_prd", capability="pm", task="prd", blocking=True),),
        )
        engine = WorkflowEngine(orchestrator, catalog(domain_research=failing))

        with pytest.raises(StepFailed):
            engine.run()

    def test_missing_catalog_phase(self, orchestrator: PhaseOrchestrator) -> None:
        phases = catalog()
        del phases["architecture"]

        with pytest.raises(ConfigurationError, match="missing: architecture"):
            WorkflowEngine(orchestrator, phases)

    def test_unknown_phase_lookup(self, engine: WorkflowEngine) -> None:
        with pytest.raises(ConfigurationError, match="Phase not found"):
            engine.phase("deployment")


class TestManualControl:
    """Tests for checkpoint resolution, advance, resume and reset."""

    def test_resolve_checkpoint_then_continue(
        self,
        orchestrator: PhaseOrchestrator,
        machine: PhaseStateMachine,
        worker: MockCapability,
    ) -> None:
        research = catalog()["domain_research"]
        gated = PhaseDefinition(
            phase_id="domain_research",
            body=research.body,
            auto_transition=research.auto_transition,
            human_checkpoint=HumanCheckpoint(purpose="Review"),
        )
        engine = WorkflowEngine(orchestrator, catalog(domain_research=gated))
        engine.run()

        assert engine.resolve_checkpoint("alice") == "eval_foundation"
        results = engine.run()

        assert results[0].phase_id == "eval_foundation"
        assert machine.finished

    def test_resolve_without_pending_checkpoint(self, engine: WorkflowEngine) -> None:
        with pytest.raises(ActionNotAllowed, match="no checkpoint is pending"):
            engine.resolve_checkpoint("alice")

    def test_advance_after_goal_mode_disabled(
        self,
        engine: WorkflowEngine,
        machine: PhaseStateMachine,
        policy: AutonomyPolicyStore,
    ) -> None:
        policy.set_override("autonomy-settings.goal_mode.enabled", False)

        results = engine.run()

        assert len(results) == 1
        assert results[0].transitioned_to is None
        assert engine.run() == []
        assert engine.advance() == "eval_foundation"
        assert machine.current_phase == "eval_foundation"

    def test_advance_requires_completed_phase(self, engine: WorkflowEngine) -> None:
        with pytest.raises(ActionNotAllowed, match="has not completed"):
            engine.advance()

    def test_advance_past_last_phase(self, engine: WorkflowEngine) -> None:
        engine.run()

        with pytest.raises(ActionNotAllowed, match="last phase"):
            engine.advance()

    def test_resume_after_blocking_condition(
        self,
        orchestrator: PhaseOrchestrator,
        machine: PhaseStateMachine,
        registry,  # noqa: ANN001
    ) -> None:
        conflicted = MockCapability(
            responses=[CapabilityError("clash", kind="irreconcilable_conflict")]
        )
        registry.register("worker", conflicted)
        phases = catalog()
        research = phases["domain_research"]
        phases["domain_research"] = PhaseDefinition(
            phase_id="domain_research",
            body=research.body,
            auto_transition=research.auto_transition,
            blocking_conditions=(BlockingCondition(key="irreconcilable_conflict"),),
        )
        engine = WorkflowEngine(orchestrator, phases)

        with pytest.raises(BlockingConditionTriggered):
            engine.run()
        assert machine.halted
        assert engine.run() == []

        results = engine.resume("alice")

        assert not machine.halted
        assert results[0].phase_id == "domain_research"
        assert machine.finished

    def test_reset(self, engine: WorkflowEngine, machine: PhaseStateMachine) -> None:
        engine.run(max_phases=3)

        engine.reset()

        assert machine.current_phase == "domain_research"
        assert machine.status().completed_phases == ()


class TestReport:
    """Tests for report()."""

    def test_report_after_partial_run(
        self, engine: WorkflowEngine, machine: PhaseStateMachine
    ) -> None:
        machine.set_validation_status("oracle", True)
        machine.record_coverage("unit", 92.0)
        engine.run(max_phases=1)

        report = engine.report()

        assert report["project_type"] == "greenfield"
        assert report["current_phase"] == "eval_foundation"
        assert report["completed_phases"] == ["domain_research"]
        assert report["validation_status"] == {"oracle": True, "validator": False, "eval": False}
        assert report["coverage"] == {"unit": 92.0}
        assert report["history"][0]["from"] == "domain_research"
        assert not report["halted"]
