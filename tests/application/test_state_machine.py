"""Tests for PhaseStateMachine transitions, halts and persistence."""

from pathlib import Path

import pytest

from deliverygate.application import (
    BROWNFIELD_ORDER,
    GREENFIELD_ORDER,
    EventBus,
    PhaseStateMachine,
)
from deliverygate.domain.events import ControlEvent, EventType
from deliverygate.domain.exceptions import (
    ActionNotAllowed,
    ConfigurationError,
    InvalidTransition,
    WorkflowHalted,
)
from deliverygate.domain.models import CheckpointResolution, ProjectType
from deliverygate.infrastructure import InMemoryWorkflowStateStore


class TestOrder:
    """Tests for phase order and successors."""

    def test_greenfield_starts_at_domain_research(self, machine: PhaseStateMachine) -> None:
        assert machine.order == GREENFIELD_ORDER
        assert machine.current_phase == "domain_research"
        assert machine.valid_transitions() == ("eval_foundation",)

    def test_brownfield_starts_at_codebase_discovery(self) -> None:
        sm = PhaseStateMachine(ProjectType.BROWNFIELD)

        assert sm.order == BROWNFIELD_ORDER
        assert sm.current_phase == "codebase_discovery"
        assert sm.successor("eval_foundation") == "compatibility_analysis"

    def test_last_phase_has_no_successor(self, machine: PhaseStateMachine) -> None:
        assert machine.successor("development") is None
        assert machine.successor("unknown") is None

    def test_custom_order(self) -> None:
        sm = PhaseStateMachine(order=["a", "b"])

        assert sm.current_phase == "a"
        assert sm.valid_transitions() == ("b",)

    def test_custom_order_must_not_repeat(self) -> None:
        with pytest.raises(ConfigurationError):
            PhaseStateMachine(order=["a", "b", "a"])


class TestTransition:
    """Tests for transition()."""

    def test_transition_completes_previous_phase(
        self, machine: PhaseStateMachine, events: list[ControlEvent]
    ) -> None:
        record = machine.transition("eval_foundation")

        assert record.from_phase == "domain_research"
        assert record.to_phase == "eval_foundation"
        assert machine.current_phase == "eval_foundation"
        assert machine.is_complete("domain_research")
        assert events[-1].event_type == EventType.PHASE_TRANSITIONED

    def test_skipping_a_phase_is_invalid(self, machine: PhaseStateMachine) -> None:
        with pytest.raises(InvalidTransition) as exc_info:
            machine.transition("architecture")

        assert exc_info.value.valid == ("eval_foundation",)
        assert machine.current_phase == "domain_research"

    def test_going_backwards_is_invalid(self, machine: PhaseStateMachine) -> None:
        machine.transition("eval_foundation")

        with pytest.raises(InvalidTransition):
            machine.transition("domain_research")

    def test_walk_to_the_end(self, machine: PhaseStateMachine) -> None:
        for phase in GREENFIELD_ORDER[1:]:
            machine.transition(phase)
        machine.mark_complete("development")

        status = machine.status()
        assert machine.finished
        assert status.progress == 100
        assert status.valid_transitions == ()
        assert len(status.history) == len(GREENFIELD_ORDER) - 1

    def test_progress_is_index_over_total(self, machine: PhaseStateMachine) -> None:
        machine.transition("eval_foundation")
        machine.transition("discovery")

        assert machine.status().progress == round(2 / 6 * 100)


class TestHalt:
    """Tests for the halt super-state."""

    def test_halted_machine_refuses_transitions(
        self, machine: PhaseStateMachine, events: list[ControlEvent]
    ) -> None:
        machine.halt("compatibility_analysis: irreconcilable_conflict")

        with pytest.raises(WorkflowHalted, match="irreconcilable_conflict"):
            machine.transition("eval_foundation")

        assert events[-1].event_type == EventType.WORKFLOW_HALTED
        assert machine.status().halt_reason == "compatibility_analysis: irreconcilable_conflict"

    def test_clear_halt_requires_approver(self, machine: PhaseStateMachine) -> None:
        machine.halt("conflict")

        with pytest.raises(ActionNotAllowed):
            machine.clear_halt("")

        assert machine.halted

    def test_clear_halt(self, machine: PhaseStateMachine, events: list[ControlEvent]) -> None:
        machine.halt("conflict")

        machine.clear_halt("alice")

        assert not machine.halted
        assert machine.halt_reason is None
        assert events[-1].payload == {"approved_by": "alice", "reason": "conflict"}
        machine.transition("eval_foundation")

    def test_clear_halt_when_not_halted_is_noop(
        self, machine: PhaseStateMachine, events: list[ControlEvent]
    ) -> None:
        machine.clear_halt("alice")

        assert events == []


class TestRecords:
    """Tests for validation, coverage and checkpoint records."""

    def test_validation_and_coverage(self, machine: PhaseStateMachine, tmp_path: Path) -> None:
        machine.set_validation_status("oracle", True)
        machine.record_coverage("unit", 97.5)

        context = machine.condition_context(tmp_path)
        assert context.validation_status == {"oracle": True}
        assert machine.coverage("unit") == 97.5
        assert machine.coverage("integration") == 0.0
        assert not machine.validation_status("eval")

    def test_approved_checkpoint_clears_pending(self, machine: PhaseStateMachine) -> None:
        machine.set_pending_checkpoint("domain_research")
        resolution = CheckpointResolution(approved=True, resolved_by="alice")

        machine.record_checkpoint("domain_research", resolution)

        assert machine.pending_checkpoint is None
        assert machine.checkpoint_resolution("domain_research") == resolution

    def test_transition_clears_pending_checkpoint_of_previous(
        self, machine: PhaseStateMachine
    ) -> None:
        machine.set_pending_checkpoint("domain_research")

        machine.transition("eval_foundation")

        assert machine.pending_checkpoint is None


class TestPersistence:
    """Tests for save, reload and recovery."""

    def test_state_survives_reload(
        self, machine: PhaseStateMachine, state_store: InMemoryWorkflowStateStore, bus: EventBus
    ) -> None:
        machine.transition("eval_foundation")
        machine.set_validation_status("oracle", True)
        machine.record_checkpoint(
            "domain_research", CheckpointResolution(approved=True, resolved_by="alice")
        )

        reloaded = PhaseStateMachine(ProjectType.GREENFIELD, state_store, bus)
        reloaded.initialize()

        assert reloaded.current_phase == "eval_foundation"
        assert reloaded.is_complete("domain_research")
        assert reloaded.validation_status("oracle")
        assert reloaded.checkpoint_resolution("domain_research").resolved_by == "alice"
        assert len(reloaded.status().history) == 1

    def test_persisted_project_type_wins(self, state_store: InMemoryWorkflowStateStore) -> None:
        PhaseStateMachine(ProjectType.BROWNFIELD, state_store).initialize()

        reloaded = PhaseStateMachine(ProjectType.GREENFIELD, state_store)
        reloaded.initialize()

        assert reloaded.project_type == ProjectType.BROWNFIELD
        assert reloaded.current_phase == "codebase_discovery"

    def test_recover_from_backup(
        self, machine: PhaseStateMachine, state_store: InMemoryWorkflowStateStore
    ) -> None:
        machine.transition("eval_foundation")
        state_store.corrupt()

        fresh = PhaseStateMachine(ProjectType.GREENFIELD, state_store)
        assert fresh.recover()

        assert fresh.current_phase == "eval_foundation"
        assert state_store.load() is not None

    def test_recover_without_store(self) -> None:
        assert not PhaseStateMachine().recover()

    def test_backups_are_bounded(self, bus: EventBus) -> None:
        store = InMemoryWorkflowStateStore(max_backups=3)
        sm = PhaseStateMachine(ProjectType.GREENFIELD, store, bus)
        sm.initialize()

        for phase in GREENFIELD_ORDER[1:]:
            sm.transition(phase)

        assert store.backup_count == 3

    def test_reset(self, machine: PhaseStateMachine, state_store: InMemoryWorkflowStateStore) -> None:
        machine.transition("eval_foundation")
        machine.halt("conflict")

        machine.reset()

        assert machine.current_phase == "domain_research"
        assert not machine.halted
        assert state_store.load()["completed_phases"] == []
