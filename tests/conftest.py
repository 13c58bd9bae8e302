"""Shared pytest fixtures for deliverygate tests."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from deliverygate.application import (
    AutonomyPolicyStore,
    EmergencyStop,
    EventBus,
    PhaseOrchestrator,
    PhaseStateMachine,
    SafeMode,
    SafetyInterlocks,
    ValidationGatePipeline,
)
from deliverygate.domain.events import ControlEvent
from deliverygate.domain.interfaces import (
    CheckpointResolverInterface,
    ConfirmationInterface,
)
from deliverygate.domain.models import (
    CapabilityResult,
    CheckpointResolution,
    HumanCheckpoint,
    ProjectType,
)
from deliverygate.infrastructure import (
    CapabilityRegistry,
    InMemoryIncidentStore,
    InMemoryOutputSink,
    InMemorySettingsStore,
    InMemoryWorkflowStateStore,
    MockCapability,
)


class FakeClock:
    """Manually advanced clock (seconds since the epoch)."""

    def __init__(self, start: float = 1_767_225_600.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingResolver(CheckpointResolverInterface):
    """Answers every checkpoint the same way and remembers which it saw."""

    def __init__(self, approved: bool = True, resolved_by: str = "alice") -> None:
        self.approved = approved
        self.resolved_by = resolved_by
        self.seen: list[str] = []

    def resolve(self, phase_id: str, checkpoint: HumanCheckpoint) -> CheckpointResolution:
        self.seen.append(phase_id)
        return CheckpointResolution(
            approved=self.approved,
            resolved_by=self.resolved_by,
            notes="" if self.approved else "needs rework",
            resolved_at="2026-01-01T00:00:00+00:00",
        )


class RecordingConfirmer(ConfirmationInterface):
    """Answers every confirmation the same way and remembers the actions."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.asked: list[str] = []

    def confirm(self, action: str, detail: str = "") -> bool:
        self.asked.append(action)
        return self.answer


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events(bus: EventBus) -> list[ControlEvent]:
    """Every event published on the shared bus, in order."""
    seen: list[ControlEvent] = []
    bus.subscribe(seen.append, subscriber="test-recorder")
    return seen


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def policy(settings_store: InMemorySettingsStore, bus: EventBus) -> AutonomyPolicyStore:
    return AutonomyPolicyStore(settings_store, bus)


@pytest.fixture
def safe_mode(bus: EventBus, clock: FakeClock) -> SafeMode:
    return SafeMode(bus, clock=clock)


@pytest.fixture
def incident_store() -> InMemoryIncidentStore:
    return InMemoryIncidentStore()


@pytest.fixture
def emergency_stop(
    bus: EventBus, incident_store: InMemoryIncidentStore, clock: FakeClock
) -> EmergencyStop:
    return EmergencyStop(bus, incident_store, clock=clock)


@pytest.fixture
def interlocks(safe_mode: SafeMode, emergency_stop: EmergencyStop) -> SafetyInterlocks:
    return SafetyInterlocks(safe_mode, emergency_stop)


@pytest.fixture
def state_store() -> InMemoryWorkflowStateStore:
    return InMemoryWorkflowStateStore()


@pytest.fixture
def machine(state_store: InMemoryWorkflowStateStore, bus: EventBus) -> PhaseStateMachine:
    """Greenfield state machine, initialized and persisted in memory."""
    sm = PhaseStateMachine(ProjectType.GREENFIELD, state_store, bus)
    sm.initialize()
    return sm


@pytest.fixture
def registry() -> CapabilityRegistry:
    return CapabilityRegistry()


@pytest.fixture
def capability(registry: CapabilityRegistry) -> Callable[..., MockCapability]:
    """Factory registering a MockCapability under a name."""

    def register(
        name: str,
        *responses: CapabilityResult | Exception,
        default: CapabilityResult | None = None,
    ) -> MockCapability:
        mock = MockCapability(responses=responses, default=default)
        registry.register(name, mock)
        return mock

    return register


@pytest.fixture
def sink() -> InMemoryOutputSink:
    return InMemoryOutputSink()


@pytest.fixture
def resolver() -> RecordingResolver:
    return RecordingResolver()


@pytest.fixture
def confirmer() -> RecordingConfirmer:
    return RecordingConfirmer()


@pytest.fixture
def gates(registry: CapabilityRegistry, bus: EventBus) -> ValidationGatePipeline:
    return ValidationGatePipeline(registry, project_type=ProjectType.GREENFIELD, bus=bus)


@pytest.fixture
def make_orchestrator(
    machine: PhaseStateMachine,
    registry: CapabilityRegistry,
    policy: AutonomyPolicyStore,
    bus: EventBus,
    interlocks: SafetyInterlocks,
    sink: InMemoryOutputSink,
    gates: ValidationGatePipeline,
    tmp_path: Path,
) -> Callable[..., PhaseOrchestrator]:
    """Factory for an orchestrator wired to the shared fixtures."""

    def build(**overrides: Any) -> PhaseOrchestrator:
        kwargs: dict[str, Any] = {
            "workspace": tmp_path,
            "interlocks": interlocks,
            "outputs": sink,
            "gates": gates,
        }
        kwargs.update(overrides)
        return PhaseOrchestrator(machine, registry, policy, bus, **kwargs)

    return build


@pytest.fixture
def orchestrator(make_orchestrator: Callable[..., PhaseOrchestrator]) -> PhaseOrchestrator:
    """Orchestrator without a checkpoint resolver or confirmer."""
    return make_orchestrator()
