"""
Wiring: builds one fully connected control plane for a project root.

Every component is constructed here and injected into the ones that need
it; nothing in the package holds module-level state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from deliverygate.application import (
    AutonomyPolicyStore,
    EmergencyStop,
    EventBus,
    PhaseOrchestrator,
    PhaseStateMachine,
    SafeMode,
    SafetyInterlocks,
    ValidationGatePipeline,
    WorkflowEngine,
)
from deliverygate.catalog import load_phase_catalog
from deliverygate.domain.exceptions import ConfigurationError
from deliverygate.domain.interfaces import (
    CheckpointResolverInterface,
    ConfirmationInterface,
)
from deliverygate.domain.models import GateSubject, PhaseDefinition, ProjectType
from deliverygate.infrastructure import (
    CapabilityRegistry,
    DryRunCapability,
    FilesystemIncidentStore,
    FilesystemOutputSink,
    FilesystemWorkflowStateStore,
    InMemoryIncidentStore,
    InMemoryOutputSink,
    InMemorySettingsStore,
    InMemoryWorkflowStateStore,
    YamlSettingsStore,
)
from deliverygate.infrastructure.persistence.filesystem import (
    CONFIG_DIR,
    EMERGENCY_DIR,
    STATE_FILE,
)

logger = logging.getLogger(__name__)


@dataclass
class ControlPlane:
    """Every component of one control plane, already wired together."""

    root: Path
    bus: EventBus
    policy: AutonomyPolicyStore
    safe_mode: SafeMode
    emergency_stop: EmergencyStop
    interlocks: SafetyInterlocks
    state_machine: PhaseStateMachine
    capabilities: CapabilityRegistry
    gates: ValidationGatePipeline
    orchestrator: PhaseOrchestrator
    engine: WorkflowEngine
    phases: dict[str, PhaseDefinition] = field(default_factory=dict)

    def required_capabilities(self) -> tuple[str, ...]:
        """Capability names the catalog and the applicable gates dispatch to."""
        names: set[str] = set()
        for phase in self.phases.values():
            names.update(step.capability for step in phase.steps())
            if phase.gate_failure_step is not None:
                names.add(phase.gate_failure_step.capability)
            if phase.validation_gates:
                names.update(gate.capability for gate in self.gates.applicable_gates())
        return tuple(sorted(names))


def build_control_plane(
    root: str | Path = ".",
    project_type: ProjectType | None = None,
    catalog: str | Path | None = None,
    capabilities: CapabilityRegistry | None = None,
    in_memory: bool = False,
    dry_run: bool = False,
    checkpoint_resolver: CheckpointResolverInterface | None = None,
    confirmer: ConfirmationInterface | None = None,
    subjects: Mapping[str, Sequence[GateSubject]] | None = None,
    fail_fast: bool = False,
) -> ControlPlane:
    """
    Construct and connect every component for a project root.

    Args:
        root: Project root; configuration, state, incidents and step outputs
            live beneath it
        project_type: Project type for a fresh workflow; must match the
            persisted workflow when one exists (None accepts it)
        catalog: Phase catalog file; the built-in catalog when None
        capabilities: Registry to dispatch to; entry points are discovered
            into a new one when None
        in_memory: Keep every store in memory (nothing touches the disk)
        dry_run: Fill every missing capability with a DryRunCapability
        checkpoint_resolver: Human checkpoint decisions (None: phases stop
            at AWAITING_CHECKPOINT)
        confirmer: Confirmation of safe-mode gated actions
        subjects: Gate subjects per validation-gate phase
        fail_fast: Stop the gate pipeline at the first failing gate

    Raises:
        ConfigurationError: On invalid configuration, catalogs or a project
            type that contradicts the persisted workflow
    """
    root = Path(root)
    bus = EventBus()

    if in_memory:
        settings_store = InMemorySettingsStore()
        incident_store = InMemoryIncidentStore()
        state_store = InMemoryWorkflowStateStore()
        output_sink = InMemoryOutputSink()
    else:
        settings_store = YamlSettingsStore(root / CONFIG_DIR)
        incident_store = FilesystemIncidentStore(root / EMERGENCY_DIR)
        state_store = FilesystemWorkflowStateStore(root / STATE_FILE)
        output_sink = FilesystemOutputSink(root)

    policy = AutonomyPolicyStore(settings_store, bus)
    safe_mode = SafeMode(bus)
    emergency_stop = EmergencyStop(bus, incident_store)
    interlocks = SafetyInterlocks(safe_mode, emergency_stop)

    machine = PhaseStateMachine(project_type or ProjectType.GREENFIELD, state_store, bus)
    try:
        machine.initialize()
    except (OSError, ValueError) as e:
        logger.warning("Workflow state unreadable (%s), recovering from backup", e)
        if not machine.recover():
            raise ConfigurationError(f"Workflow state is corrupt and no backup exists: {e}") from e
    if project_type is not None and machine.project_type != project_type:
        raise ConfigurationError(
            f"Workflow state is for a {machine.project_type.value} project; "
            f"reset it before running as {project_type.value}"
        )

    phases = load_phase_catalog(catalog, machine.project_type, machine.order)

    if capabilities is None:
        capabilities = CapabilityRegistry()
        capabilities.discover()

    gates = ValidationGatePipeline(
        capabilities,
        project_type=machine.project_type,
        bus=bus,
        fail_fast=fail_fast,
    )
    orchestrator = PhaseOrchestrator(
        machine,
        capabilities,
        policy,
        bus,
        workspace=root,
        interlocks=interlocks,
        outputs=output_sink,
        gates=gates,
        checkpoint_resolver=checkpoint_resolver,
        confirmer=confirmer,
    )
    emergency_stop.register_snapshot_source("orchestrator", orchestrator.snapshot)
    engine = WorkflowEngine(orchestrator, phases, subjects)

    plane = ControlPlane(
        root=root,
        bus=bus,
        policy=policy,
        safe_mode=safe_mode,
        emergency_stop=emergency_stop,
        interlocks=interlocks,
        state_machine=machine,
        capabilities=capabilities,
        gates=gates,
        orchestrator=orchestrator,
        engine=engine,
        phases=phases,
    )

    if dry_run:
        for name in plane.required_capabilities():
            if not capabilities.has(name):
                capabilities.register(name, DryRunCapability(name))

    logger.debug(
        "Control plane ready at %s (%s, phase %s)",
        root,
        machine.project_type.value,
        machine.current_phase,
    )
    return plane
