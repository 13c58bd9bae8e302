"""
ValidationGatePipeline: ordered, conditionally included validation checks.

Every applicable gate runs in declared order, one at a time, and a failing
gate does not stop later gates; the caller gets every failure in one
report. Gates that do not apply to the project type are left out of the
report entirely.
"""

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any

from deliverygate.application.event_bus import EventBus
from deliverygate.domain.events import ControlEvent, EventType
from deliverygate.domain.exceptions import EmergencyStopActive, GateFailed
from deliverygate.domain.interfaces import CapabilityProviderInterface
from deliverygate.domain.models import (
    GateDefinition,
    GateReport,
    GateResult,
    GateSubject,
    ProjectType,
)

logger = logging.getLogger(__name__)

SOURCE = "gate-pipeline"

BROWNFIELD_ONLY = frozenset({ProjectType.BROWNFIELD})

DEFAULT_GATES: tuple[GateDefinition, ...] = (
    GateDefinition(
        ordinal=0,
        name="regression",
        capability="eval",
        task="run-regression-tests",
        inputs=("test-datasets/regression/",),
        options={"mode": "brownfield_only"},
        failure_reason="Regression tests failed - existing functionality broken",
        applies_to=BROWNFIELD_ONLY,
    ),
    GateDefinition(
        ordinal=1,
        name="eval",
        capability="eval",
        task="run-eval-tests",
        inputs=("{test_dataset}",),
        failure_reason="100% eval tests must pass",
        blocking_setting="autonomy-settings.truth_validation.eval_blocking",
    ),
    GateDefinition(
        ordinal=2,
        name="oracle",
        capability="oracle",
        task="validate-implementation",
        inputs=("{implementation}", "domain-truth.yaml"),
        options={"validates": "implementation matches domain truth"},
        failure_reason="Implementation does not match domain truth",
        blocking_setting="autonomy-settings.truth_validation.oracle_blocking",
    ),
    GateDefinition(
        ordinal=3,
        name="validator",
        capability="validator",
        task="validate-traceability-chain",
        inputs=("{id}",),
        options={"validates": "full traceability chain intact"},
        failure_reason="Traceability chain broken",
    ),
    GateDefinition(
        ordinal=4,
        name="monitor",
        capability="monitor",
        task="validate-metrics",
        options={
            "validates": "no drift detected, metrics healthy, no performance degradation"
        },
        failure_reason="Metrics unhealthy or drift detected",
    ),
    GateDefinition(
        ordinal=5,
        name="compatibility",
        capability="compatibility",
        task="validate-migration-adherence",
        options={
            "mode": "brownfield_only",
            "validates": "migration strategy adhered to, breaking changes documented",
        },
        failure_reason="Migration strategy not adhered to",
        applies_to=BROWNFIELD_ONLY,
    ),
    GateDefinition(
        ordinal=6,
        name="qa",
        capability="qa",
        task="run-supplemental-tests",
        inputs=("{id}",),
        options={"validates": "supplemental tests pass"},
        failure_reason="Supplemental tests failed",
    ),
)


class ValidationGatePipeline:
    """
    Runs the gates for one subject (story or feature) and aggregates them.

    The pipeline listens for emergency stops on the bus and refuses to start
    another gate once one has been observed.
    """

    def __init__(
        self,
        capabilities: CapabilityProviderInterface,
        project_type: ProjectType = ProjectType.GREENFIELD,
        gates: Sequence[GateDefinition] = DEFAULT_GATES,
        bus: EventBus | None = None,
        fail_fast: bool = False,
    ):
        """
        Args:
            capabilities: Resolves each gate's capability by name
            project_type: Decides which gates apply
            gates: Gate definitions in execution order
            bus: Source of halt signals and sink for gate notifications
            fail_fast: Stop at the first failing gate instead of aggregating
        """
        self._capabilities = capabilities
        self._project_type = project_type
        self._gates = tuple(gates)
        self._bus = bus
        self._fail_fast = fail_fast
        self._halted = threading.Event()

        if bus is not None:
            bus.subscribe(self._on_stop, EventType.EMERGENCY_STOP, subscriber=SOURCE)
            bus.subscribe(self._on_resume, EventType.EMERGENCY_RESUMED, subscriber=SOURCE)

    @property
    def project_type(self) -> ProjectType:
        return self._project_type

    def applicable_gates(self) -> tuple[GateDefinition, ...]:
        return tuple(g for g in self._gates if g.applies(self._project_type))

    def definition(self, name: str) -> GateDefinition | None:
        for gate in self._gates:
            if gate.name == name:
                return gate
        return None

    def blocking_failures(
        self,
        failures: Sequence[GateResult],
        resolve: Callable[[str], Any],
    ) -> tuple[GateResult, ...]:
        """
        Failures that must block under the current autonomy policy.

        A gate without a blocking setting always blocks; one with a setting
        blocks unless the setting resolves false.
        """
        blocking = []
        for failure in failures:
            gate = self.definition(failure.name)
            if gate is None or gate.blocking_setting is None:
                blocking.append(failure)
            elif resolve(gate.blocking_setting) is not False:
                blocking.append(failure)
        return tuple(blocking)

    def execute_all(self, subject: GateSubject) -> GateReport:
        """
        Run every applicable gate against ``subject``.

        Raises:
            GateFailed: Listing every failing gate, if any gate failed
            EmergencyStopActive: If a halt was signalled before a gate started
        """
        gates = self.applicable_gates()
        logger.info("Executing %d validation gate(s) for %s", len(gates), subject.subject_id)

        results: list[GateResult] = []
        for gate in gates:
            if self._halted.is_set():
                raise EmergencyStopActive(f"gate {gate.name}")

            result = self._run_gate(gate, subject)
            results.append(result)
            self._publish(
                {
                    "subject": subject.subject_id,
                    "gate": result.gate,
                    "name": result.name,
                    "passed": result.passed,
                    "reason": result.reason,
                }
            )
            if not result.passed and self._fail_fast:
                break

        report = GateReport(passed=all(r.passed for r in results), results=tuple(results))
        if not report.passed:
            for failure in report.failures:
                logger.warning("Gate %d (%s) failed: %s", failure.gate, failure.name, failure.reason)
            raise GateFailed(report)

        logger.info("All validation gates passed for %s", subject.subject_id)
        return report

    def _run_gate(self, gate: GateDefinition, subject: GateSubject) -> GateResult:
        logger.debug("Gate %d [%s] %s", gate.ordinal, gate.name.upper(), gate.task)
        try:
            fields = subject.template_fields()
            inputs = [template.format(**fields) for template in gate.inputs]
            options = dict(gate.options)
            options["project_type"] = self._project_type.value
            capability = self._capabilities.get(gate.capability)
            outcome = capability.invoke(gate.task, [i for i in inputs if i], options)
        except Exception as e:
            # A misbehaving collaborator becomes a failed gate, not an aborted run.
            logger.warning("Gate %d (%s) raised: %s", gate.ordinal, gate.name, e)
            return GateResult(gate=gate.ordinal, name=gate.name, passed=False, reason=str(e))

        if outcome.success:
            return GateResult(gate=gate.ordinal, name=gate.name, passed=True)
        return GateResult(
            gate=gate.ordinal,
            name=gate.name,
            passed=False,
            reason=gate.failure_reason,
        )

    def _on_stop(self, event: ControlEvent) -> None:
        self._halted.set()

    def _on_resume(self, event: ControlEvent) -> None:
        self._halted.clear()

    def _publish(self, payload: dict[str, Any]) -> None:
        if self._bus is not None:
            self._bus.publish(EventType.GATE_COMPLETED, SOURCE, payload)
