"""
Application layer for the delivery control plane.

Contains the stateful components that coordinate domain objects: the policy
store, the safety interlocks, the gate pipeline and the phase orchestrator.
"""

from deliverygate.application.emergency_stop import EmergencyStop
from deliverygate.application.engine import WorkflowEngine
from deliverygate.application.event_bus import EventBus, Subscription
from deliverygate.application.gates import DEFAULT_GATES, ValidationGatePipeline
from deliverygate.application.interlocks import SafetyInterlocks
from deliverygate.application.orchestrator import PhaseOrchestrator
from deliverygate.application.policy_store import AutonomyPolicyStore
from deliverygate.application.safe_mode import SafeMode
from deliverygate.application.state_machine import (
    BROWNFIELD_ORDER,
    GREENFIELD_ORDER,
    PhaseStateMachine,
)

__all__ = [
    "AutonomyPolicyStore",
    "BROWNFIELD_ORDER",
    "DEFAULT_GATES",
    "EmergencyStop",
    "EventBus",
    "GREENFIELD_ORDER",
    "PhaseOrchestrator",
    "PhaseStateMachine",
    "SafeMode",
    "SafetyInterlocks",
    "Subscription",
    "ValidationGatePipeline",
    "WorkflowEngine",
]
