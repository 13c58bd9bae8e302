"""Control-plane notification models (policy and safety change fan-out)."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Types of control-plane notifications."""

    SETTING_CHANGED = "SETTING_CHANGED"
    PROFILE_CHANGED = "PROFILE_CHANGED"
    OVERRIDE_SET = "OVERRIDE_SET"
    OVERRIDE_CLEARED = "OVERRIDE_CLEARED"
    SAFE_MODE_ACTIVATED = "SAFE_MODE_ACTIVATED"
    SAFE_MODE_DEACTIVATED = "SAFE_MODE_DEACTIVATED"
    RESTRICTION_APPLIED = "RESTRICTION_APPLIED"
    RESTRICTION_REMOVED = "RESTRICTION_REMOVED"
    EMERGENCY_STOP = "EMERGENCY_STOP"
    HALT = "HALT"
    EMERGENCY_RESUMED = "EMERGENCY_RESUMED"
    PHASE_STARTED = "PHASE_STARTED"
    PHASE_COMPLETED = "PHASE_COMPLETED"
    PHASE_FAILED = "PHASE_FAILED"
    PHASE_TRANSITIONED = "PHASE_TRANSITIONED"
    WORKFLOW_HALTED = "WORKFLOW_HALTED"
    WORKFLOW_HALT_CLEARED = "WORKFLOW_HALT_CLEARED"
    CHECKPOINT_PENDING = "CHECKPOINT_PENDING"
    CHECKPOINT_RESOLVED = "CHECKPOINT_RESOLVED"
    GATE_COMPLETED = "GATE_COMPLETED"


@dataclass(frozen=True)
class ControlEvent:
    """Single notification published on the control-plane bus."""

    event_id: str
    event_type: EventType
    source: str  # component that published it
    payload: Mapping[str, Any] = field(default_factory=dict)
    created_at: str = ""  # ISO 8601
