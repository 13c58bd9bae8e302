"""
Safe mode restrictions and emergency stop action lists.

Each restriction maps deterministically to an apply effect, a revert effect
and the autonomy settings it pins while active.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RestrictionEffect:
    """What a safe mode restriction does while it is in force."""

    apply: str  # effect name published on activation
    revert: str  # effect name published on removal
    settings: Mapping[str, Any] = field(default_factory=dict)  # dotted key -> value


RESTRICTIONS: dict[str, RestrictionEffect] = {
    "disable-all-automation": RestrictionEffect(
        apply="set-autonomy-level:manual",
        revert="restore-autonomy-level",
        settings={
            "autonomy-settings.auto_agent_switching.enabled": False,
            "autonomy-settings.auto_command_execution.enabled": False,
            "autonomy-settings.predictive_suggestions.enabled": False,
            "autonomy-settings.goal_mode.enabled": False,
        },
    ),
    "manual-agent-invocation-only": RestrictionEffect(
        apply="disable-agent-switching",
        revert="enable-agent-switching",
        settings={"autonomy-settings.auto_agent_switching.enabled": False},
    ),
    "full-validation-enabled": RestrictionEffect(
        apply="enable-all-validations",
        revert="restore-validation-settings",
        settings={
            "autonomy-settings.truth_validation.oracle_blocking": True,
            "autonomy-settings.truth_validation.eval_blocking": True,
        },
    ),
    "no-background-execution": RestrictionEffect(
        apply="disable-background-agents",
        revert="enable-background-agents",
        settings={"autonomy-settings.background_agents.enabled": False},
    ),
    "require-confirmation-all-actions": RestrictionEffect(
        apply="enable-confirmations",
        revert="restore-confirmation-settings",
        settings={
            "autonomy-settings.auto_agent_switching.require_confirmation": True,
            "autonomy-settings.goal_mode.checkpoint_approval": "all",
        },
    ),
    "read-only-mode": RestrictionEffect(
        apply="enable-read-only-mode",
        revert="disable-read-only-mode",
    ),
}

DEFAULT_RESTRICTIONS: tuple[str, ...] = (
    "disable-all-automation",
    "manual-agent-invocation-only",
    "full-validation-enabled",
    "no-background-execution",
    "require-confirmation-all-actions",
    "read-only-mode",
)

SAFE_MODE_ALLOWED_ACTIONS = frozenset(
    {
        "read-file",
        "view-metrics",
        "view-status",
        "manual-validation",
        "emergency-stop",
        "deactivate-safe-mode",
    }
)

CONFIRMATION_ACTIONS = frozenset(
    {
        "write-file",
        "delete-file",
        "modify-configuration",
        "invoke-agent",
        "execute-command",
        "rollback",
        "apply-changes",
    }
)

EMERGENCY_ALLOWED_ACTIONS = frozenset(
    {
        "read-file",
        "view-metrics",
        "view-status",
        "resume",
    }
)

HALT_TARGETS: tuple[str, ...] = (
    "halt-agents",
    "halt-background-tasks",
    "halt-metrics",
    "halt-workflow",
    "flush-buffers",
)

BASE_RECOMMENDATIONS: tuple[str, ...] = (
    "Review the emergency report for details",
    "Check system logs for errors or warnings",
    "Verify configuration settings",
    "Run health checks before resuming",
)

FAILURE_RECOMMENDATIONS: tuple[str, ...] = (
    "Investigate and fix the underlying error",
    "Consider starting in safe mode",
)


def recommendations_for(reason: str) -> tuple[str, ...]:
    """Recommended next actions for an incident report."""
    lowered = reason.lower()
    if "error" in lowered or "failure" in lowered:
        return BASE_RECOMMENDATIONS + FAILURE_RECOMMENDATIONS
    return BASE_RECOMMENDATIONS
