"""
Autonomy profiles and built-in configuration defaults.

Profiles trade blocking strictness for speed: ``conservative`` blocks on any
validation failure and keeps humans in the loop, ``full_auto`` disables
blocking and checkpoint approvals entirely.
"""

import copy
from collections.abc import Iterator, Mapping
from enum import Enum
from typing import Any

AUTONOMY_DOCUMENT = "autonomy-settings"


class AutonomyLevel(str, Enum):
    """Named autonomy profile."""

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    FULL_AUTO = "full_auto"

    @classmethod
    def names(cls) -> tuple[str, ...]:
        return tuple(level.value for level in cls)


class CheckpointApproval(str, Enum):
    """Granularity of human checkpoint approvals (goal_mode.checkpoint_approval)."""

    NONE = "none"
    MINIMAL = "minimal"
    MAJOR_MILESTONES_ONLY = "major_milestones_only"
    ALL = "all"


BUILT_IN_DEFAULTS: dict[str, dict[str, Any]] = {
    "autonomy-settings": {
        "level": "balanced",
        "auto_agent_switching": {"enabled": True, "require_confirmation": True},
        "background_agents": {"enabled": True, "max_concurrent": 2},
        "auto_command_execution": {"enabled": False},
        "predictive_suggestions": {"enabled": True, "auto_accept_threshold": 0.95},
        "goal_mode": {
            "enabled": True,
            "checkpoint_approval": "major_milestones_only",
        },
        "truth_validation": {
            "oracle_blocking": True,
            "eval_blocking": True,
            "validator_warnings": True,
            "monitor_alerts": True,
        },
    },
    "truth-settings": {
        "domain_truth": {"auto_create": True, "require_approval": True},
        "eval_datasets": {"auto_generate": True, "coverage_threshold": 0.90},
        "validation": {
            "oracle_validation": "blocking",
            "eval_test_execution": "blocking",
        },
        "propagation": {
            "cascade_updates": True,
            "require_approval": "major_changes_only",
        },
    },
    "metrics-config": {
        "collection": {"enabled": True, "frequency": "real_time"},
        "storage": {"location": ".deliverygate-metrics", "retention_days": 90},
        "dashboards": {"enabled": True, "port": 3001},
    },
    "deployment-config": {
        "mode": "local_development",
        "health_checks": {"enabled": True, "frequency": "startup"},
    },
    "notification-config": {
        "channels": ["cli", "web"],
        "levels": {
            "info": ["cli"],
            "warning": ["cli", "web"],
            "error": ["cli", "web"],
            "critical": ["cli", "web"],
        },
    },
}

# Paths are relative to the autonomy-settings document.
PROFILE_SETTINGS: dict[AutonomyLevel, dict[str, Any]] = {
    AutonomyLevel.CONSERVATIVE: {
        "auto_agent_switching.enabled": False,
        "background_agents.enabled": True,
        "auto_command_execution.enabled": False,
        "predictive_suggestions.enabled": True,
        "goal_mode.enabled": False,
        "truth_validation.oracle_blocking": True,
        "truth_validation.eval_blocking": True,
    },
    AutonomyLevel.BALANCED: {
        "auto_agent_switching.enabled": True,
        "auto_agent_switching.require_confirmation": True,
        "background_agents.enabled": True,
        "auto_command_execution.enabled": False,
        "predictive_suggestions.enabled": True,
        "goal_mode.enabled": True,
        "goal_mode.checkpoint_approval": "major_milestones_only",
        "truth_validation.oracle_blocking": True,
    },
    AutonomyLevel.AGGRESSIVE: {
        "auto_agent_switching.enabled": True,
        "auto_agent_switching.require_confirmation": False,
        "background_agents.enabled": True,
        "background_agents.max_concurrent": 4,
        "auto_command_execution.enabled": True,
        "predictive_suggestions.enabled": True,
        "goal_mode.enabled": True,
        "goal_mode.checkpoint_approval": "minimal",
        "truth_validation.oracle_blocking": False,
    },
    AutonomyLevel.FULL_AUTO: {
        "auto_agent_switching.enabled": True,
        "auto_agent_switching.require_confirmation": False,
        "background_agents.enabled": True,
        "background_agents.max_concurrent": -1,  # unlimited
        "auto_command_execution.enabled": True,
        "predictive_suggestions.enabled": True,
        "goal_mode.enabled": True,
        "goal_mode.checkpoint_approval": "none",
        "truth_validation.oracle_blocking": False,
        "truth_validation.eval_blocking": False,
    },
}


def parse_level(name: str) -> AutonomyLevel | None:
    try:
        return AutonomyLevel(name)
    except ValueError:
        return None


def split_key(key: str) -> tuple[str, tuple[str, ...]]:
    """Split ``'autonomy-settings.goal_mode.enabled'`` into document and path."""
    parts = key.split(".")
    return parts[0], tuple(p for p in parts[1:] if p)


def get_path(document: Mapping[str, Any] | None, path: tuple[str, ...]) -> Any:
    """Walk a nested mapping; returns None when any segment is missing."""
    value: Any = document
    for part in path:
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def set_path(document: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    """Set a nested value, creating intermediate mappings as needed."""
    if not path:
        raise ValueError("Cannot set the root of a document")
    current = document
    for part in path[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[path[-1]] = value


def iter_leaves(
    document: Mapping[str, Any], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], Any]]:
    """Yield (path, value) for every non-mapping value of a document."""
    for key, value in document.items():
        path = prefix + (key,)
        if isinstance(value, Mapping):
            yield from iter_leaves(value, path)
        else:
            yield path, value


def built_in_default(name: str) -> dict[str, Any]:
    return copy.deepcopy(BUILT_IN_DEFAULTS.get(name, {}))


def recognized_keys() -> frozenset[str]:
    """Every dotted key with a built-in default."""
    keys = set()
    for name, document in BUILT_IN_DEFAULTS.items():
        for path, _ in iter_leaves(document):
            keys.add(".".join((name,) + path))
    return frozenset(keys)
