"""Phase catalog loading: YAML document -> PhaseDefinition objects."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from importlib.resources import files
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from deliverygate.application.state_machine import default_order
from deliverygate.domain.conditions import parse_condition
from deliverygate.domain.exceptions import ConfigurationError
from deliverygate.domain.models import (
    HALT_WORKFLOW,
    AutoTransition,
    BlockingCondition,
    CheckpointLevel,
    HumanCheckpoint,
    ParallelGroup,
    PhaseDefinition,
    ProjectType,
    Step,
)
from deliverygate.schemas import validate_phase_catalog

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = "default_phases.yaml"


def read_catalog(path: str | Path | None = None) -> dict[str, Any]:
    """
    Read and schema-check a catalog document.

    Args:
        path: Catalog file; the built-in catalog when None

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    try:
        if path is None:
            text = files("deliverygate.catalog").joinpath(DEFAULT_CATALOG).read_text()
            source = DEFAULT_CATALOG
        else:
            source = str(path)
            if not Path(path).exists():
                raise ConfigurationError(f"Phase catalog not found: {path}")
            text = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {source}: {e}") from e

    try:
        validate_phase_catalog(data)
    except jsonschema.ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "(root)"
        raise ConfigurationError(
            f"Invalid phase catalog {source}: {location}: {e.message}"
        ) from e

    result: dict[str, Any] = data
    return result


def parse_step(data: Mapping[str, Any]) -> Step:
    return Step(
        step_id=data["step"],
        capability=data["capability"],
        task=data["task"],
        inputs=tuple(data.get("inputs", ())),
        outputs=tuple(data.get("outputs", ())),
        blocking=bool(data.get("blocking", False)),
        options=dict(data.get("options", {})),
    )


def _parse_body(
    phase_id: str, items: Sequence[Mapping[str, Any]]
) -> tuple[Step | ParallelGroup, ...]:
    body: list[Step | ParallelGroup] = []
    for index, item in enumerate(items):
        if "parallel" in item:
            body.append(
                ParallelGroup(
                    steps=tuple(parse_step(s) for s in item["parallel"]),
                    group_id=f"{phase_id}-parallel-{index}",
                )
            )
        else:
            body.append(parse_step(item))
    return tuple(body)


def parse_phase(data: Mapping[str, Any], successor: str | None = None) -> PhaseDefinition:
    """
    Build a PhaseDefinition from one catalog entry.

    Args:
        data: Catalog entry
        successor: Next phase in the project order, used when the
            auto_transition entry names no next_phase
    """
    phase_id = data["id"]

    checkpoint = None
    if "human_checkpoint" in data:
        cp = data["human_checkpoint"]
        checkpoint = HumanCheckpoint(
            purpose=cp["purpose"],
            questions=tuple(cp.get("questions", ())),
            level=CheckpointLevel(cp.get("level", CheckpointLevel.MAJOR.value)),
        )

    transition = None
    if "auto_transition" in data:
        at = data["auto_transition"] or {}
        next_phase = at.get("next_phase", successor)
        if next_phase is None:
            raise ConfigurationError(f"Phase {phase_id} auto-transitions but has no successor")
        transition = AutoTransition(next_phase=next_phase, message=at.get("message", ""))

    blocking = tuple(
        BlockingCondition(
            key=key,
            action=entry.get("action", HALT_WORKFLOW),
            message=entry.get("message", ""),
        )
        for key, entry in data.get("blocking_conditions", {}).items()
    )

    failure_step = None
    if "gate_failure_step" in data:
        failure_step = parse_step(data["gate_failure_step"])

    return PhaseDefinition(
        phase_id=phase_id,
        prerequisites=tuple(parse_condition(c) for c in data.get("prerequisites", ())),
        body=_parse_body(phase_id, data.get("body", ())),
        exit_conditions=tuple(parse_condition(c) for c in data.get("exit_conditions", ())),
        human_checkpoint=checkpoint,
        auto_transition=transition,
        blocking_conditions=blocking,
        validation_gates=bool(data.get("validation_gates", False)),
        gate_failure_step=failure_step,
        description=data.get("description", ""),
    )


def load_phase_catalog(
    path: str | Path | None = None,
    project_type: ProjectType = ProjectType.GREENFIELD,
    order: Sequence[str] | None = None,
) -> dict[str, PhaseDefinition]:
    """
    Load the phases that apply to a project type.

    Args:
        path: Catalog file; the built-in catalog when None
        project_type: Phases restricted to other project types are skipped
        order: Phase order used to fill in missing transition targets

    Returns:
        Phase definitions keyed by phase id

    Raises:
        ConfigurationError: On invalid catalogs or duplicate phase ids
    """
    data = read_catalog(path)
    order = tuple(order or default_order(project_type))

    phases: dict[str, PhaseDefinition] = {}
    for entry in data["phases"]:
        applies_to = entry.get("project_types")
        if applies_to and project_type.value not in applies_to:
            logger.debug("Skipping %s for %s projects", entry["id"], project_type.value)
            continue
        phase_id = entry["id"]
        if phase_id in phases:
            raise ConfigurationError(f"Duplicate phase id in catalog: {phase_id}")
        successor = None
        if phase_id in order:
            index = order.index(phase_id)
            successor = order[index + 1] if index + 1 < len(order) else None
        phases[phase_id] = parse_phase(entry, successor)

    logger.debug("Loaded %d phases for %s projects", len(phases), project_type.value)
    return phases
