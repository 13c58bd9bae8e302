"""JSON Schema definitions and validation utilities.

Schemas:
    - phase_catalog.schema.json: phase catalog (phases, steps, conditions, gates)
    - autonomy_settings.schema.json: the autonomy-settings configuration document

Usage:
    from deliverygate.schemas import validate_phase_catalog

    with open("phases.yaml") as f:
        data = yaml.safe_load(f)
    validate_phase_catalog(data)  # Raises jsonschema.ValidationError if invalid
"""

from __future__ import annotations

import json
from importlib.resources import files
from typing import Any

import jsonschema

SCHEMA_FILES: dict[str, str] = {
    "autonomy-settings": "autonomy_settings.schema.json",
    "phase-catalog": "phase_catalog.schema.json",
}


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'phase_catalog.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("deliverygate.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_phase_catalog_schema() -> dict[str, Any]:
    return _load_schema(SCHEMA_FILES["phase-catalog"])


def get_autonomy_settings_schema() -> dict[str, Any]:
    return _load_schema(SCHEMA_FILES["autonomy-settings"])


def has_schema(document: str) -> bool:
    """Whether a configuration document has a schema to validate against."""
    return document in SCHEMA_FILES


def validate_phase_catalog(data: Any) -> None:
    """Validate a phase catalog against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_phase_catalog_schema())


def validate_autonomy_settings(data: Any) -> None:
    """Validate an autonomy-settings document against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_autonomy_settings_schema())


def schema_errors(document: str, data: Any) -> list[str]:
    """Collect every schema violation of ``data`` as readable messages.

    Args:
        document: Key of SCHEMA_FILES (e.g. 'autonomy-settings')
        data: Parsed document

    Returns:
        One message per violation, prefixed with the offending path
    """
    schema = _load_schema(SCHEMA_FILES[document])
    validator = jsonschema.Draft202012Validator(schema)
    messages = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = ".".join(str(p) for p in error.path) or "(root)"
        messages.append(f"{location}: {error.message}")
    return messages


__all__ = [
    "get_autonomy_settings_schema",
    "get_phase_catalog_schema",
    "has_schema",
    "schema_errors",
    "validate_autonomy_settings",
    "validate_phase_catalog",
]
