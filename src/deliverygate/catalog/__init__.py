"""
Phase catalog: the static phase definitions the orchestrator executes.

The built-in catalog ships as ``default_phases.yaml``; projects may supply
their own file with the same shape.
"""

from deliverygate.catalog.loader import (
    DEFAULT_CATALOG,
    load_phase_catalog,
    parse_phase,
    parse_step,
    read_catalog,
)

__all__ = [
    "DEFAULT_CATALOG",
    "load_phase_catalog",
    "parse_phase",
    "parse_step",
    "read_catalog",
]
