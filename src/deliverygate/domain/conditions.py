"""
Prerequisite and exit-condition vocabulary.

Conditions are predicates over a read-only ``ConditionContext``. The catalog
expresses them as short strings which ``parse_condition`` turns into typed
objects:

    "domain-truth.yaml must exist"  -> ArtifactExists
    "domain_research completed"     -> PhaseCompleted
    "100%_integration_point_test_coverage" -> CoverageThreshold
    "domain_analysis_complete"      -> ArtifactComplete
    "oracle_validation_passed"      -> ValidationPassed
"""

import re
from dataclasses import dataclass
from pathlib import Path

from deliverygate.domain.interfaces import ConditionInterface
from deliverygate.domain.models import ConditionContext

ARTIFACT_EXTENSIONS: tuple[str, ...] = ("", ".md", ".yaml", ".yml", ".json", ".txt")

_COVERAGE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)%_(.+)_coverage$")


def _non_empty(path: Path) -> bool:
    if path.is_file():
        return path.stat().st_size > 0
    if path.is_dir():
        return any(path.iterdir())
    return False


@dataclass(frozen=True)
class ArtifactExists(ConditionInterface):
    """``path must exist``"""

    path: str

    def evaluate(self, context: ConditionContext) -> bool:
        return (context.workspace / self.path).exists()

    def describe(self) -> str:
        return f"{self.path} must exist"


@dataclass(frozen=True)
class ArtifactComplete(ConditionInterface):
    """An artifact must exist and be non-empty (common extensions are tried)."""

    artifact: str

    def candidates(self) -> tuple[str, ...]:
        names = [self.artifact]
        hyphenated = self.artifact.replace("_", "-")
        if hyphenated != self.artifact:
            names.append(hyphenated)
        return tuple(name + ext for name in names for ext in ARTIFACT_EXTENSIONS)

    def evaluate(self, context: ConditionContext) -> bool:
        return any(
            _non_empty(context.workspace / candidate) for candidate in self.candidates()
        )

    def describe(self) -> str:
        return f"{self.artifact}_complete"


@dataclass(frozen=True)
class PhaseCompleted(ConditionInterface):
    phase_id: str

    def evaluate(self, context: ConditionContext) -> bool:
        return self.phase_id in context.completed_phases

    def describe(self) -> str:
        return f"{self.phase_id} completed"


@dataclass(frozen=True)
class ValidationPassed(ConditionInterface):
    """An upstream validator has recorded a passing status."""

    validator: str

    def evaluate(self, context: ConditionContext) -> bool:
        return bool(context.validation_status.get(self.validator, False))

    def describe(self) -> str:
        return f"{self.validator}_validation_passed"


@dataclass(frozen=True)
class CoverageThreshold(ConditionInterface):
    """At least ``threshold`` percent of ``kind`` must be covered."""

    kind: str
    threshold: float

    def evaluate(self, context: ConditionContext) -> bool:
        return context.coverage.get(self.kind, 0.0) >= self.threshold

    def describe(self) -> str:
        return f"{self.threshold:g}%_{self.kind}_coverage"


@dataclass(frozen=True)
class DeclaredCondition(ConditionInterface):
    """Free-text condition with no machine-checkable form; always holds."""

    text: str

    def evaluate(self, context: ConditionContext) -> bool:
        return True

    def describe(self) -> str:
        return self.text


def parse_condition(text: str) -> ConditionInterface:
    """Translate the catalog's condition strings into condition objects."""
    text = text.strip()

    coverage = _COVERAGE_PATTERN.match(text)
    if coverage:
        return CoverageThreshold(kind=coverage.group(2), threshold=float(coverage.group(1)))

    if text.endswith(" must exist"):
        return ArtifactExists(path=text[: -len(" must exist")].strip())

    if text.endswith(" completed"):
        return PhaseCompleted(phase_id=text[: -len(" completed")].strip())

    if "validation_passed" in text:
        return ValidationPassed(validator=text.split("_validation_passed")[0])

    if text.endswith("_complete"):
        return ArtifactComplete(artifact=text[: -len("_complete")])

    return DeclaredCondition(text=text)
