"""
In-memory implementations of the persistence ports.

Useful for testing and ephemeral control planes.
"""

import copy
from collections.abc import Mapping
from typing import Any

from deliverygate.domain.interfaces import (
    IncidentStoreInterface,
    OutputSinkInterface,
    SettingsStoreInterface,
    WorkflowStateStoreInterface,
)
from deliverygate.domain.models import IncidentReport, ResumeRecord, StateSnapshot


class InMemorySettingsStore(SettingsStoreInterface):
    """Configuration documents held in a dict."""

    def __init__(self, documents: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = copy.deepcopy(
            {k: dict(v) for k, v in (documents or {}).items()}
        )
        self.save_count = 0

    def load(self, name: str) -> dict[str, Any] | None:
        document = self._documents.get(name)
        return copy.deepcopy(document) if document is not None else None

    def save(self, name: str, document: Mapping[str, Any]) -> None:
        self._documents[name] = copy.deepcopy(dict(document))
        self.save_count += 1


class InMemoryWorkflowStateStore(WorkflowStateStoreInterface):
    """Workflow state plus a bounded list of backups."""

    def __init__(self, max_backups: int = 10) -> None:
        self._state: dict[str, Any] | None = None
        self._backups: list[dict[str, Any]] = []
        self._max_backups = max_backups

    def load(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._state)

    def save(self, state: Mapping[str, Any]) -> None:
        self._state = copy.deepcopy(dict(state))
        self._backups.append(copy.deepcopy(self._state))
        del self._backups[: -self._max_backups]

    def load_backup(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._backups[-1]) if self._backups else None

    def corrupt(self) -> None:
        """Drop the primary state (backups survive) to exercise recovery."""
        self._state = None

    @property
    def backup_count(self) -> int:
        return len(self._backups)


class InMemoryIncidentStore(IncidentStoreInterface):
    """Snapshots, reports and resume records kept in lists."""

    def __init__(self) -> None:
        self.snapshots: list[StateSnapshot] = []
        self.reports: list[IncidentReport] = []
        self.resumes: list[ResumeRecord] = []
        self._active: StateSnapshot | None = None

    def save_snapshot(self, snapshot: StateSnapshot) -> str:
        self.snapshots.append(snapshot)
        self._active = snapshot
        return f"memory://snapshots/{len(self.snapshots)}"

    def save_report(self, report: IncidentReport) -> str:
        self.reports.append(report)
        return f"memory://reports/{report.report_id}"

    def append_resume(self, record: ResumeRecord) -> None:
        self.resumes.append(record)

    def load_active_stop(self) -> StateSnapshot | None:
        return self._active

    def clear_active_stop(self) -> None:
        self._active = None


class InMemoryOutputSink(OutputSinkInterface):
    """Records outputs by declared path."""

    def __init__(self) -> None:
        self.outputs: dict[str, Any] = {}

    def write(self, path: str, value: Any) -> str:
        self.outputs[path] = value
        return path
