"""
Filesystem implementations of the persistence ports.

Layout (all relative to the project root):

    .deliverygate-config/<document>.yaml       configuration documents
    .deliverygate/workflow-state.json          state machine
    .deliverygate/backups/workflow-state-*.json  last 10 states
    .deliverygate-emergency/                   snapshots, reports, resume log
"""

import dataclasses
import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from deliverygate.domain.exceptions import ConfigurationError
from deliverygate.domain.interfaces import (
    IncidentStoreInterface,
    OutputSinkInterface,
    SettingsStoreInterface,
    WorkflowStateStoreInterface,
)
from deliverygate.domain.models import IncidentReport, ResumeRecord, StateSnapshot

logger = logging.getLogger(__name__)

CONFIG_DIR = ".deliverygate-config"
STATE_FILE = ".deliverygate/workflow-state.json"
EMERGENCY_DIR = ".deliverygate-emergency"
BACKUP_PREFIX = "workflow-state-"


def _write_atomic(path: Path, text: str) -> None:
    """Write via temp file + rename so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    temp_path.write_text(text, encoding="utf-8")
    temp_path.replace(path)  # Atomic on POSIX


def _stamp() -> str:
    return datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")


class YamlSettingsStore(SettingsStoreInterface):
    """One YAML file per configuration document."""

    def __init__(self, base_dir: str | Path = CONFIG_DIR):
        self._base_dir = Path(base_dir)

    def path_for(self, name: str) -> Path:
        return self._base_dir / f"{name}.yaml"

    def load(self, name: str) -> dict[str, Any] | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {path}: {e}") from e
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping")
        return data

    def save(self, name: str, document: Mapping[str, Any]) -> None:
        text = yaml.safe_dump(dict(document), sort_keys=False, default_flow_style=False)
        _write_atomic(self.path_for(name), text)


class FilesystemWorkflowStateStore(WorkflowStateStoreInterface):
    """
    JSON workflow state with rotating backups.

    Every save also writes a timestamped backup; only the newest
    ``max_backups`` are kept.
    """

    def __init__(
        self,
        state_file: str | Path = STATE_FILE,
        backup_dir: str | Path | None = None,
        max_backups: int = 10,
    ):
        self._state_file = Path(state_file)
        self._backup_dir = (
            Path(backup_dir) if backup_dir is not None else self._state_file.parent / "backups"
        )
        self._max_backups = max_backups

    def load(self) -> dict[str, Any] | None:
        """
        Raises:
            ValueError: If the state file is corrupt (json.JSONDecodeError)
        """
        if not self._state_file.exists():
            return None
        with open(self._state_file, encoding="utf-8") as f:
            result: dict[str, Any] = json.load(f)
            return result

    def save(self, state: Mapping[str, Any]) -> None:
        text = json.dumps(dict(state), indent=2)
        _write_atomic(self._state_file, text)
        try:
            self._write_backup(text)
        except OSError as e:
            # The primary state is already written.
            logger.warning("Failed to create backup: %s", e)

    def load_backup(self) -> dict[str, Any] | None:
        for path in self.backups():
            try:
                with open(path, encoding="utf-8") as f:
                    result: dict[str, Any] = json.load(f)
                    return result
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable backup %s: %s", path.name, e)
        return None

    def backups(self) -> list[Path]:
        """Backup files, newest first."""
        if not self._backup_dir.exists():
            return []
        files = self._backup_dir.glob(f"{BACKUP_PREFIX}*.json")
        return sorted(files, key=lambda p: p.name, reverse=True)

    def _write_backup(self, text: str) -> None:
        self._backup_dir.mkdir(parents=True, exist_ok=True)
        (self._backup_dir / f"{BACKUP_PREFIX}{_stamp()}.json").write_text(text, encoding="utf-8")
        for old in self.backups()[self._max_backups :]:
            old.unlink(missing_ok=True)


def snapshot_from_dict(data: Mapping[str, Any]) -> StateSnapshot:
    return StateSnapshot(
        timestamp=data["timestamp"],
        reason=data["reason"],
        current_phase=data.get("current_phase"),
        active_capabilities=tuple(data.get("active_capabilities", ())),
        pending_steps=tuple(data.get("pending_steps", ())),
        details=data.get("details", {}),
    )


def render_report_markdown(report: IncidentReport) -> str:
    """Human-readable companion of the JSON incident report."""
    snapshot = report.snapshot
    lines = [
        f"# {report.title}",
        "",
        f"**Timestamp:** {report.timestamp}",
        f"**Reason:** {report.reason}",
        "",
        "## State Snapshot",
        "",
        f"- **Active Capabilities:** {len(snapshot.active_capabilities)}",
        f"- **Current Phase:** {snapshot.current_phase or 'None'}",
        f"- **Pending Steps:** {len(snapshot.pending_steps)}",
        "",
        "## Recommendations",
        "",
        *[f"- {r}" for r in report.recommendations],
        "",
        "## Next Steps",
        "",
        "1. Review this report thoroughly",
        "2. Address the reason for the emergency stop",
        "3. Run system health checks",
        "4. Resume operations when safe",
        "",
    ]
    return "\n".join(lines)


class FilesystemIncidentStore(IncidentStoreInterface):
    """Emergency stop artifacts under a single directory."""

    ACTIVE_STOP = "active-stop.json"
    RESUME_LOG = "resume-log.jsonl"

    def __init__(self, base_dir: str | Path = EMERGENCY_DIR):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def save_snapshot(self, snapshot: StateSnapshot) -> str:
        text = json.dumps(dataclasses.asdict(snapshot), indent=2, default=str)
        path = self._base_dir / f"state-{_stamp()}.json"
        _write_atomic(path, text)
        _write_atomic(self._base_dir / self.ACTIVE_STOP, text)
        return str(path)

    def save_report(self, report: IncidentReport) -> str:
        json_path = self._base_dir / f"report-{report.report_id}.json"
        _write_atomic(json_path, json.dumps(dataclasses.asdict(report), indent=2, default=str))
        _write_atomic(json_path.with_suffix(".md"), render_report_markdown(report))
        return str(json_path)

    def append_resume(self, record: ResumeRecord) -> None:
        self._base_dir.mkdir(parents=True, exist_ok=True)
        with open(self._base_dir / self.RESUME_LOG, "a", encoding="utf-8") as f:
            f.write(json.dumps(dataclasses.asdict(record)) + "\n")

    def resume_log(self) -> list[ResumeRecord]:
        path = self._base_dir / self.RESUME_LOG
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [ResumeRecord(**json.loads(line)) for line in f if line.strip()]

    def load_active_stop(self) -> StateSnapshot | None:
        path = self._base_dir / self.ACTIVE_STOP
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return snapshot_from_dict(json.load(f))

    def clear_active_stop(self) -> None:
        (self._base_dir / self.ACTIVE_STOP).unlink(missing_ok=True)


class FilesystemOutputSink(OutputSinkInterface):
    """Writes step outputs to their declared paths under the workspace."""

    def __init__(self, workspace: str | Path = "."):
        self._workspace = Path(workspace)

    def write(self, path: str, value: Any) -> str:
        root = self._workspace.resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root):
            raise ConfigurationError(f"Output path escapes the workspace: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(value, (dict, list)):
            target.write_text(json.dumps(value, indent=2), encoding="utf-8")
        elif isinstance(value, bytes):
            target.write_bytes(value)
        else:
            target.write_text(str(value), encoding="utf-8")
        return str(target)
