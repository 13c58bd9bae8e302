"""
Emergency stop: a one-way halt of all workflow activity.

States are Running and Stopped. ``execute`` snapshots in-flight work,
broadcasts halt notifications and writes an incident report; only
``resume`` with an approver moves back to Running, and it does not
re-drive any work.
"""

import logging
import threading
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from deliverygate.application.event_bus import EventBus
from deliverygate.domain.events import EventType
from deliverygate.domain.exceptions import ActionNotAllowed, AlreadyStopped, NotStopped
from deliverygate.domain.interfaces import IncidentStoreInterface
from deliverygate.domain.models import (
    EmergencyStopStatus,
    IncidentReport,
    ResumeRecord,
    StateSnapshot,
)
from deliverygate.domain.safety import HALT_TARGETS, recommendations_for

logger = logging.getLogger(__name__)

SOURCE = "emergency-stop"

SnapshotSource = Callable[[], Mapping[str, Any]]


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, UTC).isoformat()


class EmergencyStop:
    """Running/Stopped state machine with durable incident records."""

    def __init__(
        self,
        bus: EventBus,
        incident_store: IncidentStoreInterface,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            bus: Notification bus the halt signals are broadcast on
            incident_store: Persists snapshots, reports and the resume log
            clock: Seconds since the epoch (injectable for tests)
        """
        self._bus = bus
        self._store = incident_store
        self._clock = clock
        self._lock = threading.RLock()
        self._sources: dict[str, SnapshotSource] = {}
        self._stopped = False
        self._stop_time: float | None = None
        self._reason: str | None = None

        # A stop that was never resumed survives a restart.
        active = incident_store.load_active_stop()
        if active is not None:
            self._stopped = True
            self._stop_time = datetime.fromisoformat(active.timestamp).timestamp()
            self._reason = active.reason
            logger.warning("Emergency stop still active: %s", active.reason)

    def register_snapshot_source(self, name: str, source: SnapshotSource) -> None:
        """
        Register a callable reporting in-flight work.

        A source returns a mapping that may contain ``current_phase``,
        ``active_capabilities`` and ``pending_steps``; other keys are kept
        under ``details[name]``.
        """
        with self._lock:
            self._sources[name] = source

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def execute(self, reason: str = "User initiated") -> IncidentReport:
        """
        Halt everything.

        Raises:
            AlreadyStopped: If already in the Stopped state
        """
        with self._lock:
            if self._stopped:
                raise AlreadyStopped()
            now = self._clock()
            self._stopped = True
            self._stop_time = now
            self._reason = reason

        logger.critical("EMERGENCY STOP: %s", reason)
        snapshot = self._capture(reason, _iso(now))
        self._store.save_snapshot(snapshot)

        self._bus.publish(
            EventType.EMERGENCY_STOP,
            SOURCE,
            {"reason": reason, "stop_time": snapshot.timestamp},
        )
        for target in HALT_TARGETS:
            self._bus.publish(EventType.HALT, SOURCE, {"target": target, "reason": reason})

        report = IncidentReport(
            report_id=f"emergency-{int(now * 1000)}",
            title="Emergency Stop Report",
            timestamp=snapshot.timestamp,
            reason=reason,
            snapshot=snapshot,
            recommendations=recommendations_for(reason),
        )
        location = self._store.save_report(report)
        logger.info("Incident report written: %s", location)
        return report

    def resume(self, approved_by: str) -> ResumeRecord:
        """
        Clear the stop. In-flight work is not resumed.

        Raises:
            NotStopped: If in the Running state
            ActionNotAllowed: If no approver is named
        """
        with self._lock:
            if not self._stopped or self._stop_time is None:
                raise NotStopped()
            if not approved_by or not approved_by.strip():
                raise ActionNotAllowed("resume", "an approver is required")
            now = self._clock()
            record = ResumeRecord(
                approved_by=approved_by.strip(),
                duration=now - self._stop_time,
                timestamp=_iso(now),
                stop_time=_iso(self._stop_time),
                stop_reason=self._reason or "",
            )
            self._store.append_resume(record)
            self._store.clear_active_stop()
            self._stopped = False
            self._stop_time = None
            self._reason = None

        logger.warning(
            "Emergency stop cleared by %s after %.1fs", record.approved_by, record.duration
        )
        self._bus.publish(
            EventType.EMERGENCY_RESUMED,
            SOURCE,
            {"approved_by": record.approved_by, "duration": record.duration},
        )
        return record

    def status(self) -> EmergencyStopStatus:
        with self._lock:
            if not self._stopped or self._stop_time is None:
                return EmergencyStopStatus(stopped=False)
            return EmergencyStopStatus(
                stopped=True,
                stop_time=_iso(self._stop_time),
                reason=self._reason,
                duration=self._clock() - self._stop_time,
            )

    def _capture(self, reason: str, timestamp: str) -> StateSnapshot:
        with self._lock:
            sources = dict(self._sources)

        current_phase: str | None = None
        active: list[str] = []
        pending: list[str] = []
        details: dict[str, Any] = {}
        for name, source in sources.items():
            try:
                state = dict(source())
            except Exception as e:
                # A broken reporter must not prevent the stop itself.
                logger.exception("Snapshot source %s failed", name)
                details[name] = {"error": str(e)}
                continue
            phase = state.pop("current_phase", None)
            current_phase = current_phase or phase
            active.extend(state.pop("active_capabilities", ()))
            pending.extend(state.pop("pending_steps", ()))
            if state:
                details[name] = state

        return StateSnapshot(
            timestamp=timestamp,
            reason=reason,
            current_phase=current_phase,
            active_capabilities=tuple(active),
            pending_steps=tuple(pending),
            details=details,
        )
