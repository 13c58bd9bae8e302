"""Tests for SafeMode activation and action checks."""

import pytest

from deliverygate.application import EventBus, SafeMode
from deliverygate.domain.events import ControlEvent, EventType
from deliverygate.domain.exceptions import AlreadyActive, NotActive
from deliverygate.domain.safety import DEFAULT_RESTRICTIONS


class TestActivation:
    """Tests for activate/deactivate."""

    def test_activate_with_default_restrictions(
        self, safe_mode: SafeMode, events: list[ControlEvent]
    ) -> None:
        status = safe_mode.activate()

        assert status.active
        assert status.restrictions == DEFAULT_RESTRICTIONS
        assert status.start_time is not None
        applied = [e.payload["restriction"] for e in events if e.event_type == EventType.RESTRICTION_APPLIED]
        assert applied == list(DEFAULT_RESTRICTIONS)
        assert events[-1].event_type == EventType.SAFE_MODE_ACTIVATED

    def test_failing_subscriber_still_sees_every_restriction_published(
        self, safe_mode: SafeMode, bus: EventBus, events: list[ControlEvent]
    ) -> None:
        def broken(event: ControlEvent) -> None:
            raise RuntimeError("policy listener bug")

        bus.subscribe(broken, EventType.RESTRICTION_APPLIED, subscriber="broken")

        safe_mode.activate()

        applied = [e.payload["restriction"] for e in events if e.event_type == EventType.RESTRICTION_APPLIED]
        assert applied == list(DEFAULT_RESTRICTIONS)
        assert events[-1].event_type == EventType.SAFE_MODE_ACTIVATED

    def test_activate_twice_raises(self, safe_mode: SafeMode) -> None:
        safe_mode.activate()

        with pytest.raises(AlreadyActive, match="Safe mode already active"):
            safe_mode.activate()

    def test_deactivate_when_inactive_raises(self, safe_mode: SafeMode) -> None:
        with pytest.raises(NotActive):
            safe_mode.deactivate()

    def test_deactivate_reverts_in_reverse_order(
        self, safe_mode: SafeMode, events: list[ControlEvent]
    ) -> None:
        safe_mode.activate(["manual-agent-invocation-only", "no-background-execution"])

        status = safe_mode.deactivate()

        assert not status.active
        removed = [e.payload for e in events if e.event_type == EventType.RESTRICTION_REMOVED]
        assert [p["restriction"] for p in removed] == [
            "no-background-execution",
            "manual-agent-invocation-only",
        ]
        assert removed[0]["effect"] == "enable-background-agents"

    def test_duration_follows_the_clock(self, safe_mode: SafeMode, clock) -> None:  # noqa: ANN001
        safe_mode.activate()
        clock.advance(90)

        assert safe_mode.status().duration == 90

        clock.advance(30)
        safe_mode.deactivate()
        assert safe_mode.status().duration is None

    def test_unknown_restriction_is_skipped(
        self, safe_mode: SafeMode, events: list[ControlEvent]
    ) -> None:
        safe_mode.activate(["no-background-execution", "teleport-only"])

        applied = [e.payload["restriction"] for e in events if e.event_type == EventType.RESTRICTION_APPLIED]
        assert applied == ["no-background-execution"]
        assert safe_mode.active

    def test_duplicate_restrictions_are_collapsed(self, safe_mode: SafeMode) -> None:
        status = safe_mode.activate(["read-only-mode", "read-only-mode"])

        assert status.restrictions == ("read-only-mode",)


class TestActionChecks:
    """Tests for is_allowed and requires_confirmation."""

    def test_everything_allowed_when_inactive(self, safe_mode: SafeMode) -> None:
        assert safe_mode.is_allowed("write-file")
        assert not safe_mode.requires_confirmation("write-file")

    @pytest.mark.parametrize("action", ["read-file", "view-status", "emergency-stop"])
    def test_allow_list(self, safe_mode: SafeMode, action: str) -> None:
        safe_mode.activate()

        assert safe_mode.is_allowed(action)

    @pytest.mark.parametrize("action", ["write-file", "invoke-agent", "rollback"])
    def test_confirmation_set(self, safe_mode: SafeMode, action: str) -> None:
        safe_mode.activate()

        assert not safe_mode.is_allowed(action)
        assert safe_mode.requires_confirmation(action)

    def test_unknown_action_is_blocked(self, safe_mode: SafeMode) -> None:
        safe_mode.activate()

        assert not safe_mode.is_allowed("deploy-to-production")
        assert not safe_mode.requires_confirmation("deploy-to-production")
