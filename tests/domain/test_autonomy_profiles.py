"""Tests for autonomy profiles, defaults and dotted-path helpers."""

import pytest

from deliverygate.domain.autonomy import (
    BUILT_IN_DEFAULTS,
    PROFILE_SETTINGS,
    AutonomyLevel,
    built_in_default,
    get_path,
    iter_leaves,
    parse_level,
    recognized_keys,
    set_path,
    split_key,
)
from deliverygate.domain.safety import (
    CONFIRMATION_ACTIONS,
    DEFAULT_RESTRICTIONS,
    EMERGENCY_ALLOWED_ACTIONS,
    RESTRICTIONS,
    SAFE_MODE_ALLOWED_ACTIONS,
    recommendations_for,
)


class TestDottedPaths:
    """Tests for split_key, get_path and set_path."""

    def test_split_key(self) -> None:
        assert split_key("autonomy-settings.goal_mode.enabled") == (
            "autonomy-settings",
            ("goal_mode", "enabled"),
        )
        assert split_key("autonomy-settings") == ("autonomy-settings", ())

    def test_get_path_returns_none_for_missing_segments(self) -> None:
        document = {"goal_mode": {"enabled": True}}

        assert get_path(document, ("goal_mode", "enabled")) is True
        assert get_path(document, ("goal_mode", "missing")) is None
        assert get_path(document, ("goal_mode", "enabled", "deeper")) is None
        assert get_path(None, ("anything",)) is None

    def test_set_path_creates_intermediate_mappings(self) -> None:
        document: dict = {}

        set_path(document, ("background_agents", "max_concurrent"), 3)

        assert document == {"background_agents": {"max_concurrent": 3}}

    def test_set_path_rejects_the_root(self) -> None:
        with pytest.raises(ValueError):
            set_path({}, (), 1)

    def test_iter_leaves(self) -> None:
        leaves = dict(iter_leaves({"a": {"b": 1, "c": {"d": 2}}, "e": [1, 2]}))

        assert leaves == {("a", "b"): 1, ("a", "c", "d"): 2, ("e",): [1, 2]}


class TestProfiles:
    """Tests for the named autonomy profiles."""

    def test_parse_level(self) -> None:
        assert parse_level("full_auto") is AutonomyLevel.FULL_AUTO
        assert parse_level("reckless") is None

    def test_every_level_has_a_profile(self) -> None:
        assert set(PROFILE_SETTINGS) == set(AutonomyLevel)

    def test_profiles_only_touch_known_settings(self) -> None:
        known = recognized_keys()
        for level, settings in PROFILE_SETTINGS.items():
            for relative in settings:
                assert f"autonomy-settings.{relative}" in known, (level, relative)

    def test_full_auto_disables_blocking_and_checkpoints(self) -> None:
        settings = PROFILE_SETTINGS[AutonomyLevel.FULL_AUTO]

        assert settings["goal_mode.checkpoint_approval"] == "none"
        assert settings["truth_validation.oracle_blocking"] is False
        assert settings["truth_validation.eval_blocking"] is False

    def test_built_in_default_is_a_copy(self) -> None:
        document = built_in_default("autonomy-settings")
        document["goal_mode"]["enabled"] = False

        assert BUILT_IN_DEFAULTS["autonomy-settings"]["goal_mode"]["enabled"] is True

    def test_unknown_document_defaults_to_empty(self) -> None:
        assert built_in_default("nonexistent") == {}


class TestSafetyTables:
    """Tests for restriction and action tables."""

    def test_default_restrictions_are_all_known(self) -> None:
        assert set(DEFAULT_RESTRICTIONS) == set(RESTRICTIONS)

    def test_restriction_settings_are_known_keys(self) -> None:
        known = recognized_keys()
        for name, effect in RESTRICTIONS.items():
            for key in effect.settings:
                assert key in known, (name, key)

    def test_allowed_and_confirmation_sets_are_disjoint(self) -> None:
        assert not SAFE_MODE_ALLOWED_ACTIONS & CONFIRMATION_ACTIONS

    def test_resume_is_allowed_while_stopped(self) -> None:
        assert "resume" in EMERGENCY_ALLOWED_ACTIONS
        assert "invoke-agent" not in EMERGENCY_ALLOWED_ACTIONS

    def test_failure_reasons_get_extra_recommendations(self) -> None:
        plain = recommendations_for("User initiated")
        failure = recommendations_for("Critical error in oracle")

        assert len(failure) > len(plain)
        assert "Consider starting in safe mode" in failure
        assert "Consider starting in safe mode" not in plain
