"""Tests for the deliverygate command line interface."""

import json
import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner, Result

from deliverygate.cli import cli
from deliverygate.cli.main import parse_override, parse_value


@pytest.fixture(autouse=True)
def detach_log_handlers() -> Iterator[None]:
    """CliRunner closes its streams after each invoke; drop handlers bound to them."""
    yield
    logger = logging.getLogger("deliverygate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def invoke(tmp_path: Path) -> Callable[..., Result]:
    runner = CliRunner()

    def run(*args: str, input: str | None = None) -> Result:
        return runner.invoke(cli, ["--root", str(tmp_path), *args], input=input, obj={})

    return run


class TestWorkflowCommands:
    """Tests for status, phases, run, checkpoint, advance, reset and report."""

    def test_status_of_fresh_project(self, invoke: Callable[..., Result]) -> None:
        result = invoke("status")

        assert result.exit_code == 0, result.output
        assert "greenfield" in result.output
        assert "domain_research" in result.output
        assert "balanced" in result.output

    def test_phases(self, invoke: Callable[..., Result]) -> None:
        result = invoke("phases")

        assert result.exit_code == 0, result.output
        for phase_id in ("domain_research", "architecture", "development"):
            assert phase_id in result.output

    def test_dry_run_completes_greenfield(
        self, invoke: Callable[..., Result], tmp_path: Path
    ) -> None:
        result = invoke("run", "--dry-run", "--no-interactive")

        assert result.exit_code == 0, result.output
        assert "Workflow complete" in result.output
        assert (tmp_path / "domain-truth.yaml").exists()
        state = json.loads((tmp_path / ".deliverygate" / "workflow-state.json").read_text())
        assert "development" in state["completed_phases"]

    def test_run_without_capabilities_fails_up_front(
        self, invoke: Callable[..., Result], tmp_path: Path
    ) -> None:
        result = invoke("run", "--no-interactive")

        assert result.exit_code == 1
        assert "Missing capabilities" in result.output
        assert not (tmp_path / "domain-analysis.md").exists()

    def test_max_phases(self, invoke: Callable[..., Result]) -> None:
        result = invoke("run", "--dry-run", "--no-interactive", "--max-phases", "1")

        assert result.exit_code == 0, result.output
        assert "Current phase" in result.output
        assert "eval_foundation" in result.output

    def test_override_disables_auto_transition(self, invoke: Callable[..., Result]) -> None:
        result = invoke(
            "run",
            "--dry-run",
            "--no-interactive",
            "--override",
            "autonomy-settings.goal_mode.enabled=false",
        )
        assert result.exit_code == 0, result.output

        advanced = invoke("advance")

        assert advanced.exit_code == 0, advanced.output
        assert "eval_foundation" in advanced.output

    def test_malformed_override(self, invoke: Callable[..., Result]) -> None:
        result = invoke("run", "--dry-run", "--no-interactive", "--override", "no-equals-sign")

        assert result.exit_code == 2
        assert "key=value" in result.output

    def test_brownfield_waits_for_checkpoint(self, invoke: Callable[..., Result]) -> None:
        result = invoke("run", "--dry-run", "--no-interactive", "--project-type", "brownfield")

        assert result.exit_code == 0, result.output
        assert "awaiting_checkpoint" in result.output
        assert "Checkpoint pending" in result.output

        resolved = invoke("checkpoint", "--resolved-by", "alice", "--notes", "accurate")

        assert resolved.exit_code == 0, resolved.output
        assert "approved" in resolved.output
        assert "domain_research" in invoke("status").output

    def test_project_type_mismatch(self, invoke: Callable[..., Result]) -> None:
        invoke("run", "--dry-run", "--no-interactive", "--max-phases", "1")

        result = invoke("run", "--dry-run", "--no-interactive", "--project-type", "brownfield")

        assert result.exit_code == 1
        assert "greenfield project" in result.output

    def test_checkpoint_without_pending(self, invoke: Callable[..., Result]) -> None:
        result = invoke("checkpoint", "--resolved-by", "alice")

        assert result.exit_code == 1
        assert "not allowed" in result.output

    def test_reset(self, invoke: Callable[..., Result]) -> None:
        invoke("run", "--dry-run", "--no-interactive", "--max-phases", "2")

        result = invoke("reset", "--yes")

        assert result.exit_code == 0, result.output
        assert "domain_research" in result.output

    def test_reset_can_be_declined(self, invoke: Callable[..., Result]) -> None:
        invoke("run", "--dry-run", "--no-interactive", "--max-phases", "1")

        result = invoke("reset", input="n\n")

        assert result.exit_code != 0
        assert "eval_foundation" in invoke("status").output

    def test_report(self, invoke: Callable[..., Result]) -> None:
        invoke("run", "--dry-run", "--no-interactive", "--max-phases", "1")

        result = invoke("report")

        assert result.exit_code == 0, result.output
        assert '"current_phase": "eval_foundation"' in result.output
        assert '"oracle": true' in result.output


class TestConfigCommands:
    """Tests for the config group."""

    def test_get_defaults(self, invoke: Callable[..., Result]) -> None:
        assert invoke("config", "get", "autonomy-settings.level").output.strip() == '"balanced"'
        section = invoke("config", "get", "autonomy-settings.goal_mode").output

        assert yaml.safe_load(section) == {
            "enabled": True,
            "checkpoint_approval": "major_milestones_only",
        }

    def test_get_unknown_key(self, invoke: Callable[..., Result]) -> None:
        result = invoke("config", "get", "autonomy-settings.no_such_setting")

        assert result.exit_code == 1
        assert "not set" in result.output

    def test_set_persists(self, invoke: Callable[..., Result], tmp_path: Path) -> None:
        result = invoke("config", "set", "autonomy-settings.background_agents.max_concurrent", "4")

        assert result.exit_code == 0, result.output
        width = invoke("config", "get", "autonomy-settings.background_agents.max_concurrent")
        assert width.output.strip() == "4"
        saved = yaml.safe_load(
            (tmp_path / ".deliverygate-config" / "autonomy-settings.yaml").read_text()
        )
        assert saved["background_agents"]["max_concurrent"] == 4

    def test_profile_warns_for_full_auto(self, invoke: Callable[..., Result]) -> None:
        result = invoke("config", "profile", "full_auto")

        assert result.exit_code == 0, result.output
        assert "Full auto mode enabled" in result.output
        approval = invoke("config", "get", "autonomy-settings.goal_mode.checkpoint_approval")
        assert approval.output.strip() == '"none"'

    def test_unknown_profile(self, invoke: Callable[..., Result]) -> None:
        result = invoke("config", "profile", "reckless")

        assert result.exit_code == 1
        assert "Invalid autonomy level" in result.output

    def test_validate(self, invoke: Callable[..., Result]) -> None:
        result = invoke("config", "validate")

        assert result.exit_code == 0, result.output
        assert "autonomy-settings: valid" in result.output

    def test_validate_reports_invalid_documents(
        self, invoke: Callable[..., Result], tmp_path: Path
    ) -> None:
        config_dir = tmp_path / ".deliverygate-config"
        config_dir.mkdir()
        (config_dir / "autonomy-settings.yaml").write_text("level: reckless\n")

        result = invoke("config", "validate")

        assert result.exit_code == 1
        assert "autonomy-settings: invalid" in result.output

    def test_export_then_import(self, invoke: Callable[..., Result], tmp_path: Path) -> None:
        invoke("config", "profile", "aggressive")
        exported = invoke("config", "export", "--format", "json")
        assert exported.exit_code == 0, exported.output
        export_file = tmp_path / "export.json"
        export_file.write_text(exported.output)
        invoke("config", "reset")
        assert invoke("config", "get", "autonomy-settings.level").output.strip() == '"balanced"'

        result = invoke("config", "import", str(export_file))

        assert result.exit_code == 0, result.output
        assert invoke("config", "get", "autonomy-settings.level").output.strip() == '"aggressive"'

    def test_reset_unknown_document(self, invoke: Callable[..., Result]) -> None:
        result = invoke("config", "reset", "no-such-config")

        assert result.exit_code == 1
        assert "Unknown configuration" in result.output


class TestSafetyCommands:
    """Tests for safe-mode, emergency-stop and resume."""

    def test_safe_mode_check(self, invoke: Callable[..., Result]) -> None:
        result = invoke("safe-mode", "check", "read-file", "write-file", "deploy-to-production")

        assert result.exit_code == 0, result.output
        assert "read-file: allowed" in result.output
        assert "write-file: requires confirmation" in result.output
        assert "deploy-to-production: blocked" in result.output

    def test_emergency_stop_and_resume(
        self, invoke: Callable[..., Result], tmp_path: Path
    ) -> None:
        stopped = invoke("emergency-stop", "drill")

        assert stopped.exit_code == 0, stopped.output
        assert "EMERGENCY STOP" in stopped.output
        assert (tmp_path / ".deliverygate-emergency" / "active-stop.json").exists()
        assert "STOPPED" in invoke("status").output

        blocked = invoke("run", "--dry-run", "--no-interactive")
        assert blocked.exit_code == 1
        assert "Emergency stop active" in blocked.output

        resumed = invoke("resume", "--approved-by", "alice")

        assert resumed.exit_code == 0, resumed.output
        assert "resumed by alice" in resumed.output
        assert not (tmp_path / ".deliverygate-emergency" / "active-stop.json").exists()
        assert (tmp_path / ".deliverygate-emergency" / "resume-log.jsonl").exists()

    def test_second_stop_is_refused(self, invoke: Callable[..., Result]) -> None:
        invoke("emergency-stop")

        result = invoke("emergency-stop")

        assert result.exit_code == 1
        assert "already in emergency stop" in result.output

    def test_resume_with_nothing_stopped(self, invoke: Callable[..., Result]) -> None:
        result = invoke("resume", "--approved-by", "alice")

        assert result.exit_code == 0
        assert "Nothing to resume" in result.output


class TestValueParsing:
    """Tests for command line value parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("4", 4), ("-1", -1), ("[a, b]", ["a", "b"]), ("minimal", "minimal")],
    )
    def test_parse_value(self, raw: str, expected: object) -> None:
        assert parse_value(raw) == expected

    def test_parse_override(self) -> None:
        assert parse_override("autonomy-settings.goal_mode.enabled=false") == (
            "autonomy-settings.goal_mode.enabled",
            False,
        )
