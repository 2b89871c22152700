from __future__ import annotations

import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from git_provisioner.cli import app
from git_provisioner.core.state import ResourceInstance
from git_provisioner.engine.errors import (
    ApplyError,
    ConfigError,
    PushError,
    RetryTimeoutError,
    ValidationError,
)
from git_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

runner = CliRunner()

_META = PlanMetadata(
    repository="https://git.example.com/org/config.git",
    destroy=False,
    refresh=True,
    state_lineage="lineage-1",
    state_serial=0,
    state_digest="digest",
    engine_version="0.1.0",
)

_NOOP_PLAN = Plan(
    metadata=_META,
    changes=[
        ResourceChange(
            address="git_repository_file.ok",
            resource_type="git_repository_file",
            action=Action.NOOP,
        )
    ],
)

_CREATE_PLAN = Plan(
    metadata=_META,
    changes=[
        ResourceChange(
            address="git_repository_file.new",
            resource_type="git_repository_file",
            action=Action.CREATE,
            planned={"branch": "main", "path": "conf/app.yaml", "content": "a: 1\n"},
        )
    ],
)


def _mock_config() -> MagicMock:
    cfg = MagicMock()
    cfg.provider.url = "https://git.example.com/org/config.git"
    cfg.state_path = Path(".git-provisioner-state.json")
    return cfg


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "git-provisioner" in result.stdout

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert "git-provisioner" in result.stdout


class TestPlanCommand:
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_no_changes_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["plan", "--no-color", "--config", "test.yaml"])
        assert result.exit_code == 0
        assert "No changes" in result.stdout
        mock_load.assert_called_once_with(Path("test.yaml"))

    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_default_config_path(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color"])
        mock_load.assert_called_once_with(Path("git-provisioner.yaml"))

    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_changes_exits_2(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 2
        assert "git_repository_file.new" in result.stdout
        assert "Plan: 1 to add, 0 to change, 0 to destroy." in result.stdout

    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_out_saves_plan(
        self, mock_load: MagicMock, mock_plan: MagicMock, tmp_path: Path
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        out_file = tmp_path / "plan.json"

        result = runner.invoke(app, ["plan", "--no-color", "--out", str(out_file)])
        assert result.exit_code == 2
        assert Plan.load(out_file) == _CREATE_PLAN
        assert "Plan saved" in result.stdout

    @patch("git_provisioner.config.load")
    def test_config_error_exits_1(self, mock_load: MagicMock) -> None:
        mock_load.side_effect = ConfigError("bad config")

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "Configuration error: bad config" in result.output

    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_no_refresh_flag(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color", "--no-refresh"])
        mock_plan.assert_called_once()
        _, kwargs = mock_plan.call_args
        assert kwargs["refresh"] is False


class TestApplyCommand:
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_no_changes_message(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["apply", "--no-color"])
        assert result.exit_code == 0
        assert "No changes" in result.stdout

    @patch("git_provisioner.config.apply")
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_auto_approve_skips_prompt(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.return_value = ApplyResult(applied=_CREATE_PLAN.changes)

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "Apply complete! Resources: 1 added, 0 changed, 0 destroyed." in result.stdout

    @patch("git_provisioner.config.apply")
    @patch("git_provisioner.config.load")
    def test_saved_plan_file(
        self, mock_load: MagicMock, mock_apply: MagicMock, tmp_path: Path
    ) -> None:
        plan_file = tmp_path / "plan.json"
        _CREATE_PLAN.save(plan_file)
        mock_load.return_value = _mock_config()
        mock_apply.return_value = ApplyResult(applied=_CREATE_PLAN.changes)

        result = runner.invoke(app, ["apply", str(plan_file), "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert mock_apply.call_args.args[0] == _CREATE_PLAN

    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_user_decline_aborts(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["apply", "--no-color"], input="n\n")
        assert result.exit_code == 1

    @patch("git_provisioner.config.apply")
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_apply_error_shows_partial(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.side_effect = ApplyError(
            applied=[], address="git_repository_file.new", message="cannot override existing file"
        )

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "Apply failed" in result.output
        assert "cannot override existing file" in result.output

    @patch("git_provisioner.config.apply")
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_retry_timeout_message(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.side_effect = RetryTimeoutError(600, PushError("rejected"))

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "Gave up retrying: timeout after 600s: rejected" in result.output


class TestDestroyCommand:
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_no_resources_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["destroy", "--no-color"])
        assert result.exit_code == 0
        assert "No files to destroy" in result.stdout

    @patch("git_provisioner.config.apply")
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_auto_approve_works(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        delete_plan = Plan(
            metadata=_META,
            changes=[
                ResourceChange(
                    address="git_repository_file.old",
                    resource_type="git_repository_file",
                    action=Action.DELETE,
                    prior={"branch": "main", "path": "old.txt"},
                )
            ],
        )
        mock_load.return_value = _mock_config()
        mock_plan.return_value = delete_plan
        mock_apply.return_value = ApplyResult(applied=delete_plan.changes)

        result = runner.invoke(app, ["destroy", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "0 added, 0 changed, 1 destroyed" in result.stdout
        assert mock_plan.call_args.kwargs["destroy"] is True


class TestRefreshCommand:
    _UPDATE_CHANGE = ResourceChange(
        address="git_repository_file.app",
        resource_type="git_repository_file",
        action=Action.UPDATE,
        prior={"content": "old"},
        planned={"content": "new"},
        diff={"content": {"from": "old", "to": "new"}},
    )

    @staticmethod
    def _mock_state(n: int) -> MagicMock:
        state = MagicMock()
        state.resources = {f"git_repository_file.f{i}": None for i in range(n)}
        return state

    @patch("git_provisioner.config.save_state")
    @patch("git_provisioner.config.refresh")
    @patch("git_provisioner.config.load")
    def test_no_changes_exits_0(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([], self._mock_state(2))

        result = runner.invoke(app, ["refresh", "--no-color"])
        assert result.exit_code == 0
        assert "up-to-date" in result.stdout
        mock_save.assert_not_called()

    @patch("git_provisioner.config.save_state")
    @patch("git_provisioner.config.refresh")
    @patch("git_provisioner.config.load")
    def test_auto_approve_saves_state(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        state = self._mock_state(1)
        mock_refresh.return_value = ([self._UPDATE_CHANGE], state)

        result = runner.invoke(app, ["refresh", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "Refresh: 0 to add, 1 to change, 0 to destroy." in result.stdout
        assert "1 file tracked" in result.stdout
        mock_save.assert_called_once_with(mock_load.return_value, state)

    @patch("git_provisioner.config.save_state")
    @patch("git_provisioner.config.refresh")
    @patch("git_provisioner.config.load")
    def test_user_decline_aborts(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([self._UPDATE_CHANGE], self._mock_state(1))

        result = runner.invoke(app, ["refresh", "--no-color"], input="n\n")
        assert result.exit_code == 1
        mock_save.assert_not_called()


class TestDriftCommand:
    @patch("git_provisioner.config.drift")
    @patch("git_provisioner.config.load")
    def test_no_drift_exits_0(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = []

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 0
        assert "No drift detected" in result.stdout

    @patch("git_provisioner.config.drift")
    @patch("git_provisioner.config.load")
    def test_drift_shows_changes(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = [TestRefreshCommand._UPDATE_CHANGE]

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 0
        assert "Drift detected" in result.stdout
        assert 'content = "old" -> "new"' in result.stdout


class TestImportCommand:
    @staticmethod
    def _instance() -> ResourceInstance:
        return ResourceInstance(
            address="git_repository_file.readme",
            resource_type="git_repository_file",
            name="readme",
            attributes={"branch": "main", "path": "README.md", "content": "hi"},
        )

    @patch("git_provisioner.config.import_file")
    @patch("git_provisioner.config.load")
    def test_import_full_address(self, mock_load: MagicMock, mock_import: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_import.return_value = self._instance()

        result = runner.invoke(
            app, ["import", "git_repository_file.readme", "main:README.md", "--no-color"]
        )
        assert result.exit_code == 0
        assert "git_repository_file.readme: Import complete" in result.stdout
        mock_import.assert_called_once_with(mock_load.return_value, "readme", "main:README.md")

    @patch("git_provisioner.config.import_file")
    @patch("git_provisioner.config.load")
    def test_import_bare_name(self, mock_load: MagicMock, mock_import: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_import.return_value = self._instance()

        result = runner.invoke(app, ["import", "readme", "main:README.md", "--no-color"])
        assert result.exit_code == 0
        assert mock_import.call_args.args[1] == "readme"

    @patch("git_provisioner.config.load")
    def test_import_wrong_type(self, mock_load: MagicMock) -> None:
        result = runner.invoke(app, ["import", "other_type.x", "main:a", "--no-color"])
        assert result.exit_code == 1
        assert "unknown resource type 'other_type'" in result.output
        assert "supported: git_repository_file" in result.output
        mock_load.assert_not_called()

    @patch("git_provisioner.config.import_file")
    @patch("git_provisioner.config.load")
    def test_import_bad_id(self, mock_load: MagicMock, mock_import: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_import.side_effect = ConfigError("expected id to have format branch:path")

        result = runner.invoke(app, ["import", "readme", "README.md", "--no-color"])
        assert result.exit_code == 1
        assert "expected id to have format branch:path" in result.output


class TestValidateCommand:
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_valid_config(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.stdout
        assert mock_plan.call_args.kwargs["refresh"] is False

    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_validation_error(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = ValidationError(["git_repository_file.a: bad"])

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 1
        assert "git_repository_file.a: bad" in result.output


class TestNoColor:
    @patch("git_provisioner.config.plan")
    @patch("git_provisioner.config.load")
    def test_no_color_strips_ansi(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert "\x1b[" not in result.stdout


@pytest.fixture(autouse=False)
def _reset_pkg_logger():
    """Reset the package logger levels after each logging test."""
    yield
    logging.getLogger("git_provisioner").setLevel(logging.NOTSET)
    logging.getLogger("git.cmd").setLevel(logging.NOTSET)


@pytest.mark.usefixtures("_reset_pkg_logger")
class TestConfigureLogging:
    """Unit-test ``_configure_logging`` by mocking ``logging.basicConfig``.

    Pytest's logging plugin installs a handler on the root logger, making
    ``basicConfig`` a no-op without ``force=True``.  We mock ``basicConfig``
    and assert the call args instead.
    """

    @patch("logging.basicConfig")
    def test_verbose_flag_configures_info(self, mock_bc: MagicMock) -> None:
        from git_provisioner.cli import _LOG_FORMAT, _configure_logging

        _configure_logging(1)
        mock_bc.assert_called_once_with(
            level=logging.WARNING,
            format=_LOG_FORMAT,
            stream=sys.stderr,
            force=True,
        )
        assert logging.getLogger("git_provisioner").level == logging.INFO
        assert logging.getLogger("git.cmd").level == logging.NOTSET

    @patch("logging.basicConfig")
    def test_double_verbose_configures_debug(self, mock_bc: MagicMock) -> None:
        from git_provisioner.cli import _configure_logging

        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("git_provisioner").level == logging.DEBUG
        assert logging.getLogger("git.cmd").level == logging.DEBUG

    @patch("logging.basicConfig")
    def test_no_verbose_stays_unconfigured(self, mock_bc: MagicMock) -> None:
        from git_provisioner.cli import _configure_logging

        _configure_logging(0)
        mock_bc.assert_not_called()

    @patch("logging.basicConfig")
    def test_log_env_var_overrides_verbose(
        self, mock_bc: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from git_provisioner.cli import _configure_logging

        monkeypatch.setenv("GIT_PROVISIONER_LOG", "WARNING")
        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("git_provisioner").level == logging.WARNING

    @patch("logging.basicConfig")
    def test_invalid_log_env_warns_and_defaults_to_info(
        self,
        mock_bc: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from git_provisioner.cli import _configure_logging

        monkeypatch.setenv("GIT_PROVISIONER_LOG", "BOGUS")
        _configure_logging(0)
        mock_bc.assert_called_once()
        assert logging.getLogger("git_provisioner").level == logging.INFO
        assert "invalid GIT_PROVISIONER_LOG level" in capsys.readouterr().err
