from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from circleci_provisioner.cli import app
from circleci_provisioner.client.errors import APIError, RetryExhaustedError
from circleci_provisioner.config.loader import ConfigError
from circleci_provisioner.core.state import ResourceInstance
from circleci_provisioner.engine.errors import ApplyError, ResourceImportError, ValidationError
from circleci_provisioner.engine.types import (
    Action,
    ApplyResult,
    Plan,
    PlanMetadata,
    ResourceChange,
)

runner = CliRunner()

_META = PlanMetadata(
    organization="acme",
    destroy=False,
    refresh=True,
    state_lineage="lineage-1",
    state_serial=0,
    state_digest="digest",
    config_digest="cdigest",
    engine_version="0.1.0",
)

_NOOP_PLAN = Plan(
    metadata=_META,
    changes=[
        ResourceChange(
            address="circleci_context.deploy",
            resource_type="circleci_context",
            action=Action.NOOP,
        )
    ],
)

_CREATE_PLAN = Plan(
    metadata=_META,
    changes=[
        ResourceChange(
            address="circleci_environment_variable.web.API_KEY",
            resource_type="circleci_environment_variable",
            action=Action.CREATE,
            planned={"project": "web", "name": "API_KEY", "value": "digest=="},
            sensitive=["value"],
        )
    ],
)


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def _mock_config() -> MagicMock:
    cfg = MagicMock()
    cfg.provider.organization = "acme"
    cfg.state_path = Path(".circleci-state.json")
    return cfg


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "circleci-provisioner" in result.stdout

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert "circleci-provisioner" in result.stdout


class TestPlanCommand:
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_no_changes_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["plan", "--no-color", "--config", "test.yaml"])
        assert result.exit_code == 0
        assert "No changes" in result.stdout
        mock_load.assert_called_once_with(Path("test.yaml"))

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_default_config_path(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color"])
        mock_load.assert_called_once_with(Path("circleci-provisioner.yaml"))

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_lock_timeout_overrides_config(
        self, mock_load: MagicMock, mock_plan: MagicMock
    ) -> None:
        cfg = _mock_config()
        cfg.lock_timeout = None
        mock_load.return_value = cfg
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["plan", "--no-color", "--lock-timeout", "5"])
        assert result.exit_code == 0
        assert mock_plan.call_args.args[0].lock_timeout == 5.0

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_config_lock_timeout_kept_without_flag(
        self, mock_load: MagicMock, mock_plan: MagicMock
    ) -> None:
        cfg = _mock_config()
        cfg.lock_timeout = 30.0
        mock_load.return_value = cfg
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color"])
        assert cfg.lock_timeout == 30.0

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_changes_exits_2(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 2
        assert "circleci_environment_variable.web.API_KEY" in result.stdout

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_secret_digest_not_displayed(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert "digest==" not in result.stdout
        assert "(sensitive value)" in result.stdout

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_out_saves_plan(
        self, mock_load: MagicMock, mock_plan: MagicMock, tmp_path: Path
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        out_file = tmp_path / "plan.json"

        result = runner.invoke(app, ["plan", "--no-color", "--out", str(out_file)])
        assert result.exit_code == 2
        assert out_file.exists()
        assert "Plan saved" in result.stdout

    @patch("circleci_provisioner.config.load")
    def test_config_error_exits_1(self, mock_load: MagicMock) -> None:
        mock_load.side_effect = ConfigError("bad config")

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_api_unavailable(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = RetryExhaustedError(APIError(503), 4)

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "CircleCI API unavailable" in result.output

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_no_refresh_flag(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color", "--no-refresh"])
        mock_plan.assert_called_once()
        _, kwargs = mock_plan.call_args
        assert kwargs["refresh"] is False


class TestApplyCommand:
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_no_changes_message(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["apply", "--no-color"])
        assert result.exit_code == 0
        assert "No changes" in result.stdout

    @patch("circleci_provisioner.config.apply")
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_auto_approve_skips_prompt(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.return_value = ApplyResult(applied=_CREATE_PLAN.changes)

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "Apply complete!" in result.stdout
        assert "1 added" in result.stdout

    @patch("circleci_provisioner.config.apply")
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_saved_plan_file(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock, tmp_path: Path
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_apply.return_value = ApplyResult(applied=_CREATE_PLAN.changes)
        plan_file = tmp_path / "plan.json"
        _CREATE_PLAN.save(plan_file)

        result = runner.invoke(app, ["apply", str(plan_file), "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        mock_plan.assert_not_called()
        applied_plan = mock_apply.call_args.args[0]
        assert applied_plan.changes[0].address == "circleci_environment_variable.web.API_KEY"

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_user_decline_aborts(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["apply", "--no-color"], input="n\n")
        assert result.exit_code == 1

    @patch("circleci_provisioner.config.apply")
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_apply_error_shows_partial(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.side_effect = ApplyError(
            applied=list(_CREATE_PLAN.changes),
            address="circleci_schedule.web.nightly",
            message="API error",
        )

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "Apply failed" in result.output
        assert "Partial result: 1 added." in result.output


class TestDestroyCommand:
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_no_resources_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["destroy", "--no-color"])
        assert result.exit_code == 0
        assert "No resources to destroy" in result.stdout

    @patch("circleci_provisioner.config.apply")
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_auto_approve_works(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        delete_plan = Plan(
            metadata=_META,
            changes=[
                ResourceChange(
                    address="circleci_context.old",
                    resource_type="circleci_context",
                    action=Action.DELETE,
                    prior={"id": "ctx-1", "name": "old"},
                )
            ],
        )
        mock_load.return_value = _mock_config()
        mock_plan.return_value = delete_plan
        mock_apply.return_value = ApplyResult(applied=delete_plan.changes)

        result = runner.invoke(app, ["destroy", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "Apply complete!" in result.stdout
        assert mock_plan.call_args.kwargs["destroy"] is True


class TestRefreshCommand:
    _UPDATE_CHANGE = ResourceChange(
        address="circleci_schedule.web.nightly",
        resource_type="circleci_schedule",
        action=Action.UPDATE,
        prior={"per_hour": 1},
        planned={"per_hour": 2},
        diff={"per_hour": {"from": 1, "to": 2}},
    )

    @staticmethod
    def _mock_state(n: int) -> MagicMock:
        state = MagicMock()
        state.resources = {f"circleci_context.c{i}": None for i in range(n)}
        return state

    @patch("circleci_provisioner.config.save_state")
    @patch("circleci_provisioner.config.refresh")
    @patch("circleci_provisioner.config.load")
    def test_no_changes_exits_0(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([], self._mock_state(2))

        result = runner.invoke(app, ["refresh", "--no-color"])
        assert result.exit_code == 0
        assert "up-to-date" in result.stdout
        mock_save.assert_not_called()

    @patch("circleci_provisioner.config.save_state")
    @patch("circleci_provisioner.config.refresh")
    @patch("circleci_provisioner.config.load")
    def test_auto_approve_skips_prompt(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([self._UPDATE_CHANGE], self._mock_state(1))

        result = runner.invoke(app, ["refresh", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "State refreshed. 1 resource tracked." in result.stdout
        mock_save.assert_called_once()

    @patch("circleci_provisioner.config.save_state")
    @patch("circleci_provisioner.config.refresh")
    @patch("circleci_provisioner.config.load")
    def test_user_decline_aborts(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([self._UPDATE_CHANGE], self._mock_state(1))

        result = runner.invoke(app, ["refresh", "--no-color"], input="n\n")
        assert result.exit_code == 1
        mock_save.assert_not_called()

    @patch("circleci_provisioner.config.save_state")
    @patch("circleci_provisioner.config.refresh")
    @patch("circleci_provisioner.config.load")
    def test_shows_drift_before_confirm(
        self, mock_load: MagicMock, mock_refresh: MagicMock, _mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([self._UPDATE_CHANGE], self._mock_state(1))

        result = runner.invoke(app, ["refresh", "--no-color", "--auto-approve"])
        assert "circleci_schedule.web.nightly" in result.stdout
        assert "Refresh: " in result.stdout
        assert "1 to change" in result.stdout


class TestDriftCommand:
    @patch("circleci_provisioner.config.drift")
    @patch("circleci_provisioner.config.load")
    def test_no_drift_exits_0(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = []

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 0
        assert "No drift detected" in result.stdout

    @patch("circleci_provisioner.config.drift")
    @patch("circleci_provisioner.config.load")
    def test_drift_shows_changes(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = [
            ResourceChange(
                address="circleci_schedule.web.nightly",
                resource_type="circleci_schedule",
                action=Action.UPDATE,
                diff={"per_hour": {"from": 1, "to": 2}},
            )
        ]

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 0
        assert "Drift detected" in result.stdout
        assert "circleci_schedule.web.nightly" in result.stdout


class TestImportCommand:
    @patch("circleci_provisioner.config.import_resource")
    @patch("circleci_provisioner.config.load")
    def test_import(self, mock_load: MagicMock, mock_import: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_import.return_value = ResourceInstance(
            address="circleci_context.deploy",
            resource_type="circleci_context",
            name="deploy",
            attributes={"id": "ctx-1", "name": "deploy"},
        )

        result = runner.invoke(
            app, ["import", "circleci_context.deploy", "acme/deploy", "--no-color"]
        )
        assert result.exit_code == 0
        assert "Imported circleci_context.deploy (id ctx-1)." in result.stdout
        _, address, import_id = mock_import.call_args.args
        assert (address, import_id) == ("circleci_context.deploy", "acme/deploy")

    @patch("circleci_provisioner.config.import_resource")
    @patch("circleci_provisioner.config.load")
    def test_import_failure(self, mock_load: MagicMock, mock_import: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_import.side_effect = ResourceImportError("context 'deploy' not found")

        result = runner.invoke(
            app, ["import", "circleci_context.deploy", "acme/deploy", "--no-color"]
        )
        assert result.exit_code == 1
        assert "Import failed: context 'deploy' not found" in result.output


class TestContextCommand:
    @patch("circleci_provisioner.config.lookup_context")
    @patch("circleci_provisioner.config.load")
    def test_prints_id(self, mock_load: MagicMock, mock_lookup: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_lookup.return_value = {"id": "ctx-1", "name": "deploy", "organization": "acme"}

        result = runner.invoke(app, ["context", "deploy", "--organization", "other"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "ctx-1"
        assert mock_lookup.call_args.kwargs["organization"] == "other"

    @patch("circleci_provisioner.config.lookup_context")
    @patch("circleci_provisioner.config.load")
    def test_not_found(self, mock_load: MagicMock, mock_lookup: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_lookup.return_value = None

        result = runner.invoke(app, ["context", "deploy"])
        assert result.exit_code == 1
        assert "Context 'deploy' not found." in result.output


class TestValidateCommand:
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_valid_config(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.stdout
        assert mock_plan.call_args.kwargs["refresh"] is False

    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_validation_error(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = ValidationError(
            [
                "circleci_environment_variable.web.9KEY: "
                "environment variables may only begin with a letter"
            ]
        )

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 1
        assert "Validation failed" in result.output
        assert "may only begin with a letter" in result.output


class TestNoColor:
    @patch("circleci_provisioner.config.plan")
    @patch("circleci_provisioner.config.load")
    def test_no_color_strips_ansi(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert "\x1b[" not in result.stdout
        assert _strip_ansi(result.stdout) == result.stdout


@pytest.fixture(autouse=False)
def _reset_pkg_logger():
    """Reset the circleci_provisioner logger level after each logging test."""
    yield
    logging.getLogger("circleci_provisioner").setLevel(logging.NOTSET)


@pytest.mark.usefixtures("_reset_pkg_logger")
class TestConfigureLogging:
    """Unit-test ``_configure_logging`` by mocking ``logging.basicConfig``.

    Pytest's logging plugin installs a handler on the root logger, making
    ``basicConfig`` a no-op without ``force=True``, so the call args are
    asserted instead.
    """

    @patch("logging.basicConfig")
    def test_verbose_flag_configures_info(self, mock_bc: MagicMock) -> None:
        from circleci_provisioner.cli import _LOG_FORMAT, _configure_logging

        _configure_logging(1)
        mock_bc.assert_called_once_with(
            level=logging.WARNING,
            format=_LOG_FORMAT,
            stream=sys.stderr,
            force=True,
        )
        assert logging.getLogger("circleci_provisioner").level == logging.INFO

    @patch("logging.basicConfig")
    def test_double_verbose_configures_debug(self, mock_bc: MagicMock) -> None:
        from circleci_provisioner.cli import _configure_logging

        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("circleci_provisioner").level == logging.DEBUG

    @patch("logging.basicConfig")
    def test_no_verbose_stays_unconfigured(self, mock_bc: MagicMock) -> None:
        from circleci_provisioner.cli import _configure_logging

        _configure_logging(0)
        mock_bc.assert_not_called()

    @patch("logging.basicConfig")
    def test_circleci_log_env_var(
        self, mock_bc: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from circleci_provisioner.cli import _configure_logging

        monkeypatch.setenv("CIRCLECI_LOG", "DEBUG")
        _configure_logging(0)
        mock_bc.assert_called_once()
        assert logging.getLogger("circleci_provisioner").level == logging.DEBUG

    @patch("logging.basicConfig")
    def test_circleci_log_overrides_verbose(
        self, mock_bc: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from circleci_provisioner.cli import _configure_logging

        monkeypatch.setenv("CIRCLECI_LOG", "WARNING")
        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("circleci_provisioner").level == logging.WARNING

    @patch("logging.basicConfig")
    def test_invalid_circleci_log_warns_and_defaults_to_info(
        self,
        mock_bc: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from circleci_provisioner.cli import _configure_logging

        monkeypatch.setenv("CIRCLECI_LOG", "BOGUS")
        _configure_logging(0)
        mock_bc.assert_called_once()
        assert logging.getLogger("circleci_provisioner").level == logging.INFO
        assert "invalid CIRCLECI_LOG level" in capsys.readouterr().err
