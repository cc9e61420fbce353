"""
Tests for the command-line interface
====================================

Drives the click commands with CliRunner and fake check catalogs.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from aws_doctor import __version__
from aws_doctor.aws import AwsPaths
from aws_doctor.cli import main
from aws_doctor.config import CONFIG_FILENAME
from aws_doctor.logging import LOG_FILENAME, DoctorLogger, EventType
from aws_doctor.models import Check, CheckResult, CheckStage, CheckStatus, RepairResult


def make_check(check_id, stage, status=CheckStatus.PASS, **result_kwargs):
    def execute(context):
        return CheckResult(status=status, message=f"{check_id} {status.value}", **result_kwargs)
    return Check(id=check_id, name=check_id, description=check_id, stage=stage, execute=execute)


def passing_catalog(config, paths):
    return [
        make_check("python-version", CheckStage.ENVIRONMENT),
        make_check("config-file-exists", CheckStage.CONFIGURATION),
    ]


def failing_catalog(config, paths):
    return [
        make_check("python-version", CheckStage.ENVIRONMENT),
        make_check(
            "config-file-exists",
            CheckStage.CONFIGURATION,
            status=CheckStatus.FAIL,
            remediation="Run aws configure",
        ),
        make_check("sts-credential", CheckStage.CONNECTIVITY),
    ]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Isolate cwd, storage and AWS paths under tmp_path."""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.setenv("NO_COLOR", "1")
    paths = AwsPaths.from_environment(home=tmp_path, environ={})
    with patch("aws_doctor.cli.AwsPaths.from_environment", return_value=paths):
        yield tmp_path


def storage_args(tmp_path):
    return ["--storage-dir", str(tmp_path / "store")]


# =============================================================================
# Group
# =============================================================================


class TestMain:
    """Tests for the top-level group."""

    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("doctor", "init", "logs", "restore"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


# =============================================================================
# doctor
# =============================================================================


class TestDoctorCommand:
    """Tests for the doctor command."""

    def test_json_all_pass(self, runner, cli_env):
        with patch("aws_doctor.cli.build_default_checks", side_effect=passing_catalog):
            result = runner.invoke(main, ["doctor", "--json", *storage_args(cli_env)])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["summary"]["overallStatus"] == "pass"
        assert data["summary"]["totalChecks"] == 2
        assert set(data["results"]) == {"python-version", "config-file-exists"}
        assert "repairs" not in data

    def test_json_failure_exits_one(self, runner, cli_env):
        with patch("aws_doctor.cli.build_default_checks", side_effect=failing_catalog):
            result = runner.invoke(main, ["doctor", "--json", *storage_args(cli_env)])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["summary"]["failedChecks"] == 1
        assert data["results"]["config-file-exists"]["remediation"] == "Run aws configure"
        # Configuration failures do not stop later stages
        assert "sts-credential" in data["results"]

    def test_text_output(self, runner, cli_env):
        with patch("aws_doctor.cli.build_default_checks", side_effect=failing_catalog):
            result = runner.invoke(main, ["doctor", "--no-progress", *storage_args(cli_env)])

        assert result.exit_code == 1
        assert "AWS Environment Check" in result.stdout
        assert "Fix: Run aws configure" in result.stdout
        assert "aws-doctor doctor --fix" in result.stdout

    def test_category_runs_one_stage(self, runner, cli_env):
        with patch("aws_doctor.cli.build_default_checks", side_effect=failing_catalog):
            result = runner.invoke(
                main, ["doctor", "--json", "--category", "connectivity", *storage_args(cli_env)]
            )

        assert result.exit_code == 0
        assert list(json.loads(result.stdout)["results"]) == ["sts-credential"]

    def test_invalid_category_rejected(self, runner, cli_env):
        result = runner.invoke(main, ["doctor", "--category", "billing"])
        assert result.exit_code == 2

    def test_writes_run_log(self, runner, cli_env):
        with patch("aws_doctor.cli.build_default_checks", side_effect=passing_catalog):
            runner.invoke(main, ["doctor", "--json", *storage_args(cli_env)])

        lines = (cli_env / "store" / "logs" / LOG_FILENAME).read_text().splitlines()
        events = [json.loads(line)["event"] for line in lines]
        assert events[0] == "run_start"
        assert events[-1] == "run_end"
        assert events.count("check_result") == 2

    def test_fix_runs_safe_repairs(self, runner, cli_env):
        service = MagicMock()
        service.execute_safe_repairs.return_value = [
            RepairResult(success=True, message="Configured default region")
        ]

        with patch("aws_doctor.cli.build_default_checks", side_effect=failing_catalog), \
                patch("aws_doctor.cli.AutoRepairService", return_value=service):
            result = runner.invoke(main, ["doctor", "--json", "--fix", *storage_args(cli_env)])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["repairs"]["successfulRepairs"] == 1
        service.execute_safe_repairs.assert_called_once()
        service.execute_interactive_repairs.assert_not_called()

    def test_fix_and_interactive_concatenate(self, runner, cli_env):
        service = MagicMock()
        service.execute_safe_repairs.return_value = [RepairResult(success=True, message="safe")]
        service.execute_interactive_repairs.return_value = [RepairResult(success=False, message="sso")]

        with patch("aws_doctor.cli.build_default_checks", side_effect=failing_catalog), \
                patch("aws_doctor.cli.AutoRepairService", return_value=service):
            result = runner.invoke(
                main,
                ["doctor", "--no-progress", "--fix", "--interactive", "--yes", *storage_args(cli_env)],
            )

        assert "Starting interactive repair mode..." in result.stdout
        assert "[✓] Repaired: safe" in result.stdout
        assert "[✗] Failed: sso" in result.stdout

    def test_fix_and_interactive_apply_safe_repair_once(self, runner, cli_env, monkeypatch):
        monkeypatch.delenv("AWS_PROFILE", raising=False)
        config_file = cli_env / ".aws" / "config"
        config_file.parent.mkdir()
        config_file.write_text("[default]\nregion = us-west-2\noutput = json\n\n[profile dev]\n")

        def missing_region_catalog(config, paths):
            return [
                make_check("python-version", CheckStage.ENVIRONMENT),
                make_check(
                    "profile-validation",
                    CheckStage.CONFIGURATION,
                    status=CheckStatus.WARN,
                    details={"missingRegion": ["dev"]},
                ),
            ]

        with patch("aws_doctor.cli.build_default_checks", side_effect=missing_region_catalog):
            result = runner.invoke(
                main,
                ["doctor", "--json", "--fix", "--interactive", "--yes", *storage_args(cli_env)],
            )

        assert result.exit_code == 0
        repairs = json.loads(result.stdout)["repairs"]
        assert repairs["totalRepairs"] == 1
        assert repairs["successfulRepairs"] == 1
        assert repairs["results"][0]["details"]["profiles"] == ["dev"]
        assert config_file.read_text().endswith("[profile dev]\nregion = us-east-1\noutput = json\n")

    def test_no_repairs_when_healthy(self, runner, cli_env):
        with patch("aws_doctor.cli.build_default_checks", side_effect=passing_catalog), \
                patch("aws_doctor.cli.AutoRepairService") as service_cls:
            result = runner.invoke(main, ["doctor", "--json", "--fix", *storage_args(cli_env)])

        assert result.exit_code == 0
        service_cls.assert_not_called()

    def test_unexpected_error_reported(self, runner, cli_env):
        def broken_catalog(config, paths):
            return [make_check("python-version", CheckStage.ENVIRONMENT)]

        with patch("aws_doctor.cli.build_default_checks", side_effect=broken_catalog), \
                patch("aws_doctor.cli.DoctorService.run_diagnostics", side_effect=RuntimeError("pool died")):
            result = runner.invoke(main, ["doctor", "--no-progress", *storage_args(cli_env)])

        assert result.exit_code == 1
        assert "Diagnostic execution failed: RuntimeError" in result.output

    def test_bad_config_exits_one(self, runner, cli_env):
        (cli_env / "work" / CONFIG_FILENAME).write_text("max_concurrency: -3\n")

        with patch("aws_doctor.cli.build_default_checks", side_effect=passing_catalog):
            result = runner.invoke(main, ["doctor", *storage_args(cli_env)])

        assert result.exit_code == 1
        assert "Invalid max_concurrency" in result.output


# =============================================================================
# init
# =============================================================================


class TestInitCommand:
    """Tests for the init command."""

    def test_creates_config(self, runner, tmp_path):
        result = runner.invoke(main, ["init", str(tmp_path)])

        assert result.exit_code == 0
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert "Created config file" in result.output

    def test_declined_overwrite_keeps_file(self, runner, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("max_concurrency: 1\n")

        result = runner.invoke(main, ["init", str(tmp_path)], input="n\n")

        assert result.exit_code == 0
        assert "already exists" in result.output
        assert (tmp_path / CONFIG_FILENAME).read_text() == "max_concurrency: 1\n"

    def test_confirmed_overwrite(self, runner, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("max_concurrency: 1\n")

        result = runner.invoke(main, ["init", str(tmp_path)], input="y\n")

        assert result.exit_code == 0
        assert "max_concurrency: 5" in (tmp_path / CONFIG_FILENAME).read_text()

    def test_permission_denied(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        with patch("aws_doctor.cli.Path.write_text", side_effect=PermissionError("denied")):
            result = runner.invoke(main, ["init", str(tmp_path)])

        assert result.exit_code == 1
        assert "Permission denied: cannot write" in result.output


# =============================================================================
# logs
# =============================================================================


class TestLogsCommand:
    """Tests for the logs command."""

    def seed(self, tmp_path):
        logger = DoctorLogger(tmp_path / "store" / "logs")
        logger.start_run(profile="dev")
        logger.log_check_result("python-version", "environment", "pass", "ok", 1.0)
        logger.log_check_result("aws-cli-installation", "environment", "fail", "missing", 2.0)
        logger.log_repair_result("configure-defaults", True, "done")
        logger.end_run(overall_status="fail")
        return logger

    def test_no_entries(self, runner, cli_env):
        result = runner.invoke(main, ["logs", *storage_args(cli_env)])
        assert result.exit_code == 0
        assert "No log entries found." in result.output

    def test_text_output(self, runner, cli_env):
        self.seed(cli_env)
        result = runner.invoke(main, ["logs", *storage_args(cli_env)])

        assert result.exit_code == 0
        assert "Recent Doctor Activity (last 5 events):" in result.output
        assert "CHECK RESULT" in result.output

    def test_json_filters(self, runner, cli_env):
        self.seed(cli_env)

        result = runner.invoke(main, ["logs", "--json", "--checks", *storage_args(cli_env)])
        entries = json.loads(result.output)
        assert [e["event"] for e in entries] == [EventType.CHECK_RESULT.value] * 2

        result = runner.invoke(main, ["logs", "--json", "--errors", *storage_args(cli_env)])
        entries = json.loads(result.output)
        assert [e["check_id"] for e in entries] == ["aws-cli-installation"]

        result = runner.invoke(main, ["logs", "--json", "--repairs", *storage_args(cli_env)])
        assert json.loads(result.output)[0]["operation"] == "configure-defaults"

    def test_invalid_since(self, runner, cli_env):
        result = runner.invoke(main, ["logs", "--since", "whenever", *storage_args(cli_env)])
        assert result.exit_code == 1
        assert "Invalid time format: whenever" in result.output


# =============================================================================
# restore
# =============================================================================


class TestRestoreCommand:
    """Tests for the restore command."""

    def test_restores_backup(self, runner, cli_env):
        backup = cli_env / "backup-config"
        backup.write_bytes(b"[default]\nregion = eu-west-1\n")
        target = cli_env / ".aws" / "config"
        target.parent.mkdir()
        target.write_text("broken")

        result = runner.invoke(main, ["restore", str(backup), str(target), *storage_args(cli_env)])

        assert result.exit_code == 0
        assert target.read_bytes() == b"[default]\nregion = eu-west-1\n"
        assert "Restored" in result.output

    def test_missing_backup(self, runner, cli_env):
        result = runner.invoke(
            main,
            ["restore", str(cli_env / "nope"), str(cli_env / "config"), *storage_args(cli_env)],
        )
        assert result.exit_code == 1
        assert "Backup not found" in result.output
