"""
Tests for the report module
===========================

Console and JSON rendering of summaries and repair results.
"""

import json

import pytest

from aws_doctor.doctor import create_diagnostic_summary
from aws_doctor.models import Check, CheckResult, CheckStage, CheckStatus, RepairResult
from aws_doctor.registry import CheckRegistry
from aws_doctor.report import (
    MAX_DETAIL_LENGTH,
    format_repair_results,
    format_summary,
    format_summary_json,
)


@pytest.fixture(autouse=True)
def no_color(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")


def make_registry(*specs):
    registry = CheckRegistry()
    for check_id, stage in specs:
        registry.register(Check(
            id=check_id,
            name=check_id,
            description=check_id,
            stage=stage,
            execute=lambda context: CheckResult(status=CheckStatus.PASS, message="ok"),
        ))
    return registry


@pytest.fixture
def registry():
    return make_registry(
        ("python-version", CheckStage.ENVIRONMENT),
        ("aws-cli-installation", CheckStage.ENVIRONMENT),
        ("config-file-exists", CheckStage.CONFIGURATION),
        ("sts-credential", CheckStage.CONNECTIVITY),
    )


class TestFormatSummary:
    """Test format_summary."""

    def test_all_passed(self, registry):
        summary = create_diagnostic_summary({
            "python-version": CheckResult(status="pass", message="Python 3.12.1", duration=2.0),
            "config-file-exists": CheckResult(status="pass", message="Config found", duration=1.0),
        }, 1500.0)

        output = format_summary(summary, registry)

        assert output.startswith("AWS Environment Check")
        assert "Environment:\n  [✓] Python 3.12.1" in output
        assert "Configuration:\n  [✓] Config found" in output
        assert "Connectivity:" not in output
        assert "Summary: All 2 checks passed! (1.5s)" in output
        assert "--fix" not in output

    def test_failure_shows_fix_and_skipped(self, registry):
        summary = create_diagnostic_summary({
            "python-version": CheckResult(status="pass", message="Python 3.12.1"),
            "aws-cli-installation": CheckResult(
                status="fail",
                message="AWS CLI not found",
                remediation="Install AWS CLI v2",
            ),
        }, 200.0)

        output = format_summary(summary, registry)

        assert "  [✗] AWS CLI not found" in output
        assert "      Fix: Install AWS CLI v2" in output
        assert "Skipped 2 checks after environment failures." in output
        assert "Summary: 1 passed, 0 warning(s), 1 failed in 0.2s" in output
        assert "aws-doctor doctor --fix" in output
        assert "aws-doctor doctor --interactive" in output

    def test_warning_summary(self, registry):
        summary = create_diagnostic_summary({
            "config-file-exists": CheckResult(
                status="warn", message="No default region", remediation="aws configure",
            ),
        }, 100.0)

        output = format_summary(summary, registry)

        assert "[!] No default region" in output
        assert "Fix: aws configure" in output
        assert "Summary: 0 passed, 1 warning(s), 0 failed" in output
        assert "Skipped" not in output

    def test_detailed_shows_details_and_timing(self, registry):
        summary = create_diagnostic_summary({
            "python-version": CheckResult(
                status="pass",
                message="Python 3.12.1",
                details={"version": "3.12.1", "paths": ["/a", "/b"], "missing": None},
                duration=12.4,
            ),
        }, 12.4)

        brief = format_summary(summary, registry)
        detailed = format_summary(summary, registry, detailed=True)

        assert "version:" not in brief
        assert "[✓] Python 3.12.1 (12ms)" in detailed
        assert "      version: 3.12.1" in detailed
        assert "      paths: /a, /b" in detailed
        assert "missing" not in detailed

    def test_long_detail_truncated(self, registry):
        summary = create_diagnostic_summary({
            "python-version": CheckResult(status="pass", message="ok", details={"blob": "x" * 500}),
        }, 1.0)

        output = format_summary(summary, registry, detailed=True)
        blob_line = next(line for line in output.splitlines() if "blob:" in line)
        assert blob_line.strip() == "blob: " + "x" * (MAX_DETAIL_LENGTH - 3) + "..."


class TestFormatSummaryJson:
    """Test format_summary_json."""

    def test_shape_without_repairs(self):
        summary = create_diagnostic_summary({
            "python-version": CheckResult(status="pass", message="ok", duration=1.0),
        }, 5.0)

        data = json.loads(json.dumps(format_summary_json(summary)))

        assert data["summary"]["overallStatus"] == "pass"
        assert data["summary"]["totalChecks"] == 1
        assert data["results"]["python-version"]["duration"] == 1.0
        assert "repairs" not in data

    def test_includes_repairs(self):
        summary = create_diagnostic_summary({
            "config-file-exists": CheckResult(status="fail", message="missing"),
        }, 5.0)
        repairs = [
            RepairResult(success=True, message="Created config"),
            RepairResult(success=False, message="Failed"),
        ]

        data = format_summary_json(summary, repairs)

        assert data["repairs"]["totalRepairs"] == 2
        assert data["repairs"]["successfulRepairs"] == 1
        assert data["repairs"]["failedRepairs"] == 1


class TestFormatRepairResults:
    """Test format_repair_results."""

    def test_empty(self):
        assert format_repair_results([]) == "No repairs needed."

    def test_success_and_failure(self):
        output = format_repair_results([
            RepairResult(
                success=True,
                message="Configured default region",
                operations=["Set region = us-east-1"],
                backup_path="/home/me/.aws-doctor/backups/20250101T000000000000Z-config",
            ),
            RepairResult(success=False, message="Failed to execute repair: kaboom"),
        ])

        assert "Repair Results:" in output
        assert "[✓] Repaired: Configured default region" in output
        assert "      - Set region = us-east-1" in output
        assert "      Backup: /home/me/.aws-doctor/backups/" in output
        assert "[✗] Failed: Failed to execute repair: kaboom" in output

    def test_dry_run_preview(self):
        output = format_repair_results(
            [RepairResult(success=True, message="Would create config", details={"dryRun": True})],
            dry_run=True,
        )
        assert "Repair Preview (dry run):" in output
        assert "[→] Preview: Would create config" in output
