"""
Tests for the stage progress display.
"""

import io

from rich.console import Console

from aws_doctor.models import Check, CheckResult, CheckStage, CheckStatus
from aws_doctor.progress import StageProgress


def make_check(check_id, name):
    return Check(
        id=check_id,
        name=name,
        description=name,
        stage=CheckStage.ENVIRONMENT,
        execute=lambda context: CheckResult(status=CheckStatus.PASS, message="ok"),
    )


def make_console():
    buffer = io.StringIO()
    return Console(file=buffer, force_terminal=False, width=80), buffer


class TestStageProgress:
    """Test StageProgress."""

    def test_disabled_is_noop(self):
        console, buffer = make_console()
        check = make_check("python-version", "Python Version")

        with StageProgress(CheckStage.ENVIRONMENT, [check], console=console, enabled=False) as progress:
            progress.complete(check, CheckResult(status=CheckStatus.PASS, message="ok"))

        assert buffer.getvalue() == ""

    def test_empty_stage_is_disabled(self):
        progress = StageProgress(CheckStage.ENVIRONMENT, [], enabled=True)
        assert progress.enabled is False

    def test_enabled_shows_stage_and_marks(self):
        console, buffer = make_console()
        first = make_check("python-version", "Python Version")
        second = make_check("aws-cli-installation", "AWS CLI Installation")

        with StageProgress(CheckStage.ENVIRONMENT, [first, second], console=console) as progress:
            progress.complete(first, CheckResult(status=CheckStatus.PASS, message="ok"))
            progress.complete(second, CheckResult(status=CheckStatus.FAIL, message="missing"))

        output = buffer.getvalue()
        assert "Environment" in output
        assert "✓ Python Version" in output
        assert "✗ AWS CLI Installation" in output

    def test_complete_ignores_unknown_check(self):
        console, buffer = make_console()
        known = make_check("python-version", "Python Version")
        unknown = make_check("other", "Other Check")

        with StageProgress(CheckStage.ENVIRONMENT, [known], console=console) as progress:
            progress.complete(unknown, CheckResult(status=CheckStatus.WARN, message="?"))

        assert "Other Check" not in buffer.getvalue()
