"""
Progress Display
================

Live task list for a running stage: one spinner row per check, replaced
by a status mark when the check finishes. Purely observational; results
and timings are identical with or without it.
"""

from typing import Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TaskID, TextColumn

from aws_doctor.models import Check, CheckResult, CheckStage, CheckStatus


STATUS_MARKS = {
    CheckStatus.PASS: "[green]✓[/green]",
    CheckStatus.WARN: "[yellow]⚠[/yellow]",
    CheckStatus.FAIL: "[red]✗[/red]",
}


class StageProgress:
    """Context manager showing one stage's checks as they complete.

    When ``enabled`` is False every method is a no-op, so callers never
    branch on it.
    """

    def __init__(
        self,
        stage: CheckStage,
        checks: list[Check],
        console: Optional[Console] = None,
        enabled: bool = True,
    ):
        self.stage = stage
        self.checks = checks
        self.enabled = enabled and bool(checks)
        self.console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._tasks: dict[str, TaskID] = {}

    def __enter__(self) -> "StageProgress":
        if not self.enabled:
            return self
        self._progress = Progress(
            SpinnerColumn(finished_text=""),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=False,
        )
        self._progress.start()
        self.console.print(f"[bold]{self.stage.value.capitalize()}[/bold]")
        for check in self.checks:
            self._tasks[check.id] = self._progress.add_task(f"  {check.name}", total=1)
        return self

    def complete(self, check: Check, result: CheckResult) -> None:
        if self._progress is None or check.id not in self._tasks:
            return
        mark = STATUS_MARKS.get(result.status, "?")
        self._progress.update(
            self._tasks[check.id],
            description=f"{mark} {check.name}",
            completed=1,
        )

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
