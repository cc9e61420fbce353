"""
Report Formatting
=================

Console and JSON rendering of diagnostic summaries and repair results.
"""

import os
from typing import Optional

import click

from aws_doctor.models import (
    STAGE_ORDER,
    CheckStatus,
    DiagnosticSummary,
    RepairResult,
)
from aws_doctor.registry import CheckRegistry


SYMBOLS = {
    CheckStatus.PASS: "[✓]",
    CheckStatus.FAIL: "[✗]",
    CheckStatus.WARN: "[!]",
}

COLORS = {
    CheckStatus.PASS: "green",
    CheckStatus.FAIL: "red",
    CheckStatus.WARN: "yellow",
}

# Longest detail value shown in detailed mode
MAX_DETAIL_LENGTH = 200


def _use_color() -> bool:
    return os.environ.get("NO_COLOR") is None


def _format_detail_value(value) -> str:
    if isinstance(value, (list, tuple)):
        text = ", ".join(_format_detail_value(v) for v in value)
    elif isinstance(value, dict):
        text = ", ".join(f"{k}={_format_detail_value(v)}" for k, v in value.items())
    else:
        text = str(value)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[: MAX_DETAIL_LENGTH - 3] + "..."
    return text


def format_summary(
    summary: DiagnosticSummary,
    registry: CheckRegistry,
    detailed: bool = False,
) -> str:
    """Format a DiagnosticSummary for console output.

    Args:
        summary: The summary to format
        registry: Registry used to look up check names and stages
        detailed: Include check details and durations

    Returns:
        Formatted string for console output
    """
    lines = []
    use_color = _use_color()

    def style_status(text: str, status: CheckStatus) -> str:
        if not use_color:
            return text
        return click.style(text, fg=COLORS.get(status))

    def bold(text: str) -> str:
        return click.style(text, bold=True) if use_color else text

    lines.append(bold("AWS Environment Check"))
    lines.append("=" * 21)
    lines.append("")

    by_stage = {stage: [] for stage in STAGE_ORDER}
    for check_id, result in summary.results.items():
        check = registry.get_check(check_id)
        if check is not None:
            by_stage[check.stage].append((check_id, result))

    for stage in STAGE_ORDER:
        stage_results = by_stage[stage]
        if not stage_results:
            continue

        lines.append(bold(f"{stage.value.capitalize()}:"))
        for check_id, result in stage_results:
            symbol = style_status(SYMBOLS[result.status], result.status)
            timing = f" ({result.duration:.0f}ms)" if detailed and result.duration is not None else ""
            lines.append(f"  {symbol} {result.message}{timing}")

            if result.status != CheckStatus.PASS and result.remediation:
                lines.append(f"      Fix: {result.remediation}")

            if detailed and result.details:
                for key, value in result.details.items():
                    if value is None:
                        continue
                    lines.append(f"      {key}: {_format_detail_value(value)}")
        lines.append("")

    executed = set(summary.results)
    skipped = [cid for cid in registry.get_all_check_ids() if cid not in executed]
    if skipped and summary.failed_checks:
        lines.append(f"Skipped {len(skipped)} checks after environment failures.")
        lines.append("")

    seconds = summary.execution_time / 1000
    counts = (
        f"{summary.passed_checks} passed, {summary.warning_checks} warning(s), "
        f"{summary.failed_checks} failed in {seconds:.1f}s"
    )
    if summary.overall_status == CheckStatus.PASS:
        text = f"Summary: All {summary.total_checks} checks passed! ({seconds:.1f}s)"
        lines.append(click.style(text, fg="green") if use_color else text)
    elif summary.overall_status == CheckStatus.WARN:
        text = f"Summary: {counts}"
        lines.append(click.style(text, fg="yellow") if use_color else text)
    else:
        text = f"Summary: {counts}"
        lines.append(click.style(text, fg="red") if use_color else text)
        lines.append("Run 'aws-doctor doctor --fix' to attempt safe automatic fixes,")
        lines.append("or 'aws-doctor doctor --interactive' for guided repair.")

    return "\n".join(lines)


def format_summary_json(
    summary: DiagnosticSummary, repairs: Optional[list[RepairResult]] = None
) -> dict:
    """Format a summary (and repairs) as a JSON-serializable dict."""
    return summary.to_dict(repairs=repairs)


def format_repair_results(results: list[RepairResult], dry_run: bool = False) -> str:
    """Format repair results for console output."""
    if not results:
        return "No repairs needed."

    lines = []
    use_color = _use_color()

    lines.append("")
    title = "Repair Preview (dry run):" if dry_run else "Repair Results:"
    lines.append(click.style(title, bold=True) if use_color else title)

    for result in results:
        if result.success:
            symbol, label, color = "[✓]", "Repaired", "green"
            if (result.details or {}).get("dryRun"):
                symbol, label, color = "[→]", "Preview", "cyan"
        else:
            symbol, label, color = "[✗]", "Failed", "red"

        if use_color:
            symbol = click.style(symbol, fg=color)
            label = click.style(label, fg=color)

        lines.append(f"  {symbol} {label}: {result.message}")
        for operation in result.operations:
            lines.append(f"      - {operation}")
        if result.backup_path:
            lines.append(f"      Backup: {result.backup_path}")

    return "\n".join(lines)
