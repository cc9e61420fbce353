"""
AWS Doctor CLI
==============

Command-line interface for diagnosing and repairing an AWS CLI environment.
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

import click

from aws_doctor import __version__
from aws_doctor.aws import AwsPaths
from aws_doctor.checks import build_default_checks
from aws_doctor.config import (
    CONFIG_FILENAME,
    DEFAULT_STORAGE_DIR,
    generate_config_template,
    merge_config,
)
from aws_doctor.doctor import DoctorService
from aws_doctor.errors import (
    ActionableError,
    ConfigParseError,
    ConfigValidationError,
    DoctorError,
    permission_error,
    print_error,
    to_actionable_error,
)
from aws_doctor.logging import (
    DoctorLogger,
    EventType,
    LogLevel,
    LogReader,
    format_entry_details,
    parse_since_value,
)
from aws_doctor.models import STAGE_ORDER, CheckStage, DoctorContext
from aws_doctor.registry import CheckRegistry
from aws_doctor.repair import (
    AlwaysConfirmPrompter,
    AutoRepairService,
    QuestionaryPrompter,
    RepairDefaults,
)
from aws_doctor.report import format_repair_results, format_summary, format_summary_json


@click.group()
@click.version_option(version=__version__)
def main():
    """Diagnose and repair your local AWS CLI environment."""


@main.command()
@click.option("--profile", "-p", type=str, help="AWS profile to diagnose (default: AWS_PROFILE or 'default')")
@click.option(
    "--category",
    type=click.Choice([stage.value for stage in STAGE_ORDER]),
    help="Run only one stage of checks",
)
@click.option("--detailed", "-d", is_flag=True, help="Show check details and timings")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.option("--fix", is_flag=True, help="Apply safe repairs automatically")
@click.option("--interactive", "-i", is_flag=True, help="Offer each repair for confirmation")
@click.option("--dry-run", is_flag=True, help="Preview repairs without changing anything")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Confirm every interactive repair")
@click.option("--no-progress", is_flag=True, help="Disable the live progress display")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help=f"Path to config file (default: ./{CONFIG_FILENAME})",
)
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help=f"Where backups and logs are kept (default: {DEFAULT_STORAGE_DIR})",
)
@click.option("--max-concurrency", type=int, help="Checks run in parallel per stage (default: 5)")
@click.option("--verbose", "-v", is_flag=True, help="Echo log events to stderr")
def doctor(
    profile: Optional[str],
    category: Optional[str],
    detailed: bool,
    output_json: bool,
    fix: bool,
    interactive: bool,
    dry_run: bool,
    assume_yes: bool,
    no_progress: bool,
    config_path: Optional[Path],
    storage_dir: Optional[Path],
    max_concurrency: Optional[int],
    verbose: bool,
):
    """Run diagnostic checks against the AWS CLI environment.

    \b
    Examples:
      aws-doctor doctor                       # All stages
      aws-doctor doctor --category connectivity
      aws-doctor doctor --profile dev --detailed
      aws-doctor doctor --fix                 # Apply safe repairs
      aws-doctor doctor --interactive         # Confirm each repair
      aws-doctor doctor --fix --dry-run       # Preview repairs
      aws-doctor doctor --json
    """
    try:
        config = merge_config(
            directory=Path.cwd(),
            cli_config_path=config_path,
            cli_storage_dir=storage_dir,
            cli_max_concurrency=max_concurrency,
            cli_no_progress=no_progress,
            cli_dry_run=dry_run,
            cli_verbose=verbose,
        )
    except (ConfigParseError, ConfigValidationError) as e:
        print_error(e.get_actionable_error())
        sys.exit(1)

    event_log = DoctorLogger(config.log_dir, config.logging, verbose=config.verbose)
    paths = AwsPaths.from_environment()

    try:
        registry = CheckRegistry()
        registry.register_all(build_default_checks(config, paths))
        service = DoctorService(
            registry,
            max_concurrency=config.max_concurrency,
            progress_enabled=config.progress_enabled and not output_json,
            event_log=event_log,
        )
    except DoctorError as e:
        print_error(e.get_actionable_error())
        sys.exit(1)

    context = DoctorContext(
        profile=profile,
        detailed=detailed,
        interactive=interactive,
        auto_fix=fix,
    )

    event_log.start_run(
        profile=profile,
        category=category,
        fix=fix,
        interactive=interactive,
        dry_run=config.dry_run,
    )

    try:
        if category:
            summary = service.run_category(CheckStage(category), context)
        else:
            summary = service.run_diagnostics(context)

        repairs = None
        if (fix or interactive) and (summary.failed_checks or summary.warning_checks):
            repair_service = AutoRepairService(
                config.storage_dir,
                paths,
                prompter=AlwaysConfirmPrompter() if assume_yes else QuestionaryPrompter(),
                dry_run=config.dry_run,
                defaults=RepairDefaults(
                    region=config.repair.default_region,
                    output=config.repair.default_output,
                ),
                event_log=event_log,
            )
            repairs = []
            if fix:
                repairs.extend(repair_service.execute_safe_repairs(context, summary.results))
            if interactive:
                if not output_json:
                    click.echo("\nStarting interactive repair mode...")
                repairs.extend(repair_service.execute_interactive_repairs(context, summary.results))
    except Exception as e:
        event_log.log_error(type(e).__name__, str(e))
        event_log.end_run(overall_status="error")
        print_error(to_actionable_error(e))
        sys.exit(1)

    if output_json:
        click.echo(json.dumps(format_summary_json(summary, repairs), indent=2))
    else:
        click.echo(format_summary(summary, registry, detailed=detailed))
        if repairs is not None:
            click.echo(format_repair_results(repairs, dry_run=config.dry_run))

    event_log.end_run(
        overall_status=summary.overall_status.value,
        total_checks=summary.total_checks,
        failed_checks=summary.failed_checks,
        repairs=len(repairs) if repairs is not None else 0,
    )
    sys.exit(summary.exit_code)


@main.command()
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path), default=".")
def init(directory: Path):
    """Create a config file template.

    DIRECTORY is where the config file is written (default: current directory).
    """
    directory = Path(directory).resolve()
    directory.mkdir(parents=True, exist_ok=True)

    config_path = directory / CONFIG_FILENAME
    if config_path.exists():
        click.echo(f"Config file already exists: {config_path}")
        if not click.confirm("Overwrite?"):
            return

    try:
        config_path.write_text(generate_config_template())
    except PermissionError:
        print_error(permission_error(str(config_path), "write"))
        sys.exit(1)
    click.echo(f"Created config file: {config_path}")
    click.echo("\nEdit this file to tune the checks, then run:")
    click.echo("  aws-doctor doctor")


@main.command()
@click.option("--run", "-r", "run_id", type=str, help="Filter by run ID")
@click.option("--errors", is_flag=True, help="Show only warnings and errors")
@click.option("--checks", is_flag=True, help="Show only check results")
@click.option("--repairs", is_flag=True, help="Show only repair events")
@click.option("--limit", "-n", type=int, default=50, help="Number of entries to show")
@click.option("--since", type=str, help="Show entries since (e.g., '1h', '2d', '2024-01-15')")
@click.option("--json", "output_json", is_flag=True, help="Output raw JSON")
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help=f"Where logs are kept (default: {DEFAULT_STORAGE_DIR})",
)
def logs(
    run_id: Optional[str],
    errors: bool,
    checks: bool,
    repairs: bool,
    limit: int,
    since: Optional[str],
    output_json: bool,
    storage_dir: Optional[Path],
):
    """View and filter the history of doctor runs.

    \b
    Examples:
      aws-doctor logs                  # Recent 50 entries
      aws-doctor logs --errors         # Warnings and errors only
      aws-doctor logs --repairs        # Repairs and backups
      aws-doctor logs --since 1h       # Last hour
      aws-doctor logs --run abc123     # Specific run
    """
    try:
        config = merge_config(directory=Path.cwd(), cli_storage_dir=storage_dir)
    except (ConfigParseError, ConfigValidationError) as e:
        print_error(e.get_actionable_error())
        sys.exit(1)

    reader = LogReader(config.log_dir)

    event_types = None
    if checks or repairs:
        event_types = []
        if checks:
            event_types.append(EventType.CHECK_RESULT)
        if repairs:
            event_types.extend(
                [EventType.REPAIR_RESULT, EventType.REPAIR_SKIPPED, EventType.BACKUP_CREATED]
            )
    levels = [LogLevel.WARNING, LogLevel.ERROR] if errors else None

    since_dt = None
    if since:
        try:
            since_dt = parse_since_value(since)
        except ValueError as e:
            print_error(ActionableError(
                message=f"Invalid time format: {since}",
                context=str(e),
                example="Valid formats: '1h', '2d', '30m', or '2024-01-15'",
                help_command="aws-doctor logs --help",
            ))
            sys.exit(1)

    entries = reader.read_entries(
        run_id=run_id,
        event_types=event_types,
        levels=levels,
        since=since_dt,
        limit=limit,
    )

    if not entries:
        click.echo("No log entries found.")
        return

    if output_json:
        output = [
            {
                "ts": e.ts.isoformat(),
                "level": e.level.value,
                "event": e.event.value,
                "run_id": e.run_id,
                **e.data,
            }
            for e in entries
        ]
        click.echo(json.dumps(output, indent=2))
        return

    use_color = os.environ.get("NO_COLOR") is None
    colors = {
        LogLevel.DEBUG: "bright_black",
        LogLevel.WARNING: "yellow",
        LogLevel.ERROR: "red",
    }

    click.echo(f"\nRecent Doctor Activity (last {len(entries)} events):")
    click.echo("-" * 70)
    for entry in reversed(entries):
        timestamp = entry.ts.strftime("%H:%M:%S")
        event_name = entry.event.value.upper().replace("_", " ")
        line = f"{timestamp} {event_name:<16} {entry.run_id[:8]}  {format_entry_details(entry)}"
        color = colors.get(entry.level)
        click.echo(click.style(line, fg=color) if use_color and color else line)


@main.command()
@click.argument("backup", type=click.Path(path_type=Path))
@click.argument("target", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help=f"Where backups and logs are kept (default: {DEFAULT_STORAGE_DIR})",
)
def restore(backup: Path, target: Path, storage_dir: Optional[Path]):
    """Restore TARGET from a BACKUP taken by an earlier repair.

    \b
    Example:
      aws-doctor restore ~/.aws-doctor/backups/20250101T120000000000Z-config ~/.aws/config
    """
    try:
        config = merge_config(directory=Path.cwd(), cli_storage_dir=storage_dir)
    except (ConfigParseError, ConfigValidationError) as e:
        print_error(e.get_actionable_error())
        sys.exit(1)

    event_log = DoctorLogger(config.log_dir, config.logging)
    repair_service = AutoRepairService(
        config.storage_dir,
        AwsPaths.from_environment(),
        event_log=event_log,
    )

    event_log.start_run(command="restore", backup=str(backup), target=str(target))
    try:
        result = repair_service.restore_backup(backup.expanduser(), target.expanduser())
    except DoctorError as e:
        event_log.log_error(type(e).__name__, str(e))
        event_log.end_run(overall_status="error")
        print_error(e.get_actionable_error())
        sys.exit(1)

    event_log.end_run(overall_status="pass")
    click.echo(format_repair_results([result]))


if __name__ == "__main__":
    main()
