"""
Structured Logging
==================

JSONL event log for doctor runs that enables:
- Post-mortem review of which checks failed and why
- An audit trail of every repair and backup written
- Real-time verbose output during execution
- Historical log viewing and filtering
"""

import json
import os
import sys
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from aws_doctor.config import LoggingConfig


LOG_FILENAME = "doctor.log"


class LogLevel(str, Enum):
    """Log levels for event filtering."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class EventType(str, Enum):
    """Types of events that can be logged."""

    RUN_START = "run_start"
    RUN_END = "run_end"
    STAGE_START = "stage_start"
    STAGE_COMPLETE = "stage_complete"
    PIPELINE_HALTED = "pipeline_halted"
    CHECK_RESULT = "check_result"
    REPAIR_RESULT = "repair_result"
    REPAIR_SKIPPED = "repair_skipped"
    BACKUP_CREATED = "backup_created"
    ERROR = "error"


# Map event types to their default log levels
EVENT_LEVELS: dict[EventType, LogLevel] = {
    EventType.RUN_START: LogLevel.INFO,
    EventType.RUN_END: LogLevel.INFO,
    EventType.STAGE_START: LogLevel.DEBUG,
    EventType.STAGE_COMPLETE: LogLevel.INFO,
    EventType.PIPELINE_HALTED: LogLevel.WARNING,
    EventType.CHECK_RESULT: LogLevel.INFO,
    EventType.REPAIR_RESULT: LogLevel.INFO,
    EventType.REPAIR_SKIPPED: LogLevel.INFO,
    EventType.BACKUP_CREATED: LogLevel.INFO,
    EventType.ERROR: LogLevel.ERROR,
}

LEVEL_ORDER = [LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARNING, LogLevel.ERROR]


@dataclass
class LogEntry:
    """A single log entry."""

    ts: datetime
    level: LogLevel
    event: EventType
    run_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize to JSON string for JSONL format."""
        return json.dumps(
            {
                "ts": self.ts.isoformat(),
                "level": self.level.value,
                "event": self.event.value,
                "run_id": self.run_id,
                **self.data,
            },
            ensure_ascii=False,
            default=str,
        )

    @classmethod
    def from_json(cls, json_str: str) -> "LogEntry":
        """Deserialize from JSON string."""
        data = json.loads(json_str)
        ts = datetime.fromisoformat(data.pop("ts"))
        level = LogLevel(data.pop("level"))
        event = EventType(data.pop("event"))
        run_id = data.pop("run_id")
        return cls(ts=ts, level=level, event=event, run_id=run_id, data=data)


def generate_run_id() -> str:
    """Generate a short unique run ID."""
    return uuid.uuid4().hex[:12]


def truncate_string(s: str, max_length: int) -> str:
    """Truncate a string to max_length, adding ellipsis if truncated."""
    if len(s) <= max_length:
        return s
    return s[: max_length - 3] + "..."


class DoctorLogger:
    """
    Event logger for doctor runs.

    Handles JSONL log file writing with rotation and buffering. Check
    results arrive from worker threads, so buffer access is locked.
    """

    def __init__(
        self,
        log_dir: Path,
        config: Optional[LoggingConfig] = None,
        verbose: bool = False,
    ):
        """
        Initialize the logger.

        Args:
            log_dir: Directory holding doctor.log and its rotations
            config: Logging configuration
            verbose: Echo events to stderr
        """
        self.config = config or LoggingConfig()
        self.verbose = verbose
        self.run_id: Optional[str] = None
        self._disabled = False
        self._lock = threading.Lock()
        self._buffer: list[str] = []
        self._buffer_size = 10

        self._log_dir = log_dir
        self._log_file = self._log_dir / LOG_FILENAME

        if self.config.enabled:
            try:
                self._log_dir.mkdir(parents=True, exist_ok=True)
                try:
                    os.chmod(self._log_dir, 0o700)
                except OSError:
                    pass
            except OSError as e:
                # Directory creation failed - disable logging
                self._disabled = True
                print(
                    f"Warning: Could not create log directory {self._log_dir}: {e}",
                    file=sys.stderr,
                )

    @property
    def log_file(self) -> Path:
        return self._log_file

    def start_run(self, **data: Any) -> str:
        """Start a new run and return its ID."""
        self.run_id = generate_run_id()
        self.log_event(EventType.RUN_START, **data)
        return self.run_id

    def end_run(self, **data: Any) -> None:
        """End the current run and flush."""
        if not self.run_id:
            return
        self.log_event(EventType.RUN_END, **data)
        self.flush()
        self.run_id = None

    def log_event(
        self,
        event_type: EventType,
        level: Optional[LogLevel] = None,
        **data: Any,
    ) -> None:
        """
        Log an event.

        Args:
            event_type: Type of event
            level: Log level (defaults based on event type)
            **data: Event-specific data fields
        """
        if self._disabled or not self.config.enabled:
            return

        if level is None:
            level = EVENT_LEVELS.get(event_type, LogLevel.INFO)

        # Skip if below configured level
        if LEVEL_ORDER.index(level) < LEVEL_ORDER.index(LogLevel(self.config.level)):
            return

        truncated_data = {}
        for key, value in data.items():
            if isinstance(value, str) and len(value) > self.config.max_summary_length:
                truncated_data[key] = truncate_string(value, self.config.max_summary_length)
            else:
                truncated_data[key] = value

        entry = LogEntry(
            ts=datetime.now(timezone.utc),
            level=level,
            event=event_type,
            run_id=self.run_id or "unknown",
            data=truncated_data,
        )

        with self._lock:
            self._buffer.append(entry.to_json())
            should_flush = len(self._buffer) >= self._buffer_size

        if self.verbose:
            self._print_verbose(entry)

        if should_flush:
            self.flush()

    def log_check_result(self, check_id: str, stage: str, status: str, message: str,
                         duration: Optional[float]) -> None:
        self.log_event(
            EventType.CHECK_RESULT,
            level=LogLevel.WARNING if status == "fail" else LogLevel.INFO,
            check_id=check_id,
            stage=stage,
            status=status,
            message=message,
            duration_ms=duration,
        )

    def log_repair_result(self, operation: str, success: bool, message: str,
                          backup_path: Optional[str] = None) -> None:
        self.log_event(
            EventType.REPAIR_RESULT,
            level=LogLevel.INFO if success else LogLevel.WARNING,
            operation=operation,
            success=success,
            message=message,
            backup_path=backup_path,
        )

    def log_error(
        self,
        error_type: str,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an error event."""
        self.log_event(
            EventType.ERROR,
            error_type=error_type,
            message=message,
            context=context or {},
        )

    def _print_verbose(self, entry: LogEntry) -> None:
        """Print formatted log entry to stderr for verbose mode."""
        use_color = os.environ.get("NO_COLOR") is None

        timestamp = entry.ts.strftime("%H:%M:%S")
        event_name = entry.event.value.upper()

        colors = {
            LogLevel.DEBUG: "\033[90m",  # Gray
            LogLevel.INFO: "\033[0m",  # Default
            LogLevel.WARNING: "\033[33m",  # Yellow
            LogLevel.ERROR: "\033[31m",  # Red
        }
        reset = "\033[0m"

        color = colors.get(entry.level, "") if use_color else ""
        end_color = reset if use_color else ""

        print(
            f"{color}[{timestamp}] {event_name:<16} {format_entry_details(entry)}{end_color}",
            file=sys.stderr,
        )

    def flush(self) -> None:
        """Flush buffered log entries to disk."""
        with self._lock:
            if not self._buffer or self._disabled:
                return
            pending = list(self._buffer)
            self._buffer.clear()

            try:
                self._maybe_rotate()
                with open(self._log_file, "a", encoding="utf-8") as f:
                    for line in pending:
                        f.write(line + "\n")
            except OSError as e:
                # Log write failed - disable logging
                self._disabled = True
                print(f"Warning: Log write failed: {e}", file=sys.stderr)

    def _maybe_rotate(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self._log_file.exists():
            return

        try:
            size_mb = self._log_file.stat().st_size / (1024 * 1024)
            if size_mb < self.config.max_size_mb:
                return

            for i in range(self.config.max_files - 1, 0, -1):
                old_path = self._log_dir / f"{LOG_FILENAME}.{i}"
                new_path = self._log_dir / f"{LOG_FILENAME}.{i + 1}"
                if old_path.exists():
                    if i + 1 >= self.config.max_files:
                        old_path.unlink()  # Delete oldest
                    else:
                        old_path.rename(new_path)

            self._log_file.rename(self._log_dir / f"{LOG_FILENAME}.1")

        except OSError:
            pass  # Rotation failed - continue with current file


def format_entry_details(entry: LogEntry) -> str:
    """One-line summary of an entry's payload."""
    data = entry.data
    if entry.event == EventType.CHECK_RESULT:
        return f"{data.get('check_id')}: [{data.get('status')}] {str(data.get('message', ''))[:50]}"
    if entry.event in (EventType.STAGE_START, EventType.STAGE_COMPLETE):
        return f"stage={data.get('stage')} checks={data.get('checks')}"
    if entry.event == EventType.PIPELINE_HALTED:
        return f"after={data.get('stage')} failed={data.get('failed_checks')}"
    if entry.event == EventType.REPAIR_RESULT:
        status = "ok" if data.get("success") else "failed"
        return f"{data.get('operation')}: [{status}] {str(data.get('message', ''))[:40]}"
    if entry.event == EventType.BACKUP_CREATED:
        return f"{data.get('source')} -> {data.get('backup_path')}"
    if entry.event == EventType.RUN_END:
        return f"status={data.get('overall_status')} checks={data.get('total_checks')}"
    if entry.event == EventType.ERROR:
        return f"{data.get('error_type')}: {str(data.get('message', ''))[:40]}"
    return str(data)[:60]


class LogReader:
    """
    Reads and queries log entries from log files.
    """

    def __init__(self, log_dir: Path):
        self._log_dir = log_dir
        self._log_file = self._log_dir / LOG_FILENAME

    def read_entries(
        self,
        run_id: Optional[str] = None,
        event_types: Optional[list[EventType]] = None,
        levels: Optional[list[LogLevel]] = None,
        since: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LogEntry]:
        """
        Read and filter log entries.

        Args:
            run_id: Filter by run ID prefix
            event_types: Filter by event types
            levels: Filter by log levels
            since: Only entries after this time
            limit: Maximum entries to return
            offset: Number of entries to skip

        Returns:
            List of matching LogEntry objects, newest first
        """
        entries: list[LogEntry] = []

        for log_file in self._get_log_files():
            try:
                with open(log_file, "r", encoding="utf-8") as f:
                    for line in f:
                        try:
                            entry = LogEntry.from_json(line.strip())
                        except (json.JSONDecodeError, ValueError, KeyError):
                            continue

                        if run_id and not entry.run_id.startswith(run_id):
                            continue
                        if event_types and entry.event not in event_types:
                            continue
                        if levels and entry.level not in levels:
                            continue
                        if since and entry.ts < since:
                            continue

                        entries.append(entry)
            except OSError:
                continue

        entries.sort(key=lambda e: e.ts, reverse=True)
        return entries[offset : offset + limit]

    def _get_log_files(self) -> list[Path]:
        """Get all existing log files (current + rotated)."""
        files = []
        if self._log_file.exists():
            files.append(self._log_file)

        for i in range(1, 10):
            rotated = self._log_dir / f"{LOG_FILENAME}.{i}"
            if rotated.exists():
                files.append(rotated)
            else:
                break

        return files


def parse_since_value(since_str: str) -> datetime:
    """
    Parse a --since value to a datetime.

    Supports:
    - Relative: "1h", "2d", "30m", "1w"
    - Absolute: "2024-01-15", "2024-01-15T10:30:00"
    """
    if since_str and since_str[-1] in "hdmw":
        unit = since_str[-1]
        try:
            value = int(since_str[:-1])
        except ValueError:
            raise ValueError(f"Invalid relative time: {since_str}")

        seconds = {"m": 60, "h": 3600, "d": 86400, "w": 604800}[unit]
        now = datetime.now(timezone.utc)
        return now.replace(microsecond=0) - timedelta(seconds=value * seconds)

    try:
        parsed = datetime.fromisoformat(since_str)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    except ValueError:
        pass

    try:
        d = date.fromisoformat(since_str)
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    except ValueError:
        raise ValueError(f"Could not parse time: {since_str}")
