"""
Tests for Structured Logging
============================

Tests for the logging module including:
- LogEntry serialization/deserialization
- DoctorLogger file operations, level filtering and rotation
- LogReader querying and filtering
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from aws_doctor.config import LoggingConfig
from aws_doctor.logging import (
    LOG_FILENAME,
    DoctorLogger,
    EventType,
    LogEntry,
    LogLevel,
    LogReader,
    format_entry_details,
    generate_run_id,
    parse_since_value,
    truncate_string,
)


def read_lines(log_dir):
    return [json.loads(line) for line in (log_dir / LOG_FILENAME).read_text().splitlines()]


class TestLogEntry:
    """Tests for LogEntry dataclass."""

    def test_to_json_flattens_data(self):
        entry = LogEntry(
            ts=datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc),
            level=LogLevel.INFO,
            event=EventType.CHECK_RESULT,
            run_id="abc123",
            data={"check_id": "python-version", "status": "pass"},
        )
        parsed = json.loads(entry.to_json())
        assert parsed["event"] == "check_result"
        assert parsed["run_id"] == "abc123"
        assert parsed["check_id"] == "python-version"

    def test_from_json_parses_correctly(self):
        entry = LogEntry.from_json(json.dumps({
            "ts": "2025-01-15T10:30:00+00:00",
            "level": "warning",
            "event": "pipeline_halted",
            "run_id": "r1",
            "stage": "environment",
        }))
        assert entry.level == LogLevel.WARNING
        assert entry.event == EventType.PIPELINE_HALTED
        assert entry.data == {"stage": "environment"}


class TestDoctorLogger:
    """Tests for DoctorLogger."""

    def test_creates_log_directory(self, tmp_path):
        DoctorLogger(tmp_path / "logs")
        assert (tmp_path / "logs").is_dir()

    def test_run_lifecycle_writes_events(self, tmp_path):
        log_dir = tmp_path / "logs"
        logger = DoctorLogger(log_dir)
        run_id = logger.start_run(profile="dev")
        logger.log_check_result("python-version", "environment", "pass", "ok", 1.5)
        logger.end_run(overall_status="pass", total_checks=1)

        lines = read_lines(log_dir)
        assert [line["event"] for line in lines] == ["run_start", "check_result", "run_end"]
        assert {line["run_id"] for line in lines} == {run_id}
        assert lines[1]["duration_ms"] == 1.5
        assert logger.run_id is None

    def test_failed_check_logged_as_warning(self, tmp_path):
        logger = DoctorLogger(tmp_path)
        logger.start_run()
        logger.log_check_result("aws-cli-installation", "environment", "fail", "missing", 3.0)
        logger.end_run()
        assert read_lines(tmp_path)[1]["level"] == "warning"

    def test_failed_repair_logged_as_warning(self, tmp_path):
        logger = DoctorLogger(tmp_path)
        logger.start_run()
        logger.log_repair_result("configure-defaults", False, "boom", "/backups/x")
        logger.end_run()
        line = read_lines(tmp_path)[1]
        assert line["level"] == "warning"
        assert line["backup_path"] == "/backups/x"

    def test_buffer_flushes_when_full(self, tmp_path):
        logger = DoctorLogger(tmp_path)
        logger.start_run()
        for i in range(10):
            logger.log_event(EventType.STAGE_COMPLETE, stage="environment", checks=i)
        assert (tmp_path / LOG_FILENAME).exists()

    def test_disabled_logging(self, tmp_path):
        logger = DoctorLogger(tmp_path / "logs", LoggingConfig(enabled=False))
        logger.start_run()
        logger.end_run()
        assert not (tmp_path / "logs").exists()

    def test_level_filtering(self, tmp_path):
        logger = DoctorLogger(tmp_path, LoggingConfig(level="warning"))
        logger.start_run()
        logger.log_event(EventType.STAGE_COMPLETE, stage="environment")
        logger.log_error("RuntimeError", "boom")
        logger.end_run()
        assert [line["event"] for line in read_lines(tmp_path)] == ["error"]

    def test_truncates_long_strings(self, tmp_path):
        logger = DoctorLogger(tmp_path, LoggingConfig(max_summary_length=20))
        logger.start_run()
        logger.log_event(EventType.ERROR, message="x" * 100)
        logger.end_run()
        assert read_lines(tmp_path)[1]["message"] == "x" * 17 + "..."

    def test_write_failure_disables_logger(self, tmp_path, capsys):
        logger = DoctorLogger(tmp_path)
        logger.start_run()
        with patch("builtins.open", side_effect=OSError("disk full")):
            logger.flush()
        assert "Log write failed" in capsys.readouterr().err
        logger.log_event(EventType.ERROR, message="ignored")
        logger.flush()
        assert not (tmp_path / LOG_FILENAME).exists()

    def test_rotation(self, tmp_path):
        (tmp_path / LOG_FILENAME).write_text("x" * 2048 + "\n")
        logger = DoctorLogger(tmp_path, LoggingConfig(max_size_mb=0))
        logger.start_run()
        logger.flush()
        assert (tmp_path / f"{LOG_FILENAME}.1").read_text().startswith("x")
        assert read_lines(tmp_path)[0]["event"] == "run_start"

    def test_verbose_echoes_to_stderr(self, tmp_path, capsys):
        logger = DoctorLogger(tmp_path, verbose=True)
        logger.start_run()
        logger.log_check_result("sts-credential", "connectivity", "fail", "denied", 4.0)
        assert "sts-credential: [fail] denied" in capsys.readouterr().err


class TestLogReader:
    """Tests for LogReader."""

    def write(self, log_dir, *entries):
        log_dir.mkdir(parents=True, exist_ok=True)
        with open(log_dir / LOG_FILENAME, "a") as f:
            for entry in entries:
                f.write(entry.to_json() + "\n")

    def entry(self, minutes_ago, event=EventType.CHECK_RESULT, run_id="run-a",
              level=LogLevel.INFO, **data):
        return LogEntry(
            ts=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
            level=level,
            event=event,
            run_id=run_id,
            data=data,
        )

    def test_empty_directory(self, tmp_path):
        assert LogReader(tmp_path).read_entries() == []

    def test_newest_first_and_filters(self, tmp_path):
        self.write(
            tmp_path,
            self.entry(30, run_id="run-a"),
            self.entry(20, event=EventType.REPAIR_RESULT, run_id="run-b"),
            self.entry(10, event=EventType.ERROR, run_id="run-b", level=LogLevel.ERROR),
        )
        reader = LogReader(tmp_path)

        assert [e.event for e in reader.read_entries()] == [
            EventType.ERROR, EventType.REPAIR_RESULT, EventType.CHECK_RESULT,
        ]
        assert len(reader.read_entries(run_id="run-b")) == 2
        assert len(reader.read_entries(event_types=[EventType.REPAIR_RESULT])) == 1
        assert len(reader.read_entries(levels=[LogLevel.ERROR])) == 1
        since = datetime.now(timezone.utc) - timedelta(minutes=15)
        assert len(reader.read_entries(since=since)) == 1
        assert len(reader.read_entries(limit=2)) == 2

    def test_skips_corrupt_lines(self, tmp_path):
        self.write(tmp_path, self.entry(1))
        with open(tmp_path / LOG_FILENAME, "a") as f:
            f.write("{not json\n")
        assert len(LogReader(tmp_path).read_entries()) == 1

    def test_reads_rotated_files(self, tmp_path):
        self.write(tmp_path, self.entry(1))
        (tmp_path / f"{LOG_FILENAME}.1").write_text(self.entry(60).to_json() + "\n")
        assert len(LogReader(tmp_path).read_entries()) == 2


class TestFormatEntryDetails:
    """Tests for format_entry_details."""

    def test_repair_result(self):
        entry = LogEntry(
            ts=datetime.now(timezone.utc),
            level=LogLevel.INFO,
            event=EventType.REPAIR_RESULT,
            run_id="r",
            data={"operation": "configure-defaults", "success": True, "message": "done"},
        )
        assert format_entry_details(entry) == "configure-defaults: [ok] done"


class TestParseSinceValue:
    """Tests for parse_since_value."""

    def test_parses_hours(self):
        delta = datetime.now(timezone.utc) - parse_since_value("2h")
        assert timedelta(hours=2) - timedelta(seconds=5) < delta < timedelta(hours=2, seconds=5)

    def test_parses_iso_date(self):
        assert parse_since_value("2025-01-15") == datetime(2025, 1, 15, tzinfo=timezone.utc)

    def test_raises_on_invalid(self):
        with pytest.raises(ValueError):
            parse_since_value("yesterday")


class TestHelpers:
    """Tests for helper functions."""

    def test_generate_run_id_is_unique(self):
        assert generate_run_id() != generate_run_id()
        assert len(generate_run_id()) == 12

    def test_truncate_string(self):
        assert truncate_string("short", 10) == "short"
        assert truncate_string("a" * 20, 10) == "a" * 7 + "..."
