"""
Diagnostic Data Model
=====================

Statuses, stages, check records, and the result types that flow through
the doctor pipeline.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Union

from aws_doctor.errors import DiagnosticError


DetailValue = Union[str, int, float, bool, None, list, tuple, dict]


# =============================================================================
# Enums
# =============================================================================


class CheckStatus(str, Enum):
    """Status of a single diagnostic check."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class CheckStage(str, Enum):
    """Diagnostic stage, ordered by pipeline position.

    Later stages assume the preconditions of earlier stages hold, so
    comparisons use pipeline rank rather than string order.
    """

    ENVIRONMENT = "environment"
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    CONNECTIVITY = "connectivity"

    @property
    def rank(self) -> int:
        return STAGE_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, CheckStage):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, CheckStage):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, CheckStage):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, CheckStage):
            return NotImplemented
        return self.rank >= other.rank

    def __str__(self) -> str:
        return self.value


STAGE_ORDER: tuple[CheckStage, ...] = (
    CheckStage.ENVIRONMENT,
    CheckStage.CONFIGURATION,
    CheckStage.AUTHENTICATION,
    CheckStage.CONNECTIVITY,
)


# =============================================================================
# Results
# =============================================================================


def _validate_detail_value(key: str, value: Any) -> None:
    if value is None or isinstance(value, (str, int, float, bool)):
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _validate_detail_value(key, item)
        return
    if isinstance(value, Mapping):
        for sub_key, sub_value in value.items():
            if not isinstance(sub_key, str):
                raise DiagnosticError(f"Detail '{key}' has a non-string key: {sub_key!r}")
            _validate_detail_value(f"{key}.{sub_key}", sub_value)
        return
    raise DiagnosticError(
        f"Detail '{key}' has unsupported type {type(value).__name__}"
    )


def validate_details(details: Optional[Mapping[str, Any]]) -> Optional[dict[str, DetailValue]]:
    """Validate a details mapping and return an ordered copy.

    Keys must be strings and values JSON-compatible (scalars, lists,
    tuples, nested mappings of these).

    Raises:
        DiagnosticError: If a key or value is not supported.
    """
    if details is None:
        return None
    validated: dict[str, DetailValue] = {}
    for key, value in details.items():
        if not isinstance(key, str) or not key:
            raise DiagnosticError(f"Detail keys must be non-empty strings, got {key!r}")
        _validate_detail_value(key, value)
        validated[key] = value
    return validated


@dataclass(frozen=True)
class CheckResult:
    """Result of a single diagnostic check.

    ``duration`` (milliseconds) is assigned by the orchestrator only;
    checks return results without it.
    """

    status: CheckStatus
    message: str
    details: Optional[dict[str, DetailValue]] = None
    remediation: Optional[str] = None
    duration: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.status, CheckStatus):
            object.__setattr__(self, "status", CheckStatus(self.status))
        object.__setattr__(self, "details", validate_details(self.details))

    def with_duration(self, duration_ms: float) -> "CheckResult":
        """Return a copy carrying the measured duration."""
        return replace(self, duration=duration_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "details": dict(self.details or {}),
            "remediation": self.remediation,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class DoctorContext:
    """Per-invocation options shared read-only by checks and repairs."""

    profile: Optional[str] = None
    detailed: bool = False
    interactive: bool = False
    auto_fix: bool = False


@dataclass(frozen=True)
class Check:
    """A single named diagnostic probe belonging to exactly one stage."""

    id: str
    name: str
    description: str
    stage: CheckStage
    execute: Callable[[DoctorContext], CheckResult] = field(compare=False, repr=False)


@dataclass(frozen=True)
class DiagnosticSummary:
    """Aggregate of all check results for one run."""

    total_checks: int
    passed_checks: int
    warning_checks: int
    failed_checks: int
    overall_status: CheckStatus
    execution_time: float
    results: dict[str, CheckResult] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        """True if no check failed (warnings allowed)."""
        return self.overall_status != CheckStatus.FAIL

    @property
    def exit_code(self) -> int:
        return 0 if self.is_healthy else 1

    def to_dict(self, repairs: Optional[list["RepairResult"]] = None) -> dict[str, Any]:
        """Render the summary in its JSON shape."""
        output: dict[str, Any] = {
            "summary": {
                "totalChecks": self.total_checks,
                "passedChecks": self.passed_checks,
                "warningChecks": self.warning_checks,
                "failedChecks": self.failed_checks,
                "overallStatus": self.overall_status.value,
                "executionTime": self.execution_time,
            },
            "results": {
                check_id: result.to_dict() for check_id, result in self.results.items()
            },
        }
        if repairs:
            output["repairs"] = {
                "totalRepairs": len(repairs),
                "successfulRepairs": sum(1 for r in repairs if r.success),
                "failedRepairs": sum(1 for r in repairs if not r.success),
                "results": [r.to_dict() for r in repairs],
            }
        return output


@dataclass(frozen=True)
class RepairResult:
    """Outcome of a single repair operation."""

    success: bool
    message: str
    details: Optional[dict[str, DetailValue]] = None
    operations: tuple[str, ...] = ()
    backup_path: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "operations", tuple(self.operations))
        object.__setattr__(self, "details", validate_details(self.details))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "details": dict(self.details or {}),
            "operations": list(self.operations),
            "backupPath": self.backup_path,
        }
