"""
AWS Doctor Errors Module
========================

Error taxonomy for the diagnostic pipeline plus consistent, actionable
error formatting for CLI output.

Error Format Pattern
--------------------
All user-facing errors follow a 4-section format (with optional sections):

    Error: [what went wrong]

    Context: [why it matters / resolution guidance]

    Example: [command that usually fixes it]

    Help: [help command]

Only non-empty sections are displayed.

Error Kinds
-----------
    - DiagnosticError      structural problem with a check or its result
    - CheckExecutionError  a check raised while executing
    - AutoRepairError      a repair operation failed
    - CheckRegistryError   duplicate id, malformed check, or lookup failure
    - ConfigParseError     .aws-doctor.yaml could not be parsed
    - ConfigValidationError .aws-doctor.yaml holds invalid values

Registry and configuration errors are fatal and stop the run. Check and
repair errors are recovered locally by the orchestrator and repair service;
they only reach the user through failed results.
"""

import os
import sys
from dataclasses import dataclass
from typing import Any, Optional

import click


@dataclass
class ActionableError:
    """Structured error with actionable guidance.

    Attributes:
        message: What went wrong (required)
        context: Why it matters or additional context (optional)
        example: Correct usage example (optional)
        help_command: Help command to run for more info (optional)
    """
    message: str
    context: Optional[str] = None
    example: Optional[str] = None
    help_command: Optional[str] = None

    def format(self, use_color: bool = True) -> str:
        """Format the error for display.

        Args:
            use_color: Whether to use click.style for coloring.
                       Respects NO_COLOR environment variable.

        Returns:
            Formatted error string ready for display.
        """
        if os.environ.get("NO_COLOR"):
            use_color = False

        lines = []

        if use_color:
            error_prefix = click.style("Error:", fg="red", bold=True)
            lines.append(f"{error_prefix} {self.message}")
        else:
            lines.append(f"Error: {self.message}")

        if self.context:
            lines.append("")
            for context_line in self.context.splitlines():
                lines.append(f"  {context_line}" if context_line else "")

        if self.example:
            lines.append("")
            if use_color:
                example_label = click.style("Example:", bold=True)
                lines.append(f"  {example_label} {self.example}")
            else:
                lines.append(f"  Example: {self.example}")

        if self.help_command:
            lines.append("")
            if use_color:
                help_label = click.style("Help:", bold=True)
                lines.append(f"  {help_label} Run '{self.help_command}' for more options")
            else:
                lines.append(f"  Help: Run '{self.help_command}' for more options")

        return "\n".join(lines)

    def __str__(self) -> str:
        """Return formatted error without colors for logging/testing."""
        return self.format(use_color=False)


# =============================================================================
# Diagnostic Error Taxonomy
# =============================================================================


class DoctorError(Exception):
    """Base class for all doctor pipeline errors.

    Attributes:
        message: Human-readable description
        code: Stable machine-readable error code
        metadata: Extra context (check id, stage, operation, ...)
    """

    code = "DOCTOR_ERROR"

    def __init__(self, message: str, **metadata: Any):
        self.message = message
        self.metadata = {k: v for k, v in metadata.items() if v is not None}
        super().__init__(message)

    def _metadata_lines(self, *fields: tuple[str, str]) -> list[str]:
        lines = []
        for key, label in fields:
            value = self.metadata.get(key)
            if value:
                lines.append(f"{label}: {value}")
        return lines

    def guidance(self) -> str:
        """Return resolution guidance text for this error kind."""
        return "\n".join([
            "General troubleshooting:",
            "- Check system requirements and dependencies",
            "- Verify AWS CLI installation and configuration",
            "- Review system permissions and network connectivity",
            "- Try running with --detailed for more information",
        ])

    def get_actionable_error(self) -> ActionableError:
        """Get an ActionableError for display."""
        return ActionableError(
            message=self.message,
            context=self.guidance(),
            help_command="aws-doctor doctor --help",
        )


class DiagnosticError(DoctorError):
    """Structural problem with a check definition or its result."""

    code = "DIAGNOSTIC_ERROR"

    def __init__(
        self,
        message: str,
        check_id: Optional[str] = None,
        stage: Optional[str] = None,
        severity: Optional[str] = None,
        **metadata: Any,
    ):
        super().__init__(
            message, check_id=check_id, stage=stage, severity=severity, **metadata
        )

    def guidance(self) -> str:
        lines = self._metadata_lines(("check_id", "Check ID"), ("stage", "Validation stage"))
        lines.append("Recommended actions:")
        severity = self.metadata.get("severity")
        if severity == "fail":
            lines.append("- This is a critical issue that requires immediate attention")
            lines.append("- Review the error details and remediation suggestions")
            lines.append("- Consider using --interactive mode for guided repair")
        elif severity == "warn":
            lines.append("- This is a non-critical issue that should be addressed")
            lines.append("- The system may still function but with reduced reliability")
        else:
            lines.append("- Review the diagnostic output for specific recommendations")
            lines.append("- Check the doctor log for additional context")
        return "\n".join(lines)


class CheckExecutionError(DoctorError):
    """Raised by a check when it cannot complete its probe.

    The orchestrator converts this (and any other exception raised from
    ``execute``) into a ``fail`` result, so it never escapes a stage.
    """

    code = "CHECK_EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        check_id: str,
        stage: str,
        underlying_error: Optional[BaseException] = None,
        **metadata: Any,
    ):
        self.underlying_error = underlying_error
        full_message = message
        if underlying_error is not None:
            full_message = f"{message}: {underlying_error}"
        super().__init__(full_message, check_id=check_id, stage=stage, **metadata)

    def guidance(self) -> str:
        lines = self._metadata_lines(("check_id", "Failed check"), ("stage", "Stage"))
        lines.extend([
            "Troubleshooting steps:",
            "- Verify system requirements are met",
            "- Check that all dependencies are properly installed",
            "- Review system permissions and access rights",
            "- Try running the diagnostic with --detailed for more information",
        ])
        return "\n".join(lines)


class AutoRepairError(DoctorError):
    """A repair operation failed."""

    code = "AUTO_REPAIR_ERROR"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        check_id: Optional[str] = None,
        backup_path: Optional[str] = None,
        **metadata: Any,
    ):
        self.backup_path = backup_path
        super().__init__(
            message,
            operation=operation,
            check_id=check_id,
            backup_path=backup_path,
            **metadata,
        )

    def guidance(self) -> str:
        lines = self._metadata_lines(
            ("operation", "Failed operation"), ("backup_path", "Backup available at")
        )
        lines.extend([
            "Recovery steps:",
            "- Review the error details to understand what failed",
            "- If a backup was created, restore it with 'aws-doctor restore'",
            "- Try --interactive mode for guided manual repair",
        ])
        return "\n".join(lines)


class CheckRegistryError(DoctorError):
    """Duplicate check id, malformed check, or failed lookup."""

    code = "CHECK_REGISTRY_ERROR"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        check_id: Optional[str] = None,
        **metadata: Any,
    ):
        super().__init__(message, operation=operation, check_id=check_id, **metadata)

    def guidance(self) -> str:
        lines = self._metadata_lines(("operation", "Failed operation"), ("check_id", "Check ID"))
        lines.extend([
            "Resolution steps:",
            "- This indicates an internal error in the check catalog",
            "- Make sure every check id is registered exactly once",
            "- If the issue persists, this is a bug; please report it",
        ])
        return "\n".join(lines)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigParseError(Exception):
    """Exception raised when config file parsing fails.

    Attributes:
        config_path: Path to the config file that failed to parse
        original_error: The original YAML parse error message
        line_number: Line number where the error occurred (if available)
    """

    def __init__(
        self,
        config_path: str,
        original_error: str,
        line_number: Optional[int] = None,
    ):
        self.config_path = config_path
        self.original_error = original_error
        self.line_number = line_number
        location = f" at line {line_number}" if line_number else ""
        super().__init__(f"Failed to parse {config_path}{location}: {original_error}")

    def get_actionable_error(self) -> ActionableError:
        """Get an ActionableError for display."""
        return config_parse_error(
            self.config_path,
            self.original_error,
            self.line_number,
        )


class ConfigValidationError(Exception):
    """Exception raised when config values fail validation.

    Attributes:
        config_path: Path to the config file with invalid values
        field: The field that failed validation
        message: Description of the validation failure
    """

    FIELD_EXAMPLES = {
        "max_concurrency": "Use a positive integer (e.g., max_concurrency: 5)",
        "network_timeout": "Use a positive number of seconds (e.g., network_timeout: 15)",
        "logging.level": "Use one of: debug, info, warning, error",
        "endpoints": "List HTTPS endpoints (e.g., - https://sts.amazonaws.com)",
    }

    DEFAULT_EXAMPLE = "Check the field value in your .aws-doctor.yaml configuration file"

    def __init__(
        self,
        config_path: str,
        field: str,
        message: str,
    ):
        self.config_path = config_path
        self.field = field
        self.message = message
        super().__init__(f"Invalid {field} in {config_path}: {message}")

    def get_actionable_error(self) -> ActionableError:
        """Get an ActionableError for display."""
        example = self.FIELD_EXAMPLES.get(self.field, self.DEFAULT_EXAMPLE)

        return ActionableError(
            message=f"Invalid {self.field} in {self.config_path}",
            context=self.message,
            example=example,
            help_command="aws-doctor init",
        )


# =============================================================================
# Printing Helpers
# =============================================================================


def print_error(error: ActionableError, err: bool = True) -> None:
    """Print an ActionableError to the console.

    Gracefully degrades if formatting fails - will always output something
    rather than crashing silently.

    Args:
        error: The ActionableError to print.
        err: If True, prints to stderr; otherwise stdout.
    """
    try:
        click.echo(error.format(), err=err)
    except Exception:
        try:
            click.echo(f"Error: {error.message}", err=err)
        except Exception:
            print(f"Error: {error.message}", file=sys.stderr if err else sys.stdout)


def get_diagnostic_error_guidance(error: BaseException) -> str:
    """Return resolution guidance text for any error raised by the pipeline."""
    if isinstance(error, DoctorError):
        return error.guidance()
    return DoctorError(str(error)).guidance()


def to_actionable_error(error: BaseException) -> ActionableError:
    """Convert any exception into an ActionableError for display."""
    if isinstance(error, (DoctorError, ConfigParseError, ConfigValidationError)):
        return error.get_actionable_error()
    return ActionableError(
        message=f"Diagnostic execution failed: {type(error).__name__}",
        context=f"{error}\n\n{get_diagnostic_error_guidance(error)}",
        help_command="aws-doctor doctor --help",
    )


def config_parse_error(
    config_path: str,
    error_message: str,
    line_number: Optional[int] = None,
) -> ActionableError:
    """Create an error for YAML config parsing failures."""
    location = f" at line {line_number}" if line_number else ""
    return ActionableError(
        message=f"Failed to parse {config_path}{location}",
        context=f"YAML syntax error: {error_message}",
        example="Check YAML syntax: proper indentation, colons after keys, quoted strings with special characters",
        help_command="aws-doctor init",
    )


def permission_error(
    path: str,
    operation: str = "access",
    context: Optional[str] = None,
) -> ActionableError:
    """Create an error for permission/access denied issues."""
    display_path = quote_path(path)

    return ActionableError(
        message=f"Permission denied: cannot {operation} {display_path}",
        context=context or f"Check that you have {operation} permissions for this path.",
        example=f"ls -la {display_path}  # Check current permissions",
        help_command=None,
    )


def quote_path(path: str) -> str:
    """Quote a path if it contains special characters."""
    special_chars = " '\"()[]{}$&;|<>\\`"
    if any(c in path for c in special_chars):
        escaped = path.replace('"', '\\"')
        return f'"{escaped}"'
    return path
