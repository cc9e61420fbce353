"""
Configuration Loading
=====================

Load and merge aws-doctor settings from CLI args, config files, and defaults.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from aws_doctor.errors import ConfigParseError, ConfigValidationError


CONFIG_FILENAME = ".aws-doctor.yaml"
CONFIG_FILENAME_ALT = ".aws-doctor.yml"

DEFAULT_STORAGE_DIR = Path.home() / ".aws-doctor"

DEFAULT_ENDPOINTS = [
    "https://sts.amazonaws.com",
    "https://s3.amazonaws.com",
]

LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass
class RepairConfig:
    """Values written by safe repairs when a profile lacks them."""

    default_region: str = "us-east-1"
    default_output: str = "json"


@dataclass
class LoggingConfig:
    """Structured event log configuration."""

    enabled: bool = True
    level: str = "info"  # debug, info, warning, error
    max_summary_length: int = 500  # Truncate long fields
    # Rotation settings
    max_size_mb: int = 5  # Rotate when file exceeds this size
    max_files: int = 5  # Keep this many rotated files


@dataclass
class DoctorConfig:
    """Complete configuration for an aws-doctor run."""

    storage_dir: Path = field(default_factory=lambda: DEFAULT_STORAGE_DIR)
    max_concurrency: int = 5
    network_timeout: float = 15.0  # seconds, per network probe
    progress_enabled: bool = True
    dry_run: bool = False
    endpoints: list[str] = field(default_factory=lambda: list(DEFAULT_ENDPOINTS))

    repair: RepairConfig = field(default_factory=RepairConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Runtime flags (not persisted to config file)
    verbose: bool = False

    @property
    def backup_dir(self) -> Path:
        return self.storage_dir / "backups"

    @property
    def log_dir(self) -> Path:
        return self.storage_dir / "logs"


def find_config_file(directory: Path) -> Optional[Path]:
    """
    Find config file in a directory.

    Checks for .aws-doctor.yaml and .aws-doctor.yml.
    """
    for filename in (CONFIG_FILENAME, CONFIG_FILENAME_ALT):
        config_path = directory / filename
        if config_path.exists():
            return config_path
    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Dictionary of configuration values.

    Raises:
        ConfigParseError: If the YAML file has syntax errors.
    """
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        line_number = None
        error_msg = str(e)

        # yaml.YAMLError subclasses have mark attribute with line info
        if getattr(e, "problem_mark", None) is not None:
            line_number = e.problem_mark.line + 1  # 0-indexed to 1-indexed
            error_msg = getattr(e, "problem", None) or str(e)
        elif getattr(e, "context_mark", None) is not None:
            line_number = e.context_mark.line + 1

        raise ConfigParseError(
            config_path=str(config_path),
            original_error=error_msg,
            line_number=line_number,
        ) from e

    if not isinstance(data, dict):
        raise ConfigParseError(
            config_path=str(config_path),
            original_error="top-level value must be a mapping",
        )
    return data


def validate_config(config: DoctorConfig, source: str = "<defaults>") -> None:
    """Check value ranges.

    Raises:
        ConfigValidationError: On the first invalid field.
    """
    if not isinstance(config.max_concurrency, int) or config.max_concurrency < 1:
        raise ConfigValidationError(
            source, "max_concurrency", f"must be a positive integer, got {config.max_concurrency!r}"
        )
    if not isinstance(config.network_timeout, (int, float)) or config.network_timeout <= 0:
        raise ConfigValidationError(
            source, "network_timeout", f"must be a positive number, got {config.network_timeout!r}"
        )
    if config.logging.level not in LOG_LEVELS:
        raise ConfigValidationError(
            source, "logging.level", f"unknown level {config.logging.level!r}"
        )
    if not isinstance(config.endpoints, list) or not all(
        isinstance(e, str) and e.startswith("https://") for e in config.endpoints
    ):
        raise ConfigValidationError(
            source, "endpoints", "must be a list of https:// URLs"
        )


def merge_config(
    directory: Path,
    cli_config_path: Optional[Path] = None,
    cli_storage_dir: Optional[Path] = None,
    cli_max_concurrency: Optional[int] = None,
    cli_network_timeout: Optional[float] = None,
    cli_no_progress: bool = False,
    cli_dry_run: bool = False,
    cli_verbose: bool = False,
) -> DoctorConfig:
    """
    Merge configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file
    3. Defaults

    Args:
        directory: Directory searched for .aws-doctor.yaml
        cli_*: CLI argument values (None/False means not specified)
        cli_config_path: Explicit config file path

    Returns:
        Merged DoctorConfig object

    Raises:
        ConfigParseError: If the config file is not valid YAML.
        ConfigValidationError: If a merged value is out of range.
    """
    config = DoctorConfig()
    source = "<defaults>"

    config_path = cli_config_path or find_config_file(directory)
    if config_path and config_path.exists():
        source = str(config_path)
        file_config = load_config_file(config_path)

        if "storage_dir" in file_config:
            config.storage_dir = Path(file_config["storage_dir"]).expanduser()

        if "max_concurrency" in file_config:
            config.max_concurrency = file_config["max_concurrency"]

        if "network_timeout" in file_config:
            config.network_timeout = file_config["network_timeout"]

        if "progress_enabled" in file_config:
            config.progress_enabled = bool(file_config["progress_enabled"])

        if "dry_run" in file_config:
            config.dry_run = bool(file_config["dry_run"])

        if "endpoints" in file_config:
            config.endpoints = file_config["endpoints"]

        # Repair settings
        if "repair" in file_config:
            repair_config = file_config["repair"] or {}
            if "default_region" in repair_config:
                config.repair.default_region = repair_config["default_region"]
            if "default_output" in repair_config:
                config.repair.default_output = repair_config["default_output"]

        # Logging settings
        if "logging" in file_config:
            logging_config = file_config["logging"] or {}
            if "enabled" in logging_config:
                config.logging.enabled = logging_config["enabled"]
            if "level" in logging_config:
                config.logging.level = logging_config["level"]
            if "max_summary_length" in logging_config:
                config.logging.max_summary_length = logging_config["max_summary_length"]
            # Handle nested rotation section or flat keys
            rotation = logging_config.get("rotation", logging_config) or {}
            if "max_size_mb" in rotation:
                config.logging.max_size_mb = rotation["max_size_mb"]
            if "max_files" in rotation:
                config.logging.max_files = rotation["max_files"]

    # Apply CLI overrides (highest priority)
    if cli_storage_dir is not None:
        config.storage_dir = cli_storage_dir

    if cli_max_concurrency is not None:
        config.max_concurrency = cli_max_concurrency

    if cli_network_timeout is not None:
        config.network_timeout = cli_network_timeout

    if cli_no_progress:
        config.progress_enabled = False

    if cli_dry_run:
        config.dry_run = True

    if cli_verbose:
        config.verbose = True

    validate_config(config, source)
    return config


def generate_config_template() -> str:
    """Generate a template config file content."""
    return """\
# AWS Doctor Configuration

# Where backups and logs are stored
# storage_dir: ~/.aws-doctor

# Maximum checks run in parallel within one stage
max_concurrency: 5

# Timeout in seconds for each network probe
network_timeout: 15

# Show a live task list while checks run
progress_enabled: true

# Preview repairs without writing anything
dry_run: false

# Endpoints probed by the service-endpoint check
endpoints:
  - https://sts.amazonaws.com
  - https://s3.amazonaws.com

# Values written by safe repairs when a profile lacks them
repair:
  default_region: us-east-1
  default_output: json

# Logging settings
logging:
  enabled: true
  level: info  # debug, info, warning, error
  rotation:
    max_size_mb: 5  # Rotate when file exceeds this size
    max_files: 5  # Keep this many rotated files
"""
