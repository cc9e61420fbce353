"""
Tests for configuration loading
===============================
"""

from pathlib import Path

import pytest
import yaml

from aws_doctor.config import (
    CONFIG_FILENAME,
    CONFIG_FILENAME_ALT,
    DEFAULT_ENDPOINTS,
    DoctorConfig,
    find_config_file,
    generate_config_template,
    load_config_file,
    merge_config,
    validate_config,
)
from aws_doctor.errors import ConfigParseError, ConfigValidationError


class TestFindConfigFile:
    """Test find_config_file."""

    def test_none_when_missing(self, tmp_path):
        assert find_config_file(tmp_path) is None

    def test_prefers_yaml_over_yml(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("max_concurrency: 2\n")
        (tmp_path / CONFIG_FILENAME_ALT).write_text("max_concurrency: 3\n")
        assert find_config_file(tmp_path) == tmp_path / CONFIG_FILENAME

    def test_finds_yml(self, tmp_path):
        (tmp_path / CONFIG_FILENAME_ALT).write_text("")
        assert find_config_file(tmp_path) == tmp_path / CONFIG_FILENAME_ALT


class TestLoadConfigFile:
    """Test load_config_file."""

    def test_empty_file_is_empty_dict(self, tmp_path):
        path = tmp_path / CONFIG_FILENAME
        path.write_text("")
        assert load_config_file(path) == {}

    def test_syntax_error_reports_line(self, tmp_path):
        path = tmp_path / CONFIG_FILENAME
        path.write_text("max_concurrency: 5\nlogging: level: info\n")

        with pytest.raises(ConfigParseError) as exc_info:
            load_config_file(path)

        assert exc_info.value.line_number == 2
        assert exc_info.value.config_path == str(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / CONFIG_FILENAME
        path.write_text("- one\n- two\n")
        with pytest.raises(ConfigParseError, match="mapping"):
            load_config_file(path)


class TestMergeConfig:
    """Test merge_config priority."""

    def test_defaults_without_file(self, tmp_path):
        config = merge_config(tmp_path)
        assert config.max_concurrency == 5
        assert config.network_timeout == 15.0
        assert config.endpoints == DEFAULT_ENDPOINTS
        assert config.progress_enabled is True

    def test_file_values_applied(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(
            "storage_dir: /var/tmp/doctor\n"
            "max_concurrency: 2\n"
            "network_timeout: 3\n"
            "progress_enabled: false\n"
            "repair:\n"
            "  default_region: eu-west-1\n"
            "logging:\n"
            "  level: debug\n"
            "  rotation:\n"
            "    max_files: 2\n"
        )

        config = merge_config(tmp_path)

        assert config.storage_dir == Path("/var/tmp/doctor")
        assert config.backup_dir == Path("/var/tmp/doctor/backups")
        assert config.max_concurrency == 2
        assert config.network_timeout == 3
        assert config.progress_enabled is False
        assert config.repair.default_region == "eu-west-1"
        assert config.repair.default_output == "json"
        assert config.logging.level == "debug"
        assert config.logging.max_files == 2

    def test_cli_overrides_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("max_concurrency: 2\ndry_run: false\n")

        config = merge_config(
            tmp_path,
            cli_storage_dir=tmp_path / "store",
            cli_max_concurrency=8,
            cli_no_progress=True,
            cli_dry_run=True,
            cli_verbose=True,
        )

        assert config.max_concurrency == 8
        assert config.storage_dir == tmp_path / "store"
        assert config.log_dir == tmp_path / "store" / "logs"
        assert config.progress_enabled is False
        assert config.dry_run is True
        assert config.verbose is True

    def test_explicit_config_path(self, tmp_path):
        custom = tmp_path / "custom.yaml"
        custom.write_text("max_concurrency: 1\n")
        config = merge_config(tmp_path / "elsewhere", cli_config_path=custom)
        assert config.max_concurrency == 1

    def test_invalid_value_names_source(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("max_concurrency: 0\n")
        with pytest.raises(ConfigValidationError) as exc_info:
            merge_config(tmp_path)
        assert exc_info.value.field == "max_concurrency"
        assert exc_info.value.config_path == str(tmp_path / CONFIG_FILENAME)


class TestValidateConfig:
    """Test validate_config."""

    def test_defaults_are_valid(self):
        validate_config(DoctorConfig())

    @pytest.mark.parametrize("field_name,value", [
        ("max_concurrency", -1),
        ("max_concurrency", "5"),
        ("network_timeout", 0),
        ("endpoints", ["http://sts.amazonaws.com"]),
        ("endpoints", "https://sts.amazonaws.com"),
    ])
    def test_rejects_bad_values(self, field_name, value):
        config = DoctorConfig()
        setattr(config, field_name, value)
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(config)
        assert exc_info.value.field == field_name

    def test_rejects_unknown_log_level(self):
        config = DoctorConfig()
        config.logging.level = "verbose"
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(config)
        assert exc_info.value.field == "logging.level"


class TestGenerateConfigTemplate:
    """Test generate_config_template."""

    def test_template_is_valid_config(self, tmp_path):
        data = yaml.safe_load(generate_config_template())
        assert data["max_concurrency"] == 5
        assert data["endpoints"] == DEFAULT_ENDPOINTS

        (tmp_path / CONFIG_FILENAME).write_text(generate_config_template())
        config = merge_config(tmp_path)
        assert config.repair.default_output == "json"
        assert config.logging.max_size_mb == 5
