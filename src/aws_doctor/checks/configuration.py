"""
Configuration Checks
====================

Validate the shared config and credentials files and the profiles they
define. These checks only read files; repairs for what they find live in
aws_doctor.repair.
"""

import configparser
import os
import stat
from pathlib import Path
from typing import Optional

from aws_doctor.aws import AwsPaths, AwsProfile, ProfileManager, get_active_profile
from aws_doctor.errors import CheckExecutionError
from aws_doctor.models import CheckResult, CheckStage, CheckStatus, DoctorContext


CONFIG_DOCS_URL = "https://docs.aws.amazon.com/cli/latest/userguide/cli-configure-files.html"

# Keys that open an indented block and so have no value of their own
NESTED_KEYS = {"s3", "s3api", "sts", "services"}


# =============================================================================
# Line Validation
# =============================================================================


def _is_skippable(line: str) -> bool:
    return not line or line.startswith("#") or line.startswith(";")


def _is_section(line: str) -> bool:
    return line.startswith("[") and line.endswith("]")


def _split_key_value(line: str) -> tuple[str, str]:
    key, _, value = line.partition("=")
    return key.strip(), value.strip()


def validate_config_syntax(content: str) -> tuple[int, list[str]]:
    """Return (section count, issues) for config-file content."""
    issues = []
    sections = 0
    has_profile_section = False

    for number, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if _is_skippable(line):
            continue
        if _is_section(line):
            sections += 1
            name = line[1:-1].strip()
            if name == "default" or name.startswith("profile "):
                has_profile_section = True
            continue
        if "=" in line:
            key, value = _split_key_value(line)
            indented = raw != raw.lstrip()
            if not key or (not value and not indented and key not in NESTED_KEYS):
                issues.append(f"Line {number}: Invalid key-value pair format")
            continue
        if raw != raw.lstrip():
            # Indented continuation of a nested block
            continue
        issues.append(f"Line {number}: Unrecognized line format")

    if sections > 0 and not has_profile_section:
        issues.append("No valid profile sections found")

    return sections, issues


def validate_credentials_structure(content: str) -> tuple[int, list[str]]:
    """Return (profile count, issues) for credentials-file content."""
    issues = []
    current: Optional[str] = None
    keys_by_profile: dict[str, set[str]] = {}

    for number, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if _is_skippable(line):
            continue
        if _is_section(line):
            current = line[1:-1].strip()
            keys_by_profile[current] = set()
            continue
        if "=" in line:
            key, value = _split_key_value(line)
            if not key or not value:
                issues.append(f"Line {number}: Invalid credential format")
            elif current is None:
                issues.append(f"Line {number}: Credential outside of profile section")
            else:
                keys_by_profile[current].add(key.lower())
            continue
        issues.append(f"Line {number}: Unrecognized line format")

    for profile, keys in keys_by_profile.items():
        if "aws_access_key_id" in keys and "aws_secret_access_key" not in keys:
            issues.append(f"Profile '{profile}': Missing aws_secret_access_key")
        if "aws_secret_access_key" in keys and "aws_access_key_id" not in keys:
            issues.append(f"Profile '{profile}': Missing aws_access_key_id")

    return len(keys_by_profile), issues


def _read_text(path: Path) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


# =============================================================================
# Checks
# =============================================================================


def check_config_file_exists(context: DoctorContext, paths: AwsPaths) -> CheckResult:
    """Verify the AWS config file exists, is readable and parses."""
    config_path = paths.config_file

    if not config_path.exists():
        return CheckResult(
            status=CheckStatus.FAIL,
            message="AWS config file not found",
            details={
                "configFilePath": str(config_path),
                "expectedLocation": str(paths.aws_dir / "config"),
            },
            remediation=f"Run 'aws configure' or create the AWS config file manually. See {CONFIG_DOCS_URL}",
        )

    try:
        content = _read_text(config_path)
    except PermissionError:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="AWS config file exists but is not accessible",
            details={"configFilePath": str(config_path), "error": "Permission denied"},
            remediation="Check file permissions. Expected readable by current user.",
        )
    except (OSError, UnicodeDecodeError) as e:
        raise CheckExecutionError(
            "Failed to read AWS config file",
            check_id="config-file-exists",
            stage=CheckStage.CONFIGURATION.value,
            underlying_error=e,
            config_file_path=str(config_path),
        ) from e

    sections, issues = validate_config_syntax(content)
    if not issues:
        return CheckResult(
            status=CheckStatus.PASS,
            message="AWS config file is accessible and properly formatted",
            details={
                "configFilePath": str(config_path),
                "fileSize": len(content),
                "sectionsCount": sections,
            },
        )

    return CheckResult(
        status=CheckStatus.WARN,
        message="AWS config file has potential syntax issues",
        details={
            "configFilePath": str(config_path),
            "fileSize": len(content),
            "syntaxIssues": issues,
        },
        remediation="Review AWS config file syntax. Use 'aws configure' to recreate if needed.",
    )


def validate_profile(profile: AwsProfile) -> list[str]:
    """Return completeness issues for one profile."""
    issues = []
    if not profile.region:
        issues.append("Missing region configuration")

    if profile.is_sso:
        if not profile.sso_start_url:
            issues.append("Incomplete SSO configuration - missing start URL")
        if not profile.sso_account_id:
            issues.append("SSO profile missing account ID")
        if not profile.sso_role_name:
            issues.append("SSO profile missing role name")
    elif not (profile.has_access_key or profile.source_profile or profile.credential_process):
        issues.append("Missing credentials - no access key or source profile")

    return issues


def check_profile_validation(
    context: DoctorContext, profile_manager: ProfileManager
) -> CheckResult:
    """Validate that profiles exist and are complete.

    Severity is fail when more than half of the profiles are incomplete,
    otherwise warn. Profiles without a region are listed under
    ``missingRegion`` so the defaults repair can find them.
    """
    try:
        profiles = profile_manager.discover_profiles()
    except (configparser.Error, OSError, UnicodeDecodeError) as e:
        raise CheckExecutionError(
            "Failed to validate AWS profile configuration",
            check_id="profile-validation",
            stage=CheckStage.CONFIGURATION.value,
            underlying_error=e,
            target_profile=context.profile,
        ) from e

    if not profiles:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="No AWS profiles found",
            details={"profilesFound": 0, "configuredProfiles": []},
            remediation="Configure AWS profiles using 'aws configure' or 'aws configure sso'",
        )

    names = [p.name for p in profiles]
    if context.profile and context.profile not in names:
        return CheckResult(
            status=CheckStatus.FAIL,
            message=f"Target profile '{context.profile}' not found",
            details={
                "targetProfile": context.profile,
                "availableProfiles": names,
                "profilesFound": len(profiles),
            },
            remediation=f"Configure profile '{context.profile}' or use an existing profile",
        )

    issues_by_profile = {p.name: validate_profile(p) for p in profiles}
    incomplete = [name for name, issues in issues_by_profile.items() if issues]

    if not incomplete:
        return CheckResult(
            status=CheckStatus.PASS,
            message=f"{len(profiles)} AWS profiles found and properly configured",
            details={
                "profilesFound": len(profiles),
                "configuredProfiles": names,
                "targetProfile": context.profile,
            },
        )

    missing_region = [p.name for p in profiles if not p.region]
    status = CheckStatus.FAIL if len(incomplete) > len(profiles) / 2 else CheckStatus.WARN
    return CheckResult(
        status=status,
        message=f"{len(incomplete)} profiles have configuration issues",
        details={
            "profilesFound": len(profiles),
            "targetProfile": context.profile or get_active_profile(),
            "incompleteProfiles": incomplete,
            "profileIssues": [
                {"profile": name, "issues": issues_by_profile[name]} for name in incomplete
            ],
            "missingRegion": missing_region,
        },
        remediation="Review profile configurations and use 'aws configure' to fix incomplete profiles",
    )


def _is_group_or_world_accessible(path: Path) -> bool:
    if os.name != "posix":
        return False
    mode = path.stat().st_mode
    return bool(mode & (stat.S_IRWXG | stat.S_IRWXO))


def check_credentials_file(context: DoctorContext, paths: AwsPaths) -> CheckResult:
    """Validate the credentials file structure and permissions.

    A missing file is only a warning since SSO-only setups do not need one.
    """
    credentials_path = paths.credentials_file

    if not credentials_path.exists():
        return CheckResult(
            status=CheckStatus.WARN,
            message="AWS credentials file not found (may be acceptable for SSO-only configuration)",
            details={
                "credentialsFilePath": str(credentials_path),
                "expectedLocation": str(paths.aws_dir / "credentials"),
            },
            remediation="For SSO profiles, credentials file is optional. For access key profiles, run 'aws configure'.",
        )

    try:
        content = _read_text(credentials_path)
    except PermissionError:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="AWS credentials file exists but is not accessible",
            details={"credentialsFilePath": str(credentials_path), "error": "Permission denied"},
            remediation="Check file permissions. Credentials file should be readable by current user only.",
        )
    except (OSError, UnicodeDecodeError) as e:
        raise CheckExecutionError(
            "Failed to validate AWS credentials file",
            check_id="credentials-file",
            stage=CheckStage.CONFIGURATION.value,
            underlying_error=e,
            credentials_file_path=str(credentials_path),
        ) from e

    profiles, issues = validate_credentials_structure(content)
    insecure = _is_group_or_world_accessible(credentials_path)

    details = {
        "credentialsFilePath": str(credentials_path),
        "fileSize": len(content),
        "profilesFound": profiles,
    }

    if not issues and not insecure:
        return CheckResult(
            status=CheckStatus.PASS,
            message="AWS credentials file is accessible and properly structured",
            details=details,
        )

    remediations = []
    if issues:
        details["structureIssues"] = issues
        remediations.append(
            "Review credentials file format. Consider using 'aws configure' to recreate profiles."
        )
    if insecure:
        details["insecurePermissions"] = True
        details["mode"] = oct(credentials_path.stat().st_mode & 0o777)
        remediations.append(f"Restrict permissions with 'chmod 600 {credentials_path}'.")

    if issues:
        message = "AWS credentials file has structural issues"
    else:
        message = "AWS credentials file is readable by other users"

    return CheckResult(
        status=CheckStatus.WARN,
        message=message,
        details=details,
        remediation=" ".join(remediations),
    )
