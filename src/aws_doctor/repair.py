"""
Auto-Repair Service
===================

Turns diagnosed problems into corrective, auditable changes to the local
AWS configuration.

Repair operations are records, matched against check results through
per-check trigger predicates. Safe operations are non-destructive and run
without confirmation; the rest only run in interactive mode after the
prompter confirms them. Repairs run one at a time, and any file they
rewrite is backed up first (see aws_doctor.backup).
"""

import logging
import stat
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional, Protocol

import questionary
from questionary import Style

from aws_doctor.aws import AwsPaths, Runner, get_active_profile, run_command
from aws_doctor.backup import restore_backup, write_with_backup
from aws_doctor.errors import AutoRepairError
from aws_doctor.logging import DoctorLogger, EventType
from aws_doctor.models import CheckResult, CheckStatus, DoctorContext, RepairResult

logger = logging.getLogger(__name__)

# aws sso login waits for the browser flow to finish
SSO_LOGIN_TIMEOUT = 300

# Cache files the CLI left behind from interrupted writes
TEMP_FILE_PREFIX = "tmp-"
TEMP_FILE_MAX_AGE = timedelta(days=30)

PROMPT_STYLE = Style(
    [
        ("qmark", "fg:cyan bold"),
        ("question", "bold"),
        ("answer", "fg:cyan"),
    ]
)


# =============================================================================
# Prompters
# =============================================================================


class Prompter(Protocol):
    def confirm(self, message: str) -> bool: ...


class QuestionaryPrompter:
    """Asks on the terminal. Ctrl-C counts as a no."""

    def confirm(self, message: str) -> bool:
        answer = questionary.confirm(message, default=False, style=PROMPT_STYLE).ask()
        return bool(answer)


class ScriptedPrompter:
    """Answers from a fixed sequence; declines once it runs out."""

    def __init__(self, answers: Iterable[bool]):
        self._answers = list(answers)
        self.messages: list[str] = []

    def confirm(self, message: str) -> bool:
        self.messages.append(message)
        if not self._answers:
            return False
        return self._answers.pop(0)


class AlwaysConfirmPrompter:
    """Confirms everything (--yes)."""

    def confirm(self, message: str) -> bool:
        return True


# =============================================================================
# Operations
# =============================================================================


@dataclass(frozen=True)
class RepairDefaults:
    """Values written for profiles that lack them."""

    region: str = "us-east-1"
    output: str = "json"


Trigger = Callable[[CheckResult], bool]


@dataclass(frozen=True)
class RepairOperation:
    """A repair and the check results that call for it.

    ``triggers`` maps a check id to a predicate over that check's
    non-pass result. ``apply`` receives the service (for paths, defaults
    and file writes) and returns the outcome, raising on failure.
    """

    id: str
    description: str
    safe: bool
    triggers: Mapping[str, Trigger] = field(compare=False)
    apply: Callable[["AutoRepairService", DoctorContext, Mapping[str, CheckResult]], RepairResult] = field(
        compare=False, repr=False
    )

    def __post_init__(self):
        for name in ("id", "description"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise AutoRepairError(
                    f"Repair operation {name} must be a non-empty string, got {value!r}",
                    operation=self.id if isinstance(self.id, str) else None,
                )

    def matches(self, results: Mapping[str, CheckResult]) -> bool:
        for check_id, trigger in self.triggers.items():
            result = results.get(check_id)
            if result is not None and result.status != CheckStatus.PASS and trigger(result):
                return True
        return False


def _details(result: CheckResult) -> dict:
    return result.details or {}


def _profile_section(profile: str) -> str:
    return "default" if profile == "default" else f"profile {profile}"


def set_missing_keys(content: str, section: str, values: Mapping[str, str]) -> tuple[str, list[str]]:
    """Add ``values`` to ``section`` of INI text without touching existing keys.

    Comments and layout are preserved. A missing section is appended.

    Returns:
        (new content, keys added)
    """
    lines = content.splitlines()

    header = None
    for index, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]") and stripped[1:-1].strip() == section:
            header = index
            break

    if header is None:
        if lines and lines[-1].strip():
            lines.append("")
        lines.append(f"[{section}]")
        lines.extend(f"{key} = {value}" for key, value in values.items())
        return "\n".join(lines) + "\n", list(values)

    end = len(lines)
    existing = set()
    for index in range(header + 1, len(lines)):
        line = lines[index]
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            end = index
            break
        if "=" in stripped and not stripped.startswith(("#", ";")) and line == line.lstrip():
            existing.add(stripped.split("=", 1)[0].strip().lower())

    missing = {key: value for key, value in values.items() if key not in existing}
    if not missing:
        return content, []

    insert_at = end
    while insert_at > header + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1
    lines[insert_at:insert_at] = [f"{key} = {value}" for key, value in missing.items()]
    return "\n".join(lines) + "\n", list(missing)


def profiles_missing_defaults(context: DoctorContext, results: Mapping[str, CheckResult]) -> list[str]:
    """Profiles a check flagged as lacking a region.

    With ``--profile`` only that profile is returned, and only if it was
    flagged.
    """
    flagged = []
    validation = results.get("profile-validation")
    if validation is not None and validation.status != CheckStatus.PASS:
        flagged.extend(_details(validation).get("missingRegion") or [])

    region = results.get("region-accessibility")
    if (
        region is not None
        and region.status != CheckStatus.PASS
        and _details(region).get("regionConfigured") is False
    ):
        flagged.append(
            _details(region).get("targetProfile") or context.profile or get_active_profile()
        )

    flagged = list(dict.fromkeys(flagged))
    if context.profile:
        return [context.profile] if context.profile in flagged else []
    return flagged


def configure_defaults(service: "AutoRepairService", context: DoctorContext,
                       results: Mapping[str, CheckResult]) -> RepairResult:
    """Fill in a missing region and output for every flagged profile."""
    profiles = profiles_missing_defaults(context, results)
    config_path = service.paths.config_file
    if not profiles:
        return RepairResult(
            success=True,
            message="No flagged profile needs a default region",
            details={"profiles": [], "configFilePath": str(config_path)},
        )

    created = not config_path.exists()
    content = "" if created else config_path.read_text(encoding="utf-8")
    defaults = {"region": service.defaults.region, "output": service.defaults.output}

    added_by_profile = {}
    for profile in profiles:
        content, added = set_missing_keys(content, _profile_section(profile), defaults)
        if added:
            added_by_profile[profile] = added

    if not added_by_profile:
        return RepairResult(
            success=True,
            message=f"Profiles already have region and output configured: {', '.join(profiles)}",
            details={"profiles": profiles, "configFilePath": str(config_path)},
        )

    backup_path = service.write_file(
        config_path,
        content,
        mode=0o600 if created else None,
        operation="configure-defaults",
    )

    operations = []
    if created:
        operations.append(f"Created config file: {config_path}")
    for profile, added in added_by_profile.items():
        operations.extend(f"Set {key} = {defaults[key]} for profile '{profile}'" for key in added)

    if len(added_by_profile) == 1:
        profile, added = next(iter(added_by_profile.items()))
        message = f"Configured default {' and '.join(added)} for profile '{profile}'"
    else:
        message = f"Configured defaults for profiles: {', '.join(added_by_profile)}"

    return RepairResult(
        success=True,
        message=message,
        details={
            "profiles": list(added_by_profile),
            "configFilePath": str(config_path),
            "keysAdded": {profile: added for profile, added in added_by_profile.items()},
        },
        operations=operations,
        backup_path=str(backup_path) if backup_path else None,
    )


def create_aws_directories(service: "AutoRepairService", context: DoctorContext,
                           results: Mapping[str, CheckResult]) -> RepairResult:
    """Create ~/.aws, its cli and sso/cache subdirectories, and the backup dir."""
    paths = service.paths
    required = [paths.aws_dir, paths.cli_dir, paths.sso_cache_dir, service.backup_dir]

    created = []
    for directory in required:
        if not directory.exists():
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            created.append(str(directory))

    return RepairResult(
        success=True,
        message=(
            f"Created {len(created)} missing directories"
            if created
            else "All required directories exist"
        ),
        details={"createdDirs": created, "requiredDirs": len(required)},
        operations=[f"Created directory: {d}" for d in created],
    )


def create_config_file(service: "AutoRepairService", context: DoctorContext,
                       results: Mapping[str, CheckResult]) -> RepairResult:
    """Write a minimal config file with one profile section."""
    config_path = service.paths.config_file
    if config_path.exists():
        return RepairResult(
            success=True,
            message="AWS config file already exists",
            details={"configFilePath": str(config_path)},
        )

    profile = context.profile or get_active_profile()
    content, _ = set_missing_keys(
        "",
        _profile_section(profile),
        {"region": service.defaults.region, "output": service.defaults.output},
    )
    service.write_file(config_path, content, mode=0o600, operation="create-config-file")

    return RepairResult(
        success=True,
        message=f"Created AWS config file with profile '{profile}'",
        details={"configFilePath": str(config_path), "profile": profile},
        operations=[f"Created config file: {config_path}"],
    )


def secure_credentials_file(service: "AutoRepairService", context: DoctorContext,
                            results: Mapping[str, CheckResult]) -> RepairResult:
    """Restrict the credentials file to its owner (0600)."""
    credentials_path = service.paths.credentials_file
    if not credentials_path.exists():
        raise AutoRepairError(
            f"Credentials file not found: {credentials_path}",
            operation="secure-credentials-file",
            check_id="credentials-file",
        )

    previous = credentials_path.stat().st_mode & 0o777
    credentials_path.chmod(0o600)
    return RepairResult(
        success=True,
        message="Restricted credentials file permissions to owner only",
        details={
            "credentialsFilePath": str(credentials_path),
            "previousMode": oct(previous),
            "mode": "0o600",
        },
        operations=[f"chmod 600 {credentials_path}"],
    )


def clean_orphaned_temp_files(service: "AutoRepairService", context: DoctorContext,
                              results: Mapping[str, CheckResult]) -> RepairResult:
    """Remove stale ``tmp-*`` files from the CLI and SSO caches."""
    paths = service.paths
    cache_dirs = [paths.cli_cache_dir, paths.sso_cache_dir]
    cutoff = time.time() - TEMP_FILE_MAX_AGE.total_seconds()

    cleaned = []
    for cache_dir in cache_dirs:
        if not cache_dir.is_dir():
            continue
        for path in sorted(cache_dir.iterdir()):
            if not path.name.startswith(TEMP_FILE_PREFIX) or not path.is_file():
                continue
            if path.stat().st_mtime >= cutoff:
                continue
            path.unlink()
            cleaned.append(path.name)

    return RepairResult(
        success=True,
        message=(
            f"Cleaned {len(cleaned)} orphaned temporary files"
            if cleaned
            else "No orphaned temporary files found"
        ),
        details={"cleanedFiles": len(cleaned), "dirsChecked": len(cache_dirs)},
        operations=[f"Cleaned old temp file: {name}" for name in cleaned],
    )


def fix_cache_permissions(service: "AutoRepairService", context: DoctorContext,
                          results: Mapping[str, CheckResult]) -> RepairResult:
    """chmod 700 the AWS directories whose owner lacks full access."""
    paths = service.paths
    directories = [paths.aws_dir, paths.cli_dir, paths.aws_dir / "sso"]

    fixed = []
    for directory in directories:
        if not directory.is_dir():
            continue
        if directory.stat().st_mode & stat.S_IRWXU != stat.S_IRWXU:
            directory.chmod(0o700)
            fixed.append(str(directory))

    return RepairResult(
        success=True,
        message=(
            f"Fixed permissions for {len(fixed)} cache directories"
            if fixed
            else "All cache directories have correct permissions"
        ),
        details={"fixedDirs": len(fixed), "dirsChecked": len(directories)},
        operations=[f"chmod 700 {d}" for d in fixed],
    )


def _sso_profiles_to_refresh(context: DoctorContext, result: Optional[CheckResult]) -> list[str]:
    if context.profile:
        return [context.profile]
    if result is None:
        return []
    details = _details(result)
    if details.get("profileName"):
        return [details["profileName"]]
    names = list(details.get("expiredProfiles") or []) + list(details.get("nearExpiryProfiles") or [])
    # Tokens no profile refers to are reported by start URL
    return [name for name in dict.fromkeys(names) if "://" not in name]


def refresh_sso_token(service: "AutoRepairService", context: DoctorContext,
                      results: Mapping[str, CheckResult]) -> RepairResult:
    """Run ``aws sso login`` for each profile with an expired or expiring token."""
    profiles = _sso_profiles_to_refresh(context, results.get("sso-token-expiry"))
    if not profiles:
        raise AutoRepairError(
            "No SSO profile could be determined for token refresh",
            operation="refresh-sso-token",
            check_id="sso-token-expiry",
        )

    operations = []
    for profile in profiles:
        success, _, stderr = service.runner(
            ["aws", "sso", "login", "--profile", profile],
            timeout=SSO_LOGIN_TIMEOUT,
            env=service.paths.cli_environment(),
        )
        if not success:
            raise AutoRepairError(
                f"aws sso login failed for profile '{profile}': {stderr.strip()[:200]}",
                operation="refresh-sso-token",
                check_id="sso-token-expiry",
            )
        operations.append(f"Refreshed SSO token for profile: {profile}")

    return RepairResult(
        success=True,
        message=f"Refreshed SSO tokens for {len(profiles)} profiles",
        details={"profiles": profiles},
        operations=operations,
    )


def _config_file_missing(result: CheckResult) -> bool:
    return result.status == CheckStatus.FAIL and "expectedLocation" in _details(result)


def _sso_token_needs_refresh(result: CheckResult) -> bool:
    details = _details(result)
    return bool(
        details.get("startUrl")
        or details.get("hasToken")
        or details.get("expiredProfiles")
        or details.get("nearExpiryProfiles")
    )


DEFAULT_OPERATIONS: tuple[RepairOperation, ...] = (
    RepairOperation(
        id="create-aws-directories",
        description="Create missing AWS CLI directories",
        safe=True,
        triggers={"config-file-exists": _config_file_missing},
        apply=create_aws_directories,
    ),
    RepairOperation(
        id="configure-defaults",
        description="Set default region and output format for the profile",
        safe=True,
        triggers={
            "profile-validation": lambda r: bool(_details(r).get("missingRegion")),
            "region-accessibility": lambda r: _details(r).get("regionConfigured") is False,
        },
        apply=configure_defaults,
    ),
    RepairOperation(
        id="clean-temp-files",
        description="Remove temporary cache files older than 30 days",
        safe=True,
        triggers={
            "sso-token-expiry": lambda r: True,
            "sts-credential": lambda r: True,
        },
        apply=clean_orphaned_temp_files,
    ),
    RepairOperation(
        id="fix-cache-permissions",
        description="Give the owner full access to the AWS cache directories (chmod 700)",
        safe=True,
        triggers={
            "credentials-file": lambda r: _details(r).get("insecurePermissions") is True,
            "credential-validation": lambda r: True,
        },
        apply=fix_cache_permissions,
    ),
    RepairOperation(
        id="create-config-file",
        description="Create a minimal AWS config file",
        safe=False,
        triggers={"config-file-exists": _config_file_missing},
        apply=create_config_file,
    ),
    RepairOperation(
        id="secure-credentials-file",
        description="Restrict credentials file permissions to owner only (chmod 600)",
        safe=False,
        triggers={"credentials-file": lambda r: _details(r).get("insecurePermissions") is True},
        apply=secure_credentials_file,
    ),
    RepairOperation(
        id="refresh-sso-token",
        description="Refresh SSO token with 'aws sso login'",
        safe=False,
        triggers={"sso-token-expiry": _sso_token_needs_refresh},
        apply=refresh_sso_token,
    ),
)


# =============================================================================
# Service
# =============================================================================


class AutoRepairService:
    """Applies repair operations for failing and warning check results."""

    def __init__(
        self,
        storage_dir: Path,
        paths: AwsPaths,
        prompter: Optional[Prompter] = None,
        dry_run: bool = False,
        defaults: RepairDefaults = RepairDefaults(),
        operations: Optional[Iterable[RepairOperation]] = None,
        event_log: Optional[DoctorLogger] = None,
        runner: Runner = run_command,
    ):
        self.storage_dir = storage_dir
        self.paths = paths
        self.prompter = prompter or QuestionaryPrompter()
        self.dry_run = dry_run
        self.defaults = defaults
        self.operations = list(DEFAULT_OPERATIONS if operations is None else operations)
        self.event_log = event_log
        self.runner = runner

    @property
    def backup_dir(self) -> Path:
        return self.storage_dir / "backups"

    def write_file(
        self,
        path: Path,
        content: str,
        mode: Optional[int] = None,
        operation: Optional[str] = None,
    ) -> Optional[Path]:
        """Back up and atomically rewrite ``path``; returns the backup path."""
        backup_path = write_with_backup(path, content, self.backup_dir, mode=mode, operation=operation)
        if backup_path is not None and self.event_log is not None:
            self.event_log.log_event(
                EventType.BACKUP_CREATED,
                source=str(path),
                backup_path=str(backup_path),
                operation=operation,
            )
        return backup_path

    def identify_repair_opportunities(
        self, results: Mapping[str, CheckResult]
    ) -> list[RepairOperation]:
        """Operations triggered by a non-pass result, de-duplicated by id."""
        seen = set()
        opportunities = []
        for operation in self.operations:
            if operation.id in seen:
                continue
            if operation.matches(results):
                seen.add(operation.id)
                opportunities.append(operation)
        return opportunities

    def _preview(self, operation: RepairOperation) -> RepairResult:
        return RepairResult(
            success=True,
            message=f"Would {operation.description[0].lower()}{operation.description[1:]}",
            details={"operation": operation.id, "dryRun": True, "safe": operation.safe},
            operations=[f"Would run: {operation.id}"],
        )

    def _run_operation(
        self,
        operation: RepairOperation,
        context: DoctorContext,
        results: Mapping[str, CheckResult],
    ) -> RepairResult:
        if self.dry_run:
            result = self._preview(operation)
        else:
            try:
                result = operation.apply(self, context, results)
            except Exception as e:
                logger.debug(f"Repair {operation.id} failed: {e}")
                result = RepairResult(
                    success=False,
                    message=f"Failed to execute repair: {e}",
                    details={"operation": operation.id},
                    backup_path=getattr(e, "backup_path", None),
                )

        if self.event_log is not None:
            self.event_log.log_repair_result(
                operation.id, result.success, result.message, result.backup_path
            )
        return result

    def execute_safe_repairs(
        self, context: DoctorContext, results: Mapping[str, CheckResult]
    ) -> list[RepairResult]:
        """Apply every triggered safe operation, without prompting.

        Returns one result per safe opportunity, in operation order. A
        failing operation yields ``success=False`` and the batch goes on.
        """
        return [
            self._run_operation(operation, context, results)
            for operation in self.identify_repair_opportunities(results)
            if operation.safe
        ]

    def execute_interactive_repairs(
        self, context: DoctorContext, results: Mapping[str, CheckResult]
    ) -> list[RepairResult]:
        """Offer every triggered operation and apply the confirmed ones.

        When ``context.auto_fix`` is set the safe batch has already run, so
        only the remaining operations are offered. Declined operations are
        logged and produce no result. Under dry-run nothing is asked and
        every opportunity is previewed.
        """
        repair_results = []
        for operation in self.identify_repair_opportunities(results):
            if context.auto_fix and operation.safe:
                continue
            if self.dry_run:
                repair_results.append(self._run_operation(operation, context, results))
                continue

            if not self.prompter.confirm(f"{operation.description}. Proceed with this repair?"):
                logger.debug(f"Repair {operation.id} declined")
                if self.event_log is not None:
                    self.event_log.log_event(EventType.REPAIR_SKIPPED, operation=operation.id)
                continue

            repair_results.append(self._run_operation(operation, context, results))
        return repair_results

    def restore_backup(self, backup_path: Path, target: Path) -> RepairResult:
        """Manually roll ``target`` back to ``backup_path``.

        Raises:
            AutoRepairError: If the backup is missing or the write fails.
        """
        if not backup_path.is_file():
            raise AutoRepairError(
                f"Backup not found: {backup_path}",
                operation="restore",
                backup_path=str(backup_path),
            )
        try:
            restore_backup(backup_path, target)
        except OSError as e:
            raise AutoRepairError(
                f"Failed to restore {target}: {e}",
                operation="restore",
                backup_path=str(backup_path),
            ) from e

        result = RepairResult(
            success=True,
            message=f"Restored {target} from backup",
            details={"target": str(target)},
            operations=[f"Restored {target} from {backup_path}"],
            backup_path=str(backup_path),
        )
        if self.event_log is not None:
            self.event_log.log_repair_result("restore", True, result.message, str(backup_path))
        return result
