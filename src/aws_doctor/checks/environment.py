"""
Environment Checks
==================

Interpreter, AWS CLI and installed-library checks. A failure here makes
every later stage unreliable, so the pipeline stops after this stage when
any of these fail.
"""

import sys
from importlib import metadata
from typing import Optional

from aws_doctor.aws import SUBPROCESS_TIMEOUT, Runner, parse_aws_cli_version
from aws_doctor.errors import CheckExecutionError
from aws_doctor.models import CheckResult, CheckStage, CheckStatus, DoctorContext


MIN_PYTHON_VERSION = (3, 10)

# Distributions aws-doctor imports at runtime
CORE_DISTRIBUTIONS = ("click", "PyYAML", "questionary", "requests", "rich")

AWS_CLI_INSTALL_URL = (
    "https://docs.aws.amazon.com/cli/latest/userguide/getting-started-install.html"
)


def check_python_version(context: DoctorContext, version_info=None) -> CheckResult:
    """Verify the interpreter meets the minimum supported version."""
    major, minor, micro = (version_info or sys.version_info)[:3]
    current = f"{major}.{minor}.{micro}"
    details = {
        "currentVersion": current,
        "minimumRequired": ".".join(str(p) for p in MIN_PYTHON_VERSION),
        "executable": sys.executable,
    }

    if (major, minor) >= MIN_PYTHON_VERSION:
        return CheckResult(
            status=CheckStatus.PASS,
            message=f"Python {current} meets requirements",
            details=details,
        )

    return CheckResult(
        status=CheckStatus.FAIL,
        message=(
            f"Python {current} is below minimum required "
            f"{details['minimumRequired']}"
        ),
        details=details,
        remediation=(
            f"Upgrade Python to {details['minimumRequired']} or newer: "
            "https://www.python.org/downloads/"
        ),
    )


def check_aws_cli_installation(context: DoctorContext, runner: Runner) -> CheckResult:
    """Verify AWS CLI v2 is installed and responds to --version.

    Returns:
    - PASS for aws-cli/2.x
    - FAIL for v1, a missing binary, an error exit or a timeout
    """
    success, stdout, stderr = runner(["aws", "--version"], timeout=SUBPROCESS_TIMEOUT)

    if not success:
        if "timed out" in stderr:
            return CheckResult(
                status=CheckStatus.FAIL,
                message="AWS CLI command timed out - installation may be corrupted",
                details={"command": "aws --version", "timeoutSeconds": SUBPROCESS_TIMEOUT},
                remediation="Reinstall AWS CLI v2 or check system performance",
            )
        return CheckResult(
            status=CheckStatus.FAIL,
            message="AWS CLI is not installed or not accessible in PATH",
            details={"command": "aws --version", "stderr": stderr.strip()[:200]},
            remediation=f"Install AWS CLI v2 from {AWS_CLI_INSTALL_URL}",
        )

    # v1 prints its version on stderr
    parsed = parse_aws_cli_version(stdout) or parse_aws_cli_version(stderr)
    if parsed is None:
        raise CheckExecutionError(
            f"Unable to parse AWS CLI version from: {(stdout or stderr).strip()[:100]}",
            check_id="aws-cli-installation",
            stage=CheckStage.ENVIRONMENT.value,
        )

    version, major = parsed
    if major >= 2:
        return CheckResult(
            status=CheckStatus.PASS,
            message=f"AWS CLI {version} is installed and accessible",
            details={"version": version, "majorVersion": major, "command": "aws --version"},
        )

    return CheckResult(
        status=CheckStatus.FAIL,
        message=f"AWS CLI {version} detected, but version 2.x is required",
        details={"version": version, "majorVersion": major, "requiredMajorVersion": 2},
        remediation=f"Install AWS CLI v2 from {AWS_CLI_INSTALL_URL}",
    )


def _installed_version(distribution: str) -> Optional[str]:
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        return None


def check_python_dependencies(
    context: DoctorContext,
    distributions: tuple[str, ...] = CORE_DISTRIBUTIONS,
) -> CheckResult:
    """Verify the core runtime libraries are installed.

    More than half missing fails; any missing warns.
    """
    installed = {}
    missing = []
    for distribution in distributions:
        version = _installed_version(distribution)
        if version is None:
            missing.append(distribution)
        else:
            installed[distribution] = version

    if not missing:
        return CheckResult(
            status=CheckStatus.PASS,
            message="Python dependencies are properly installed",
            details={"coreDependenciesChecked": len(distributions), "installed": installed},
        )

    status = CheckStatus.FAIL if len(missing) > len(distributions) / 2 else CheckStatus.WARN
    return CheckResult(
        status=status,
        message=f"{len(missing)} core dependencies are missing",
        details={
            "missingDependencies": missing,
            "totalCoreDependencies": len(distributions),
        },
        remediation="Reinstall aws-doctor with 'pip install --force-reinstall aws-doctor'",
    )
