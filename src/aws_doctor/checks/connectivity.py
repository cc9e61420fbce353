"""
Connectivity Checks
===================

Reachability of STS and the configured service endpoints. Each check owns
its network timeout (from DoctorConfig.network_timeout).
"""

import os
import re
import time
from typing import Optional

from aws_doctor.aws import (
    AwsCommandError,
    AwsTimeoutError,
    CredentialService,
    ProfileManager,
    get_active_profile,
    probe_endpoint,
)
from aws_doctor.models import CheckResult, CheckStatus, DoctorContext


REGION_CHARS = re.compile(r"^[a-z0-9-]+$")
REGION_FORMAT = re.compile(r"^[a-z]+(-[a-z]+)+-\d+$")


# =============================================================================
# STS
# =============================================================================


def _classify_sts_error(error: AwsCommandError, context: DoctorContext) -> CheckResult:
    text = str(error)
    profile = context.profile

    if isinstance(error, AwsTimeoutError) or "timed out" in text:
        return CheckResult(
            status=CheckStatus.FAIL,
            message=f"STS call timed out after {getattr(error, 'timeout', 0):g}s",
            details={"error": "Network timeout", "profile": profile},
            remediation="Check network connectivity and AWS service status. Consider using a different region or increasing network_timeout.",
        )

    if "AccessDenied" in text or "UnauthorizedOperation" in text:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="STS access denied - insufficient permissions",
            details={"error": "Access denied", "profile": profile},
            remediation="Verify credential permissions and IAM policies allow sts:GetCallerIdentity",
        )

    if "ExpiredToken" in text or "TokenRefreshRequired" in text or "Token has expired" in text:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="STS authentication failed - expired credentials",
            details={"error": "Expired credentials", "profile": profile},
            remediation=(
                f"Run 'aws sso login --profile {profile}' to refresh credentials"
                if profile
                else "Refresh your AWS credentials"
            ),
        )

    if "Could not connect" in text or "Name or service not known" in text or "EndpointConnectionError" in text:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="STS network connectivity failed",
            details={"error": "Network error", "profile": profile},
            remediation="Check internet connectivity and DNS resolution for AWS endpoints",
        )

    return CheckResult(
        status=CheckStatus.FAIL,
        message=f"STS connectivity failed: {text[:200]}",
        details={"error": text[:500], "profile": profile},
        remediation="Check credential configuration and network connectivity",
    )


def check_sts_credential(context: DoctorContext, credential_service: CredentialService) -> CheckResult:
    """Call STS GetCallerIdentity for the target profile."""
    start = time.perf_counter()
    try:
        identity = credential_service.validate_credentials(context.profile)
    except AwsCommandError as e:
        return _classify_sts_error(e, context)
    response_time = (time.perf_counter() - start) * 1000

    return CheckResult(
        status=CheckStatus.PASS,
        message=f"STS connectivity successful for account {identity.account}",
        details={
            "account": identity.account,
            "userId": identity.user_id,
            "arn": identity.arn,
            "profile": identity.profile or context.profile,
            "responseTime": round(response_time, 1),
            "timeoutSeconds": credential_service.timeout,
        },
    )


# =============================================================================
# Service Endpoints
# =============================================================================


def check_service_endpoint(
    context: DoctorContext, endpoints: list[str], timeout: float
) -> CheckResult:
    """Probe each configured HTTPS endpoint.

    All reachable passes, none reachable fails, anything between warns.
    """
    probes = [probe_endpoint(url, timeout) for url in endpoints]
    reachable = [p for p in probes if p.reachable]
    unreachable = [p for p in probes if not p.reachable]
    service_results = [p.to_dict() for p in probes]

    if len(reachable) == len(probes):
        average = sum(p.response_time for p in probes) / len(probes) if probes else 0.0
        return CheckResult(
            status=CheckStatus.PASS,
            message=f"All {len(probes)} service endpoints are accessible",
            details={
                "successfulServices": len(reachable),
                "failedServices": 0,
                "averageResponseTime": round(average, 1),
                "serviceResults": service_results,
            },
        )

    if not reachable:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="No service endpoints are accessible",
            details={
                "successfulServices": 0,
                "failedServices": len(unreachable),
                "serviceResults": service_results,
            },
            remediation="Check network connectivity, firewall settings, proxy variables and AWS service status",
        )

    return CheckResult(
        status=CheckStatus.WARN,
        message=f"{len(unreachable)} of {len(probes)} service endpoints are not accessible",
        details={
            "successfulServices": len(reachable),
            "failedServices": len(unreachable),
            "serviceResults": service_results,
        },
        remediation="Check network connectivity for failed services and verify service-specific configurations",
    )


# =============================================================================
# Region
# =============================================================================


def determine_target_region(
    context: DoctorContext,
    profile_manager: ProfileManager,
    environ: Optional[dict[str, str]] = None,
) -> tuple[Optional[str], str]:
    """Return (region, source).

    Source is one of AWS_REGION, AWS_DEFAULT_REGION, profile or none.
    """
    env = os.environ if environ is None else environ
    for variable in ("AWS_REGION", "AWS_DEFAULT_REGION"):
        if env.get(variable):
            return env[variable], variable

    profile = profile_manager.get_profile(context.profile or get_active_profile(env))
    if profile is not None and profile.region:
        return profile.region, "profile"
    return None, "none"


def validate_region_format(region: str) -> list[str]:
    issues = []
    if not REGION_CHARS.match(region):
        issues.append(
            "Region contains invalid characters (only lowercase letters, numbers, and hyphens allowed)"
        )
    if not REGION_FORMAT.match(region):
        issues.append("Region does not match typical AWS format (e.g., us-east-1, eu-west-2)")
    if not 5 <= len(region) <= 20:
        issues.append("Region length is outside typical range (5-20 characters)")
    return issues


def check_region_accessibility(
    context: DoctorContext,
    profile_manager: ProfileManager,
    timeout: float,
) -> CheckResult:
    """Resolve the region and probe its regional STS endpoint."""
    region, source = determine_target_region(context, profile_manager)

    if not region:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="No AWS region configured",
            details={
                "configuredRegion": None,
                "regionConfigured": False,
                "targetProfile": context.profile or get_active_profile(),
            },
            remediation="Configure AWS region using 'aws configure' or set AWS_REGION environment variable",
        )

    issues = validate_region_format(region)
    if not REGION_CHARS.match(region):
        # Not usable as a hostname label, so there is nothing to probe
        return CheckResult(
            status=CheckStatus.WARN,
            message=f"Region '{region}' has non-standard format",
            details={"configuredRegion": region, "regionSource": source, "formatIssues": issues},
            remediation="Verify region name matches AWS region format (e.g., us-east-1, eu-west-1)",
        )

    endpoint = f"https://sts.{region}.amazonaws.com"
    probe = probe_endpoint(endpoint, timeout)

    if not probe.reachable:
        timed_out = "timed out" in (probe.error or "")
        return CheckResult(
            status=CheckStatus.FAIL,
            message=(
                f"Region '{region}' accessibility test timed out"
                if timed_out
                else f"Network connectivity failed for region '{region}'"
            ),
            details={
                "configuredRegion": region,
                "regionSource": source,
                "endpoint": endpoint,
                "error": probe.error,
            },
            remediation=(
                "Check network connectivity to AWS region endpoints or try a different region"
                if timed_out
                else "Check the region name, internet connectivity and DNS resolution for AWS regional endpoints"
            ),
        )

    if issues:
        return CheckResult(
            status=CheckStatus.WARN,
            message=f"Region '{region}' has non-standard format",
            details={
                "configuredRegion": region,
                "regionSource": source,
                "responseTime": round(probe.response_time, 1),
                "formatIssues": issues,
            },
            remediation="Verify region name matches AWS region format (e.g., us-east-1, eu-west-1)",
        )

    return CheckResult(
        status=CheckStatus.PASS,
        message=f"Region '{region}' is accessible and responsive",
        details={
            "configuredRegion": region,
            "regionSource": source,
            "endpoint": endpoint,
            "responseTime": round(probe.response_time, 1),
            "profile": context.profile,
        },
    )
