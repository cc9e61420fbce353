"""
Authentication Checks
=====================

Credential validity, SSO token expiry and profile switching. These go
through AuthService and TokenManager and only translate their outcomes
into check results.
"""

from typing import Optional

from aws_doctor.aws import AuthService, AuthStatus, ProfileInfo, TokenManager
from aws_doctor.models import CheckResult, CheckStatus, DoctorContext


def _login_remediation(profile: str, profile_type: Optional[str]) -> str:
    if profile_type == "sso":
        return f"Run 'aws sso login --profile {profile}' to authenticate"
    return f"Verify credentials for profile '{profile}' using 'aws configure'"


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def check_credential_validation(context: DoctorContext, auth_service: AuthService) -> CheckResult:
    """Validate the credentials of the target (or active) profile."""
    status = auth_service.get_status(profile=context.profile)
    target = context.profile or status.active_profile or "default"
    info = status.find(target)

    if status.authenticated and info is not None:
        return CheckResult(
            status=CheckStatus.PASS,
            message=f"Credentials are valid for profile '{target}'",
            details={
                "activeProfile": target,
                "profileType": info.type,
                "credentialsValid": True,
                "region": info.region,
                "tokenExpiry": _isoformat(info.token_expiry),
            },
        )

    if info is None:
        return CheckResult(
            status=CheckStatus.FAIL,
            message=f"Profile '{target}' not found",
            details={"targetProfile": target, "authenticated": False},
            remediation=f"Configure profile '{target}' using 'aws configure' or 'aws configure sso'",
        )

    if not info.credentials_valid:
        return CheckResult(
            status=CheckStatus.FAIL,
            message=f"Credentials are invalid for profile '{target}'",
            details={
                "targetProfile": target,
                "profileType": info.type,
                "credentialsValid": False,
                "tokenExpiry": _isoformat(info.token_expiry),
                "authenticated": False,
            },
            remediation=_login_remediation(target, info.type),
        )

    return CheckResult(
        status=CheckStatus.FAIL,
        message=f"Authentication failed for profile '{target}'",
        details={
            "targetProfile": target,
            "profileType": info.type,
            "credentialsValid": info.credentials_valid,
            "authenticated": False,
            "awsCliInstalled": status.aws_cli_installed,
        },
        remediation="Check AWS service connectivity and verify profile configuration",
    )


def check_sso_token_expiry(context: DoctorContext, token_manager: TokenManager) -> CheckResult:
    """Check SSO token expiry for the target profile, or for every token.

    With a target profile: no token warns, an expired token fails and a
    token close to expiry warns.
    """
    if context.profile:
        return _check_profile_token(context.profile, token_manager)

    expiring = token_manager.check_token_expiry()
    if not expiring:
        return CheckResult(
            status=CheckStatus.PASS,
            message="No expired SSO tokens found",
            details={"expiredTokensCount": 0},
        )

    expired = [t.profile_name for t in expiring if t.status == "expired"]
    near_expiry = [t.profile_name for t in expiring if t.status == "near-expiry"]

    if expired:
        return CheckResult(
            status=CheckStatus.FAIL,
            message=f"{len(expired)} SSO tokens have expired",
            details={
                "expiredTokensCount": len(expired),
                "nearExpiryCount": len(near_expiry),
                "expiredProfiles": expired,
                "nearExpiryProfiles": near_expiry,
            },
            remediation="Run 'aws sso login' for each expired profile to refresh tokens",
        )

    return CheckResult(
        status=CheckStatus.WARN,
        message=f"{len(near_expiry)} SSO tokens are approaching expiration",
        details={
            "expiredTokensCount": 0,
            "nearExpiryCount": len(near_expiry),
            "nearExpiryProfiles": near_expiry,
        },
        remediation="Consider refreshing tokens that are approaching expiration",
    )


def _check_profile_token(profile: str, token_manager: TokenManager) -> CheckResult:
    token = token_manager.get_token_status(profile)
    login = f"aws sso login --profile {profile}"

    if not token.has_token:
        return CheckResult(
            status=CheckStatus.WARN,
            message=f"No SSO token found for profile '{profile}'",
            details={"profileName": profile, "hasToken": False, "isValid": False,
                     "startUrl": token.start_url},
            remediation=f"Run '{login}' to authenticate",
        )

    if not token.is_valid:
        return CheckResult(
            status=CheckStatus.FAIL,
            message=f"SSO token has expired for profile '{profile}'",
            details={
                "profileName": profile,
                "hasToken": True,
                "isValid": False,
                "expiresAt": _isoformat(token.expires_at),
                "startUrl": token.start_url,
            },
            remediation=f"Run '{login}' to refresh the token",
        )

    details = {
        "profileName": profile,
        "hasToken": True,
        "isValid": True,
        "isNearExpiry": token.is_near_expiry,
        "expiresAt": _isoformat(token.expires_at),
        "timeUntilExpiry": token.time_until_expiry,
    }

    if token.is_near_expiry:
        minutes = round((token.time_until_expiry or 0) / 60)
        return CheckResult(
            status=CheckStatus.WARN,
            message=f"SSO token for profile '{profile}' expires in {minutes} minutes",
            details=details,
            remediation=f"Consider refreshing the token with '{login}'",
        )

    return CheckResult(
        status=CheckStatus.PASS,
        message=f"SSO token for profile '{profile}' is valid",
        details=details,
    )


def check_profile_switch(context: DoctorContext, auth_service: AuthService) -> CheckResult:
    """Check that configured profiles can be switched to.

    No profiles fails. With a target profile, the target must exist and
    have valid credentials. Otherwise some invalid profiles warn and all
    invalid fails.
    """
    status = auth_service.get_status(all_profiles=True)
    profiles = status.profiles

    if not profiles:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="No profiles available for switching",
            details={"availableProfiles": 0, "currentActiveProfile": status.active_profile},
            remediation="Configure at least one AWS profile using 'aws configure' or 'aws configure sso'",
        )

    valid = [p for p in profiles if p.credentials_valid]
    invalid = [p for p in profiles if not p.credentials_valid]

    if context.profile:
        target = status.find(context.profile)
        if target is None:
            names = [p.name for p in profiles]
            return CheckResult(
                status=CheckStatus.FAIL,
                message=f"Target profile '{context.profile}' not found",
                details={
                    "targetProfile": context.profile,
                    "availableProfiles": len(profiles),
                    "profileNames": names,
                },
                remediation=f"Use one of the available profiles: {', '.join(names)}",
            )
        return _check_target_profile(context.profile, target, status, len(valid))

    if not invalid:
        return CheckResult(
            status=CheckStatus.PASS,
            message=f"All {len(profiles)} profiles are configured and accessible for switching",
            details={
                "availableProfiles": len(profiles),
                "validProfiles": len(valid),
                "invalidProfiles": 0,
                "currentActiveProfile": status.active_profile,
                "profileNames": [p.name for p in profiles],
            },
        )

    if not valid:
        return CheckResult(
            status=CheckStatus.FAIL,
            message="No profiles have valid credentials for switching",
            details={
                "availableProfiles": len(profiles),
                "validProfiles": 0,
                "invalidProfiles": len(invalid),
                "invalidProfileNames": [p.name for p in invalid],
            },
            remediation="Authenticate profiles using 'aws sso login' or verify credential configuration",
        )

    return CheckResult(
        status=CheckStatus.WARN,
        message=f"{len(invalid)} of {len(profiles)} profiles have credential issues",
        details={
            "availableProfiles": len(profiles),
            "validProfiles": len(valid),
            "invalidProfiles": len(invalid),
            "validProfileNames": [p.name for p in valid],
            "invalidProfileNames": [p.name for p in invalid],
            "currentActiveProfile": status.active_profile,
        },
        remediation="Fix credential issues for invalid profiles to enable full switching capability",
    )


def _check_target_profile(
    name: str, target: ProfileInfo, status: AuthStatus, valid_count: int
) -> CheckResult:
    if not target.credentials_valid:
        return CheckResult(
            status=CheckStatus.FAIL,
            message=f"Target profile '{name}' has invalid credentials",
            details={
                "targetProfile": name,
                "profileType": target.type,
                "credentialsValid": False,
                "currentActiveProfile": status.active_profile,
            },
            remediation=_login_remediation(name, target.type),
        )

    return CheckResult(
        status=CheckStatus.PASS,
        message=f"Profile switching to '{name}' is available",
        details={
            "targetProfile": name,
            "profileType": target.type,
            "credentialsValid": True,
            "currentActiveProfile": status.active_profile,
            "availableProfiles": len(status.profiles),
            "validProfiles": valid_count,
        },
    )
