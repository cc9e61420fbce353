"""
Default Check Catalog
=====================

Each check is a plain function taking the DoctorContext plus its
collaborators. build_default_checks binds the collaborators and returns
the flat list of Check records to register, three per stage.
"""

from functools import partial
from typing import Optional

from aws_doctor.aws import (
    AuthService,
    AwsPaths,
    CredentialService,
    ProfileManager,
    Runner,
    TokenManager,
    run_command,
)
from aws_doctor.checks.authentication import (
    check_credential_validation,
    check_profile_switch,
    check_sso_token_expiry,
)
from aws_doctor.checks.configuration import (
    check_config_file_exists,
    check_credentials_file,
    check_profile_validation,
)
from aws_doctor.checks.connectivity import (
    check_region_accessibility,
    check_service_endpoint,
    check_sts_credential,
)
from aws_doctor.checks.environment import (
    check_aws_cli_installation,
    check_python_dependencies,
    check_python_version,
)
from aws_doctor.config import DoctorConfig
from aws_doctor.models import Check, CheckStage


def build_default_checks(
    config: DoctorConfig,
    paths: Optional[AwsPaths] = None,
    runner: Runner = run_command,
) -> list[Check]:
    """Build the default checks in pipeline order."""
    paths = paths or AwsPaths.from_environment()
    profile_manager = ProfileManager(paths)
    token_manager = TokenManager(paths, profile_manager)
    credential_service = CredentialService(paths, runner=runner, timeout=config.network_timeout)
    auth_service = AuthService(profile_manager, credential_service, token_manager)

    environment = CheckStage.ENVIRONMENT
    configuration = CheckStage.CONFIGURATION
    authentication = CheckStage.AUTHENTICATION
    connectivity = CheckStage.CONNECTIVITY

    return [
        Check(
            id="python-version",
            name="Python Version",
            description="Validates the Python interpreter meets minimum requirements (3.10+)",
            stage=environment,
            execute=check_python_version,
        ),
        Check(
            id="aws-cli-installation",
            name="AWS CLI Installation",
            description="Verifies AWS CLI v2 installation and accessibility",
            stage=environment,
            execute=partial(check_aws_cli_installation, runner=runner),
        ),
        Check(
            id="python-dependencies",
            name="Python Dependencies",
            description="Verifies the core Python libraries are installed",
            stage=environment,
            execute=check_python_dependencies,
        ),
        Check(
            id="config-file-exists",
            name="AWS Config File",
            description="Verifies AWS config file exists and is accessible",
            stage=configuration,
            execute=partial(check_config_file_exists, paths=paths),
        ),
        Check(
            id="profile-validation",
            name="Profile Validation",
            description="Validates AWS profile completeness and configuration",
            stage=configuration,
            execute=partial(check_profile_validation, profile_manager=profile_manager),
        ),
        Check(
            id="credentials-file",
            name="AWS Credentials File",
            description="Verifies AWS credentials file structure, accessibility and permissions",
            stage=configuration,
            execute=partial(check_credentials_file, paths=paths),
        ),
        Check(
            id="credential-validation",
            name="Credential Validation",
            description="Validates AWS credential configuration and authentication status",
            stage=authentication,
            execute=partial(check_credential_validation, auth_service=auth_service),
        ),
        Check(
            id="sso-token-expiry",
            name="SSO Token Expiry",
            description="Checks SSO token expiry status and warns of approaching expiration",
            stage=authentication,
            execute=partial(check_sso_token_expiry, token_manager=token_manager),
        ),
        Check(
            id="profile-switch",
            name="Profile Switching",
            description="Validates profile switching capability and configuration consistency",
            stage=authentication,
            execute=partial(check_profile_switch, auth_service=auth_service),
        ),
        Check(
            id="sts-credential",
            name="STS Credential Connectivity",
            description="Validates AWS credential connectivity using STS GetCallerIdentity",
            stage=connectivity,
            execute=partial(check_sts_credential, credential_service=credential_service),
        ),
        Check(
            id="service-endpoint",
            name="Service Endpoint Connectivity",
            description="Tests AWS service endpoint connectivity and responsiveness",
            stage=connectivity,
            execute=partial(
                check_service_endpoint,
                endpoints=list(config.endpoints),
                timeout=config.network_timeout,
            ),
        ),
        Check(
            id="region-accessibility",
            name="Region Accessibility",
            description="Validates AWS region accessibility and configuration",
            stage=connectivity,
            execute=partial(
                check_region_accessibility,
                profile_manager=profile_manager,
                timeout=config.network_timeout,
            ),
        ),
    ]
