"""
AWS Collaborators
=================

Thin adapters over the local AWS environment that checks and repairs call
as black boxes:

- AwsPaths: where the shared config, credentials and SSO cache live
- ProfileManager: profile discovery from the INI files (configparser)
- TokenManager: SSO token expiry from the cache JSON files
- CredentialService: ``aws sts get-caller-identity`` through the CLI
- AuthService: per-profile authentication status
- probe_endpoint: HTTPS reachability using requests

Nothing here reimplements SDK behaviour; the ``aws`` CLI and the files it
maintains are the source of truth.
"""

import configparser
import json
import logging
import os
import re
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Subprocess timeout in seconds for quick local commands (aws --version)
SUBPROCESS_TIMEOUT = 10

# Tokens expiring within this window are reported as near expiry
EXPIRY_WARNING_THRESHOLD = timedelta(minutes=15)

AWS_CLI_VERSION_PATTERN = re.compile(r"aws-cli/(\d+)\.(\d+)\.(\d+)")


# =============================================================================
# Errors
# =============================================================================


class AwsCommandError(Exception):
    """An ``aws`` CLI invocation failed."""

    def __init__(self, message: str, command: Optional[list[str]] = None, stderr: str = ""):
        self.command = command or []
        self.stderr = stderr
        super().__init__(message)


class AwsTimeoutError(AwsCommandError):
    """An ``aws`` CLI invocation exceeded its timeout."""

    def __init__(self, message: str, timeout: float, command: Optional[list[str]] = None):
        self.timeout = timeout
        super().__init__(message, command=command)


# =============================================================================
# Paths
# =============================================================================


@dataclass(frozen=True)
class AwsPaths:
    """Locations of the AWS CLI's local state."""

    aws_dir: Path
    config_file: Path
    credentials_file: Path

    @property
    def cli_dir(self) -> Path:
        return self.aws_dir / "cli"

    @property
    def cli_cache_dir(self) -> Path:
        return self.cli_dir / "cache"

    @property
    def sso_cache_dir(self) -> Path:
        return self.aws_dir / "sso" / "cache"

    @classmethod
    def from_environment(
        cls,
        home: Optional[Path] = None,
        environ: Optional[dict[str, str]] = None,
    ) -> "AwsPaths":
        """Resolve paths the way the AWS CLI does.

        ``AWS_CONFIG_FILE`` and ``AWS_SHARED_CREDENTIALS_FILE`` override the
        defaults under ``~/.aws``.
        """
        env = os.environ if environ is None else environ
        aws_dir = (home or Path.home()) / ".aws"
        config_file = env.get("AWS_CONFIG_FILE")
        credentials_file = env.get("AWS_SHARED_CREDENTIALS_FILE")
        return cls(
            aws_dir=aws_dir,
            config_file=Path(config_file).expanduser() if config_file else aws_dir / "config",
            credentials_file=(
                Path(credentials_file).expanduser()
                if credentials_file
                else aws_dir / "credentials"
            ),
        )

    def cli_environment(self) -> dict[str, str]:
        """Environment for ``aws`` subprocesses pointing at these files."""
        env = dict(os.environ)
        env["AWS_CONFIG_FILE"] = str(self.config_file)
        env["AWS_SHARED_CREDENTIALS_FILE"] = str(self.credentials_file)
        return env


# =============================================================================
# Subprocess Helper
# =============================================================================


def run_command(
    cmd: list[str],
    timeout: float = SUBPROCESS_TIMEOUT,
    env: Optional[dict[str, str]] = None,
) -> tuple[bool, str, str]:
    """Run a command and return (success, stdout, stderr).

    Args:
        cmd: Command and arguments as list
        timeout: Timeout in seconds
        env: Environment for the child process (inherits when None)

    Returns:
        Tuple of (success, stdout, stderr)
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return False, "", f"Command timed out after {timeout} seconds"
    except FileNotFoundError:
        return False, "", f"Command not found: {cmd[0]}"
    except OSError as e:
        return False, "", str(e)


Runner = Callable[..., tuple[bool, str, str]]


def parse_aws_cli_version(output: str) -> Optional[tuple[str, int]]:
    """Extract ("2.15.0", 2) from ``aws --version`` output."""
    match = AWS_CLI_VERSION_PATTERN.search(output)
    if not match:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return f"{major}.{minor}.{patch}", major


# =============================================================================
# Profiles
# =============================================================================


@dataclass
class AwsProfile:
    """A profile merged from the config and credentials files."""

    name: str
    region: Optional[str] = None
    output: Optional[str] = None
    sso_session: Optional[str] = None
    sso_start_url: Optional[str] = None
    sso_account_id: Optional[str] = None
    sso_role_name: Optional[str] = None
    source_profile: Optional[str] = None
    credential_process: Optional[str] = None
    has_access_key: bool = False

    @property
    def type(self) -> str:
        if self.sso_session or self.sso_start_url:
            return "sso"
        if self.source_profile:
            return "role"
        return "credentials"

    @property
    def is_sso(self) -> bool:
        return self.type == "sso"


def _read_ini(path: Path) -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None, default_section="__none__")
    if path.exists():
        with open(path, encoding="utf-8") as f:
            parser.read_file(f, source=str(path))
    return parser


def config_section_profile_name(section: str) -> Optional[str]:
    """Map a config-file section header to a profile name.

    ``[default]`` and ``[profile x]`` are profiles; ``[sso-session x]`` and
    other sections are not.
    """
    if section == "default":
        return "default"
    if section.startswith("profile "):
        name = section[len("profile "):].strip()
        return name or None
    return None


class ProfileManager:
    """Discovers profiles from the shared config and credentials files."""

    def __init__(self, paths: AwsPaths):
        self.paths = paths

    def discover_profiles(self) -> list[AwsProfile]:
        """Return every profile, config-file profiles first.

        Raises:
            configparser.Error: If either file is not valid INI.
            OSError: If an existing file cannot be read.
        """
        config = _read_ini(self.paths.config_file)
        credentials = _read_ini(self.paths.credentials_file)

        profiles: dict[str, AwsProfile] = {}

        for section in config.sections():
            name = config_section_profile_name(section)
            if name is None:
                continue
            values = config[section]
            profile = AwsProfile(
                name=name,
                region=values.get("region") or None,
                output=values.get("output") or None,
                sso_session=values.get("sso_session") or None,
                sso_start_url=values.get("sso_start_url") or None,
                sso_account_id=values.get("sso_account_id") or None,
                sso_role_name=values.get("sso_role_name") or None,
                source_profile=values.get("source_profile") or None,
                credential_process=values.get("credential_process") or None,
                has_access_key=bool(values.get("aws_access_key_id")),
            )
            if profile.sso_session and not profile.sso_start_url:
                session_section = f"sso-session {profile.sso_session}"
                if config.has_section(session_section):
                    profile.sso_start_url = config[session_section].get("sso_start_url") or None
            profiles[name] = profile

        for name in credentials.sections():
            profile = profiles.setdefault(name, AwsProfile(name=name))
            if credentials[name].get("aws_access_key_id"):
                profile.has_access_key = True

        logger.debug(f"Discovered {len(profiles)} profiles")
        return list(profiles.values())

    def get_profile(self, name: str) -> Optional[AwsProfile]:
        for profile in self.discover_profiles():
            if profile.name == name:
                return profile
        return None

    def profile_exists(self, name: str) -> bool:
        return self.get_profile(name) is not None


def get_active_profile(environ: Optional[dict[str, str]] = None) -> str:
    """The profile the CLI would use: AWS_PROFILE, else "default"."""
    env = os.environ if environ is None else environ
    return env.get("AWS_PROFILE") or "default"


# =============================================================================
# SSO Tokens
# =============================================================================


@dataclass
class SsoToken:
    """A cached SSO access token (only the fields the doctor needs)."""

    start_url: str
    expires_at: datetime
    region: Optional[str] = None


@dataclass
class TokenStatus:
    """Token state for one profile."""

    profile_name: str
    has_token: bool
    is_valid: bool
    is_near_expiry: bool
    expires_at: Optional[datetime] = None
    time_until_expiry: Optional[float] = None  # seconds
    start_url: Optional[str] = None


@dataclass
class TokenExpiry:
    """A token that is expired or close to it."""

    profile_name: str
    start_url: str
    status: str  # expired, near-expiry
    expires_at: datetime


def parse_token_timestamp(value: str) -> datetime:
    """Parse the cache's ``expiresAt`` (``...Z`` or ``...UTC`` suffixes)."""
    text = value.strip()
    if text.endswith("UTC"):
        text = text[:-3] + "+00:00"
    elif text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TokenManager:
    """Reads SSO tokens from ``~/.aws/sso/cache``."""

    def __init__(
        self,
        paths: AwsPaths,
        profile_manager: Optional[ProfileManager] = None,
        expiry_warning_threshold: timedelta = EXPIRY_WARNING_THRESHOLD,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.paths = paths
        self.profile_manager = profile_manager or ProfileManager(paths)
        self.expiry_warning_threshold = expiry_warning_threshold
        self.clock = clock

    def read_tokens(self) -> list[SsoToken]:
        """Return every parseable token in the cache directory.

        Files that are not token caches (client registrations, partial
        writes) are skipped.
        """
        cache_dir = self.paths.sso_cache_dir
        if not cache_dir.is_dir():
            return []

        tokens = []
        for cache_file in sorted(cache_dir.glob("*.json")):
            try:
                data = json.loads(cache_file.read_text(encoding="utf-8"))
                tokens.append(
                    SsoToken(
                        start_url=data["startUrl"],
                        expires_at=parse_token_timestamp(data["expiresAt"]),
                        region=data.get("region"),
                    )
                )
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.debug(f"Skipping SSO cache file {cache_file.name}: {e}")
        return tokens

    def _find_token(self, start_url: str) -> Optional[SsoToken]:
        matches = [t for t in self.read_tokens() if t.start_url == start_url]
        if not matches:
            return None
        return max(matches, key=lambda t: t.expires_at)

    def get_token_status(self, profile_name: str, start_url: Optional[str] = None) -> TokenStatus:
        """Token status for a profile.

        When ``start_url`` is omitted it is looked up from the profile.
        """
        if start_url is None:
            profile = self.profile_manager.get_profile(profile_name)
            start_url = profile.sso_start_url if profile else None

        if not start_url:
            return TokenStatus(profile_name, has_token=False, is_valid=False, is_near_expiry=False)

        token = self._find_token(start_url)
        if token is None:
            return TokenStatus(
                profile_name,
                has_token=False,
                is_valid=False,
                is_near_expiry=False,
                start_url=start_url,
            )

        remaining = token.expires_at - self.clock()
        return TokenStatus(
            profile_name,
            has_token=True,
            is_valid=remaining.total_seconds() > 0,
            is_near_expiry=remaining <= self.expiry_warning_threshold,
            expires_at=token.expires_at,
            time_until_expiry=remaining.total_seconds(),
            start_url=start_url,
        )

    def check_token_expiry(self) -> list[TokenExpiry]:
        """Return every cached token that is expired or near expiry.

        Tokens are attributed to the profiles using their start URL; a token
        no profile refers to is reported under its start URL.
        """
        profiles_by_url: dict[str, list[str]] = {}
        for profile in self.profile_manager.discover_profiles():
            if profile.sso_start_url:
                profiles_by_url.setdefault(profile.sso_start_url, []).append(profile.name)

        now = self.clock()
        results = []
        for token in self.read_tokens():
            remaining = token.expires_at - now
            if remaining.total_seconds() <= 0:
                status = "expired"
            elif remaining <= self.expiry_warning_threshold:
                status = "near-expiry"
            else:
                continue
            for name in profiles_by_url.get(token.start_url, [token.start_url]):
                results.append(TokenExpiry(name, token.start_url, status, token.expires_at))
        return results


# =============================================================================
# Credentials
# =============================================================================


@dataclass
class CallerIdentity:
    account: str
    user_id: str
    arn: str
    profile: Optional[str] = None


class CredentialService:
    """Validates credentials by calling STS through the ``aws`` CLI."""

    def __init__(
        self,
        paths: AwsPaths,
        runner: Runner = run_command,
        timeout: float = 15.0,
    ):
        self.paths = paths
        self.runner = runner
        self.timeout = timeout

    def get_active_profile(self) -> str:
        return get_active_profile()

    def validate_credentials(self, profile: Optional[str] = None) -> CallerIdentity:
        """Return the caller identity for ``profile``.

        Raises:
            AwsTimeoutError: If the call exceeds the timeout.
            AwsCommandError: If the CLI reports an error or bad output.
        """
        cmd = ["aws", "sts", "get-caller-identity", "--output", "json"]
        if profile:
            cmd.extend(["--profile", profile])

        success, stdout, stderr = self.runner(
            cmd, timeout=self.timeout, env=self.paths.cli_environment()
        )

        if not success:
            if "timed out" in stderr:
                raise AwsTimeoutError(
                    f"STS call timed out after {self.timeout:g}s",
                    timeout=self.timeout,
                    command=cmd,
                )
            raise AwsCommandError(
                stderr.strip() or "aws sts get-caller-identity failed",
                command=cmd,
                stderr=stderr,
            )

        try:
            data = json.loads(stdout)
            return CallerIdentity(
                account=data["Account"],
                user_id=data["UserId"],
                arn=data["Arn"],
                profile=profile,
            )
        except (ValueError, KeyError, TypeError) as e:
            raise AwsCommandError(
                f"Unexpected get-caller-identity output: {e}", command=cmd
            ) from e


# =============================================================================
# Authentication Status
# =============================================================================


@dataclass
class ProfileInfo:
    name: str
    type: str
    active: bool
    credentials_valid: bool
    region: Optional[str] = None
    token_expiry: Optional[datetime] = None


@dataclass
class AuthStatus:
    active_profile: str
    profiles: list[ProfileInfo] = field(default_factory=list)
    authenticated: bool = False
    aws_cli_installed: bool = False
    aws_cli_version: Optional[str] = None

    def find(self, name: str) -> Optional[ProfileInfo]:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None


class AuthService:
    """Combines profile discovery, STS validation and SSO token state."""

    def __init__(
        self,
        profile_manager: ProfileManager,
        credential_service: CredentialService,
        token_manager: TokenManager,
    ):
        self.profile_manager = profile_manager
        self.credential_service = credential_service
        self.token_manager = token_manager

    def _cli_status(self) -> tuple[bool, Optional[str]]:
        success, stdout, stderr = self.credential_service.runner(["aws", "--version"])
        if not success:
            return False, None
        parsed = parse_aws_cli_version(stdout or stderr)
        return True, parsed[0] if parsed else None

    def _profile_status(self, name: str, profile: Optional[AwsProfile], active: str) -> ProfileInfo:
        if profile is None:
            return ProfileInfo(name=name, type="credentials", active=name == active,
                               credentials_valid=False)

        try:
            self.credential_service.validate_credentials(name)
            credentials_valid = True
        except AwsCommandError as e:
            logger.debug(f"Credentials invalid for {name}: {e}")
            credentials_valid = False

        token_expiry = None
        if profile.is_sso and profile.sso_start_url:
            token_expiry = self.token_manager.get_token_status(
                name, profile.sso_start_url
            ).expires_at

        return ProfileInfo(
            name=name,
            type=profile.type,
            active=name == active,
            credentials_valid=credentials_valid,
            region=profile.region,
            token_expiry=token_expiry,
        )

    def get_status(self, profile: Optional[str] = None, all_profiles: bool = False) -> AuthStatus:
        """Authentication status for one profile, or every profile.

        A profile name that is not configured yields no ProfileInfo, so
        callers can tell "not found" apart from "invalid credentials".
        """
        installed, version = self._cli_status()
        discovered = {p.name: p for p in self.profile_manager.discover_profiles()}
        active = self.credential_service.get_active_profile()

        if all_profiles:
            infos = [self._profile_status(name, p, active) for name, p in discovered.items()]
            return AuthStatus(
                active_profile=active,
                profiles=infos,
                authenticated=any(p.active and p.credentials_valid for p in infos),
                aws_cli_installed=installed,
                aws_cli_version=version,
            )

        name = profile or active
        if name not in discovered:
            return AuthStatus(
                active_profile=name,
                profiles=[],
                authenticated=False,
                aws_cli_installed=installed,
                aws_cli_version=version,
            )

        info = self._profile_status(name, discovered[name], active)
        return AuthStatus(
            active_profile=name,
            profiles=[info],
            authenticated=info.credentials_valid,
            aws_cli_installed=installed,
            aws_cli_version=version,
        )


# =============================================================================
# Endpoint Reachability
# =============================================================================


@dataclass
class EndpointProbe:
    url: str
    reachable: bool
    response_time: float  # milliseconds
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "reachable": self.reachable,
            "statusCode": self.status_code,
            "responseTime": round(self.response_time, 1),
            "error": self.error,
        }


def probe_endpoint(url: str, timeout: float) -> EndpointProbe:
    """Probe ``url`` over HTTPS.

    Any HTTP response, including 4xx from an unauthenticated request,
    counts as reachable. Only transport failures do not.
    """
    start = time.perf_counter()
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=False)
        elapsed = (time.perf_counter() - start) * 1000
        return EndpointProbe(url, True, elapsed, status_code=response.status_code)
    except requests.Timeout:
        elapsed = (time.perf_counter() - start) * 1000
        return EndpointProbe(url, False, elapsed, error=f"timed out after {timeout:g}s")
    except requests.RequestException as e:
        elapsed = (time.perf_counter() - start) * 1000
        return EndpointProbe(url, False, elapsed, error=str(e))
