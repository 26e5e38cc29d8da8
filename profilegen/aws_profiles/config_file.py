"""
AWS Config File

This module reads the AWS CLI config file, normalises the two ways an SSO
profile can be written (inline ``sso_*`` keys or a reference to an
``[sso-session]`` section) and provides lookup indices used by conflict
detection. It also writes generated profiles back to the file.
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import FileSystemError, ValidationError
from ..types import GeneratedProfile

__all__ = [
    'Profile',
    'SSOSession',
    'ResolvedSSOConfig',
    'ProfileLookupIndex',
    'AWSConfigFile',
]

logger = logging.getLogger(__name__)

_PROFILE_PREFIX = "profile "
_SSO_SESSION_PREFIX = "sso-session "
_KNOWN_KEYS = (
    "region",
    "sso_start_url",
    "sso_region",
    "sso_account_id",
    "sso_role_name",
    "sso_session",
    "output",
)


def _get_aws_config_path() -> Path:
    """Get the path to the AWS config file, honouring AWS_CONFIG_FILE."""
    env_path = os.environ.get("AWS_CONFIG_FILE")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".aws" / "config"


@dataclass
class SSOSession:
    """An ``[sso-session NAME]`` section."""
    name: str
    sso_start_url: str = ""
    sso_region: str = ""

    def validate(self) -> None:
        if not self.name:
            raise ValidationError("SSO session name is required")
        if not self.sso_start_url:
            raise ValidationError("SSO start URL is required").with_context("session_name", self.name)
        if not self.sso_region:
            raise ValidationError("SSO region is required").with_context("session_name", self.name)


@dataclass(frozen=True)
class ResolvedSSOConfig:
    """The effective SSO identity of a profile."""
    start_url: str
    region: str
    account_id: str
    role_name: str

    def matches(self, account_id: str, role_name: str) -> bool:
        return self.account_id == account_id and self.role_name == role_name

    def key(self) -> str:
        return f"{self.start_url}|{self.region}|{self.account_id}|{self.role_name}"


@dataclass
class Profile:
    """A profile section of the AWS config file."""
    name: str
    region: str = ""
    sso_start_url: str = ""
    sso_region: str = ""
    sso_account_id: str = ""
    sso_role_name: str = ""
    sso_session: str = ""
    output: str = ""
    other_properties: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        if not self.name:
            raise ValidationError("profile name is required")

    def is_sso(self) -> bool:
        """True for legacy inline SSO profiles and for sso-session profiles."""
        if self.sso_start_url and self.sso_region:
            return True
        return bool(self.sso_session and self.sso_account_id and self.sso_role_name)

    def is_legacy_sso(self) -> bool:
        return self.is_sso() and not self.sso_session and bool(self.sso_account_id and self.sso_role_name)

    def section_name(self) -> str:
        return "default" if self.name == "default" else f"{_PROFILE_PREFIX}{self.name}"

    def to_config_string(self) -> str:
        lines = [f"[{self.section_name()}]"]
        for key in _KNOWN_KEYS:
            value = getattr(self, key)
            if value:
                lines.append(f"{key} = {value}")
        for key, value in self.other_properties.items():
            lines.append(f"{key} = {value}")
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        if self.sso_account_id and self.sso_role_name:
            return f"{self.name} (Account: {self.sso_account_id}, Role: {self.sso_role_name})"
        return self.name


class ProfileLookupIndex:
    """Constant time lookups of profiles by name, SSO identity, account and role."""

    def __init__(self):
        self.by_name: Dict[str, Profile] = {}
        self.by_sso: Dict[str, List[Profile]] = {}
        self.by_account: Dict[str, List[Profile]] = {}
        self.by_role: Dict[str, List[Profile]] = {}

    def add(self, profile: Profile, resolved: Optional[ResolvedSSOConfig] = None) -> None:
        self.by_name[profile.name] = profile
        if resolved is None:
            return
        self.by_sso.setdefault(resolved.key(), []).append(profile)
        self.by_account.setdefault(resolved.account_id, []).append(profile)
        self.by_role.setdefault(resolved.role_name, []).append(profile)

    def get(self, name: str) -> Optional[Profile]:
        return self.by_name.get(name)

    def has_name(self, name: str) -> bool:
        return name in self.by_name

    def find_by_account(self, account_id: str) -> List[Profile]:
        return list(self.by_account.get(account_id, []))

    def find_by_role(self, role_name: str) -> List[Profile]:
        return list(self.by_role.get(role_name, []))

    def find_by_sso(self, start_url: str, region: str, account_id: str, role_name: str) -> List[Profile]:
        key = ResolvedSSOConfig(start_url, region, account_id, role_name).key()
        return list(self.by_sso.get(key, []))


class AWSConfigFile:
    """
    Profiles and SSO sessions parsed from an AWS config file.

    Use :meth:`load` to read a file; a missing file gives an empty store.
    """

    def __init__(self, file_path: Optional[Path] = None,
                 profiles: Optional[Dict[str, Profile]] = None,
                 sessions: Optional[Dict[str, SSOSession]] = None):
        self.file_path = Path(file_path) if file_path else _get_aws_config_path()
        self.profiles: Dict[str, Profile] = dict(profiles or {})
        self.sessions: Dict[str, SSOSession] = dict(sessions or {})
        self._parser = configparser.RawConfigParser()

    @classmethod
    def load(cls, file_path: Optional[Path] = None) -> "AWSConfigFile":
        """
        Load an AWS config file.

        Args:
            file_path: Path to the file; defaults to AWS_CONFIG_FILE or ~/.aws/config

        Returns:
            AWSConfigFile: Parsed profiles and sessions

        Raises:
            FileSystemError: If the file exists but cannot be read or parsed
        """
        config_file = cls(file_path)
        path = config_file.file_path
        if not path.exists():
            logger.debug("AWS config file %s does not exist, starting empty", path)
            return config_file

        try:
            with open(path, "r") as f:
                config_file._parser.read_file(f)
        except OSError as e:
            raise FileSystemError("failed to read AWS config file", e).with_context("file_path", str(path))
        except configparser.Error as e:
            raise FileSystemError("failed to parse AWS config file", e).with_context("file_path", str(path))

        config_file._load_sections()
        return config_file

    def _load_sections(self) -> None:
        for section in self._parser.sections():
            options = dict(self._parser.items(section))

            if section.startswith(_SSO_SESSION_PREFIX):
                name = section[len(_SSO_SESSION_PREFIX):].strip()
                self.sessions[name] = SSOSession(
                    name=name,
                    sso_start_url=options.get("sso_start_url", ""),
                    sso_region=options.get("sso_region", ""),
                )
                continue

            if section == "default":
                name = "default"
            elif section.startswith(_PROFILE_PREFIX):
                name = section[len(_PROFILE_PREFIX):].strip()
            else:
                # Not a profile (services, plugins, ...)
                continue

            known = {key: options.pop(key, "") for key in _KNOWN_KEYS}
            self.profiles[name] = Profile(name=name, other_properties=options, **known)

    def get_all_profiles(self) -> Dict[str, Profile]:
        return dict(self.profiles)

    def get_all_sessions(self) -> Dict[str, SSOSession]:
        return dict(self.sessions)

    def get_profile(self, name: str) -> Optional[Profile]:
        return self.profiles.get(name)

    def has_profile(self, name: str) -> bool:
        return name in self.profiles

    def get_profile_names(self) -> List[str]:
        return list(self.profiles)

    def resolve_sso_session(self, session_name: str) -> SSOSession:
        if not session_name:
            raise ValidationError("SSO session name cannot be empty")

        session = self.sessions.get(session_name)
        if session is None:
            raise ValidationError("SSO session not found").with_context("session_name", session_name)
        return session

    def resolve_sso_config(self, profile: Profile) -> ResolvedSSOConfig:
        """
        Normalise a profile's SSO settings regardless of format.

        Raises:
            ValidationError: If the profile has no usable SSO configuration or
                references an unknown sso-session
        """
        if profile.sso_start_url and profile.sso_account_id and profile.sso_role_name:
            return ResolvedSSOConfig(
                start_url=profile.sso_start_url,
                region=profile.sso_region,
                account_id=profile.sso_account_id,
                role_name=profile.sso_role_name,
            )

        if profile.sso_session:
            session = self.resolve_sso_session(profile.sso_session)
            return ResolvedSSOConfig(
                start_url=session.sso_start_url,
                region=session.sso_region,
                account_id=profile.sso_account_id,
                role_name=profile.sso_role_name,
            )

        raise ValidationError("profile does not have valid SSO configuration").with_context(
            "profile_name", profile.name)

    def matches_role(self, profile: Profile, account_id: str, role_name: str, start_url: str = "") -> bool:
        """
        Check whether a profile points at the given account and role.

        ``start_url`` is only compared when given.
        """
        try:
            resolved = self.resolve_sso_config(profile)
        except ValidationError:
            return False

        if start_url and resolved.start_url != start_url:
            return False
        return resolved.matches(account_id, role_name)

    def build_lookup_index(self) -> ProfileLookupIndex:
        """Index every profile by name and every resolvable SSO profile by identity."""
        index = ProfileLookupIndex()
        for profile in self.profiles.values():
            resolved = None
            if profile.is_sso():
                try:
                    resolved = self.resolve_sso_config(profile)
                except ValidationError as e:
                    logger.debug("Not indexing SSO identity of profile %s: %s", profile.name, e)
            index.add(profile, resolved)
        return index

    def find_duplicate_profiles(self) -> Dict[str, List[Profile]]:
        """Group profiles that resolve to the same SSO identity."""
        groups: Dict[str, List[Profile]] = {}
        for profile in self.profiles.values():
            if not profile.is_sso():
                continue
            try:
                resolved = self.resolve_sso_config(profile)
            except ValidationError:
                continue
            groups.setdefault(resolved.key(), []).append(profile)
        return {key: profiles for key, profiles in groups.items() if len(profiles) > 1}

    def remove_profile(self, name: str) -> None:
        profile = self.profiles.pop(name, None)
        if profile is None:
            raise ValidationError("profile not found").with_context("profile_name", name)
        self._parser.remove_section(profile.section_name())

    def append_profiles(self, profiles: Iterable[GeneratedProfile]) -> None:
        """
        Add generated profiles and write the file.

        A generated profile with the same name as an existing one replaces it.
        """
        for generated in profiles:
            generated.validate()
            options = generated.to_config_options()
            profile = Profile(name=generated.name, **options)
            section = profile.section_name()
            if self._parser.has_section(section):
                self._parser.remove_section(section)
            self._parser.add_section(section)
            for key, value in options.items():
                self._parser.set(section, key, value)
            self.profiles[generated.name] = profile

        self.write()

    def write(self) -> None:
        """Write all sections back to ``file_path``."""
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "w") as f:
                self._parser.write(f)
        except OSError as e:
            raise FileSystemError("failed to write AWS config file", e).with_context(
                "file_path", str(self.file_path))

    def sections(self) -> Tuple[str, ...]:
        return tuple(self._parser.sections())
