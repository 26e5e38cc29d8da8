"""
Core data types shared by discovery, conflict detection and generation.
"""

import re
from dataclasses import dataclass
from typing import Dict

from .errors import ValidationError

__all__ = [
    'ACCOUNT_ID_PATTERN',
    'DiscoveredRole',
    'TemplateProfile',
    'GeneratedProfile',
]

ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")


@dataclass(frozen=True)
class DiscoveredRole:
    """A role reachable through SSO for one account."""
    account_id: str
    role_name: str
    account_name: str = ""
    account_alias: str = ""
    permission_set_name: str = ""
    permission_set_arn: str = ""

    def __post_init__(self):
        # Display fallbacks
        if not self.account_name:
            object.__setattr__(self, "account_name", self.account_id)
        if not self.account_alias:
            object.__setattr__(self, "account_alias", self.account_id)
        if not self.permission_set_name:
            object.__setattr__(self, "permission_set_name", self.role_name)

    @property
    def key(self):
        return (self.account_id, self.role_name)

    def validate(self) -> None:
        """
        Check required fields and the 12 digit account id format.

        Raises:
            ValidationError: If the role is malformed
        """
        if not self.account_id:
            raise ValidationError("account ID is required")

        if not self.role_name:
            raise ValidationError("role name is required").with_context(
                "account_id", self.account_id)

        if not ACCOUNT_ID_PATTERN.match(self.account_id):
            raise ValidationError("invalid account ID format").with_context(
                "account_id", self.account_id)

    def __str__(self) -> str:
        return f"{self.role_name} in {self.account_name} ({self.account_id})"


@dataclass
class TemplateProfile:
    """The SSO profile whose connection settings are copied into generated profiles."""
    name: str
    region: str = ""
    sso_start_url: str = ""
    sso_region: str = ""
    sso_session: str = ""
    sso_account_id: str = ""
    sso_role_name: str = ""
    is_sso: bool = False

    @classmethod
    def from_profile(cls, profile, session=None) -> "TemplateProfile":
        """
        Build a template from a config file profile.

        Args:
            profile: Profile loaded from the AWS config file
            session: Optional SSOSession the profile references; supplies the
                start URL and SSO region for session-format profiles
        """
        start_url = profile.sso_start_url
        sso_region = profile.sso_region
        if session is not None:
            start_url = start_url or session.sso_start_url
            sso_region = sso_region or session.sso_region

        return cls(
            name=profile.name,
            region=profile.region,
            sso_start_url=start_url,
            sso_region=sso_region,
            sso_session=profile.sso_session,
            sso_account_id=profile.sso_account_id,
            sso_role_name=profile.sso_role_name,
            is_sso=profile.is_sso(),
        )

    def is_legacy_format(self) -> bool:
        return not self.sso_session and bool(self.sso_account_id) and bool(self.sso_role_name)

    def validate(self) -> None:
        if not self.name:
            raise ValidationError("template profile name is required")

        if not self.is_sso:
            raise ValidationError("template profile must be an SSO profile").with_context(
                "profile_name", self.name)

        if not self.sso_start_url:
            raise ValidationError("SSO start URL is required").with_context(
                "profile_name", self.name)

        if not self.sso_region:
            raise ValidationError("SSO region is required").with_context(
                "profile_name", self.name)

        if not self.sso_session and not (self.sso_account_id and self.sso_role_name):
            raise ValidationError(
                "SSO session or account ID and role name are required"
            ).with_context("profile_name", self.name)


@dataclass
class GeneratedProfile:
    """A profile produced for one discovered role, ready for the config file."""
    name: str
    account_id: str
    role_name: str
    account_name: str = ""
    region: str = ""
    sso_start_url: str = ""
    sso_region: str = ""
    sso_session: str = ""
    sso_account_id: str = ""
    sso_role_name: str = ""
    is_legacy: bool = False

    @classmethod
    def for_role(cls, name: str, role: DiscoveredRole, template: TemplateProfile) -> "GeneratedProfile":
        """Create the profile for ``role`` using the template's SSO settings."""
        return cls(
            name=name,
            account_id=role.account_id,
            account_name=role.account_name,
            role_name=role.role_name,
            region=template.region,
            sso_start_url=template.sso_start_url,
            sso_region=template.sso_region,
            sso_session="" if template.is_legacy_format() else template.sso_session,
            sso_account_id=role.account_id,
            sso_role_name=role.role_name,
            is_legacy=template.is_legacy_format(),
        )

    def validate(self) -> None:
        if not self.name:
            raise ValidationError("generated profile name is required")

        for field_name, message in (
            ("account_id", "account ID is required"),
            ("role_name", "role name is required"),
            ("sso_start_url", "SSO start URL is required"),
            ("sso_region", "SSO region is required"),
        ):
            if not getattr(self, field_name):
                raise ValidationError(message).with_context("profile_name", self.name)

        if self.is_legacy and self.sso_session:
            raise ValidationError("legacy profile cannot have SSO session").with_context(
                "profile_name", self.name)

        if not self.is_legacy and not self.sso_session:
            raise ValidationError("new format profile requires SSO session").with_context(
                "profile_name", self.name)

    def to_config_options(self) -> Dict[str, str]:
        """Return the key/value pairs of the profile section in write order."""
        options = {}
        if self.region:
            options["region"] = self.region
        if self.is_legacy:
            options["sso_start_url"] = self.sso_start_url
            options["sso_region"] = self.sso_region
        else:
            options["sso_session"] = self.sso_session
        options["sso_account_id"] = self.sso_account_id
        options["sso_role_name"] = self.sso_role_name
        return options

    def to_config_string(self) -> str:
        """Render the profile in AWS config file format."""
        lines = [f"[profile {self.name}]"]
        lines.extend(f"{key} = {value}" for key, value in self.to_config_options().items())
        return "\n".join(lines) + "\n"
