"""
Profile Generator

Runs the whole generation workflow for one template profile: discover the
roles its SSO session can reach, detect conflicts with the config file,
resolve them, name the remaining roles and optionally write everything back.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config

from .aws_profiles import AWSConfigFile
from .conflicts import (
    ActionType,
    ConflictAction,
    ConflictResolutionResult,
    ConflictResolutionStrategy,
    ConflictResolver,
    ProfileConflict,
    ProfileConflictDetector,
    ProfileReplacement,
    PromptFunc,
)
from .discovery import RoleDiscovery, SSOTokenCache
from .errors import APIError, ProfileGeneratorError, ValidationError
from .naming import DEFAULT_PATTERN, NamingPattern, ProfileNameConflictResolver
from .types import DiscoveredRole, GeneratedProfile, TemplateProfile

__all__ = ['ProfileGenerator', 'ProfileGenerationResult', 'DEFAULT_MAX_ATTEMPTS']

DEFAULT_MAX_ATTEMPTS = 3
CONNECT_TIMEOUT = 10
READ_TIMEOUT = 30


@dataclass
class ProfileGenerationResult:
    """Everything a workflow run produced, including errors."""
    template_profile: Optional[TemplateProfile] = None
    discovered_roles: List[DiscoveredRole] = field(default_factory=list)
    generated_profiles: List[GeneratedProfile] = field(default_factory=list)
    detected_conflicts: List[ProfileConflict] = field(default_factory=list)
    resolution_actions: List[ConflictAction] = field(default_factory=list)
    replaced_profiles: List[ProfileReplacement] = field(default_factory=list)
    skipped_roles: List[DiscoveredRole] = field(default_factory=list)
    errors: List[ProfileGeneratorError] = field(default_factory=list)
    written: bool = False

    def has_errors(self) -> bool:
        return bool(self.errors)

    def count(self, action_type: ActionType) -> int:
        return sum(1 for action in self.resolution_actions if action.action is action_type)

    def progress_info(self) -> Dict[str, Any]:
        return {
            "discovered_roles": len(self.discovered_roles),
            "detected_conflicts": len(self.detected_conflicts),
            "generated_profiles": len(self.generated_profiles),
            "replaced_profiles": len(self.replaced_profiles),
            "skipped_roles": len(self.skipped_roles),
            "created_profiles": self.count(ActionType.CREATE),
            "errors": len(self.errors),
        }

    def summary(self) -> str:
        """Short human readable summary of the run."""
        lines = ["Profile Generation Summary", "=========================="]
        if self.template_profile is not None:
            lines.append(f"Template Profile: {self.template_profile.name}")
        lines.append(f"Discovered Roles: {len(self.discovered_roles)}")
        lines.append(f"Conflicts Detected: {len(self.detected_conflicts)}")
        lines.append(f"Profiles Generated: {len(self.generated_profiles)}")
        lines.append(f"  New: {self.count(ActionType.CREATE)}")
        lines.append(f"  Replaced: {self.count(ActionType.REPLACE)}")
        lines.append(f"Roles Skipped: {len(self.skipped_roles)}")
        lines.append(f"Written To Config: {'yes' if self.written else 'no'}")

        if self.errors:
            lines.append("")
            lines.append("Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        return "\n".join(lines) + "\n"


class ProfileGenerator:
    """
    Generates AWS CLI profiles for every role reachable from a template profile.

    AWS clients are created on first use unless they are passed in.

    Args:
        template_profile: Name of the SSO profile to copy settings from
        naming_pattern: Pattern for new profile names
        auto_approve: Write profiles without asking
        config_path: Config file to read and write; defaults to ~/.aws/config
        conflict_strategy: How conflicts with existing profiles are handled
        prompt: Decision callback used by the PROMPT strategy
        max_attempts: Discovery attempts before giving up
        boto_session: boto3 session used to build clients
        sso_client: Pre-built ``sso`` client
        iam_client: Optional ``iam`` client for account alias lookups
        token_cache: SSO token cache; defaults to ~/.aws/sso/cache
        logger: Logger for progress messages
        sleep: Function used to wait between discovery retries
    """

    def __init__(self, template_profile: str,
                 naming_pattern: str = DEFAULT_PATTERN,
                 auto_approve: bool = False,
                 config_path: Optional[Path] = None,
                 conflict_strategy: ConflictResolutionStrategy = ConflictResolutionStrategy.PROMPT,
                 prompt: Optional[PromptFunc] = None,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 boto_session: Optional[boto3.Session] = None,
                 sso_client=None,
                 iam_client=None,
                 token_cache: Optional[SSOTokenCache] = None,
                 logger: Optional[logging.Logger] = None,
                 sleep: Callable[[float], None] = time.sleep):
        if not template_profile:
            raise ValidationError("template profile name is required")

        self.template_profile_name = template_profile
        self.naming_pattern = NamingPattern(naming_pattern or DEFAULT_PATTERN)
        self.auto_approve = auto_approve
        self.config_path = Path(config_path) if config_path else None
        self.conflict_strategy = conflict_strategy
        self.prompt = prompt
        self.max_attempts = max_attempts
        self.logger = logger or logging.getLogger(__name__)

        self._boto_session = boto_session
        self._sso_client = sso_client
        self._iam_client = iam_client
        self._sleep = sleep
        self.token_cache = token_cache or SSOTokenCache(logger=self.logger)

        self._config_file: Optional[AWSConfigFile] = None
        self._role_discovery: Optional[RoleDiscovery] = None
        self.template: Optional[TemplateProfile] = None
        self.last_result: Optional[ProfileGenerationResult] = None

    @property
    def config_file(self) -> AWSConfigFile:
        if self._config_file is None:
            self._config_file = AWSConfigFile.load(self.config_path)
        return self._config_file

    def _get_role_discovery(self, template: TemplateProfile) -> RoleDiscovery:
        if self._role_discovery is None:
            if self._sso_client is None:
                session = self._boto_session or boto3.Session()
                client_config = Config(connect_timeout=CONNECT_TIMEOUT, read_timeout=READ_TIMEOUT)
                self._sso_client = session.client("sso", region_name=template.sso_region, config=client_config)
            self._role_discovery = RoleDiscovery(
                self._sso_client,
                iam_client=self._iam_client,
                token_cache=self.token_cache,
                logger=self.logger,
                sleep=self._sleep,
            )
        return self._role_discovery

    def validate_template_profile(self) -> TemplateProfile:
        """
        Load the template profile and check it is a complete SSO profile.

        Returns:
            TemplateProfile: The template with session settings filled in

        Raises:
            ValidationError: If the profile is missing or not usable as a template
            FileSystemError: If the config file cannot be read
        """
        profile = self.config_file.get_profile(self.template_profile_name)
        if profile is None:
            raise (ValidationError("template profile not found")
                   .with_context("profile_name", self.template_profile_name)
                   .with_context("config_file", str(self.config_file.file_path)))

        session = None
        if profile.sso_session:
            session = self.config_file.resolve_sso_session(profile.sso_session)

        template = TemplateProfile.from_profile(profile, session)
        template.validate()
        self.template = template
        return template

    def discover_roles(self, template: TemplateProfile) -> List[DiscoveredRole]:
        """
        Discover every role the template's SSO session can reach.

        Raises:
            AuthError: If there is no valid cached token
            APIError: If discovery fails or finds nothing
        """
        self.token_cache.validate_profile_token(template)

        discovery = self._get_role_discovery(template)
        roles = discovery.discover_roles_with_retry(
            template.sso_start_url,
            template.sso_region,
            max_attempts=self.max_attempts,
            session_name=template.sso_session or None,
        )

        if not roles:
            raise (APIError("no accessible roles found")
                   .with_context("start_url", template.sso_start_url)
                   .with_context("profile_name", template.name))

        return roles

    def detect_profile_conflicts(self, roles: List[DiscoveredRole]) -> List[ProfileConflict]:
        detector = ProfileConflictDetector(self.config_file, self.naming_pattern, logger=self.logger)
        conflicts = detector.detect_conflicts(roles)
        self.logger.info("Detected %d conflicts for %d roles", len(conflicts), len(roles))
        return conflicts

    @staticmethod
    def filter_roles_by_conflicts(roles: List[DiscoveredRole], conflicts: List[ProfileConflict]
                                  ) -> Tuple[List[DiscoveredRole], List[DiscoveredRole]]:
        """
        Split roles into the ones that have a conflict and the ones that don't.

        Returns:
            Tuple of (conflicted roles, non-conflicted roles), each in input order
        """
        conflicted_keys = {conflict.discovered_role.key for conflict in conflicts}
        conflicted = [role for role in roles if role.key in conflicted_keys]
        non_conflicted = [role for role in roles if role.key not in conflicted_keys]
        return conflicted, non_conflicted

    def resolve_conflicts(self, conflicts: List[ProfileConflict],
                          template: TemplateProfile) -> ConflictResolutionResult:
        resolver = ConflictResolver(
            template,
            self.naming_pattern,
            strategy=self.conflict_strategy,
            prompt=self.prompt,
            existing_names=self.config_file.get_profile_names(),
            logger=self.logger,
        )
        return resolver.resolve(conflicts)

    def generate_profiles_for_non_conflicted_roles(self, roles: List[DiscoveredRole],
                                                   template: TemplateProfile,
                                                   resolution: Optional[ConflictResolutionResult] = None
                                                   ) -> Tuple[List[GeneratedProfile], List[ConflictAction]]:
        """
        Name and build profiles for roles without conflicts.

        Names are made unique against the config file and against the names
        already taken by replacements.

        Returns:
            Tuple of (generated profiles, CREATE actions)

        Raises:
            ValidationError: If a name cannot be generated for a role
        """
        name_resolver = ProfileNameConflictResolver(self.config_file.get_profile_names())
        if resolution is not None:
            for profile in resolution.generated_profiles:
                name_resolver.claim(profile.name)

        profiles = []
        actions = []
        for role in roles:
            try:
                desired = self.naming_pattern.generate_profile_name(
                    role.account_id,
                    role.account_name,
                    role.account_alias,
                    role.role_name,
                    template.region,
                )
            except ValidationError as e:
                raise (ValidationError("failed to generate profile name", e)
                       .with_context("account_id", role.account_id)
                       .with_context("role_name", role.role_name)
                       .with_context("pattern", self.naming_pattern.pattern)) from e

            name = name_resolver.resolve(desired)
            if name != desired:
                self.logger.info("Profile name %s is taken, using %s", desired, name)

            profile = GeneratedProfile.for_role(name, role, template)
            profile.validate()
            profiles.append(profile)
            actions.append(ConflictAction(action=ActionType.CREATE, new_name=name))

        return profiles, actions

    @staticmethod
    def preview_profiles(profiles: List[GeneratedProfile]) -> str:
        if not profiles:
            return "No profiles to generate."
        return "\n".join(profile.to_config_string() for profile in profiles)

    def write_profiles(self, profiles: List[GeneratedProfile],
                       replacements: Optional[List[ProfileReplacement]] = None) -> None:
        """
        Write generated profiles to the config file.

        Replaced profiles are removed first when their name changed; a
        replacement with the same name overwrites the section in place.

        Raises:
            FileSystemError: If the config file cannot be written
        """
        for replacement in replacements or []:
            if replacement.old_name != replacement.new_name and self.config_file.has_profile(replacement.old_name):
                self.logger.info("Removing replaced profile %s", replacement.old_name)
                self.config_file.remove_profile(replacement.old_name)

        self.config_file.append_profiles(profiles)
        self.logger.info("Wrote %d profiles to %s", len(profiles), self.config_file.file_path)

    def generate_profiles_workflow(self) -> ProfileGenerationResult:
        """
        Run validation, discovery, conflict handling and generation.

        Profiles are only written when ``auto_approve`` is set; otherwise the
        caller can inspect the result and call :meth:`write_profiles`.

        Returns:
            ProfileGenerationResult: The outcome of the run

        Raises:
            ProfileGeneratorError: The first error of any phase, after it has
                been recorded on ``last_result``
        """
        result = ProfileGenerationResult()
        self.last_result = result

        try:
            template = self.validate_template_profile()
            result.template_profile = template

            roles = self.discover_roles(template)
            result.discovered_roles = roles

            conflicts = self.detect_profile_conflicts(roles)
            result.detected_conflicts = conflicts

            _, non_conflicted = self.filter_roles_by_conflicts(roles, conflicts)

            resolution = self.resolve_conflicts(conflicts, template)
            created, create_actions = self.generate_profiles_for_non_conflicted_roles(
                non_conflicted, template, resolution)

            result.generated_profiles = resolution.generated_profiles + created
            result.resolution_actions = resolution.actions + create_actions
            result.replaced_profiles = resolution.replacements
            result.skipped_roles = resolution.skipped_roles

            if self.auto_approve and result.generated_profiles:
                self.write_profiles(result.generated_profiles, result.replaced_profiles)
                result.written = True
        except ProfileGeneratorError as e:
            result.errors.append(e)
            raise

        return result

    def generate_conflict_report(self, result: ProfileGenerationResult) -> str:
        resolution = ConflictResolutionResult(
            generated_profiles=result.generated_profiles,
            skipped_roles=result.skipped_roles,
            actions=result.resolution_actions,
            replacements=result.replaced_profiles,
        )
        return ConflictResolver.generate_conflict_report(
            result.detected_conflicts, resolution, self.conflict_strategy)
