"""
Profile Conflict Detector

Compares discovered roles with the profiles already in the AWS config file.
A role conflicts when an existing profile already points at the same account
and role, or when the name the role would get is taken by a profile for a
different role.
"""

import logging
import threading
from typing import Dict, List, Optional

from ..aws_profiles import AWSConfigFile, Profile, ProfileLookupIndex, ResolvedSSOConfig
from ..errors import ProfileGeneratorError, ValidationError
from ..naming import NamingPattern
from ..types import DiscoveredRole
from .types import ConflictType, ProfileConflict

__all__ = ['ProfileConflictDetector']


class ProfileConflictDetector:
    """
    Detects conflicts between discovered roles and an existing config file.

    The lookup index and the resolved SSO configuration of every SSO profile
    are built once, when the detector is created.
    """

    def __init__(self, config_file: AWSConfigFile, naming_pattern: NamingPattern,
                 logger: Optional[logging.Logger] = None):
        self.config_file = config_file
        self.naming_pattern = naming_pattern
        self.logger = logger or logging.getLogger(__name__)
        self._cache_lock = threading.Lock()
        self._resolved_sso_configs: Dict[str, ResolvedSSOConfig] = {}

        self.profile_index: Optional[ProfileLookupIndex] = None
        try:
            self.profile_index = config_file.build_lookup_index()
        except ProfileGeneratorError as e:
            self.logger.warning("Could not build profile lookup index, using linear scan: %s", e)

        self._pre_resolve_sso()

    def _pre_resolve_sso(self) -> None:
        for name, profile in self.config_file.get_all_profiles().items():
            if not profile.is_sso():
                continue
            try:
                resolved = self.config_file.resolve_sso_config(profile)
            except ProfileGeneratorError as e:
                self.logger.debug("Skipping SSO resolution for profile %s: %s", name, e)
                continue
            with self._cache_lock:
                self._resolved_sso_configs[name] = resolved

    def resolved_config(self, profile_name: str) -> Optional[ResolvedSSOConfig]:
        with self._cache_lock:
            return self._resolved_sso_configs.get(profile_name)

    def _matches_role(self, profile: Profile, role: DiscoveredRole) -> bool:
        resolved = self.resolved_config(profile.name)
        if resolved is not None:
            return resolved.matches(role.account_id, role.role_name)
        # Unresolvable profiles can only match on their inline fields
        return profile.sso_account_id == role.account_id and profile.sso_role_name == role.role_name

    def detect_conflicts(self, discovered_roles: List[DiscoveredRole]) -> List[ProfileConflict]:
        """
        Analyze every role, skipping the ones that cannot be analyzed.

        Args:
            discovered_roles: Roles returned by discovery

        Returns:
            List[ProfileConflict]: Conflicts in input order
        """
        conflicts = []
        for role in discovered_roles:
            try:
                conflict = self.analyze_role(role)
            except ProfileGeneratorError as e:
                self.logger.warning("Failed to analyze role %s in account %s: %s",
                                    role.role_name, role.account_id, e)
                continue

            if conflict is not None:
                conflicts.append(conflict)

        return conflicts

    def analyze_role(self, role: DiscoveredRole) -> Optional[ProfileConflict]:
        """
        Check a single role for conflicts.

        Returns:
            The conflict, or None if the role can be created without one

        Raises:
            ValidationError: If the role or its proposed name is invalid
        """
        try:
            role.validate()
        except ValidationError as e:
            raise (ValidationError("invalid discovered role", e)
                   .with_context("account_id", role.account_id)
                   .with_context("role_name", role.role_name)) from e

        # Region is unknown until the profile is generated from the template
        try:
            proposed_name = self.naming_pattern.generate_profile_name(
                role.account_id,
                role.account_name,
                role.account_alias,
                role.role_name,
                "",
            )
        except ValidationError as e:
            raise (ValidationError("failed to generate profile name", e)
                   .with_context("account_id", role.account_id)
                   .with_context("role_name", role.role_name)
                   .with_context("pattern", self.naming_pattern.pattern)) from e

        role_matches = self._find_matching_profiles(role)
        name_conflicts = self._find_name_conflict_profiles(proposed_name, role)
        conflicting = self._combine_conflicting_profiles(role_matches, name_conflicts)

        if not conflicting:
            return None

        conflict = ProfileConflict(
            discovered_role=role,
            existing_profiles=conflicting,
            proposed_name=proposed_name,
            conflict_type=self.classify_conflict(conflicting, proposed_name, role),
        )

        try:
            conflict.validate()
        except ValidationError as e:
            raise ValidationError("invalid profile conflict", e).with_context(
                "proposed_name", proposed_name) from e

        return conflict

    def classify_conflict(self, existing_profiles: List[Profile], proposed_name: str,
                          role: DiscoveredRole) -> ConflictType:
        """Same role wins over same name."""
        if any(self._matches_role(profile, role) for profile in existing_profiles):
            return ConflictType.SAME_ROLE

        if any(profile.name == proposed_name for profile in existing_profiles):
            return ConflictType.SAME_NAME

        self.logger.warning("Unclassifiable conflict for %s (proposed name %s), treating as same role",
                            role, proposed_name)
        return ConflictType.SAME_ROLE

    def _find_matching_profiles(self, role: DiscoveredRole) -> List[Profile]:
        if self.profile_index is not None:
            candidates = self.profile_index.find_by_account(role.account_id)
        else:
            candidates = [p for p in self.config_file.get_all_profiles().values() if p.is_sso()]

        matches = []
        for profile in candidates:
            resolved = self.resolved_config(profile.name)
            if resolved is not None and resolved.matches(role.account_id, role.role_name):
                matches.append(profile)
        return matches

    def _find_name_conflict_profiles(self, proposed_name: str, role: DiscoveredRole) -> List[Profile]:
        if self.profile_index is not None:
            profile = self.profile_index.get(proposed_name)
        else:
            profile = self.config_file.get_profile(proposed_name)

        # A profile with the proposed name for the same role is a role match, not a name conflict
        if profile is None or self._matches_role(profile, role):
            return []
        return [profile]

    @staticmethod
    def _combine_conflicting_profiles(role_matches: List[Profile], name_conflicts: List[Profile]) -> List[Profile]:
        combined = []
        seen = set()
        for profile in role_matches + name_conflicts:
            if profile.name not in seen:
                seen.add(profile.name)
                combined.append(profile)
        return combined

    @staticmethod
    def generate_conflict_summary(conflicts: List[ProfileConflict]) -> str:
        """Human readable description of every conflict."""
        if not conflicts:
            return "No profile conflicts detected."

        lines = [
            f"Profile Conflicts Detected: {len(conflicts)}",
            "=====================================",
            "",
        ]
        for i, conflict in enumerate(conflicts, 1):
            role = conflict.discovered_role
            lines.append(f"Conflict {i}:")
            lines.append(f"  Proposed Profile: {conflict.proposed_name}")
            lines.append(f"  Account: {role.account_name} ({role.account_id})")
            lines.append(f"  Role: {role.role_name}")
            lines.append(f"  Conflict Type: {conflict.conflict_type}")
            lines.append("  Existing Profiles:")
            for profile in conflict.existing_profiles:
                lines.append(f"    - {profile}")
            lines.append("")

        return "\n".join(lines)
