"""
Conflict Resolver

Turns each detected conflict into exactly one action according to the
selected strategy. Replace generates a new profile for the role, Skip leaves
the existing profile alone, and Prompt asks a caller supplied hook which of
the two to do.
"""

import logging
from typing import Callable, Iterable, List, Optional, Set

from ..errors import ConflictResolutionError, ValidationError
from ..naming import NamingPattern, ProfileNameConflictResolver
from ..types import GeneratedProfile, TemplateProfile
from .types import (
    ActionType,
    ConflictAction,
    ConflictResolutionResult,
    ConflictResolutionStrategy,
    ProfileConflict,
    ProfileReplacement,
)

__all__ = ['ConflictResolver', 'PromptFunc']

PromptFunc = Callable[[ProfileConflict], ActionType]


class ConflictResolver:
    """
    Resolves profile conflicts with a strategy.

    Args:
        template_profile: Template whose SSO settings and region go into replacements
        naming_pattern: Pattern used to name replacement profiles
        strategy: Default strategy for :meth:`resolve`
        prompt: Callback asked for a decision per conflict under PROMPT
        existing_names: Profile names already in the config file; a
            replacement that has to be renamed avoids them
        logger: Logger for progress messages
    """

    def __init__(self, template_profile: TemplateProfile, naming_pattern: NamingPattern,
                 strategy: ConflictResolutionStrategy = ConflictResolutionStrategy.PROMPT,
                 prompt: Optional[PromptFunc] = None,
                 existing_names: Optional[Iterable[str]] = None,
                 logger: Optional[logging.Logger] = None):
        self.template_profile = template_profile
        self.naming_pattern = naming_pattern
        self.strategy = strategy
        self.prompt = prompt
        self.existing_names = list(existing_names or [])
        self.logger = logger or logging.getLogger(__name__)
        self._reset_names()

    def _reset_names(self) -> None:
        self._name_resolver = ProfileNameConflictResolver(self.existing_names)
        self._replacement_names: Set[str] = set()

    def resolve(self, conflicts: List[ProfileConflict],
                strategy: Optional[ConflictResolutionStrategy] = None) -> ConflictResolutionResult:
        """
        Resolve every conflict in input order.

        Args:
            conflicts: Conflicts from the detector
            strategy: Overrides the resolver's default strategy

        Returns:
            ConflictResolutionResult: One action per conflict

        Raises:
            ConflictResolutionError: If the strategy is unknown or a prompt
                gives an unusable answer
            ValidationError: If a replacement profile cannot be generated
        """
        strategy = strategy or self.strategy
        result = ConflictResolutionResult()
        self._reset_names()

        for conflict in conflicts:
            action_type = self._choose_action(conflict, strategy)
            self.apply_action(conflict, action_type, result)

        self.logger.info("Resolved %d conflicts with strategy %s", len(conflicts), strategy)
        return result

    def _choose_action(self, conflict: ProfileConflict, strategy: ConflictResolutionStrategy) -> ActionType:
        if strategy is ConflictResolutionStrategy.REPLACE:
            return ActionType.REPLACE
        if strategy is ConflictResolutionStrategy.SKIP:
            return ActionType.SKIP
        if strategy is not ConflictResolutionStrategy.PROMPT:
            raise ConflictResolutionError("unknown conflict resolution strategy").with_context(
                "strategy", str(strategy))

        if self.prompt is None:
            raise ConflictResolutionError("prompt strategy requires an interactive prompt").with_context(
                "proposed_name", conflict.proposed_name)

        answer = self.prompt(conflict)
        if answer not in (ActionType.REPLACE, ActionType.SKIP):
            raise (ConflictResolutionError("prompt must answer replace or skip")
                   .with_context("proposed_name", conflict.proposed_name)
                   .with_context("answer", str(answer)))
        return answer

    def apply_action(self, conflict: ProfileConflict, action_type: ActionType,
                     result: ConflictResolutionResult) -> None:
        """
        Record the outcome of one conflict on ``result``.

        A replacement never reuses a name an earlier replacement took. When
        the replacement name belongs to another existing profile of the
        conflict, that profile is recorded as replaced too.

        Raises:
            ConflictResolutionError: If ``action_type`` is neither REPLACE nor SKIP
        """
        old_name = conflict.primary_profile.name

        if action_type is ActionType.REPLACE:
            profile = self._generate_replacement(conflict)
            result.generated_profiles.append(profile)
            result.replacements.append(ProfileReplacement(old_profile=conflict.primary_profile,
                                                          new_profile=profile))
            for existing in conflict.existing_profiles[1:]:
                if existing.name == profile.name:
                    self.logger.warning("Existing profile %s is overwritten by the replacement for %s",
                                        existing.name, conflict.discovered_role)
                    result.replacements.append(ProfileReplacement(old_profile=existing, new_profile=profile))
            result.actions.append(ConflictAction(conflict=conflict, action=ActionType.REPLACE,
                                                 new_name=profile.name, old_name=old_name))
            self.logger.debug("Replacing profile %s with %s", old_name, profile.name)
        elif action_type is ActionType.SKIP:
            result.skipped_roles.append(conflict.discovered_role)
            result.actions.append(ConflictAction(conflict=conflict, action=ActionType.SKIP,
                                                 old_name=old_name))
            self.logger.debug("Keeping existing profile %s", old_name)
        else:
            raise ConflictResolutionError("unsupported conflict action").with_context(
                "action", str(action_type))

    def _generate_replacement(self, conflict: ProfileConflict) -> GeneratedProfile:
        role = conflict.discovered_role
        try:
            name = self.naming_pattern.generate_profile_name(
                role.account_id,
                role.account_name,
                role.account_alias,
                role.role_name,
                self.template_profile.region,
            )
        except ValidationError as e:
            raise (ValidationError("failed to generate replacement profile name", e)
                   .with_context("account_id", role.account_id)
                   .with_context("role_name", role.role_name)
                   .with_context("pattern", self.naming_pattern.pattern)) from e

        for existing in conflict.existing_profiles:
            self._name_resolver.claim(existing.name)

        if name in self._replacement_names:
            unique_name = self._name_resolver.resolve(name)
            self.logger.warning("Replacement name %s is already used in this run, using %s",
                                name, unique_name)
            name = unique_name
        else:
            self._name_resolver.claim(name)
        self._replacement_names.add(name)

        profile = GeneratedProfile.for_role(name, role, self.template_profile)
        profile.validate()
        return profile

    @staticmethod
    def generate_conflict_report(conflicts: List[ProfileConflict], result: ConflictResolutionResult,
                                 strategy: ConflictResolutionStrategy) -> str:
        """Render what happened to each conflict."""
        if not conflicts:
            return "No conflicts to resolve."

        lines = [
            "Conflict Resolution Report",
            "==========================",
            f"Total Conflicts: {len(conflicts)}",
            f"Resolution Strategy: {strategy}",
            "",
            "Actions Taken:",
            f"  Replace: {result.count(ActionType.REPLACE)}",
            f"  Skip: {result.count(ActionType.SKIP)}",
            f"  Create: {result.count(ActionType.CREATE)}",
        ]

        if result.replacements:
            lines.append("")
            lines.append("Profile Replacements:")
            for replacement in result.replacements:
                lines.append(f"  {replacement.old_name} -> {replacement.new_name}")

        if result.skipped_roles:
            lines.append("")
            lines.append("Skipped Roles:")
            for role in result.skipped_roles:
                lines.append(f"  {role}")

        return "\n".join(lines) + "\n"
