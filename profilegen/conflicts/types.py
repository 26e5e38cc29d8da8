"""
Conflict data model.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..aws_profiles import Profile
from ..errors import ValidationError
from ..types import DiscoveredRole, GeneratedProfile

__all__ = [
    'ConflictType',
    'ConflictResolutionStrategy',
    'ActionType',
    'ProfileConflict',
    'ConflictAction',
    'ProfileReplacement',
    'ConflictResolutionResult',
]


class ConflictType(Enum):
    SAME_ROLE = "same_role"   # an existing profile already points at the account and role
    SAME_NAME = "same_name"   # the proposed name is taken by a profile for another role

    def __str__(self) -> str:
        return self.value


class ConflictResolutionStrategy(Enum):
    """How conflicts with existing profiles are handled."""
    PROMPT = "prompt"
    REPLACE = "replace"
    SKIP = "skip"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_string(cls, value: str) -> "ConflictResolutionStrategy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise (ValidationError("invalid conflict resolution strategy")
                   .with_context("strategy", value)
                   .with_context("valid_strategies", [s.value for s in cls]))


class ActionType(Enum):
    REPLACE = "replace"
    SKIP = "skip"
    CREATE = "create"

    def __str__(self) -> str:
        return self.value


@dataclass
class ProfileConflict:
    """A discovered role that collides with one or more existing profiles."""
    discovered_role: DiscoveredRole
    existing_profiles: List[Profile]
    proposed_name: str
    conflict_type: ConflictType

    def validate(self) -> None:
        self.discovered_role.validate()

        if not self.existing_profiles:
            raise ValidationError("profile conflict must have at least one existing profile").with_context(
                "proposed_name", self.proposed_name)

        if not self.proposed_name:
            raise ValidationError("proposed profile name is required")

        for profile in self.existing_profiles:
            profile.validate()

    @property
    def primary_profile(self) -> Profile:
        return self.existing_profiles[0]


@dataclass
class ConflictAction:
    """
    The action taken for one role, part of the audit trail.

    REPLACE and SKIP always carry the conflict they resolve. CREATE is used
    for roles that had no conflict.
    """
    action: ActionType
    conflict: Optional[ProfileConflict] = None
    new_name: str = ""
    old_name: str = ""

    def validate(self) -> None:
        if self.action is not ActionType.CREATE:
            if self.conflict is None:
                raise ValidationError("conflict is required").with_context("action", str(self.action))
            self.conflict.validate()

        if self.action is ActionType.REPLACE:
            if not self.new_name:
                raise ValidationError("new profile name is required for replace action").with_context(
                    "old_name", self.old_name)
            if not self.old_name:
                raise ValidationError("old profile name is required for replace action").with_context(
                    "new_name", self.new_name)
        elif self.action is ActionType.SKIP:
            if not self.old_name:
                raise ValidationError("old profile name is required for skip action")
        elif self.action is ActionType.CREATE:
            if not self.new_name:
                raise ValidationError("new profile name is required for create action")
        else:
            raise ValidationError("invalid action type").with_context("action", str(self.action))


@dataclass
class ProfileReplacement:
    """An existing profile and the generated profile that replaces it."""
    old_profile: Profile
    new_profile: GeneratedProfile

    @property
    def old_name(self) -> str:
        return self.old_profile.name

    @property
    def new_name(self) -> str:
        return self.new_profile.name

    def validate(self) -> None:
        self.old_profile.validate()
        self.new_profile.validate()


@dataclass
class ConflictResolutionResult:
    generated_profiles: List[GeneratedProfile] = field(default_factory=list)
    skipped_roles: List[DiscoveredRole] = field(default_factory=list)
    actions: List[ConflictAction] = field(default_factory=list)
    replacements: List[ProfileReplacement] = field(default_factory=list)

    def count(self, action_type: ActionType) -> int:
        return sum(1 for action in self.actions if action.action is action_type)
