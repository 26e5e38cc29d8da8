"""
Profile Naming Patterns

A naming pattern is a template such as ``{account_name}-{role_name}`` that
turns a discovered role into a profile name. Only a fixed set of
placeholders is recognised and the output is always safe to use as an AWS
config file section name.
"""

import re
from typing import Dict, List, Optional, Tuple

from ..errors import ValidationError

__all__ = [
    'ACCOUNT_ID_PLACEHOLDER',
    'ACCOUNT_NAME_PLACEHOLDER',
    'ACCOUNT_ALIAS_PLACEHOLDER',
    'ROLE_NAME_PLACEHOLDER',
    'REGION_PLACEHOLDER',
    'DEFAULT_PATTERN',
    'NamingPattern',
    'compile_pattern',
    'sanitize_profile_name',
    'get_supported_placeholders',
    'preview_pattern',
]

ACCOUNT_ID_PLACEHOLDER = "{account_id}"
ACCOUNT_NAME_PLACEHOLDER = "{account_name}"
ACCOUNT_ALIAS_PLACEHOLDER = "{account_alias}"
ROLE_NAME_PLACEHOLDER = "{role_name}"
REGION_PLACEHOLDER = "{region}"

DEFAULT_PATTERN = "{account_name}-{role_name}"

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*\s]')
_PLACEHOLDER = re.compile(r"\{[^}]+\}")
_MULTIPLE_UNDERSCORES = re.compile(r"_+")

# Sample accounts used to preview a pattern
_SAMPLE_ROLES = [
    ("123456789012", "production", "prod", "PowerUserAccess", "us-east-1"),
    ("210987654321", "development", "dev", "ReadOnlyAccess", "us-west-2"),
    ("555666777888", "staging", "stage", "Administrator", "eu-west-1"),
]


def get_supported_placeholders() -> List[str]:
    """Return the placeholders a naming pattern may use."""
    return [
        ACCOUNT_ID_PLACEHOLDER,
        ACCOUNT_NAME_PLACEHOLDER,
        ACCOUNT_ALIAS_PLACEHOLDER,
        ROLE_NAME_PLACEHOLDER,
        REGION_PLACEHOLDER,
    ]


def sanitize_profile_name(name: str) -> str:
    """
    Make a string safe for use as a profile name.

    Invalid characters become underscores, runs of underscores are collapsed
    and leading/trailing underscores are removed.

    Args:
        name: Raw name

    Returns:
        str: Sanitized name (may be empty)
    """
    sanitized = _INVALID_CHARS.sub("_", name)
    sanitized = _MULTIPLE_UNDERSCORES.sub("_", sanitized)
    return sanitized.strip("_")


class NamingPattern:
    """A validated profile naming pattern."""

    __slots__ = ("_pattern", "_placeholders")

    def __init__(self, pattern: str):
        """
        Validate and wrap a naming pattern.

        Args:
            pattern: Template string, e.g. "{account_name}-{role_name}"

        Raises:
            ValidationError: If the pattern is empty, contains characters that
                are not allowed in a profile name, uses an unknown placeholder
                or has no placeholder at all
        """
        self._placeholders: Tuple[str, ...] = self._validate(pattern)
        self._pattern = pattern

    @property
    def pattern(self) -> str:
        return self._pattern

    @property
    def placeholders(self) -> Tuple[str, ...]:
        return self._placeholders

    def __setattr__(self, name, value):
        if hasattr(self, "_pattern"):
            raise AttributeError("NamingPattern is immutable")
        object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        return f"NamingPattern({self._pattern!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, NamingPattern) and other._pattern == self._pattern

    def __hash__(self) -> int:
        return hash(self._pattern)

    @staticmethod
    def _validate(pattern: str) -> Tuple[str, ...]:
        if not pattern:
            raise ValidationError("naming pattern cannot be empty")

        if _INVALID_CHARS.search(pattern):
            raise (ValidationError("naming pattern contains invalid characters")
                   .with_context("pattern", pattern)
                   .with_context("invalid_chars", '<>:"/\\|?* and whitespace'))

        placeholders = _PLACEHOLDER.findall(pattern)
        supported = get_supported_placeholders()
        for placeholder in placeholders:
            if placeholder not in supported:
                raise (ValidationError("unsupported placeholder in naming pattern")
                       .with_context("placeholder", placeholder)
                       .with_context("supported_placeholders", supported))

        if not placeholders:
            raise (ValidationError("naming pattern must contain at least one placeholder")
                   .with_context("pattern", pattern)
                   .with_context("supported_placeholders", supported))

        return tuple(placeholders)

    def generate_profile_name(
        self,
        account_id: str,
        account_name: str,
        account_alias: str,
        role_name: str,
        region: str,
    ) -> str:
        """
        Substitute role/account values into the pattern.

        Only placeholders that appear in the pattern need a value. Each value
        is sanitized before substitution and the result is sanitized again.

        Returns:
            str: The generated profile name

        Raises:
            ValidationError: If a used placeholder has no value or the result
                is empty
        """
        values: Dict[str, Optional[str]] = {
            ACCOUNT_ID_PLACEHOLDER: account_id,
            ACCOUNT_NAME_PLACEHOLDER: account_name,
            ACCOUNT_ALIAS_PLACEHOLDER: account_alias,
            ROLE_NAME_PLACEHOLDER: role_name,
            REGION_PLACEHOLDER: region,
        }

        for placeholder in self._placeholders:
            if not values[placeholder]:
                raise (ValidationError("missing value for placeholder")
                       .with_context("placeholder", placeholder)
                       .with_context("pattern", self._pattern))

        # Single pass so substituted values are never re-expanded
        result = _PLACEHOLDER.sub(
            lambda match: sanitize_profile_name(values[match.group(0)]),
            self._pattern,
        )
        result = sanitize_profile_name(result)

        if not result:
            raise ValidationError(
                "generated profile name is empty after sanitization"
            ).with_context("pattern", self._pattern)

        return result


def compile_pattern(pattern: str) -> NamingPattern:
    """Validate ``pattern`` and return it as a NamingPattern."""
    return NamingPattern(pattern)


def preview_pattern(pattern: str) -> List[Tuple[str, str]]:
    """
    Render a pattern against a few sample accounts.

    Args:
        pattern: Naming pattern to try

    Returns:
        List of (sample description, generated name) tuples

    Raises:
        ValidationError: If the pattern is invalid
    """
    naming_pattern = NamingPattern(pattern)
    previews = []
    for account_id, account_name, account_alias, role_name, region in _SAMPLE_ROLES:
        name = naming_pattern.generate_profile_name(
            account_id, account_name, account_alias, role_name, region)
        previews.append((f"{role_name} in {account_name} ({account_id}, {region})", name))
    return previews
