"""
Profile naming: pattern validation, name generation and uniqueness.
"""

from .pattern import (
    NamingPattern,
    compile_pattern,
    sanitize_profile_name,
    get_supported_placeholders,
    preview_pattern,
    DEFAULT_PATTERN,
)
from .resolver import ProfileNameConflictResolver

__all__ = [
    'NamingPattern',
    'compile_pattern',
    'sanitize_profile_name',
    'get_supported_placeholders',
    'preview_pattern',
    'DEFAULT_PATTERN',
    'ProfileNameConflictResolver',
]
