"""
Conflict detection and resolution between discovered roles and existing profiles.
"""

from .detector import ProfileConflictDetector
from .resolver import ConflictResolver, PromptFunc
from .types import (
    ActionType,
    ConflictAction,
    ConflictResolutionResult,
    ConflictResolutionStrategy,
    ConflictType,
    ProfileConflict,
    ProfileReplacement,
)

__all__ = [
    'ProfileConflictDetector',
    'ConflictResolver',
    'PromptFunc',
    'ActionType',
    'ConflictAction',
    'ConflictResolutionResult',
    'ConflictResolutionStrategy',
    'ConflictType',
    'ProfileConflict',
    'ProfileReplacement',
]
