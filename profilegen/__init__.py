"""
SSO profile generation: discover the roles an AWS IAM Identity Center session
can reach and turn them into AWS CLI profiles without clobbering the ones
already in ~/.aws/config.
"""

from .errors import (
    ErrorType,
    ProfileGeneratorError,
    ValidationError,
    AuthError,
    APIError,
    FileSystemError,
    NetworkError,
    ConflictResolutionError,
    BackupError,
)
from .types import DiscoveredRole, TemplateProfile, GeneratedProfile
from .naming import NamingPattern, ProfileNameConflictResolver, DEFAULT_PATTERN
from .conflicts import ConflictResolutionStrategy, ProfileConflictDetector, ConflictResolver
from .generator import ProfileGenerator, ProfileGenerationResult

__all__ = [
    'ErrorType',
    'ProfileGeneratorError',
    'ValidationError',
    'AuthError',
    'APIError',
    'FileSystemError',
    'NetworkError',
    'ConflictResolutionError',
    'BackupError',
    'DiscoveredRole',
    'TemplateProfile',
    'GeneratedProfile',
    'NamingPattern',
    'ProfileNameConflictResolver',
    'DEFAULT_PATTERN',
    'ConflictResolutionStrategy',
    'ProfileConflictDetector',
    'ConflictResolver',
    'ProfileGenerator',
    'ProfileGenerationResult',
]
