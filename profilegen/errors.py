"""
Structured errors raised by the profile generator.

Every error carries a category, a human readable message, an optional
underlying cause and a dictionary of context values (account id, role name,
pattern, profile name, ...) that callers can show for diagnostics.
"""

from enum import Enum
from typing import Any, Dict, Optional

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
]


class ErrorType(Enum):
    """Category of a profile generator error."""
    VALIDATION = "validation"
    AUTH = "authentication"
    API = "api"
    FILESYSTEM = "filesystem"
    NETWORK = "network"
    CONFLICT_RESOLUTION = "conflict_resolution"
    BACKUP = "backup"


class ProfileGeneratorError(Exception):
    """Base class for all profile generator errors."""

    error_type = ErrorType.VALIDATION

    def __init__(self, message: str, cause: Optional[BaseException] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context: Dict[str, Any] = dict(context or {})

    def with_context(self, key: str, value: Any) -> "ProfileGeneratorError":
        """
        Attach a context value and return the error so calls can be chained.

        Example:
            raise APIError("failed to list accounts", err).with_context("start_url", url)
        """
        self.context[key] = value
        return self

    @property
    def suggestion(self) -> Optional[str]:
        return self.context.get("suggestion")

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.error_type.value} error: {self.message} (caused by: {self.cause})"
        return f"{self.error_type.value} error: {self.message}"


class ValidationError(ProfileGeneratorError):
    """Malformed input: bad account id, empty pattern, missing placeholder value."""
    error_type = ErrorType.VALIDATION


class AuthError(ProfileGeneratorError):
    """Missing or expired SSO token."""
    error_type = ErrorType.AUTH


class APIError(ProfileGeneratorError):
    """A remote AWS call failed, including throttling."""
    error_type = ErrorType.API


class FileSystemError(ProfileGeneratorError):
    """Reading or writing the config file or token cache failed."""
    error_type = ErrorType.FILESYSTEM


class NetworkError(ProfileGeneratorError):
    """Transport level failure talking to AWS."""
    error_type = ErrorType.NETWORK


class ConflictResolutionError(ProfileGeneratorError):
    """A conflict could not be resolved with the selected strategy."""
    error_type = ErrorType.CONFLICT_RESOLUTION


class BackupError(ProfileGeneratorError):
    """Backing up or restoring the config file failed."""
    error_type = ErrorType.BACKUP
