"""
Discovery of SSO accounts and roles from a cached access token.
"""

from .token_cache import CachedToken, SSOTokenCache
from .role_discovery import RoleDiscovery, is_retryable_error

__all__ = [
    'CachedToken',
    'SSOTokenCache',
    'RoleDiscovery',
    'is_retryable_error',
]
