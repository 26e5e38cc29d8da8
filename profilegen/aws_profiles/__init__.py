"""
AWS config file access: profiles, SSO sessions and lookup indices.
"""

from .config_file import (
    AWSConfigFile,
    Profile,
    SSOSession,
    ResolvedSSOConfig,
    ProfileLookupIndex,
)

__all__ = [
    'AWSConfigFile',
    'Profile',
    'SSOSession',
    'ResolvedSSOConfig',
    'ProfileLookupIndex',
]
