"""
SSO Token Cache

Reads the access tokens the AWS CLI stores under ``~/.aws/sso/cache`` after
``aws sso login``. Tokens are never refreshed or issued here.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..errors import AuthError, FileSystemError, ValidationError

__all__ = ['CachedToken', 'SSOTokenCache', 'EXPIRY_WARNING_WINDOW']

EXPIRY_WARNING_WINDOW = timedelta(minutes=5)
LOGIN_SUGGESTION = "Run 'aws sso login' to authenticate"
REFRESH_SUGGESTION = "Run 'aws sso login' to refresh authentication"


def _get_aws_sso_cache_dir() -> Path:
    """Get the path to the AWS SSO cache directory."""
    return Path.home() / ".aws" / "sso" / "cache"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_expires_at(value: str) -> Optional[datetime]:
    """
    Parse the ``expiresAt`` value of a cache file.

    The CLI writes values such as ``2024-01-01T12:00:00Z`` or
    ``2024-01-01T12:00:00UTC``.

    Returns:
        Timezone aware datetime in UTC, or None if it cannot be parsed
    """
    text = value.strip().replace("UTC", "Z")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class CachedToken:
    """An SSO access token loaded from the cache."""
    access_token: str
    expires_at: datetime
    start_url: str = ""
    region: str = ""
    expires_soon: bool = False
    source_file: Optional[Path] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any], source_file: Optional[Path] = None) -> Optional["CachedToken"]:
        access_token = data.get("accessToken")
        expires_at = parse_expires_at(str(data.get("expiresAt", "")))
        if not access_token or expires_at is None:
            return None
        return cls(
            access_token=access_token,
            expires_at=expires_at,
            start_url=data.get("startUrl", ""),
            region=data.get("region", ""),
            source_file=source_file,
        )


class SSOTokenCache:
    """Access to the AWS CLI SSO token cache directory."""

    def __init__(self, cache_dir: Optional[Path] = None,
                 logger: Optional[logging.Logger] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.cache_dir = Path(cache_dir) if cache_dir else _get_aws_sso_cache_dir()
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock

    @staticmethod
    def cache_file_name(key: str) -> str:
        # The AWS CLI names cache files by the SHA1 of the start URL or session name
        return hashlib.sha1(key.encode("utf-8")).hexdigest() + ".json"

    def _read_token_file(self, token_file: Path) -> Optional[CachedToken]:
        try:
            with open(token_file, "r") as f:
                data = json.load(f)
        except OSError as e:
            raise FileSystemError("failed to read SSO token cache", e).with_context(
                "token_file", str(token_file))
        except json.JSONDecodeError as e:
            raise FileSystemError("failed to parse SSO token cache", e).with_context(
                "token_file", str(token_file))
        return CachedToken.from_json(data, token_file)

    def _find_token(self, start_url: str, session_name: Optional[str]) -> Optional[CachedToken]:
        candidates = [self.cache_dir / self.cache_file_name(start_url)]
        if session_name:
            candidates.append(self.cache_dir / self.cache_file_name(session_name))

        expired = None
        for token_file in candidates:
            if not token_file.exists():
                continue
            token = self._read_token_file(token_file)
            if token is None:
                continue
            if self.is_token_valid(token):
                return token
            expired = expired or token

        # Fall back to the newest file for this start URL
        matching = [t for t in self.get_all_cached_tokens() if t.start_url == start_url]
        if not matching:
            return expired
        return max(matching, key=lambda t: t.expires_at)

    def load_token(self, start_url: str, region: str, session_name: Optional[str] = None) -> CachedToken:
        """
        Load the cached token for an SSO start URL.

        Args:
            start_url: SSO start URL of the template profile
            region: SSO region
            session_name: Optional sso-session name the login was done with

        Returns:
            CachedToken: A token that has not expired yet

        Raises:
            AuthError: If no token exists or it has expired
            FileSystemError: If the cache file cannot be read
        """
        token = self._find_token(start_url, session_name)
        if token is None:
            raise (AuthError("SSO token cache not found")
                   .with_context("start_url", start_url)
                   .with_context("region", region)
                   .with_context("suggestion", LOGIN_SUGGESTION))

        now = self._clock()
        if now >= token.expires_at:
            raise (AuthError("SSO token has expired")
                   .with_context("start_url", start_url)
                   .with_context("expired_at", token.expires_at.isoformat())
                   .with_context("suggestion", REFRESH_SUGGESTION))

        if now + EXPIRY_WARNING_WINDOW >= token.expires_at:
            token.expires_soon = True
            self.logger.warning("SSO token expires soon at %s", token.expires_at.isoformat())

        return token

    def is_token_valid(self, token: Optional[CachedToken]) -> bool:
        if token is None or not token.access_token:
            return False
        return self._clock() < token.expires_at

    def validate_profile_token(self, template_profile) -> None:
        """
        Check that a usable token exists for a template profile.

        Raises:
            ValidationError: If the template is not an SSO profile
            AuthError: If there is no valid token
        """
        if not template_profile.is_sso:
            raise ValidationError("profile is not an SSO profile").with_context(
                "profile_name", template_profile.name)

        self.load_token(template_profile.sso_start_url, template_profile.sso_region,
                        template_profile.sso_session or None)

    def get_all_cached_tokens(self) -> List[CachedToken]:
        """Return every parseable token file in the cache, skipping unreadable ones."""
        if not self.cache_dir.exists():
            return []

        tokens = []
        for token_file in sorted(self.cache_dir.glob("*.json")):
            try:
                token = self._read_token_file(token_file)
            except FileSystemError as e:
                self.logger.warning("Skipping token file %s: %s", token_file, e)
                continue
            # Client registration files have no access token
            if token is not None:
                tokens.append(token)
        return tokens

    def clean_expired_tokens(self) -> int:
        """
        Delete expired token files.

        Returns:
            int: Number of files removed
        """
        removed = 0
        for token in self.get_all_cached_tokens():
            if self.is_token_valid(token) or token.source_file is None:
                continue
            try:
                token.source_file.unlink()
                removed += 1
            except OSError as e:
                self.logger.warning("Failed to remove expired token file %s: %s", token.source_file, e)
        return removed

    def get_cache_info(self) -> Dict[str, Any]:
        tokens = self.get_all_cached_tokens()
        valid = sum(1 for token in tokens if self.is_token_valid(token))
        return {
            "cache_dir": str(self.cache_dir),
            "total_tokens": len(tokens),
            "valid_tokens": valid,
            "expired_tokens": len(tokens) - valid,
        }

    @staticmethod
    def get_auth_guide_message(start_url: str, region: str) -> str:
        return (
            "SSO authentication required. Please run:\n\n"
            "  aws sso login --profile <profile-name>\n\n"
            "Or, for profiles that use an sso-session section:\n\n"
            "  aws sso login --sso-session <session-name>\n\n"
            f"Start URL: {start_url} (region {region})\n\n"
            "After successful authentication, retry this command.\n"
        )
