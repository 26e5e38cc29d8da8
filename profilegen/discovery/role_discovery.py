"""
Role Discovery

Enumerates every account and role an SSO access token can reach. Accounts
are listed page by page and the roles of each account are fetched
concurrently, one worker per account.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from ..errors import APIError, NetworkError, ProfileGeneratorError, ValidationError
from ..types import DiscoveredRole
from .token_cache import REFRESH_SUGGESTION, CachedToken, SSOTokenCache

__all__ = ['RoleDiscovery', 'is_retryable_error', 'PAGE_SIZE', 'BASE_RETRY_DELAY']

PAGE_SIZE = 100
BASE_RETRY_DELAY = 1.0
_THROTTLING_MARKERS = ("throttl", "too many requests", "toomanyrequests", "rate limit", "rate exceeded")


def _wrap_aws_error(message: str, err: Exception) -> ProfileGeneratorError:
    if isinstance(err, (BotoConnectionError, HTTPClientError)):
        return NetworkError(message, err)
    return APIError(message, err)


def is_retryable_error(err: BaseException) -> bool:
    """
    Decide whether a failed discovery is worth another attempt.

    Network errors are retried. API errors are retried only when the
    underlying error looks like throttling.
    """
    if isinstance(err, NetworkError):
        return True
    if isinstance(err, APIError) and err.cause is not None:
        text = str(err.cause).lower()
        return any(marker in text for marker in _THROTTLING_MARKERS)
    return False


class RoleDiscovery:
    """
    Discovers accessible roles using a cached SSO token.

    Args:
        sso_client: boto3 ``sso`` client in the SSO region
        iam_client: Optional boto3 ``iam`` client used to look up account aliases
        token_cache: Token cache; defaults to the AWS CLI cache directory
        logger: Logger for warnings and progress
        sleep: Function used to wait between retries
    """

    def __init__(self, sso_client, iam_client=None,
                 token_cache: Optional[SSOTokenCache] = None,
                 logger: Optional[logging.Logger] = None,
                 sleep: Callable[[float], None] = time.sleep):
        if sso_client is None:
            raise ValidationError("SSO client cannot be None")

        self.sso_client = sso_client
        self.iam_client = iam_client
        self.logger = logger or logging.getLogger(__name__)
        self.token_cache = token_cache or SSOTokenCache(logger=self.logger)
        self._sleep = sleep
        self._alias_cache: Dict[str, str] = {}
        self._alias_lock = threading.Lock()

    def discover_accessible_roles(self, sso_start_url: str, sso_region: str,
                                  session_name: Optional[str] = None) -> List[DiscoveredRole]:
        """
        Discover every (account, role) pair visible to the cached token.

        Args:
            sso_start_url: SSO start URL
            sso_region: SSO region
            session_name: Optional sso-session name used at login

        Returns:
            List[DiscoveredRole]: Roles in no particular cross-account order

        Raises:
            AuthError: If there is no valid cached token
            APIError: If listing accounts or roles fails
            NetworkError: On transport failures
            ValidationError: If the API returns a malformed row
        """
        token = self.token_cache.load_token(sso_start_url, sso_region, session_name)

        accounts = self._list_accounts(token)
        if not accounts:
            return []

        all_roles: List[DiscoveredRole] = []
        roles_lock = threading.Lock()

        def collect(account: Dict[str, Any]) -> None:
            roles = self._list_roles_for_account(token, account)
            with roles_lock:
                all_roles.extend(roles)

        first_error: Optional[BaseException] = None
        with ThreadPoolExecutor(max_workers=len(accounts)) as executor:
            futures = [executor.submit(collect, account) for account in accounts]
            for future in as_completed(futures):
                error = future.exception()
                if error is not None and first_error is None:
                    first_error = error

        if first_error is not None:
            raise first_error

        self.logger.info("Discovered %d accessible roles across %d accounts", len(all_roles), len(accounts))
        return all_roles

    def _list_accounts(self, token: CachedToken) -> List[Dict[str, Any]]:
        accounts: List[Dict[str, Any]] = []
        next_token = None

        while True:
            kwargs = {"accessToken": token.access_token, "maxResults": PAGE_SIZE}
            if next_token:
                kwargs["nextToken"] = next_token
            try:
                response = self.sso_client.list_accounts(**kwargs)
            except (ClientError, BotoConnectionError, HTTPClientError) as e:
                raise (_wrap_aws_error("failed to list accounts", e)
                       .with_context("start_url", token.start_url)
                       .with_context("suggestion", REFRESH_SUGGESTION)) from e

            accounts.extend(response.get("accountList", []))
            next_token = response.get("nextToken")
            if not next_token:
                break

        return accounts

    def _list_roles_for_account(self, token: CachedToken, account: Dict[str, Any]) -> List[DiscoveredRole]:
        account_id = account.get("accountId", "")
        account_name = account.get("accountName") or account_id
        account_alias = self.get_account_alias(account_id)

        roles: List[DiscoveredRole] = []
        next_token = None

        while True:
            kwargs = {"accessToken": token.access_token, "accountId": account_id, "maxResults": PAGE_SIZE}
            if next_token:
                kwargs["nextToken"] = next_token
            try:
                response = self.sso_client.list_account_roles(**kwargs)
            except (ClientError, BotoConnectionError, HTTPClientError) as e:
                raise (_wrap_aws_error("failed to list account roles", e)
                       .with_context("account_id", account_id)
                       .with_context("account_name", account_name)
                       .with_context("suggestion", REFRESH_SUGGESTION)) from e

            for role_info in response.get("roleList", []):
                role_name = role_info.get("roleName", "")
                role = DiscoveredRole(
                    account_id=account_id,
                    role_name=role_name,
                    account_name=account_name,
                    account_alias=account_alias,
                )
                try:
                    role.validate()
                except ValidationError as e:
                    raise (ValidationError("invalid discovered role", e)
                           .with_context("account_id", account_id)
                           .with_context("role_name", role_name)) from e
                roles.append(role)

            next_token = response.get("nextToken")
            if not next_token:
                break

        return roles

    def get_account_alias(self, account_id: str) -> str:
        """
        Return the IAM alias of an account, or the account id if there is none.

        Lookup failures are logged and cached as the account id.
        """
        with self._alias_lock:
            if account_id in self._alias_cache:
                return self._alias_cache[account_id]

        alias = account_id
        if self.iam_client is not None:
            try:
                aliases = self.iam_client.list_account_aliases().get("AccountAliases", [])
                # An account has at most one alias
                if aliases:
                    alias = aliases[0]
            except (ClientError, BotoConnectionError, HTTPClientError) as e:
                self.logger.warning("Failed to get account alias for %s, using account ID: %s", account_id, e)

        with self._alias_lock:
            self._alias_cache[account_id] = alias
        return alias

    def get_cached_account_aliases(self) -> Dict[str, str]:
        with self._alias_lock:
            return dict(self._alias_cache)

    def clear_alias_cache(self) -> None:
        with self._alias_lock:
            self._alias_cache.clear()

    def discover_roles_with_retry(self, sso_start_url: str, sso_region: str,
                                  max_attempts: int = 3,
                                  session_name: Optional[str] = None) -> List[DiscoveredRole]:
        """
        Discover roles, retrying throttling and network failures.

        Waits 1s, 2s, 4s, ... between attempts.

        Args:
            sso_start_url: SSO start URL
            sso_region: SSO region
            max_attempts: Total number of attempts
            session_name: Optional sso-session name used at login

        Raises:
            APIError: Wrapping the last error once all attempts are used
            ProfileGeneratorError: Any non-retryable error, unchanged
        """
        if max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1").with_context("max_attempts", max_attempts)

        last_error: Optional[ProfileGeneratorError] = None

        for attempt in range(max_attempts):
            try:
                return self.discover_accessible_roles(sso_start_url, sso_region, session_name)
            except ProfileGeneratorError as e:
                if not is_retryable_error(e):
                    raise
                last_error = e

            if attempt < max_attempts - 1:
                delay = BASE_RETRY_DELAY * (2 ** attempt)
                self.logger.warning("Attempt %d failed, retrying in %.0fs: %s", attempt + 1, delay, last_error)
                self._sleep(delay)

        raise APIError("failed to discover roles after retries", last_error).with_context(
            "max_attempts", max_attempts)

    def validate_token_access(self, template_profile) -> None:
        self.token_cache.validate_profile_token(template_profile)

    def test_connection(self, sso_start_url: str, sso_region: str, session_name: Optional[str] = None) -> None:
        """
        Check that the SSO API accepts the cached token.

        Raises:
            AuthError: If there is no valid cached token
            APIError: If the API rejects the call
        """
        token = self.token_cache.load_token(sso_start_url, sso_region, session_name)
        try:
            self.sso_client.list_accounts(accessToken=token.access_token, maxResults=1)
        except (ClientError, BotoConnectionError, HTTPClientError) as e:
            raise (_wrap_aws_error("failed to connect to SSO", e)
                   .with_context("start_url", sso_start_url)
                   .with_context("suggestion", REFRESH_SUGGESTION)) from e
