import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from botocore.exceptions import ClientError, EndpointConnectionError
from profilegen.discovery import CachedToken, RoleDiscovery, is_retryable_error
from profilegen.errors import APIError, AuthError, NetworkError, ValidationError

START_URL = "https://example.awsapps.com/start"

def _client_error(code, message="boom", operation="ListAccounts"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)

@pytest.fixture
def token_cache():
    """Token cache mock that always returns a valid token."""
    cache = MagicMock()
    cache.load_token.return_value = CachedToken(
        access_token="token-123",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        start_url=START_URL,
        region="us-east-1",
    )
    return cache

@pytest.fixture
def sso_client():
    """SSO client with two accounts, one of them paginated."""
    client = MagicMock()
    client.list_accounts.side_effect = [
        {"accountList": [{"accountId": "111111111111", "accountName": "production"}], "nextToken": "page-2"},
        {"accountList": [{"accountId": "222222222222", "accountName": "development"}]},
    ]

    roles = {
        "111111111111": [
            {"roleList": [{"roleName": "AdministratorAccess"}], "nextToken": "more"},
            {"roleList": [{"roleName": "ReadOnlyAccess"}]},
        ],
        "222222222222": [
            {"roleList": [{"roleName": "PowerUserAccess"}]},
        ],
    }
    pages = {account_id: iter(responses) for account_id, responses in roles.items()}

    def list_account_roles(**kwargs):
        return next(pages[kwargs["accountId"]])

    client.list_account_roles.side_effect = list_account_roles
    return client

def test_discover_accessible_roles(sso_client, token_cache):
    """Test accounts and roles are collected across pages."""
    discovery = RoleDiscovery(sso_client, token_cache=token_cache)

    roles = discovery.discover_accessible_roles(START_URL, "us-east-1")

    assert sorted(role.key for role in roles) == [
        ("111111111111", "AdministratorAccess"),
        ("111111111111", "ReadOnlyAccess"),
        ("222222222222", "PowerUserAccess"),
    ]
    production = [role for role in roles if role.account_id == "111111111111"]
    assert [role.role_name for role in production] == ["AdministratorAccess", "ReadOnlyAccess"]
    assert production[0].account_name == "production"
    assert production[0].account_alias == "111111111111"

    # Pagination tokens are passed through
    second_call = sso_client.list_accounts.call_args_list[1]
    assert second_call.kwargs["nextToken"] == "page-2"
    assert second_call.kwargs["accessToken"] == "token-123"
    assert second_call.kwargs["maxResults"] == 100

def test_no_accounts(mock_sso_client, token_cache):
    """Test a token with no accounts gives an empty list."""
    discovery = RoleDiscovery(mock_sso_client, token_cache=token_cache)

    assert discovery.discover_accessible_roles(START_URL, "us-east-1") == []
    mock_sso_client.list_account_roles.assert_not_called()

def test_missing_sso_client():
    """Test a client is required."""
    with pytest.raises(ValidationError):
        RoleDiscovery(None)

def test_auth_error_propagates(mock_sso_client):
    """Test a missing token aborts discovery before any API call."""
    cache = MagicMock()
    cache.load_token.side_effect = AuthError("SSO token cache not found")
    discovery = RoleDiscovery(mock_sso_client, token_cache=cache)

    with pytest.raises(AuthError):
        discovery.discover_accessible_roles(START_URL, "us-east-1")

    mock_sso_client.list_accounts.assert_not_called()

def test_list_accounts_failure(token_cache):
    """Test API failures are wrapped with a refresh hint."""
    client = MagicMock()
    client.list_accounts.side_effect = _client_error("UnauthorizedException")
    discovery = RoleDiscovery(client, token_cache=token_cache)

    with pytest.raises(APIError) as exc_info:
        discovery.discover_accessible_roles(START_URL, "us-east-1")

    assert exc_info.value.context["start_url"] == START_URL
    assert "aws sso login" in exc_info.value.suggestion

def test_one_account_failure_fails_discovery(token_cache):
    """Test a failure for one account aborts the whole discovery."""
    client = MagicMock()
    client.list_accounts.return_value = {"accountList": [
        {"accountId": "111111111111", "accountName": "production"},
        {"accountId": "222222222222", "accountName": "development"},
    ]}

    def list_account_roles(**kwargs):
        if kwargs["accountId"] == "222222222222":
            raise _client_error("ForbiddenException", operation="ListAccountRoles")
        return {"roleList": [{"roleName": "ReadOnlyAccess"}]}

    client.list_account_roles.side_effect = list_account_roles
    discovery = RoleDiscovery(client, token_cache=token_cache)

    with pytest.raises(APIError) as exc_info:
        discovery.discover_accessible_roles(START_URL, "us-east-1")

    assert exc_info.value.context["account_id"] == "222222222222"

def test_invalid_account_id_from_api(token_cache):
    """Test malformed rows from the API are validation errors."""
    client = MagicMock()
    client.list_accounts.return_value = {"accountList": [{"accountId": "12345", "accountName": "bad"}]}
    client.list_account_roles.return_value = {"roleList": [{"roleName": "Admin"}]}
    discovery = RoleDiscovery(client, token_cache=token_cache)

    with pytest.raises(ValidationError):
        discovery.discover_accessible_roles(START_URL, "us-east-1")

def test_account_alias_lookup_and_cache(sso_client, token_cache):
    """Test aliases come from IAM and are looked up once per account."""
    iam_client = MagicMock()
    iam_client.list_account_aliases.return_value = {"AccountAliases": ["corp-alias"]}
    discovery = RoleDiscovery(sso_client, iam_client=iam_client, token_cache=token_cache)

    roles = discovery.discover_accessible_roles(START_URL, "us-east-1")

    assert {role.account_alias for role in roles} == {"corp-alias"}
    assert iam_client.list_account_aliases.call_count == 2
    assert discovery.get_cached_account_aliases() == {
        "111111111111": "corp-alias",
        "222222222222": "corp-alias",
    }

    discovery.clear_alias_cache()
    assert discovery.get_cached_account_aliases() == {}

def test_account_alias_fallback(mock_sso_client, caplog):
    """Test alias lookup failures fall back to the account id."""
    iam_client = MagicMock()
    iam_client.list_account_aliases.side_effect = _client_error("AccessDenied", operation="ListAccountAliases")
    discovery = RoleDiscovery(mock_sso_client, iam_client=iam_client)

    assert discovery.get_account_alias("123456789012") == "123456789012"
    assert discovery.get_account_alias("123456789012") == "123456789012"
    assert iam_client.list_account_aliases.call_count == 1
    assert "using account ID" in caplog.text

def test_is_retryable_error():
    """Test which errors are worth retrying."""
    assert is_retryable_error(NetworkError("connection reset"))
    assert is_retryable_error(APIError("failed", _client_error("ThrottlingException", "Rate exceeded")))
    assert is_retryable_error(APIError("failed", _client_error("TooManyRequestsException")))
    assert not is_retryable_error(APIError("failed", _client_error("AccessDeniedException")))
    assert not is_retryable_error(APIError("failed"))
    assert not is_retryable_error(AuthError("expired"))
    assert not is_retryable_error(ValueError("other"))

def test_network_errors_are_wrapped(token_cache):
    """Test transport failures become network errors."""
    client = MagicMock()
    client.list_accounts.side_effect = EndpointConnectionError(endpoint_url="https://portal.sso.us-east-1.amazonaws.com")
    discovery = RoleDiscovery(client, token_cache=token_cache)

    with pytest.raises(NetworkError):
        discovery.discover_accessible_roles(START_URL, "us-east-1")

def test_retry_on_throttling(token_cache):
    """Test throttling is retried with exponential backoff."""
    client = MagicMock()
    client.list_accounts.side_effect = [
        _client_error("ThrottlingException", "Rate exceeded"),
        _client_error("ThrottlingException", "Rate exceeded"),
        {"accountList": [{"accountId": "111111111111", "accountName": "production"}]},
    ]
    client.list_account_roles.return_value = {"roleList": [{"roleName": "Admin"}]}
    sleep = MagicMock()
    discovery = RoleDiscovery(client, token_cache=token_cache, sleep=sleep)

    roles = discovery.discover_roles_with_retry(START_URL, "us-east-1", max_attempts=3)

    assert [role.role_name for role in roles] == ["Admin"]
    assert [call.args[0] for call in sleep.call_args_list] == [1.0, 2.0]

def test_retry_exhausted(token_cache):
    """Test the last error is wrapped once all attempts fail."""
    client = MagicMock()
    client.list_accounts.side_effect = EndpointConnectionError(endpoint_url="https://portal.sso.us-east-1.amazonaws.com")
    sleep = MagicMock()
    discovery = RoleDiscovery(client, token_cache=token_cache, sleep=sleep)

    with pytest.raises(APIError) as exc_info:
        discovery.discover_roles_with_retry(START_URL, "us-east-1", max_attempts=3)

    assert isinstance(exc_info.value.cause, NetworkError)
    assert exc_info.value.context["max_attempts"] == 3
    assert client.list_accounts.call_count == 3
    assert sleep.call_count == 2

def test_non_retryable_error_is_not_retried(token_cache):
    """Test other errors propagate unchanged after one attempt."""
    client = MagicMock()
    client.list_accounts.side_effect = _client_error("UnauthorizedException")
    sleep = MagicMock()
    discovery = RoleDiscovery(client, token_cache=token_cache, sleep=sleep)

    with pytest.raises(APIError) as exc_info:
        discovery.discover_roles_with_retry(START_URL, "us-east-1")

    assert exc_info.value.message == "failed to list accounts"
    assert client.list_accounts.call_count == 1
    sleep.assert_not_called()

def test_invalid_max_attempts(mock_sso_client, token_cache):
    """Test at least one attempt is required."""
    discovery = RoleDiscovery(mock_sso_client, token_cache=token_cache)

    with pytest.raises(ValidationError):
        discovery.discover_roles_with_retry(START_URL, "us-east-1", max_attempts=0)

def test_connection(mock_sso_client, token_cache):
    """Test checking the API accepts the token."""
    discovery = RoleDiscovery(mock_sso_client, token_cache=token_cache)

    discovery.test_connection(START_URL, "us-east-1")

    mock_sso_client.list_accounts.assert_called_once_with(accessToken="token-123", maxResults=1)
