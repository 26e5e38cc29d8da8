"""
Shared test fixtures and configuration.
"""

import pytest
import os
import sys
from datetime import datetime, timezone
from unittest.mock import MagicMock

# Add the parent directory to the path so we can import the profilegen package
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from profilegen.aws_profiles import AWSConfigFile, Profile, SSOSession
from profilegen.types import DiscoveredRole, TemplateProfile

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
START_URL = "https://example.awsapps.com/start"


@pytest.fixture
def now():
    """Fixed clock value used by token cache tests."""
    return FIXED_NOW


@pytest.fixture
def legacy_template():
    """Template profile with inline SSO settings."""
    return TemplateProfile(
        name="sso-template",
        region="us-east-1",
        sso_start_url=START_URL,
        sso_region="us-east-1",
        sso_account_id="111111111111",
        sso_role_name="ReadOnlyAccess",
        is_sso=True,
    )


@pytest.fixture
def session_template():
    """Template profile that references an sso-session section."""
    return TemplateProfile(
        name="sso-template",
        region="eu-west-1",
        sso_start_url=START_URL,
        sso_region="us-east-1",
        sso_session="corp",
        sso_account_id="111111111111",
        sso_role_name="ReadOnlyAccess",
        is_sso=True,
    )


@pytest.fixture
def production_role():
    return DiscoveredRole(
        account_id="123456789012",
        account_name="production",
        account_alias="prod",
        role_name="PowerUserAccess",
    )


@pytest.fixture
def make_config_file(tmp_path):
    """Build an in-memory AWSConfigFile from profiles and sessions."""
    def _make(*profiles, sessions=None):
        return AWSConfigFile(
            file_path=tmp_path / "config",
            profiles={profile.name: profile for profile in profiles},
            sessions={session.name: session for session in (sessions or [])},
        )
    return _make


@pytest.fixture
def corp_session():
    return SSOSession(name="corp", sso_start_url=START_URL, sso_region="us-east-1")


@pytest.fixture
def mock_sso_client():
    """Mock boto3 sso client with no accounts."""
    client = MagicMock()
    client.list_accounts.return_value = {"accountList": []}
    client.list_account_roles.return_value = {"roleList": []}
    return client


@pytest.fixture
def sso_profile():
    """Factory for legacy or session format SSO profiles."""
    def _make(name, account_id, role_name, session="", start_url=START_URL):
        if session:
            return Profile(name=name, region="us-east-1", sso_session=session,
                           sso_account_id=account_id, sso_role_name=role_name)
        return Profile(name=name, region="us-east-1", sso_start_url=start_url, sso_region="us-east-1",
                       sso_account_id=account_id, sso_role_name=role_name)
    return _make
