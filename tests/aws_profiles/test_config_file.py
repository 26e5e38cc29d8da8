import pytest
from textwrap import dedent
from profilegen.aws_profiles import AWSConfigFile, Profile
from profilegen.errors import FileSystemError, ValidationError
from profilegen.types import GeneratedProfile

CONFIG = dedent("""
    [default]
    region = us-east-1
    output = json

    [profile legacy-admin]
    region = us-east-1
    sso_start_url = https://example.awsapps.com/start
    sso_region = us-east-1
    sso_account_id = 123456789012
    sso_role_name = AdministratorAccess

    [profile session-readonly]
    sso_session = corp
    sso_account_id = 123456789012
    sso_role_name = ReadOnlyAccess
    region = eu-west-1
    cli_pager =

    [profile dangling]
    sso_session = missing
    sso_account_id = 210987654321
    sso_role_name = ReadOnlyAccess

    [sso-session corp]
    sso_start_url = https://example.awsapps.com/start
    sso_region = us-east-1
    sso_registration_scopes = sso:account:access

    [services my-services]
    s3 =
      endpoint_url = http://localhost:4566
""")

@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config"
    path.write_text(CONFIG)
    return path

@pytest.fixture
def config_file(config_path):
    return AWSConfigFile.load(config_path)

def test_load_profiles_and_sessions(config_file):
    """Test profiles and sso-session sections are parsed."""
    assert config_file.get_profile_names() == ["default", "legacy-admin", "session-readonly", "dangling"]
    assert list(config_file.get_all_sessions()) == ["corp"]

    legacy = config_file.get_profile("legacy-admin")
    assert legacy.is_sso()
    assert legacy.is_legacy_sso()

    session = config_file.get_profile("session-readonly")
    assert session.is_sso()
    assert not session.is_legacy_sso()
    assert session.other_properties == {"cli_pager": ""}

    default = config_file.get_profile("default")
    assert not default.is_sso()
    assert default.output == "json"

def test_load_missing_file(tmp_path):
    """Test a missing file gives an empty config."""
    config_file = AWSConfigFile.load(tmp_path / "does-not-exist")

    assert config_file.get_all_profiles() == {}

def test_load_unparseable_file(tmp_path):
    """Test parse errors become file system errors."""
    path = tmp_path / "config"
    path.write_text("region = us-east-1\n")

    with pytest.raises(FileSystemError) as exc_info:
        AWSConfigFile.load(path)

    assert exc_info.value.context["file_path"] == str(path)

def test_aws_config_file_env(config_path, monkeypatch):
    """Test AWS_CONFIG_FILE is honoured."""
    monkeypatch.setenv("AWS_CONFIG_FILE", str(config_path))

    config_file = AWSConfigFile.load()

    assert config_file.file_path == config_path
    assert config_file.has_profile("legacy-admin")

def test_resolve_sso_config_formats(config_file):
    """Test both SSO formats resolve to the same shape."""
    legacy = config_file.resolve_sso_config(config_file.get_profile("legacy-admin"))
    session = config_file.resolve_sso_config(config_file.get_profile("session-readonly"))

    assert legacy.start_url == session.start_url == "https://example.awsapps.com/start"
    assert legacy.matches("123456789012", "AdministratorAccess")
    assert session.matches("123456789012", "ReadOnlyAccess")
    assert session.region == "us-east-1"

def test_resolve_sso_config_errors(config_file):
    """Test unresolvable profiles raise validation errors."""
    with pytest.raises(ValidationError):
        config_file.resolve_sso_config(config_file.get_profile("dangling"))

    with pytest.raises(ValidationError):
        config_file.resolve_sso_config(config_file.get_profile("default"))

def test_matches_role(config_file):
    """Test matching a profile to an account and role."""
    profile = config_file.get_profile("session-readonly")

    assert config_file.matches_role(profile, "123456789012", "ReadOnlyAccess")
    assert config_file.matches_role(profile, "123456789012", "ReadOnlyAccess", "https://example.awsapps.com/start")
    assert not config_file.matches_role(profile, "123456789012", "ReadOnlyAccess", "https://other/start")
    assert not config_file.matches_role(profile, "123456789012", "AdministratorAccess")
    assert not config_file.matches_role(config_file.get_profile("dangling"), "210987654321", "ReadOnlyAccess")

def test_build_lookup_index(config_file):
    """Test the index covers names and resolvable SSO identities."""
    index = config_file.build_lookup_index()

    assert index.has_name("dangling")
    assert [p.name for p in index.find_by_account("123456789012")] == ["legacy-admin", "session-readonly"]
    assert index.find_by_account("210987654321") == []
    assert [p.name for p in index.find_by_role("ReadOnlyAccess")] == ["session-readonly"]
    found = index.find_by_sso("https://example.awsapps.com/start", "us-east-1", "123456789012", "AdministratorAccess")
    assert [p.name for p in found] == ["legacy-admin"]

def test_find_duplicate_profiles(config_file):
    """Test profiles pointing at the same identity are grouped."""
    config_file.profiles["copy"] = Profile(
        name="copy",
        sso_start_url="https://example.awsapps.com/start",
        sso_region="us-east-1",
        sso_account_id="123456789012",
        sso_role_name="AdministratorAccess",
    )

    duplicates = config_file.find_duplicate_profiles()

    assert len(duplicates) == 1
    assert [p.name for p in list(duplicates.values())[0]] == ["legacy-admin", "copy"]

def test_append_profiles_writes_file(config_file, config_path):
    """Test generated profiles are written and reloadable."""
    generated = GeneratedProfile(
        name="production-PowerUserAccess",
        account_id="123456789012",
        role_name="PowerUserAccess",
        region="us-east-1",
        sso_start_url="https://example.awsapps.com/start",
        sso_region="us-east-1",
        sso_session="corp",
        sso_account_id="123456789012",
        sso_role_name="PowerUserAccess",
    )

    config_file.append_profiles([generated])

    reloaded = AWSConfigFile.load(config_path)
    profile = reloaded.get_profile("production-PowerUserAccess")
    assert profile.sso_session == "corp"
    assert profile.sso_start_url == ""
    assert reloaded.has_profile("legacy-admin")
    assert "sso-session corp" in reloaded.sections()
    assert "services my-services" in reloaded.sections()

def test_append_replaces_same_name(config_file, config_path):
    """Test a generated profile overwrites a section with the same name."""
    generated = GeneratedProfile(
        name="legacy-admin",
        account_id="123456789012",
        role_name="AdministratorAccess",
        region="us-west-2",
        sso_start_url="https://example.awsapps.com/start",
        sso_region="us-east-1",
        sso_account_id="123456789012",
        sso_role_name="AdministratorAccess",
        is_legacy=True,
    )

    config_file.append_profiles([generated])

    reloaded = AWSConfigFile.load(config_path)
    assert reloaded.get_profile("legacy-admin").region == "us-west-2"
    assert reloaded.get_profile_names().count("legacy-admin") == 1

def test_remove_profile(config_file, config_path):
    """Test removing a profile section."""
    config_file.remove_profile("dangling")
    config_file.write()

    reloaded = AWSConfigFile.load(config_path)
    assert not reloaded.has_profile("dangling")

    with pytest.raises(ValidationError):
        config_file.remove_profile("dangling")

def test_profile_to_config_string():
    """Test rendering a profile section."""
    profile = Profile(name="dev", region="us-east-1", output="json", other_properties={"cli_pager": ""})

    assert profile.to_config_string() == "[profile dev]\nregion = us-east-1\noutput = json\ncli_pager = \n"
    assert Profile(name="default").section_name() == "default"
