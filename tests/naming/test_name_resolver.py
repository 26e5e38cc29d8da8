import pytest
from profilegen.naming import ProfileNameConflictResolver

def test_repeated_names_get_suffixes():
    """Test the same desired name three times with no existing names."""
    resolver = ProfileNameConflictResolver()

    names = [resolver.resolve(name) for name in ["a", "a", "a"]]

    assert names == ["a", "a_1", "a_2"]
    assert resolver.get_conflict_count("a") == 2

def test_existing_names_are_claimed():
    """Test names from the config file are never handed out."""
    resolver = ProfileNameConflictResolver(["prod-Admin", "prod-Admin_1"])

    assert resolver.resolve("prod-Admin") == "prod-Admin_2"
    assert resolver.resolve("dev-Admin") == "dev-Admin"

def test_claim_without_resolving():
    """Test names claimed by replacements are avoided."""
    resolver = ProfileNameConflictResolver()
    resolver.claim("prod-Admin")

    assert resolver.is_claimed("prod-Admin")
    assert resolver.resolve("prod-Admin") == "prod-Admin_1"

def test_suffix_skips_claimed_suffixes():
    """Test a suffixed name that is already taken is skipped."""
    resolver = ProfileNameConflictResolver(["a", "a_1"])

    assert resolver.resolve("a") == "a_2"
    assert resolver.resolve("a") == "a_3"

def test_get_all_conflicts():
    """Test the conflict counters per base name."""
    resolver = ProfileNameConflictResolver(["x"])
    resolver.resolve("x")
    resolver.resolve("y")

    assert resolver.get_all_conflicts() == {"x": 1}
    assert resolver.get_conflict_count("y") == 0
