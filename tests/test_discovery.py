"""
Discovery Tests

Tests for finding, filtering and loading test files.
"""
from e2e_runner.discovery import (
    categorize_test_file,
    discover_tests,
    filter_test_files,
    filter_tests,
    get_test_name_from_path,
    load_tests,
    matches_glob,
)
from e2e_runner.models import Priority, SourceType, UnifiedTestDefinition

YAML_TEMPLATE = """
name: {name}
priority: {priority}
tags: [{tags}]
execute:
  - adapter: http
    action: request
    url: /health
"""

PY_TEST = '''
PRIORITY = "P1"
TAGS = ["smoke"]


def execute(ctx):
    pass
'''


def make_tree(root):
    (root / "users").mkdir()
    (root / "orders").mkdir()
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "users" / "create.test.yaml").write_text(
        YAML_TEMPLATE.format(name="Create user", priority="P0", tags="users, smoke"), encoding="utf-8"
    )
    (root / "orders" / "place.test.yml").write_text(
        YAML_TEMPLATE.format(name="Place order", priority="P2", tags="orders"), encoding="utf-8"
    )
    (root / "orders" / "refund.test.py").write_text(PY_TEST, encoding="utf-8")
    (root / "node_modules" / "pkg" / "ignored.test.yaml").write_text("name: x", encoding="utf-8")
    (root / "README.md").write_text("docs", encoding="utf-8")


class TestGlobs:
    """Test glob matching."""

    def test_double_star(self):
        """** spans zero or more directories."""
        assert matches_glob("a.test.yaml", "**/*.test.yaml")
        assert matches_glob("x/y/a.test.yaml", "**/*.test.yaml")
        assert matches_glob("node_modules/p/a.yaml", "**/node_modules/**")

    def test_single_star(self):
        """* does not cross directories."""
        assert matches_glob("users/a.test.yaml", "users/*.test.yaml")
        assert not matches_glob("users/x/a.test.yaml", "users/*.test.yaml")

    def test_categorize_and_name(self):
        """Suffixes decide type and name."""
        assert categorize_test_file("a.test.yml") == SourceType.YAML
        assert categorize_test_file("a.test.py") == SourceType.PYTHON
        assert categorize_test_file("a.py") is None
        assert get_test_name_from_path("dir/create-user.test.yaml") == "create-user"


class TestDiscover:
    """Test directory scanning."""

    def test_discover(self, tmp_path):
        """Finds test files sorted by name and skips excluded dirs."""
        make_tree(tmp_path)
        found = discover_tests(str(tmp_path))

        assert [t.name for t in found] == ["create", "place", "refund"]
        assert [t.type for t in found] == [SourceType.YAML, SourceType.YAML, SourceType.PYTHON]

    def test_custom_patterns(self, tmp_path):
        """Patterns narrow the search."""
        make_tree(tmp_path)
        found = discover_tests(str(tmp_path), patterns=["orders/**"])
        assert [t.name for t in found] == ["place", "refund"]

    def test_missing_directory(self, tmp_path):
        """A missing directory yields nothing."""
        assert discover_tests(str(tmp_path / "nope")) == []


class TestFilter:
    """Test filtering of files and definitions."""

    def test_filter_files(self, tmp_path):
        """grep, tags and priorities filter discovered files."""
        make_tree(tmp_path)
        found = discover_tests(str(tmp_path))

        assert [t.name for t in filter_test_files(found, grep="PLA")] == ["place"]
        assert [t.name for t in filter_test_files(found, tags=["smoke"])] == ["create", "refund"]
        assert [t.name for t in filter_test_files(found, priorities=["P1", "P2"])] == ["place", "refund"]

    def test_filter_definitions(self):
        """Loaded definitions filter the same way."""
        tests = [
            UnifiedTestDefinition(name="Login", tags=["auth"], priority=Priority.P0),
            UnifiedTestDefinition(name="Logout", tags=["auth"]),
            UnifiedTestDefinition(name="Search", tags=["search"], priority=Priority.P1),
        ]
        assert [t.name for t in filter_tests(tests, grep="^log")] == ["Login", "Logout"]
        assert [t.name for t in filter_tests(tests, tags=["search", "x"])] == ["Search"]
        assert [t.name for t in filter_tests(tests, priorities=["P0"])] == ["Login"]


class TestLoad:
    """Test loading discovered files."""

    def test_load_tests(self, tmp_path):
        """Valid files load and invalid ones are reported."""
        make_tree(tmp_path)
        (tmp_path / "broken.test.yaml").write_text("name: broken\n", encoding="utf-8")
        tests, errors = load_tests(discover_tests(str(tmp_path)))

        assert sorted(t.name for t in tests) == ["Create user", "Place order", "refund"]
        assert len(errors) == 1
        assert "broken.test.yaml" in errors[0]
