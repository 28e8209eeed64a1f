"""
JSONPath Tests

Tests for path evaluation over parsed JSON.
"""
from e2e_runner.assertions.jsonpath import (
    UNDEFINED,
    evaluate_jsonpath,
    evaluate_jsonpath_with_meta,
    get_by_path,
    has_jsonpath,
    is_valid_jsonpath,
    parse_simple_path,
    query_jsonpath,
)

DATA = {
    "user": {"id": 7, "name": "Ada", "tags": ["admin", "ops"]},
    "items": [{"sku": "a", "qty": 1}, {"sku": "b", "qty": 2}],
    "nested": {"deep": {"sku": "c"}},
    "empty": [],
    "nothing": None,
}


class TestEvaluate:
    """Test single-value evaluation."""

    def test_root(self):
        """$ returns the whole document."""
        assert evaluate_jsonpath(DATA, "$") is DATA

    def test_property_and_index(self):
        """Dot properties and bracket indexes combine."""
        assert evaluate_jsonpath(DATA, "$.user.name") == "Ada"
        assert evaluate_jsonpath(DATA, "$.items[1].sku") == "b"
        assert evaluate_jsonpath(DATA, "$.user.tags[0]") == "admin"

    def test_quoted_bracket_property(self):
        """['name'] and ["name"] select properties."""
        assert evaluate_jsonpath(DATA, "$['user']['id']") == 7
        assert evaluate_jsonpath(DATA, '$["user"].name') == "Ada"

    def test_relative_path(self):
        """A path without $ is relative to the root."""
        assert evaluate_jsonpath(DATA, "user.id") == 7

    def test_missing_returns_default(self):
        """Missing nodes yield the default instead of raising."""
        assert evaluate_jsonpath(DATA, "$.user.email") is None
        assert evaluate_jsonpath(DATA, "$.items[5].sku", "n/a") == "n/a"
        assert evaluate_jsonpath(DATA, "$.nothing.child", UNDEFINED) is UNDEFINED

    def test_null_value_is_found(self):
        """A present null is distinct from a missing key."""
        result = evaluate_jsonpath_with_meta(DATA, "$.nothing")
        assert result.found
        assert result.value is None

    def test_wildcard_collects_values(self):
        """[*] maps the rest of the path over each item."""
        assert evaluate_jsonpath(DATA, "$.items[*].sku") == ["a", "b"]
        assert evaluate_jsonpath(DATA, "$.items.*.qty") == [1, 2]

    def test_wildcard_on_empty_list_not_found(self):
        """A wildcard over nothing is not found."""
        assert not has_jsonpath(DATA, "$.empty[*]")

    def test_recursive_descent(self):
        """..name finds matches at any depth in pre-order."""
        assert evaluate_jsonpath(DATA, "$..sku") == ["a", "b", "c"]

    def test_empty_path_not_found(self):
        """An empty path never matches."""
        assert not evaluate_jsonpath_with_meta(DATA, "").found


class TestQuery:
    """Test multi-value queries."""

    def test_query_always_returns_list(self):
        """query_jsonpath wraps single matches."""
        assert query_jsonpath(DATA, "$.user.id") == [7]
        assert query_jsonpath(DATA, "$.user.missing") == []

    def test_query_wildcard(self):
        """Wildcards flatten into the result list."""
        assert query_jsonpath(DATA, "$.user.tags[*]") == ["admin", "ops"]


class TestSimplePaths:
    """Test the plain dot/bracket helpers."""

    def test_parse_simple_path(self):
        """Brackets and quotes are split into parts."""
        assert parse_simple_path("$.data.items[0]['name']") == ["data", "items", "0", "name"]

    def test_get_by_path(self):
        """get_by_path walks dicts and list indexes."""
        assert get_by_path(DATA, "items[0].qty") == 1
        assert get_by_path(DATA, "items.-1.sku") == "b"
        assert get_by_path(DATA, "user.missing", "x") == "x"

    def test_is_valid_jsonpath(self):
        """Brackets must balance."""
        assert is_valid_jsonpath("$.a[0]")
        assert not is_valid_jsonpath("$.a[0")
        assert not is_valid_jsonpath("")
        assert not is_valid_jsonpath(None)
