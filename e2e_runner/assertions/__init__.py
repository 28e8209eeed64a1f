"""
Assertions

JSONPath evaluation, the predicate-bag assertion runner used by YAML
steps, and the fluent expect() API for procedural tests.
"""

from .expect import Expectation, assert_false, assert_raises, assert_true, expect, fail
from .jsonpath import (
    UNDEFINED,
    JSONPathResult,
    evaluate_jsonpath,
    evaluate_jsonpath_with_meta,
    get_by_path,
    has_jsonpath,
    is_valid_jsonpath,
    parse_simple_path,
    query_jsonpath,
)
from .runner import ASSERTION_KEYS, is_assertion, run_assertion, run_path_assertions

__all__ = [
    "UNDEFINED",
    "JSONPathResult",
    "evaluate_jsonpath",
    "evaluate_jsonpath_with_meta",
    "get_by_path",
    "has_jsonpath",
    "is_valid_jsonpath",
    "parse_simple_path",
    "query_jsonpath",
    "ASSERTION_KEYS",
    "is_assertion",
    "run_assertion",
    "run_path_assertions",
    "Expectation",
    "expect",
    "assert_true",
    "assert_false",
    "assert_raises",
    "fail",
]
