"""
Assertion Runner

Evaluates a flat bag of predicates against one value. Every predicate
present is checked, in a fixed order; the first one that fails raises
AssertionFailedError and the rest are not evaluated.

Predicates (keys as written in test files):
    exists, equals, contains, matches, type, length,
    greaterThan, lessThan, notEmpty, isEmpty, isNull, isNotNull

Usage:
    run_assertion(5, {"greaterThan": 3, "lessThan": 10})
    run_path_assertions(body, [{"path": "$.items", "length": 2}])
"""

import math
import re
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Optional

from ..errors import AssertionFailedError
from .jsonpath import UNDEFINED, evaluate_jsonpath
from .matchers import format_value, get_length, get_type, loose_equals, stringify, to_number

ASSERTION_KEYS = (
    "exists",
    "equals",
    "contains",
    "matches",
    "type",
    "length",
    "greaterThan",
    "lessThan",
    "notEmpty",
    "isEmpty",
    "isNull",
    "isNotNull",
)


def run_assertion(value: Any, assertion: Dict[str, Any], path: Optional[str] = None):
    """
    Check every predicate in assertion against value.

    value may be UNDEFINED to mean "nothing at that path", which only
    exists, type and the null checks distinguish from None.
    """
    prefix = f"{path} " if path else ""

    exists = assertion.get("exists")
    if exists is True and value is UNDEFINED:
        raise AssertionFailedError(f"{prefix}does not exist", path=path, operator="exists")
    if exists is False and value is not UNDEFINED:
        raise AssertionFailedError(
            f"{prefix}exists but should not", actual=value, path=path, operator="notExists"
        )

    if "equals" in assertion:
        expected = assertion["equals"]
        if not loose_equals(value, expected):
            raise AssertionFailedError(
                f"{prefix}= {format_value(value)}, expected {format_value(expected)}",
                expected=expected,
                actual=value,
                path=path,
                operator="equals",
            )

    contains = assertion.get("contains")
    if contains is not None and stringify(contains) not in stringify(value):
        raise AssertionFailedError(
            f'{prefix}does not contain "{contains}"',
            expected=contains,
            actual=value,
            path=path,
            operator="contains",
        )

    pattern = assertion.get("matches")
    if pattern is not None and not re.search(pattern, stringify(value)):
        raise AssertionFailedError(
            f"{prefix}does not match /{pattern}/",
            expected=pattern,
            actual=value,
            path=path,
            operator="matches",
        )

    expected_type = assertion.get("type")
    if expected_type is not None:
        actual_type = get_type(value)
        if actual_type != expected_type:
            raise AssertionFailedError(
                f"{prefix}type is {actual_type}, expected {expected_type}",
                expected=expected_type,
                actual=actual_type,
                path=path,
                operator="type",
            )

    length = assertion.get("length")
    if length is not None:
        actual_length = get_length(value)
        if actual_length != length:
            raise AssertionFailedError(
                f"{prefix}length is {actual_length}, expected {length}",
                expected=length,
                actual=actual_length,
                path=path,
                operator="length",
            )

    greater = assertion.get("greaterThan")
    if greater is not None and not _compare(value, greater, lambda a, b: a > b):
        raise AssertionFailedError(
            f"{prefix}= {stringify(value)}, expected > {greater}",
            expected=f"> {greater}",
            actual=value,
            path=path,
            operator="greaterThan",
        )

    less = assertion.get("lessThan")
    if less is not None and not _compare(value, less, lambda a, b: a < b):
        raise AssertionFailedError(
            f"{prefix}= {stringify(value)}, expected < {less}",
            expected=f"< {less}",
            actual=value,
            path=path,
            operator="lessThan",
        )

    if assertion.get("notEmpty") is True and get_length(value) == 0:
        raise AssertionFailedError(
            f"{prefix}is empty, expected not empty",
            expected="not empty",
            actual=value,
            path=path,
            operator="notEmpty",
        )

    if assertion.get("isEmpty") is True:
        actual_length = get_length(value)
        if actual_length != 0:
            raise AssertionFailedError(
                f"{prefix}is not empty (length: {actual_length}), expected empty",
                expected="empty",
                actual=value,
                path=path,
                operator="isEmpty",
            )

    is_null = value is None or value is UNDEFINED
    if assertion.get("isNull") is True and not is_null:
        raise AssertionFailedError(f"{prefix}is not null", actual=value, path=path, operator="isNull")
    if assertion.get("isNotNull") is True and is_null:
        raise AssertionFailedError(f"{prefix}is null", path=path, operator="isNotNull")


def _compare(value: Any, bound: Any, op) -> bool:
    number = to_number(value)
    if math.isnan(number):
        return False
    return op(number, to_number(bound))


def run_path_assertions(data: Any, assertions: Iterable[Dict[str, Any]], path_key: str = "path"):
    """Run a list of {path, <predicates>} assertions against data."""
    for assertion in assertions:
        path = assertion.get(path_key, "$")
        value = evaluate_jsonpath(data, path, UNDEFINED)
        run_assertion(value, assertion, path)


def is_assertion(payload: Any) -> bool:
    """Check whether a mapping holds only predicate keys."""
    return isinstance(payload, Mapping) and bool(payload) and all(
        key in ASSERTION_KEYS for key in payload
    )
