"""
Matcher Implementations

Each matcher returns a MatcherResult(passed, message); the message
describes the failure when passed is False and the negated failure
otherwise, so expect() can support .not_ with one function.

Also home to the value helpers every assertion path shares:
stringify (JSON-flavoured string form), get_type and get_length.
"""

import json
import math
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Dict, Iterable, NamedTuple

from .jsonpath import UNDEFINED, get_by_path

_MISSING = object()


class MatcherResult(NamedTuple):
    passed: bool
    message: str


# =========================================================================
# Value helpers
# =========================================================================


def stringify(value: Any) -> str:
    """
    String form of a value as test authors write it in YAML.

    Booleans and null use their JSON spelling, whole floats drop the
    fraction, containers are compact JSON.
    """
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple)):
        try:
            return json.dumps(value, default=str, separators=(",", ":"))
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def format_value(value: Any, max_length: int = 100) -> str:
    """Readable representation for failure messages."""
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, re.Pattern):
        return f"/{value.pattern}/"
    if isinstance(value, BaseException):
        return f"[{type(value).__name__}: {value}]"
    if callable(value):
        return f"[Function: {getattr(value, '__name__', 'anonymous')}]"
    text = stringify(value)
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def get_type(value: Any) -> str:
    """Type name in JSON terms: string, number, boolean, object, array, null, undefined."""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if callable(value):
        return "function"
    return "object"


def get_length(value: Any) -> int:
    """Length of arrays/strings, key count of objects, 0 for null, else -1."""
    if value is None or value is UNDEFINED:
        return 0
    if isinstance(value, (list, tuple, str)):
        return len(value)
    if isinstance(value, Mapping):
        return len(value)
    return -1


def to_number(value: Any) -> float:
    """Numeric value, NaN when the value is not numeric."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return math.nan


def loose_equals(actual: Any, expected: Any) -> bool:
    """Direct equality, falling back to comparing string forms."""
    if actual is expected:
        return True
    if actual is not UNDEFINED and expected is not UNDEFINED and actual == expected:
        return True
    return stringify(actual) == stringify(expected)


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality that does not treat True as 1."""
    if a is b:
        return True
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a.keys()) != set(b.keys()):
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if a is UNDEFINED or b is UNDEFINED:
        return False
    return a == b


def match_partial(actual: Any, expected: Any) -> bool:
    """True when every key in expected is present in actual with a matching value."""
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return False
        return all(k in actual and match_partial(actual[k], v) for k, v in expected.items())
    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)) or len(actual) != len(expected):
            return False
        return all(match_partial(x, y) for x, y in zip(actual, expected))
    return deep_equal(actual, expected)


# =========================================================================
# Matchers
# =========================================================================


def to_be(actual: Any, expected: Any) -> MatcherResult:
    passed = actual is expected or (
        type(actual) is type(expected) and not isinstance(actual, (Mapping, list)) and actual == expected
    )
    if passed:
        return MatcherResult(True, f"Expected {format_value(actual)} not to be {format_value(expected)}")
    return MatcherResult(False, f"Expected {format_value(actual)} to be {format_value(expected)}")


def to_equal(actual: Any, expected: Any) -> MatcherResult:
    if deep_equal(actual, expected):
        return MatcherResult(True, f"Expected {format_value(actual)} not to equal {format_value(expected)}")
    return MatcherResult(False, f"Expected {format_value(actual)} to equal {format_value(expected)}")


def to_be_one_of(actual: Any, expected: Iterable[Any]) -> MatcherResult:
    options = list(expected)
    passed = any(deep_equal(actual, option) for option in options)
    verb = "not to be" if passed else "to be"
    return MatcherResult(passed, f"Expected {format_value(actual)} {verb} one of {format_value(options)}")


def to_be_defined(actual: Any) -> MatcherResult:
    if actual is not UNDEFINED:
        return MatcherResult(True, f"Expected {format_value(actual)} not to be defined")
    return MatcherResult(False, "Expected value to be defined")


def to_be_undefined(actual: Any) -> MatcherResult:
    if actual is UNDEFINED:
        return MatcherResult(True, "Expected value not to be undefined")
    return MatcherResult(False, f"Expected {format_value(actual)} to be undefined")


def to_be_none(actual: Any) -> MatcherResult:
    if actual is None:
        return MatcherResult(True, "Expected value not to be null")
    return MatcherResult(False, f"Expected {format_value(actual)} to be null")


def to_be_truthy(actual: Any) -> MatcherResult:
    if actual:
        return MatcherResult(True, f"Expected {format_value(actual)} to be falsy")
    return MatcherResult(False, f"Expected {format_value(actual)} to be truthy")


def to_be_falsy(actual: Any) -> MatcherResult:
    if not actual:
        return MatcherResult(True, f"Expected {format_value(actual)} to be truthy")
    return MatcherResult(False, f"Expected {format_value(actual)} to be falsy")


def to_contain(actual: Any, item: Any) -> MatcherResult:
    if isinstance(actual, str):
        passed = stringify(item) in actual
    elif isinstance(actual, (list, tuple)):
        passed = any(deep_equal(x, item) for x in actual)
    elif isinstance(actual, Mapping):
        passed = item in actual
    else:
        return MatcherResult(False, f"Expected a string, array or object, but got {get_type(actual)}")
    verb = "not to contain" if passed else "to contain"
    return MatcherResult(passed, f"Expected {format_value(actual)} {verb} {format_value(item)}")


def to_have_length(actual: Any, length: int) -> MatcherResult:
    actual_length = get_length(actual)
    if actual_length < 0:
        return MatcherResult(False, f"Expected a value with a length, but got {get_type(actual)}")
    if actual_length == length:
        return MatcherResult(True, f"Expected length not to be {length}")
    return MatcherResult(False, f"Expected length {length}, but got {actual_length}")


def to_match(actual: Any, pattern: Any) -> MatcherResult:
    if not isinstance(actual, str):
        return MatcherResult(False, f"Expected a string, but got {get_type(actual)}")
    regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)
    passed = regex.search(actual) is not None
    verb = "not to match" if passed else "to match"
    return MatcherResult(passed, f"Expected {format_value(actual)} {verb} /{regex.pattern}/")


def _compare(actual: Any, value: float, op: str, label: str) -> MatcherResult:
    number = to_number(actual)
    if math.isnan(number):
        return MatcherResult(False, f"Expected a number, but got {get_type(actual)}")
    checks = {
        ">": number > value,
        ">=": number >= value,
        "<": number < value,
        "<=": number <= value,
    }
    passed = checks[op]
    verb = f"not to be {label}" if passed else f"to be {label}"
    return MatcherResult(passed, f"Expected {format_value(actual)} {verb} {value}")


def to_be_greater_than(actual: Any, value: float) -> MatcherResult:
    return _compare(actual, value, ">", "greater than")


def to_be_greater_than_or_equal(actual: Any, value: float) -> MatcherResult:
    return _compare(actual, value, ">=", "greater than or equal to")


def to_be_less_than(actual: Any, value: float) -> MatcherResult:
    return _compare(actual, value, "<", "less than")


def to_be_less_than_or_equal(actual: Any, value: float) -> MatcherResult:
    return _compare(actual, value, "<=", "less than or equal to")


def to_have_property(actual: Any, path: str, expected: Any = _MISSING) -> MatcherResult:
    if not isinstance(actual, (Mapping, list, tuple)):
        return MatcherResult(False, f"Expected an object, but got {get_type(actual)}")

    value = get_by_path(actual, path, UNDEFINED)
    if expected is _MISSING:
        if value is not UNDEFINED:
            return MatcherResult(True, f'Expected object not to have property "{path}"')
        return MatcherResult(False, f'Expected object to have property "{path}"')

    if value is UNDEFINED:
        return MatcherResult(False, f'Expected object to have property "{path}"')
    if deep_equal(value, expected):
        return MatcherResult(True, f'Expected property "{path}" not to be {format_value(expected)}')
    return MatcherResult(
        False,
        f'Expected property "{path}" to be {format_value(expected)}, but got {format_value(value)}',
    )


def to_match_object(actual: Any, expected: Dict[str, Any]) -> MatcherResult:
    if match_partial(actual, expected):
        return MatcherResult(True, f"Expected {format_value(actual)} not to match {format_value(expected)}")
    return MatcherResult(False, f"Expected {format_value(actual)} to match {format_value(expected)}")


VALID_TYPES = ("string", "number", "boolean", "object", "array", "function", "undefined", "null")


def to_be_type(actual: Any, expected_type: str) -> MatcherResult:
    if expected_type not in VALID_TYPES:
        return MatcherResult(
            False, f'Invalid type "{expected_type}". Valid types: {", ".join(VALID_TYPES)}'
        )
    actual_type = get_type(actual)
    if actual_type == expected_type:
        return MatcherResult(True, f'Expected {format_value(actual)} not to be of type "{expected_type}"')
    return MatcherResult(
        False,
        f'Expected {format_value(actual)} to be of type "{expected_type}", but got "{actual_type}"',
    )


MATCHERS = {
    "to_be": to_be,
    "to_equal": to_equal,
    "to_be_one_of": to_be_one_of,
    "to_be_defined": to_be_defined,
    "to_be_undefined": to_be_undefined,
    "to_be_none": to_be_none,
    "to_be_truthy": to_be_truthy,
    "to_be_falsy": to_be_falsy,
    "to_contain": to_contain,
    "to_have_length": to_have_length,
    "to_match": to_match,
    "to_be_greater_than": to_be_greater_than,
    "to_be_greater_than_or_equal": to_be_greater_than_or_equal,
    "to_be_less_than": to_be_less_than,
    "to_be_less_than_or_equal": to_be_less_than_or_equal,
    "to_have_property": to_have_property,
    "to_match_object": to_match_object,
    "to_be_type": to_be_type,
}
