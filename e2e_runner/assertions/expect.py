"""
Fluent expectations for procedural tests.

Usage:
    from e2e_runner.assertions import expect

    async def execute(ctx):
        response = await ctx.adapter("http").request("GET", "/users/1")
        expect(response["status"]).to_be(200)
        expect(response["body"]).to_have_property("email")
        expect(response["body"]["roles"]).not_.to_contain("admin")
"""

from typing import Any, Callable, Optional, Type

from ..errors import AssertionFailedError
from . import matchers
from .matchers import MatcherResult


class Expectation:
    """Wraps a value; each to_* method raises AssertionFailedError on failure."""

    def __init__(self, actual: Any, negated: bool = False):
        self.actual = actual
        self._negated = negated

    @property
    def not_(self) -> "Expectation":
        return Expectation(self.actual, not self._negated)

    def _check(self, result: MatcherResult, operator: str, expected: Any = None):
        if result.passed == self._negated:
            raise AssertionFailedError(
                result.message,
                expected=expected,
                actual=self.actual,
                operator=f"not.{operator}" if self._negated else operator,
            )

    def to_be(self, expected: Any):
        self._check(matchers.to_be(self.actual, expected), "to_be", expected)

    def to_equal(self, expected: Any):
        self._check(matchers.to_equal(self.actual, expected), "to_equal", expected)

    def to_be_one_of(self, expected: list):
        self._check(matchers.to_be_one_of(self.actual, expected), "to_be_one_of", expected)

    def to_be_defined(self):
        self._check(matchers.to_be_defined(self.actual), "to_be_defined")

    def to_be_undefined(self):
        self._check(matchers.to_be_undefined(self.actual), "to_be_undefined")

    def to_be_none(self):
        self._check(matchers.to_be_none(self.actual), "to_be_none")

    def to_be_truthy(self):
        self._check(matchers.to_be_truthy(self.actual), "to_be_truthy")

    def to_be_falsy(self):
        self._check(matchers.to_be_falsy(self.actual), "to_be_falsy")

    def to_contain(self, item: Any):
        self._check(matchers.to_contain(self.actual, item), "to_contain", item)

    def to_have_length(self, length: int):
        self._check(matchers.to_have_length(self.actual, length), "to_have_length", length)

    def to_match(self, pattern: Any):
        self._check(matchers.to_match(self.actual, pattern), "to_match", pattern)

    def to_be_greater_than(self, value: float):
        self._check(matchers.to_be_greater_than(self.actual, value), "to_be_greater_than", value)

    def to_be_greater_than_or_equal(self, value: float):
        self._check(
            matchers.to_be_greater_than_or_equal(self.actual, value),
            "to_be_greater_than_or_equal",
            value,
        )

    def to_be_less_than(self, value: float):
        self._check(matchers.to_be_less_than(self.actual, value), "to_be_less_than", value)

    def to_be_less_than_or_equal(self, value: float):
        self._check(
            matchers.to_be_less_than_or_equal(self.actual, value), "to_be_less_than_or_equal", value
        )

    def to_have_property(self, path: str, *expected: Any):
        result = matchers.to_have_property(self.actual, path, *expected)
        self._check(result, "to_have_property", expected[0] if expected else None)

    def to_match_object(self, expected: dict):
        self._check(matchers.to_match_object(self.actual, expected), "to_match_object", expected)

    def to_be_type(self, expected_type: str):
        self._check(matchers.to_be_type(self.actual, expected_type), "to_be_type", expected_type)

    def to_raise(self, error_type: Type[BaseException] = Exception, match: Optional[str] = None):
        """actual must be a zero-argument callable."""
        if not callable(self.actual):
            raise AssertionFailedError("Expected a callable", operator="to_raise")

        raised = None
        try:
            self.actual()
        except error_type as e:
            raised = e

        passed = raised is not None and (match is None or match in str(raised))
        name = error_type.__name__
        if passed:
            message = f"Expected function not to raise {name}, but it raised: {raised}"
        elif raised is not None:
            message = f'Expected {name} containing "{match}", got: {raised}'
        else:
            message = f"Expected function to raise {name}"
        self._check(MatcherResult(passed, message), "to_raise", name)


def expect(actual: Any) -> Expectation:
    return Expectation(actual)


def assert_true(condition: Any, message: str = "Assertion failed"):
    if not condition:
        raise AssertionFailedError(message, expected=True, actual=condition, operator="assert")


def assert_false(condition: Any, message: str = "Assertion failed"):
    if condition:
        raise AssertionFailedError(message, expected=False, actual=condition, operator="assert_false")


def fail(message: str):
    raise AssertionFailedError(message, operator="fail")


def assert_raises(fn: Callable[[], Any], error_type: Type[BaseException] = Exception) -> BaseException:
    """Call fn and return the error it raised; fail if it did not raise."""
    try:
        fn()
    except error_type as e:
        return e
    raise AssertionFailedError(
        f"Expected function to raise {error_type.__name__}", operator="assert_raises"
    )
