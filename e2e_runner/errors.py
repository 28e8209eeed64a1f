"""
Runner Errors

Exception hierarchy for the E2E runner. Every error raised by the runner
itself derives from E2ERunnerError and carries a machine-readable code
(mapped to a process exit code by exit_codes) and an optional hint.

Usage:
    from e2e_runner.errors import AdapterError, wrap_error

    try:
        await adapter.execute(action, params, ctx)
    except Exception as e:
        raise wrap_error(e, f"Step {step.id}") from e
"""

import json
from typing import Any, List, Optional


class E2ERunnerError(Exception):
    """Base class for all runner errors."""

    code = "E2E_ERROR"

    def __init__(self, message: str, code: str = None, hint: str = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.hint = hint

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        """Convert to dictionary for reports."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "hint": self.hint,
        }


class ConfigurationError(E2ERunnerError):
    """Bad or missing configuration, including unresolved environment variables."""

    code = "CONFIG_ERROR"

    def __init__(self, message: str, hint: str = None):
        super().__init__(message, hint=hint)


class ValidationError(E2ERunnerError):
    """A test definition failed validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: List[str] = None, file_path: str = None):
        super().__init__(message)
        self.errors = errors or []
        self.file_path = file_path

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        details = "\n".join(f"  - {e}" for e in self.errors)
        return f"{self.message}\n{details}"


class AdapterConnectionError(E2ERunnerError):
    """An adapter could not connect to its backend."""

    code = "CONNECTION_ERROR"

    def __init__(self, adapter: str, message: str, hint: str = None):
        super().__init__(f"[{adapter}] {message}", hint=hint)
        self.adapter = adapter


class ExecutionError(E2ERunnerError):
    """Unexpected failure while running a test."""

    code = "EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        test_name: str = None,
        phase: str = None,
        step_id: str = None,
    ):
        super().__init__(message)
        self.test_name = test_name
        self.phase = phase
        self.step_id = step_id


class AssertionFailedError(E2ERunnerError):
    """An expectation on a step result was violated."""

    code = "ASSERTION_ERROR"

    def __init__(
        self,
        message: str,
        expected: Any = None,
        actual: Any = None,
        path: Optional[str] = None,
        operator: Optional[str] = None,
    ):
        super().__init__(message)
        self.expected = expected
        self.actual = actual
        self.path = path
        self.operator = operator

    def to_detailed_string(self) -> str:
        lines = [f"AssertionFailedError: {self.message}"]
        if self.path:
            lines.append(f"  Path: {self.path}")
        if self.operator:
            lines.append(f"  Operator: {self.operator}")
        if self.expected is not None:
            lines.append(f"  Expected: {_dump(self.expected)}")
        if self.actual is not None:
            lines.append(f"  Actual: {_dump(self.actual)}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            {
                "expected": self.expected,
                "actual": self.actual,
                "path": self.path,
                "operator": self.operator,
            }
        )
        return data


class OperationTimeoutError(E2ERunnerError):
    """An operation exceeded its time budget."""

    code = "TIMEOUT_ERROR"

    def __init__(self, operation: str, timeout_ms: int):
        super().__init__(f'Operation "{operation}" timed out after {timeout_ms}ms')
        self.operation = operation
        self.timeout_ms = timeout_ms


class InterpolationError(E2ERunnerError):
    """A template placeholder could not be resolved."""

    code = "INTERPOLATION_ERROR"

    def __init__(self, message: str, expression: str = None):
        super().__init__(message)
        self.expression = expression


class LoaderError(E2ERunnerError):
    """A test file could not be read or parsed."""

    code = "LOADER_ERROR"

    def __init__(self, message: str, file_path: str = None):
        super().__init__(message)
        self.file_path = file_path


class AdapterError(E2ERunnerError):
    """A backend operation failed inside an adapter."""

    code = "ADAPTER_ERROR"

    def __init__(self, adapter: str, action: str, message: str):
        super().__init__(f"[{adapter}.{action}] {message}")
        self.adapter = adapter
        self.action = action


def _dump(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


def is_runner_error(error: Any) -> bool:
    """Check whether an object is one of the runner's own errors."""
    return isinstance(error, E2ERunnerError)


def wrap_error(error: BaseException, context: str) -> E2ERunnerError:
    """
    Attach context to an unexpected error.

    Runner errors are returned unchanged. Anything else becomes an
    ExecutionError whose message keeps the original text.
    """
    if isinstance(error, E2ERunnerError):
        return error
    return ExecutionError(f"{context}: {error}")
