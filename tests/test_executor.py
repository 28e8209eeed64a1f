"""
Step Executor Tests

Tests for step dispatch, retries, captures and continueOnError.
"""
import asyncio
import random

from e2e_runner.context import ContextFactory
from e2e_runner.errors import ExecutionError, InterpolationError
from e2e_runner.executor import StepExecutor, get_first_failed_step
from e2e_runner.models import (
    AdapterType,
    FunctionStep,
    StepResult,
    TestStatus,
    UnifiedStep,
    UnifiedTestDefinition,
)


def make_step(action="echo", **kwargs):
    return UnifiedStep(id=kwargs.pop("id", "execute-1"), adapter=AdapterType.HTTP, action=action, **kwargs)


class TestExecuteStep:
    """Test single step execution."""

    def setup_method(self):
        """Set up test fixtures."""
        self.factory = ContextFactory({"name": "widget"}, "http://api")
        self.context = self.factory.create_test_context(UnifiedTestDefinition(name="t"))

    def run_step(self, executor, step, **kwargs):
        return asyncio.run(
            executor.execute_step(
                step,
                self.context.create_adapter_context(),
                context_provider=self.context.get_interpolation_context,
                **kwargs,
            )
        )

    def test_passes_interpolated_params(self, registry, fake_adapter):
        """Params are interpolated before dispatch."""
        executor = StepExecutor(registry, retry_delay=0)
        step = make_step(params={"path": "{{baseUrl}}/items", "name": "{{name}}"})
        result = self.run_step(executor, step)

        assert result.status == TestStatus.PASSED
        assert result.data == {"path": "http://api/items", "name": "widget"}
        assert result.adapter == "http"
        assert result.action == "echo"
        assert fake_adapter.calls[0] == ("echo", {"path": "http://api/items", "name": "widget"})

    def test_capture_and_assert(self, registry):
        """Captured values land in the test's store."""
        executor = StepExecutor(registry, retry_delay=0)
        step = make_step(
            params={"id": 42, "status": "ok"},
            capture={"itemId": "$.id"},
            assertion=[{"path": "$.status", "equals": "ok"}],
        )
        result = self.run_step(executor, step)

        assert result.status == TestStatus.PASSED
        assert self.context.captured["itemId"] == 42

    def test_failed_assertion_skips_capture(self, registry):
        """Captures run only after assertions pass."""
        executor = StepExecutor(registry, retry_delay=0)
        step = make_step(
            params={"id": 42},
            capture={"itemId": "$.id"},
            assertion={"type": "array"},
        )
        result = self.run_step(executor, step)

        assert result.status == TestStatus.FAILED
        assert "itemId" not in self.context.captured

    def test_later_step_sees_capture(self, registry):
        """Each attempt rebuilds the interpolation context."""
        executor = StepExecutor(registry, retry_delay=0)
        self.run_step(executor, make_step(params={"id": "abc"}, capture={"itemId": "$.id"}))
        result = self.run_step(executor, make_step(id="verify-1", params={"ref": "{{itemId}}"}))
        assert result.data == {"ref": "abc"}

    def test_retries_until_success(self, registry, fake_adapter):
        """Flaky steps succeed within the retry budget."""
        executor = StepExecutor(registry, retry_delay=0, rng=random.Random(1))
        result = self.run_step(executor, make_step("flaky", params={"failures": 2}, retry=2))

        assert result.status == TestStatus.PASSED
        assert result.retry_count == 2
        assert fake_adapter.attempts == 3

    def test_retry_budget_exhausted(self, registry, fake_adapter):
        """The last error is kept when retries run out."""
        executor = StepExecutor(registry, retry_delay=0)
        result = self.run_step(executor, make_step("flaky", params={"failures": 5}, retry=1))

        assert result.status == TestStatus.FAILED
        assert result.retry_count == 1
        assert fake_adapter.attempts == 2
        assert "flaky failure 2" in str(result.error)

    def test_test_retries_used_when_step_has_none(self, registry, fake_adapter):
        """Test-level retries apply when the step sets none."""
        executor = StepExecutor(registry, default_retries=0, retry_delay=0)
        result = self.run_step(executor, make_step("flaky", params={"failures": 1}), test_retries=1)
        assert result.status == TestStatus.PASSED
        assert fake_adapter.attempts == 2

    def test_step_retry_overrides_defaults(self, registry):
        """step.retry wins over test and suite settings."""
        executor = StepExecutor(registry, default_retries=5)
        assert executor.max_attempts(make_step(retry=0), test_retries=3) == 1
        assert executor.max_attempts(make_step(), test_retries=3) == 4
        assert executor.max_attempts(make_step()) == 6

    def test_interpolation_error_not_retried(self, registry, fake_adapter):
        """Unresolvable placeholders fail on the first attempt."""
        executor = StepExecutor(registry, retry_delay=0)
        result = self.run_step(executor, make_step(params={"x": "{{missing}}"}, retry=3))

        assert result.status == TestStatus.FAILED
        assert isinstance(result.error, InterpolationError)
        assert result.retry_count == 0
        assert fake_adapter.calls == []

    def test_continue_on_error(self, registry):
        """continueOnError passes the step but keeps the error."""
        executor = StepExecutor(registry, retry_delay=0)
        result = self.run_step(executor, make_step("fail", params={"message": "nope"}, continue_on_error=True))

        assert result.status == TestStatus.PASSED
        assert "nope" in str(result.error)

    def test_missing_adapter(self, registry):
        """Steps for unconfigured adapters fail without retrying."""
        executor = StepExecutor(registry, retry_delay=0)
        step = UnifiedStep(id="execute-1", adapter=AdapterType.REDIS, action="get", retry=3)
        result = self.run_step(executor, step)

        assert result.status == TestStatus.FAILED
        assert isinstance(result.error, ExecutionError)
        assert 'Adapter "redis" is not configured' in str(result.error)

    def test_function_step(self, registry):
        """Function steps receive the adapter context."""

        async def fn(ctx):
            ctx.capture("seen", ctx.base_url)
            return "ok"

        executor = StepExecutor(registry, retry_delay=0)
        result = self.run_step(executor, FunctionStep(id="execute", fn=fn))

        assert result.status == TestStatus.PASSED
        assert result.data == "ok"
        assert result.adapter is None
        assert self.context.captured["seen"] == "http://api"


class TestHelpers:
    """Test result helpers."""

    def test_get_first_failed_step(self):
        """Returns the first failed result, if any."""
        results = [
            StepResult(id="a", status=TestStatus.PASSED),
            StepResult(id="b", status=TestStatus.FAILED),
            StepResult(id="c", status=TestStatus.FAILED),
        ]
        assert get_first_failed_step(results).id == "b"
        assert get_first_failed_step(results[:1]) is None
