"""
Step Executor

Runs one step against its adapter:

1. wait out the step's delay
2. per attempt: interpolate params, assert and capture with the current
   interpolation context, dispatch to the adapter, check assertions,
   then capture values
3. retry failed attempts (step.retry, else the test's retries, else the
   suite default) with exponential backoff and jitter
4. build a StepResult; continueOnError downgrades a failure to passed
   while keeping the error

Function steps from procedural tests skip interpolation and adapters:
the function is called with the adapter context inside the same retry
loop.
"""

import logging
import random
from typing import Any, Callable, List, Optional

from .errors import ExecutionError, InterpolationError
from .interpolator import InterpolationContext, interpolate_object
from .models import FunctionStep, Step, StepResult, TestStatus, UnifiedStep
from .utils import DEFAULT_MAX_DELAY, maybe_await, now_ms, sleep, with_retry

logger = logging.getLogger(__name__)


def _is_retryable(error: BaseException) -> bool:
    # Interpolation failures are deterministic
    return not isinstance(error, InterpolationError)


class StepExecutor:
    """Executes individual steps with retry logic."""

    def __init__(
        self,
        adapters: Any,
        default_retries: int = 0,
        retry_delay: float = 1000,
        max_delay: float = DEFAULT_MAX_DELAY,
        rng: Optional[random.Random] = None,
    ):
        self.adapters = adapters
        self.default_retries = default_retries
        self.retry_delay = retry_delay
        self.max_delay = max_delay
        self.rng = rng

    def max_attempts(self, step: Step, test_retries: Optional[int] = None) -> int:
        if step.retry is not None:
            retries = step.retry
        elif test_retries is not None:
            retries = test_retries
        else:
            retries = self.default_retries
        return max(int(retries), 0) + 1

    async def execute_step(
        self,
        step: Step,
        adapter_ctx: Any,
        interpolation_ctx: Optional[InterpolationContext] = None,
        test_retries: Optional[int] = None,
        context_provider: Optional[Callable[[], InterpolationContext]] = None,
    ) -> StepResult:
        """
        Execute a single step. Never raises for step failures.

        Args:
            step: The step to execute
            adapter_ctx: Context passed to adapters and step functions
            interpolation_ctx: Variables/captures used for templating
            test_retries: The owning test's retry setting, if any
            context_provider: Returns a fresh interpolation context per
                attempt; takes precedence over interpolation_ctx

        Returns:
            StepResult with status passed or failed
        """
        start = now_ms()
        retries_used = 0
        max_attempts = self.max_attempts(step, test_retries)

        label = (
            f"{step.adapter.value}.{step.action}" if isinstance(step, UnifiedStep) else "function"
        )
        logger.debug(f"Executing step: {step.id} ({label})")

        if step.delay and step.delay > 0:
            logger.debug(f"Waiting {step.delay}ms before step {step.id}")
            await sleep(step.delay)

        def on_retry(error: BaseException, attempt: int, delay: float):
            nonlocal retries_used
            retries_used = attempt
            logger.warning(
                f"Step {step.id} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.0f}ms: {error}"
            )

        async def attempt():
            ctx = context_provider() if context_provider else interpolation_ctx
            return await self.execute_step_once(step, adapter_ctx, ctx)

        try:
            if isinstance(step, UnifiedStep):
                self._get_adapter(step)
            data = await with_retry(
                attempt,
                max_attempts=max_attempts,
                base_delay=self.retry_delay,
                max_delay=self.max_delay,
                should_retry=_is_retryable,
                on_retry=on_retry,
                rng=self.rng,
            )
        except Exception as e:
            duration = now_ms() - start
            if step.continue_on_error:
                logger.warning(f"Step {step.id} failed but continueOnError=true: {e}")
                return build_step_result(step, TestStatus.PASSED, duration, None, retries_used, e)
            logger.error(f"Step {step.id} failed: {e}")
            return build_step_result(step, TestStatus.FAILED, duration, None, retries_used, e)

        duration = now_ms() - start
        logger.debug(f"Step {step.id} completed in {duration}ms")
        return build_step_result(step, TestStatus.PASSED, duration, data, retries_used)

    async def execute_step_once(
        self,
        step: Step,
        adapter_ctx: Any,
        interpolation_ctx: Optional[InterpolationContext],
    ) -> Any:
        """One attempt. Returns the result data or raises."""
        if isinstance(step, FunctionStep):
            return await maybe_await(step.fn(adapter_ctx))

        if interpolation_ctx is not None:
            params = interpolate_object(step.params, interpolation_ctx)
            assertion = interpolate_object(step.assertion, interpolation_ctx)
            capture = interpolate_object(step.capture, interpolation_ctx)
        else:
            params, assertion, capture = step.params, step.assertion, step.capture

        adapter = self._get_adapter(step)
        result = await adapter.execute(step.action, params, adapter_ctx)
        if not result.success:
            raise result.error or ExecutionError(
                f"Step {step.id} failed", phase=step.id.split("-")[0], step_id=step.id
            )

        if assertion:
            adapter.check_assertions(result.data, assertion)
        if capture:
            adapter.capture_values(result.data, capture, adapter_ctx)
        return result.data

    def _get_adapter(self, step: UnifiedStep):
        try:
            return self.adapters.get(step.adapter)
        except LookupError as e:
            raise ExecutionError(
                f'Adapter "{step.adapter.value}" is not configured', step_id=step.id
            ) from e


def build_step_result(
    step: Step,
    status: TestStatus,
    duration: int = 0,
    data: Any = None,
    retry_count: int = 0,
    error: Optional[BaseException] = None,
) -> StepResult:
    is_declarative = isinstance(step, UnifiedStep)
    return StepResult(
        id=step.id,
        status=status,
        duration=duration,
        data=data,
        error=error,
        retry_count=retry_count,
        adapter=step.adapter.value if is_declarative else None,
        action=step.action if is_declarative else None,
        description=step.description,
    )


def get_first_failed_step(results: List[StepResult]) -> Optional[StepResult]:
    for result in results:
        if result.status == TestStatus.FAILED:
            return result
    return None
