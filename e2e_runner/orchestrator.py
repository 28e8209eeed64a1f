"""
Test Orchestrator

Manages the test lifecycle: setup -> execute -> verify -> teardown.

- Tests run under a bounded concurrency limit (`parallel`, default 1).
  Results keep submission order regardless of completion order.
- Phases of one test run strictly in order and stop at the first failed
  phase. Teardown always runs afterwards, and its failure never changes
  the test's status.
- setup/execute/verify share one timeout budget per test. Exceeding it
  marks the test as error and the in-flight phase as failed.
- beforeEach/afterEach hooks run outside that budget.
- With bail, the first failed or errored test makes every test that has
  not started yet resolve as skipped.
- Listeners receive (event, data) for suite/test/phase/step start and
  end. A raising listener is logged and ignored.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .context import ContextFactory, TestContext
from .errors import E2ERunnerError, OperationTimeoutError, wrap_error
from .executor import StepExecutor, build_step_result, get_first_failed_step
from .hooks import HookRunner
from .models import (
    EventType,
    Phase,
    PhaseResult,
    Step,
    StepResult,
    TestExecutionResult,
    TestStatus,
    TestSuiteResult,
    UnifiedStep,
    UnifiedTestDefinition,
    now_iso,
)
from .utils import now_ms, with_timeout

logger = logging.getLogger(__name__)

Listener = Callable[[EventType, Dict[str, Any]], None]

MAIN_PHASES = (Phase.SETUP, Phase.EXECUTE, Phase.VERIFY)
DEFAULT_SUITE_NAME = "E2E Tests"


@dataclass
class OrchestratorOptions:
    parallel: int = 1
    timeout: int = 30000  # ms, per test
    retries: int = 0
    retry_delay: int = 1000
    skip_setup: bool = False
    skip_teardown: bool = False
    bail: bool = False
    dry_run: bool = False

    @classmethod
    def from_config(cls, config, **overrides) -> "OrchestratorOptions":
        """Suite defaults from a LoadedConfig, with non-None overrides applied."""
        options = cls(
            parallel=config.defaults.parallel,
            timeout=config.defaults.timeout,
            retries=config.defaults.retries,
            retry_delay=config.defaults.retry_delay,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options


class Orchestrator:
    """Runs test definitions against an adapter registry."""

    def __init__(
        self,
        adapters: Any,
        context_factory: Optional[ContextFactory] = None,
        options: Optional[OrchestratorOptions] = None,
        hooks: Optional[HookRunner] = None,
        rng: Optional[random.Random] = None,
        suite_name: str = DEFAULT_SUITE_NAME,
    ):
        self.adapters = adapters
        self.context_factory = context_factory or ContextFactory(adapters=adapters)
        self.options = options or OrchestratorOptions()
        self.hooks = hooks or HookRunner()
        self.suite_name = suite_name
        self.executor = StepExecutor(
            adapters,
            default_retries=self.options.retries,
            retry_delay=self.options.retry_delay,
            rng=rng,
        )
        self._listeners: List[Listener] = []
        self._bailed = False

    @classmethod
    def from_config(cls, config, adapters: Any, **option_overrides) -> "Orchestrator":
        base_dir = str(Path(config.path).parent) if config.path else None
        return cls(
            adapters,
            context_factory=ContextFactory.from_config(config, adapters),
            options=OrchestratorOptions.from_config(config, **option_overrides),
            hooks=HookRunner(config.hooks, base_dir),
        )

    # =========================================================================
    # Events
    # =========================================================================

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: EventType, data: Dict[str, Any]):
        data.setdefault("timestamp", datetime.now())
        for listener in list(self._listeners):
            try:
                listener(event, data)
            except Exception as e:
                logger.warning(f"Event listener error on {event.value}: {e}")

    # =========================================================================
    # Suite
    # =========================================================================

    async def run_suite(self, tests: List[UnifiedTestDefinition]) -> TestSuiteResult:
        """
        Run all tests and aggregate their results.

        Raises:
            E2ERunnerError: the beforeAll hook failed; no test is run
        """
        started_at = now_iso()
        start = now_ms()
        self._bailed = False
        total = len(tests)

        self.emit(EventType.SUITE_START, {"name": self.suite_name, "tests": tests, "total": total})
        logger.info(f"Starting test suite with {total} test(s)")

        await self.hooks.run("beforeAll", self.adapters)

        semaphore = asyncio.Semaphore(max(int(self.options.parallel or 1), 1))

        async def schedule(test: UnifiedTestDefinition, index: int) -> TestExecutionResult:
            if test.skip:
                return self._skipped(test, test.skip_reason or "Marked as skipped", index, total)
            async with semaphore:
                if self._bailed:
                    return self._skipped(test, "Bailed due to previous failure", index, total)
                return await self.run_test(test, index, total)

        results = await asyncio.gather(*(schedule(t, i) for i, t in enumerate(tests)))

        try:
            await self.hooks.run("afterAll", self.adapters)
        except E2ERunnerError as e:
            logger.error(str(e))

        suite = TestSuiteResult(
            name=self.suite_name,
            results=list(results),
            duration=now_ms() - start,
            started_at=started_at,
            completed_at=now_iso(),
        )
        self.emit(EventType.SUITE_END, {"result": suite})
        logger.info(
            f"Test suite completed: {suite.passed}/{suite.total} passed in {suite.duration}ms"
        )
        return suite

    def _skipped(self, test: UnifiedTestDefinition, reason: str, index: int, total: int) -> TestExecutionResult:
        logger.info(f"Skipping test: {test.name} - {reason}")
        result = TestExecutionResult(
            test=test,
            status=TestStatus.SKIPPED,
            skip_reason=reason,
            started_at=now_iso(),
            completed_at=now_iso(),
        )
        self.emit(EventType.TEST_END, {"test": test, "result": result, "index": index, "total": total})
        return result

    # =========================================================================
    # Test
    # =========================================================================

    async def run_test(
        self, test: UnifiedTestDefinition, index: int = 0, total: int = 1
    ) -> TestExecutionResult:
        """Run one test through all lifecycle phases. Never raises for test failures."""
        started_at = now_iso()
        start = now_ms()
        context = self.context_factory.create_test_context(test)
        phases: List[PhaseResult] = []

        self.emit(EventType.TEST_START, {"test": test, "index": index, "total": total})
        logger.info(f"Running test: {test.name}")

        status, error = await self._run_before_each(test, context)
        if status is None:
            status, error = await self._run_main_phases(test, context, phases)

        teardown = await self._run_teardown(test, context)
        phases.append(teardown)

        try:
            await self.hooks.run("afterEach", self.adapters, context.logger)
        except E2ERunnerError as e:
            logger.error(str(e))

        if status in (TestStatus.FAILED, TestStatus.ERROR) and self.options.bail:
            if not self._bailed:
                logger.warning("Bail option enabled - stopping further tests")
            self._bailed = True

        result = TestExecutionResult(
            test=test,
            status=status,
            phases=phases,
            duration=now_ms() - start,
            error=error,
            retry_count=sum(s.retry_count for p in phases for s in p.steps),
            captured_values=context.captured.snapshot(),
            started_at=started_at,
            completed_at=now_iso(),
        )
        self.emit(EventType.TEST_END, {"test": test, "result": result, "index": index, "total": total})
        logger.info(f"Test {test.name}: {status.value} ({result.duration}ms)")
        return result

    async def _run_before_each(self, test: UnifiedTestDefinition, context: TestContext):
        """Returns (None, None) to proceed, or the failed status and error."""
        try:
            await self.hooks.run("beforeEach", self.adapters, context.logger)
        except E2ERunnerError as e:
            logger.error(f"beforeEach failed for {test.name}: {e}")
            return TestStatus.FAILED, e
        return None, None

    async def _run_main_phases(
        self, test: UnifiedTestDefinition, context: TestContext, phases: List[PhaseResult]
    ):
        timeout = test.timeout or self.options.timeout
        in_flight: Dict[str, Any] = {}

        async def run_phases():
            for phase in MAIN_PHASES:
                step_results: List[StepResult] = []
                in_flight.update(phase=phase, steps=step_results, start=now_ms())
                result = await self.run_phase(
                    phase, test.steps_for(phase), context, test, step_results, in_flight
                )
                in_flight.clear()
                phases.append(result)
                if result.status == TestStatus.FAILED:
                    return TestStatus.FAILED, result.error
            return TestStatus.PASSED, None

        try:
            return await with_timeout(run_phases(), timeout, f'Test "{test.name}"')
        except OperationTimeoutError as e:
            logger.error(f"Test {test.name} timed out after {timeout}ms")
            if in_flight:
                steps = list(in_flight["steps"])
                step = in_flight.get("step")
                if step is not None:
                    # The step was started but will never finish on its own
                    step_result = build_step_result(
                        step, TestStatus.FAILED, now_ms() - in_flight["step_start"], error=e
                    )
                    steps.append(step_result)
                    self.emit(
                        EventType.STEP_END,
                        {
                            "test_name": test.name,
                            "phase": in_flight["phase"],
                            "step_id": step.id,
                            "result": step_result,
                        },
                    )
                partial = PhaseResult(
                    phase=in_flight["phase"],
                    status=TestStatus.FAILED,
                    steps=steps,
                    duration=now_ms() - in_flight["start"],
                    error=e,
                )
                phases.append(partial)
                self.emit(
                    EventType.PHASE_END,
                    {"test_name": test.name, "phase": partial.phase, "result": partial},
                )
            return TestStatus.ERROR, e
        except Exception as e:
            error = wrap_error(e, f'Test "{test.name}"')
            logger.error(f"Test {test.name} failed: {error}")
            return TestStatus.FAILED, error

    async def _run_teardown(self, test: UnifiedTestDefinition, context: TestContext) -> PhaseResult:
        try:
            return await self.run_phase(Phase.TEARDOWN, test.teardown, context, test)
        except Exception as e:
            error = wrap_error(e, f"Teardown of {test.name}")
            logger.error(f"Teardown failed for {test.name}: {error}")
            return PhaseResult(phase=Phase.TEARDOWN, status=TestStatus.FAILED, error=error)

    # =========================================================================
    # Phase
    # =========================================================================

    def _phase_disabled(self, phase: Phase) -> bool:
        if phase == Phase.SETUP:
            return self.options.skip_setup
        if phase == Phase.TEARDOWN:
            return self.options.skip_teardown
        return False

    async def run_phase(
        self,
        phase: Phase,
        steps: List[Step],
        context: TestContext,
        test: Optional[UnifiedTestDefinition] = None,
        step_results: Optional[List[StepResult]] = None,
        in_flight: Optional[Dict[str, Any]] = None,
    ) -> PhaseResult:
        """
        Run a phase's steps in order, stopping at the first failed step.

        step_results, when given, is filled as steps complete so callers
        can see partial progress. in_flight, when given, holds the step
        currently executing under "step" and its start time under
        "step_start".
        """
        if not steps or self._phase_disabled(phase):
            return PhaseResult(phase=phase, status=TestStatus.SKIPPED)

        test_name = test.name if test else context.test.name
        step_results = step_results if step_results is not None else []
        start = now_ms()

        self.emit(EventType.PHASE_START, {"test_name": test_name, "phase": phase})
        logger.debug(f"Starting {phase.value} phase with {len(steps)} step(s)")

        test_retries = test.retries if test else None
        for step in steps:
            if self.options.dry_run:
                step_results.append(self._dry_run_result(step))
                continue

            self.emit(
                EventType.STEP_START,
                {
                    "test_name": test_name,
                    "phase": phase,
                    "step_id": step.id,
                    "adapter": step.adapter.value if isinstance(step, UnifiedStep) else None,
                    "action": step.action if isinstance(step, UnifiedStep) else None,
                },
            )
            if in_flight is not None:
                in_flight.update(step=step, step_start=now_ms())
            result = await self.executor.execute_step(
                step,
                context.create_adapter_context(),
                test_retries=test_retries,
                context_provider=context.get_interpolation_context,
            )
            step_results.append(result)
            if in_flight is not None:
                in_flight.pop("step", None)
            self.emit(
                EventType.STEP_END,
                {"test_name": test_name, "phase": phase, "step_id": step.id, "result": result},
            )

            if result.status == TestStatus.FAILED:
                logger.debug(f"Phase {phase.value} stopping due to step failure")
                break

        failed = get_first_failed_step(step_results)
        phase_result = PhaseResult(
            phase=phase,
            status=TestStatus.FAILED if failed else TestStatus.PASSED,
            steps=list(step_results),
            duration=now_ms() - start,
            error=failed.error if failed else None,
        )
        self.emit(EventType.PHASE_END, {"test_name": test_name, "phase": phase, "result": phase_result})
        logger.debug(f"Phase {phase.value}: {phase_result.status.value} ({phase_result.duration}ms)")
        return phase_result

    @staticmethod
    def _dry_run_result(step: Step) -> StepResult:
        return build_step_result(step, TestStatus.SKIPPED)
