"""
Orchestrator Tests

Tests for the test lifecycle, concurrency, bail, timeouts, hooks and events.
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from e2e_runner.errors import ExecutionError, OperationTimeoutError
from e2e_runner.models import (
    AdapterType,
    EventType,
    FunctionStep,
    Phase,
    TestExecutionResult,
    TestStatus,
    TestSuiteResult,
    UnifiedStep,
    UnifiedTestDefinition,
)
from e2e_runner.orchestrator import Orchestrator, OrchestratorOptions


def step(step_id, action="echo", **kwargs):
    return UnifiedStep(id=step_id, adapter=AdapterType.HTTP, action=action, **kwargs)


def passing_test(name, **kwargs):
    return UnifiedTestDefinition(name=name, execute=[step("execute-1", params={"test": name})], **kwargs)


def failing_test(name, **kwargs):
    return UnifiedTestDefinition(name=name, execute=[step("execute-1", "fail")], **kwargs)


def make_orchestrator(registry, **options):
    options.setdefault("retry_delay", 0)
    return Orchestrator(registry, options=OrchestratorOptions(**options))


class TestLifecycle:
    """Test phase ordering within one test."""

    def test_all_phases_pass(self, registry, fake_adapter):
        """Phases run in order and all pass."""
        test = UnifiedTestDefinition(
            name="full",
            setup=[step("setup-1", params={"p": "setup"})],
            execute=[step("execute-1", params={"id": 7}, capture={"itemId": "$.id"})],
            verify=[step("verify-1", params={"ref": "{{itemId}}"}, assertion=[{"path": "$.ref", "equals": 7}])],
            teardown=[step("teardown-1", params={"p": "teardown"})],
        )
        result = asyncio.run(make_orchestrator(registry).run_test(test))

        assert result.status == TestStatus.PASSED
        assert [p.phase for p in result.phases] == [Phase.SETUP, Phase.EXECUTE, Phase.VERIFY, Phase.TEARDOWN]
        assert result.captured_values == {"itemId": 7}
        assert [c[1].get("p") for c in fake_adapter.calls] == ["setup", None, None, "teardown"]

    def test_failed_phase_stops_later_phases(self, registry, fake_adapter):
        """A failed execute skips verify but still runs teardown."""
        test = UnifiedTestDefinition(
            name="broken",
            execute=[step("execute-1", "fail", params={"message": "kaboom"}), step("execute-2")],
            verify=[step("verify-1")],
            teardown=[step("teardown-1", params={"p": "cleanup"})],
        )
        result = asyncio.run(make_orchestrator(registry).run_test(test))

        assert result.status == TestStatus.FAILED
        assert "kaboom" in str(result.error)
        assert result.phase(Phase.VERIFY) is None
        assert len(result.phase(Phase.EXECUTE).steps) == 1
        assert result.phase(Phase.TEARDOWN).status == TestStatus.PASSED
        assert fake_adapter.calls[-1] == ("echo", {"p": "cleanup"})

    def test_teardown_failure_does_not_change_status(self, registry):
        """A failing teardown leaves a passing test passed."""
        test = passing_test("t", teardown=[step("teardown-1", "fail")])
        result = asyncio.run(make_orchestrator(registry).run_test(test))

        assert result.status == TestStatus.PASSED
        assert result.phase(Phase.TEARDOWN).status == TestStatus.FAILED

    def test_continue_on_error_keeps_going(self, registry):
        """A continueOnError step does not stop the phase."""
        test = UnifiedTestDefinition(
            name="t",
            execute=[step("execute-1", "fail", continue_on_error=True), step("execute-2")],
        )
        result = asyncio.run(make_orchestrator(registry).run_test(test))

        assert result.status == TestStatus.PASSED
        assert [s.id for s in result.phase(Phase.EXECUTE).steps] == ["execute-1", "execute-2"]

    def test_empty_phases_are_skipped(self, registry):
        """Phases without steps report skipped."""
        result = asyncio.run(make_orchestrator(registry).run_test(passing_test("t")))
        assert result.phase(Phase.SETUP).status == TestStatus.SKIPPED
        assert result.phase(Phase.TEARDOWN).status == TestStatus.SKIPPED

    def test_skip_setup_and_teardown(self, registry, fake_adapter):
        """skip_setup and skip_teardown disable those phases."""
        test = passing_test("t", setup=[step("setup-1")], teardown=[step("teardown-1")])
        orchestrator = make_orchestrator(registry, skip_setup=True, skip_teardown=True)
        result = asyncio.run(orchestrator.run_test(test))

        assert result.status == TestStatus.PASSED
        assert result.phase(Phase.SETUP).status == TestStatus.SKIPPED
        assert len(fake_adapter.calls) == 1

    def test_dry_run_executes_nothing(self, registry, fake_adapter):
        """dry_run records skipped steps without calling adapters."""
        result = asyncio.run(make_orchestrator(registry, dry_run=True).run_test(passing_test("t")))
        assert fake_adapter.calls == []
        assert result.phase(Phase.EXECUTE).steps[0].status == TestStatus.SKIPPED

    def test_retry_count_sums_steps(self, registry):
        """The test's retry count adds up step retries."""
        test = UnifiedTestDefinition(
            name="t", execute=[step("execute-1", "flaky", params={"failures": 1}, retry=2)]
        )
        result = asyncio.run(make_orchestrator(registry).run_test(test))
        assert result.status == TestStatus.PASSED
        assert result.retry_count == 1

    def test_function_steps(self, registry):
        """Procedural steps share the test's captured values."""

        async def execute(ctx):
            ctx.capture("token", "abc")

        def verify(ctx):
            assert ctx.captured["token"] == "abc"

        test = UnifiedTestDefinition(
            name="proc",
            execute=[FunctionStep(id="execute", fn=execute)],
            verify=[FunctionStep(id="verify", fn=verify)],
        )
        result = asyncio.run(make_orchestrator(registry).run_test(test))
        assert result.status == TestStatus.PASSED


class TestTimeouts:
    """Test per-test timeouts."""

    def test_timeout_marks_error(self, registry):
        """Exceeding the budget gives error with a failed in-flight phase."""
        test = UnifiedTestDefinition(
            name="slow",
            execute=[step("execute-1"), step("execute-2", "slow", params={"ms": 500})],
            teardown=[step("teardown-1")],
            timeout=50,
        )
        result = asyncio.run(make_orchestrator(registry).run_test(test))

        assert result.status == TestStatus.ERROR
        assert isinstance(result.error, OperationTimeoutError)
        execute = result.phase(Phase.EXECUTE)
        assert execute.status == TestStatus.FAILED
        assert [s.id for s in execute.steps] == ["execute-1", "execute-2"]
        assert execute.steps[1].status == TestStatus.FAILED
        assert execute.steps[1].action == "slow"
        assert isinstance(execute.steps[1].error, OperationTimeoutError)
        assert result.phase(Phase.TEARDOWN).status == TestStatus.PASSED

    def test_timed_out_step_gets_step_end(self, registry):
        """Every step:start is matched by a step:end, even on timeout."""
        events = []
        orchestrator = make_orchestrator(registry)
        orchestrator.add_listener(lambda event, data: events.append((event, data.get("step_id"))))
        test = UnifiedTestDefinition(
            name="slow",
            execute=[step("execute-1", "slow", params={"ms": 500})],
            timeout=50,
        )
        asyncio.run(orchestrator.run_test(test))

        step_events = [e for e in events if e[0] in (EventType.STEP_START, EventType.STEP_END)]
        assert step_events == [(EventType.STEP_START, "execute-1"), (EventType.STEP_END, "execute-1")]
        kinds = [e[0] for e in events]
        assert kinds.index(EventType.STEP_END) < kinds.index(EventType.PHASE_END)

    def test_timeout_alone_fails_suite(self, registry):
        """A suite whose only problem is a timeout is not successful."""
        slow = UnifiedTestDefinition(name="slow", execute=[step("execute-1", "slow", params={"ms": 500})], timeout=30)
        suite = asyncio.run(make_orchestrator(registry).run_suite([passing_test("ok"), slow]))

        assert [r.status for r in suite.results] == [TestStatus.PASSED, TestStatus.ERROR]
        assert suite.failed == 1
        assert suite.success is False

    def test_suite_default_timeout(self, registry):
        """Tests without a timeout use the suite default."""
        test = UnifiedTestDefinition(name="slow", execute=[step("execute-1", "slow", params={"ms": 500})])
        result = asyncio.run(make_orchestrator(registry, timeout=30).run_test(test))
        assert result.status == TestStatus.ERROR


class TestSuite:
    """Test suite-level behavior."""

    @pytest.mark.parametrize(
        "statuses, success",
        [
            ([TestStatus.PASSED], True),
            ([TestStatus.PASSED, TestStatus.SKIPPED], True),
            ([TestStatus.SKIPPED], True),
            ([], True),
            ([TestStatus.PASSED, TestStatus.FAILED], False),
            ([TestStatus.PASSED, TestStatus.ERROR], False),
            ([TestStatus.ERROR, TestStatus.SKIPPED], False),
            ([TestStatus.FAILED, TestStatus.ERROR, TestStatus.SKIPPED, TestStatus.PASSED], False),
        ],
    )
    def test_success_means_no_failures(self, statuses, success):
        """success holds exactly when nothing failed or errored."""
        suite = TestSuiteResult(
            name="s",
            results=[TestExecutionResult(test=passing_test(f"t{i}"), status=s) for i, s in enumerate(statuses)],
        )
        assert suite.success is success
        assert suite.success == (suite.failed == 0)

    def test_results_keep_submission_order(self, registry):
        """Parallel runs report results in input order."""
        tests = [
            UnifiedTestDefinition(name="slow", execute=[step("execute-1", "slow", params={"ms": 80})]),
            passing_test("fast"),
        ]
        suite = asyncio.run(make_orchestrator(registry, parallel=2).run_suite(tests))

        assert [r.name for r in suite.results] == ["slow", "fast"]
        assert suite.passed == 2
        assert suite.success

    def test_parallel_limit(self, registry):
        """No more than `parallel` tests run at once."""
        running = {"now": 0, "max": 0}

        async def track(ctx):
            running["now"] += 1
            running["max"] = max(running["max"], running["now"])
            await asyncio.sleep(0.02)
            running["now"] -= 1

        tests = [
            UnifiedTestDefinition(name=f"t{i}", execute=[FunctionStep(id="execute", fn=track)])
            for i in range(6)
        ]
        suite = asyncio.run(make_orchestrator(registry, parallel=2).run_suite(tests))

        assert suite.passed == 6
        assert running["max"] == 2

    def test_skipped_tests(self, registry, fake_adapter):
        """Tests marked skip never run."""
        tests = [passing_test("a", skip=True, skip_reason="flaky upstream"), passing_test("b")]
        suite = asyncio.run(make_orchestrator(registry).run_suite(tests))

        assert suite.results[0].status == TestStatus.SKIPPED
        assert suite.results[0].skip_reason == "flaky upstream"
        assert suite.skipped == 1
        assert len(fake_adapter.calls) == 1

    def test_bail_skips_remaining(self, registry):
        """With bail, tests after a failure are skipped."""
        tests = [passing_test("a"), failing_test("b"), passing_test("c"), passing_test("d")]
        suite = asyncio.run(make_orchestrator(registry, bail=True).run_suite(tests))

        assert [r.status for r in suite.results] == [
            TestStatus.PASSED,
            TestStatus.FAILED,
            TestStatus.SKIPPED,
            TestStatus.SKIPPED,
        ]
        assert suite.results[2].skip_reason == "Bailed due to previous failure"
        assert not suite.success

    def test_without_bail_all_run(self, registry):
        """Failures do not stop the suite by default."""
        tests = [failing_test("a"), passing_test("b")]
        suite = asyncio.run(make_orchestrator(registry).run_suite(tests))
        assert suite.failed == 1
        assert suite.passed == 1


class TestHooks:
    """Test lifecycle hooks."""

    def make(self, registry, side_effect=None):
        hooks = Mock()
        hooks.run = AsyncMock(side_effect=side_effect)
        return Orchestrator(registry, options=OrchestratorOptions(retry_delay=0), hooks=hooks), hooks

    def test_hook_order(self, registry):
        """Suite hooks wrap per-test hooks."""
        orchestrator, hooks = self.make(registry)
        asyncio.run(orchestrator.run_suite([passing_test("a")]))
        names = [c.args[0] for c in hooks.run.call_args_list]
        assert names == ["beforeAll", "beforeEach", "afterEach", "afterAll"]

    def test_before_all_failure_aborts(self, registry, fake_adapter):
        """A failing beforeAll hook raises and runs no tests."""

        async def fail_before_all(name, *args):
            if name == "beforeAll":
                raise ExecutionError("seed failed")

        orchestrator, _ = self.make(registry, fail_before_all)
        with pytest.raises(ExecutionError, match="seed failed"):
            asyncio.run(orchestrator.run_suite([passing_test("a")]))
        assert fake_adapter.calls == []

    def test_before_each_failure_fails_test(self, registry, fake_adapter):
        """A failing beforeEach skips the main phases but runs teardown."""

        async def fail_before_each(name, *args):
            if name == "beforeEach":
                raise ExecutionError("reset failed")

        orchestrator, _ = self.make(registry, fail_before_each)
        test = passing_test("a", teardown=[step("teardown-1", params={"p": "td"})])
        result = asyncio.run(orchestrator.run_test(test))

        assert result.status == TestStatus.FAILED
        assert "reset failed" in str(result.error)
        assert fake_adapter.calls == [("echo", {"p": "td"})]

    def test_after_all_failure_is_logged(self, registry):
        """afterAll failures do not fail the suite."""

        async def fail_after_all(name, *args):
            if name == "afterAll":
                raise ExecutionError("cleanup failed")

        orchestrator, _ = self.make(registry, fail_after_all)
        suite = asyncio.run(orchestrator.run_suite([passing_test("a")]))
        assert suite.success


class TestEvents:
    """Test emitted lifecycle events."""

    def test_event_sequence(self, registry):
        """Events nest suite > test > phase > step."""
        events = []
        orchestrator = make_orchestrator(registry)
        orchestrator.add_listener(lambda event, data: events.append(event))
        asyncio.run(orchestrator.run_suite([passing_test("a")]))

        assert events == [
            EventType.SUITE_START,
            EventType.TEST_START,
            EventType.PHASE_START,
            EventType.STEP_START,
            EventType.STEP_END,
            EventType.PHASE_END,
            EventType.TEST_END,
            EventType.SUITE_END,
        ]

    def test_step_start_payload(self, registry):
        """step:start names the adapter and action."""
        payloads = []
        orchestrator = make_orchestrator(registry)
        orchestrator.add_listener(
            lambda event, data: payloads.append(data) if event == EventType.STEP_START else None
        )
        asyncio.run(orchestrator.run_test(passing_test("a")))

        assert payloads[0]["test_name"] == "a"
        assert payloads[0]["phase"] == Phase.EXECUTE
        assert payloads[0]["adapter"] == "http"
        assert payloads[0]["action"] == "echo"
        assert "timestamp" in payloads[0]

    def test_raising_listener_is_ignored(self, registry):
        """A broken listener does not break the run."""
        orchestrator = make_orchestrator(registry)
        orchestrator.add_listener(Mock(side_effect=RuntimeError("listener bug")))
        suite = asyncio.run(orchestrator.run_suite([passing_test("a")]))
        assert suite.success

    def test_remove_listener(self, registry):
        """Removed listeners receive nothing."""
        listener = Mock()
        orchestrator = make_orchestrator(registry)
        orchestrator.add_listener(listener)
        orchestrator.remove_listener(listener)
        asyncio.run(orchestrator.run_test(passing_test("a")))
        listener.assert_not_called()

    def test_skipped_test_emits_only_end(self, registry):
        """Skipped tests emit test:end without test:start."""
        events = []
        orchestrator = make_orchestrator(registry)
        orchestrator.add_listener(lambda event, data: events.append(event))
        asyncio.run(orchestrator.run_suite([passing_test("a", skip=True)]))
        assert events == [EventType.SUITE_START, EventType.TEST_END, EventType.SUITE_END]
