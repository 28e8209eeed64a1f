"""
Runner Models

Data structures shared by loaders, the executor, the orchestrator and
reporters. Loaders normalize every authoring format into
UnifiedTestDefinition; execution builds the result tree bottom-up
(StepResult -> PhaseResult -> TestExecutionResult -> TestSuiteResult).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union


class AdapterType(str, Enum):
    """Backend kinds a step can target."""

    HTTP = "http"
    POSTGRESQL = "postgresql"
    REDIS = "redis"
    MONGODB = "mongodb"
    EVENTHUB = "eventhub"


class Priority(str, Enum):
    """Test priority, informational and used for filtering."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class Phase(str, Enum):
    """Test lifecycle phases, in execution order."""

    SETUP = "setup"
    EXECUTE = "execute"
    VERIFY = "verify"
    TEARDOWN = "teardown"


class SourceType(str, Enum):
    YAML = "yaml"
    PYTHON = "python"


class TestStatus(str, Enum):
    """Execution status of a step, phase or test."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


class EventType(str, Enum):
    """Lifecycle events emitted by the orchestrator."""

    SUITE_START = "suite:start"
    SUITE_END = "suite:end"
    TEST_START = "test:start"
    TEST_END = "test:end"
    PHASE_START = "phase:start"
    PHASE_END = "phase:end"
    STEP_START = "step:start"
    STEP_END = "step:end"


# =========================================================================
# Test definitions
# =========================================================================


@dataclass
class UnifiedStep:
    """
    A declarative step: one adapter action with its payload.

    params, capture and assertion hold raw (pre-interpolation) values.
    """

    id: str
    adapter: AdapterType
    action: str
    params: Dict[str, Any] = field(default_factory=dict)
    capture: Dict[str, str] = field(default_factory=dict)
    assertion: Any = None
    continue_on_error: bool = False
    retry: Optional[int] = None
    delay: Optional[int] = None  # ms
    description: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "adapter": self.adapter.value,
            "action": self.action,
            "params": self.params,
            "capture": self.capture,
            "assert": self.assertion,
            "continueOnError": self.continue_on_error,
            "retry": self.retry,
            "delay": self.delay,
            "description": self.description,
        }


@dataclass
class FunctionStep:
    """A procedural step: a callable invoked with the adapter context."""

    id: str
    fn: Callable[..., Any]
    description: Optional[str] = None
    continue_on_error: bool = False
    retry: Optional[int] = None
    delay: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "function": getattr(self.fn, "__name__", repr(self.fn)),
            "description": self.description,
        }


Step = Union[UnifiedStep, FunctionStep]


@dataclass
class UnifiedTestDefinition:
    """
    One test, independent of the format it was written in.

    Created once by a loader and never mutated during execution.
    """

    name: str
    execute: List[Step] = field(default_factory=list)
    setup: List[Step] = field(default_factory=list)
    verify: List[Step] = field(default_factory=list)
    teardown: List[Step] = field(default_factory=list)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    tags: List[str] = field(default_factory=list)
    skip: bool = False
    skip_reason: Optional[str] = None
    timeout: Optional[int] = None  # ms
    retries: Optional[int] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    source_file: Optional[str] = None
    source_type: SourceType = SourceType.YAML

    def steps_for(self, phase: Phase) -> List[Step]:
        return getattr(self, phase.value)

    @property
    def all_steps(self) -> List[Step]:
        return self.setup + self.execute + self.verify + self.teardown

    def required_adapters(self) -> Set[AdapterType]:
        """Adapter types referenced by declarative steps."""
        return {s.adapter for s in self.all_steps if isinstance(s, UnifiedStep)}

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "description": self.description,
            "priority": self.priority.value if self.priority else None,
            "tags": list(self.tags),
            "skip": self.skip,
            "skipReason": self.skip_reason,
            "timeout": self.timeout,
            "retries": self.retries,
            "sourceFile": self.source_file,
            "sourceType": self.source_type.value,
        }


# =========================================================================
# Results
# =========================================================================


@dataclass
class AdapterStepResult:
    """What an adapter's execute() returns."""

    success: bool
    data: Any = None
    error: Optional[BaseException] = None
    duration: int = 0  # ms


@dataclass
class StepResult:
    """Result of a single step execution."""

    id: str
    status: TestStatus
    duration: int = 0  # ms
    data: Any = None
    error: Optional[BaseException] = None
    retry_count: int = 0
    adapter: Optional[str] = None
    action: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "duration": self.duration,
            "adapter": self.adapter,
            "action": self.action,
            "description": self.description,
            "data": self.data,
            "error": str(self.error) if self.error else None,
            "retryCount": self.retry_count,
        }


@dataclass
class PhaseResult:
    """Result of one phase: its steps in execution order."""

    phase: Phase
    status: TestStatus
    steps: List[StepResult] = field(default_factory=list)
    duration: int = 0
    error: Optional[BaseException] = None

    def to_dict(self) -> Dict:
        return {
            "phase": self.phase.value,
            "status": self.status.value,
            "duration": self.duration,
            "error": str(self.error) if self.error else None,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class TestExecutionResult:
    """Result of a test case execution."""

    test: UnifiedTestDefinition
    status: TestStatus
    phases: List[PhaseResult] = field(default_factory=list)
    duration: int = 0
    error: Optional[BaseException] = None
    retry_count: int = 0
    captured_values: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def name(self) -> str:
        return self.test.name

    def phase(self, phase: Phase) -> Optional[PhaseResult]:
        for result in self.phases:
            if result.phase == phase:
                return result
        return None

    def to_dict(self) -> Dict:
        """Convert to dictionary for storage/reports."""
        return {
            "name": self.test.name,
            "status": self.status.value,
            "duration": self.duration,
            "priority": self.test.priority.value if self.test.priority else None,
            "tags": list(self.test.tags),
            "sourceFile": self.test.source_file,
            "error": str(self.error) if self.error else None,
            "retryCount": self.retry_count,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "capturedValues": self.captured_values,
            "skipReason": self.skip_reason,
            "phases": [p.to_dict() for p in self.phases],
        }


@dataclass
class TestSuiteResult:
    """Aggregate result of one runSuite call, in submission order."""

    name: str
    results: List[TestExecutionResult] = field(default_factory=list)
    duration: int = 0
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.status == TestStatus.PASSED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status in (TestStatus.FAILED, TestStatus.ERROR))

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == TestStatus.SKIPPED)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict:
        """Convert to dictionary for storage/reports."""
        return {
            "name": self.name,
            "success": self.success,
            "duration": self.duration,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "tests": [r.to_dict() for r in self.results],
        }


def now_iso() -> str:
    return datetime.now().isoformat()
