"""
Base Reporter

Reporters follow the orchestrator's event stream and turn the final
TestSuiteResult into output. Every on_* handler is optional; only
generate_report must be implemented.

Event payloads are plain dicts:

    suite:start  name, tests, total, timestamp
    suite:end    result, timestamp
    test:start   test, index, total, timestamp
    test:end     test, result, index, total, timestamp
    phase:start  test_name, phase, timestamp
    phase:end    test_name, phase, result, timestamp
    step:start   test_name, phase, step_id, adapter, action, timestamp
    step:end     test_name, phase, step_id, result, timestamp
"""

import traceback
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..models import EventType, TestSuiteResult


class BaseReporter(ABC):
    """Abstract reporter; subclasses override the handlers they need."""

    name = "base"

    def __init__(self, config: Optional[Dict[str, Any]] = None, **options):
        self.config = dict(config or {})
        self.output: Optional[str] = options.get("output", self.config.get("output"))
        self.verbose: bool = bool(options.get("verbose", self.config.get("verbose", False)))
        self.no_color: bool = bool(options.get("no_color", False))
        self.pretty_print: bool = bool(options.get("pretty_print", True))

    def on_suite_start(self, data: Dict[str, Any]):
        pass

    def on_suite_end(self, data: Dict[str, Any]):
        pass

    def on_test_start(self, data: Dict[str, Any]):
        pass

    def on_test_end(self, data: Dict[str, Any]):
        pass

    def on_phase_start(self, data: Dict[str, Any]):
        pass

    def on_phase_end(self, data: Dict[str, Any]):
        pass

    def on_step_start(self, data: Dict[str, Any]):
        pass

    def on_step_end(self, data: Dict[str, Any]):
        pass

    @abstractmethod
    def generate_report(self, result: TestSuiteResult):
        """Write the final report."""

    def handle_event(self, event: EventType, data: Dict[str, Any]):
        """Orchestrator listener: route an event to its on_* handler."""
        handlers = {
            EventType.SUITE_START: self.on_suite_start,
            EventType.SUITE_END: self.on_suite_end,
            EventType.TEST_START: self.on_test_start,
            EventType.TEST_END: self.on_test_end,
            EventType.PHASE_START: self.on_phase_start,
            EventType.PHASE_END: self.on_phase_end,
            EventType.STEP_START: self.on_step_start,
            EventType.STEP_END: self.on_step_end,
        }
        handler = handlers.get(EventType(event))
        if handler:
            handler(data)

    # =========================================================================
    # Formatting helpers
    # =========================================================================

    @staticmethod
    def format_duration(ms: float) -> str:
        if ms < 1000:
            return f"{int(ms)}ms"
        if ms < 60000:
            return f"{ms / 1000:.2f}s"
        minutes = int(ms // 60000)
        seconds = (ms % 60000) / 1000
        return f"{minutes}m {seconds:.1f}s"

    @staticmethod
    def format_timestamp(moment: datetime) -> str:
        return moment.isoformat()

    @staticmethod
    def format_error(error: Optional[BaseException]) -> Dict[str, Optional[str]]:
        if error is None:
            return {"message": "Unknown error", "stack": None}
        stack = None
        if error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return {"message": str(error), "stack": stack}

    def calculate_summary(self, result: TestSuiteResult) -> Dict[str, Any]:
        pass_rate = round(result.passed / result.total * 100, 2) if result.total else 0
        return {
            "total": result.total,
            "passed": result.passed,
            "failed": result.failed,
            "skipped": result.skipped,
            "passRate": pass_rate,
            "duration": self.format_duration(result.duration),
        }

    @staticmethod
    def write_file(path: str, content: str) -> str:
        target = Path(path).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return str(target)
