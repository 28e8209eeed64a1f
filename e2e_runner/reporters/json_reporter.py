"""
JSON Reporter

Writes metadata, a summary and the full result tree as JSON, to the
configured output file or to stdout.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional, TextIO

from ..models import PhaseResult, StepResult, TestExecutionResult, TestSuiteResult
from .base import BaseReporter

logger = logging.getLogger(__name__)

REPORT_VERSION = "1.0"
RUNNER_NAME = "e2e-runner"


def sanitize_data(data: Any) -> Any:
    """Make step data JSON-safe; unknown objects become strings."""
    if data is None:
        return None
    try:
        return json.loads(json.dumps(data, default=str))
    except (TypeError, ValueError):
        return str(data)


class JSONReporter(BaseReporter):
    name = "json"

    def __init__(self, config: Optional[Dict[str, Any]] = None, stream: Optional[TextIO] = None, **options):
        super().__init__(config, **options)
        self.environment_name: Optional[str] = options.get("environment_name")
        self.stream = stream

    def set_environment(self, name: str):
        self.environment_name = name

    def generate_report(self, result: TestSuiteResult):
        report = self.build_report(result)
        text = json.dumps(report, indent=2 if self.pretty_print else None, default=str)
        if self.output:
            path = self.write_file(self.output, text)
            logger.info(f"JSON report written to {path}")
        else:
            print(text, file=self.stream or sys.stdout)

    def build_report(self, result: TestSuiteResult) -> Dict[str, Any]:
        summary = self.calculate_summary(result)
        return {
            "metadata": {
                "version": REPORT_VERSION,
                "timestamp": datetime.now().isoformat(),
                "environment": self.environment_name,
                "runner": RUNNER_NAME,
            },
            "summary": {
                "total": summary["total"],
                "passed": summary["passed"],
                "failed": summary["failed"],
                "skipped": summary["skipped"],
                "passRate": summary["passRate"],
                "duration": result.duration,
                "durationFormatted": summary["duration"],
                "success": result.success,
            },
            "tests": [self._test(r) for r in result.results],
        }

    def _error(self, error: Optional[BaseException]) -> Optional[Dict[str, Any]]:
        return self.format_error(error) if error else None

    def _test(self, test: TestExecutionResult) -> Dict[str, Any]:
        return {
            "name": test.name,
            "status": test.status.value,
            "duration": test.duration,
            "durationFormatted": self.format_duration(test.duration),
            "retryCount": test.retry_count,
            "skipReason": test.skip_reason,
            "error": self._error(test.error),
            "phases": [self._phase(p) for p in test.phases],
            "capturedValues": sanitize_data(test.captured_values),
        }

    def _phase(self, phase: PhaseResult) -> Dict[str, Any]:
        return {
            "phase": phase.phase.value,
            "status": phase.status.value,
            "duration": phase.duration,
            "durationFormatted": self.format_duration(phase.duration),
            "error": self._error(phase.error),
            "steps": [self._step(s) for s in phase.steps],
        }

    def _step(self, step: StepResult) -> Dict[str, Any]:
        return {
            "stepId": step.id,
            "adapter": step.adapter,
            "action": step.action,
            "description": step.description,
            "status": step.status.value,
            "duration": step.duration,
            "durationFormatted": self.format_duration(step.duration),
            "retryCount": step.retry_count,
            "data": sanitize_data(step.data),
            "error": self._error(step.error),
        }
