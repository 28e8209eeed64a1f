"""
JUnit Reporter

Writes JUnit XML for CI systems. Tests are grouped into one <testsuite>
per name prefix (the part before the first ":"); failed and errored
tests get a <failure>, skipped ones a <skipped/>. Verbose mode adds a
per-phase transcript as <system-out>.
"""

import json
import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Dict, List, Optional

from ..models import PhaseResult, StepResult, TestExecutionResult, TestStatus, TestSuiteResult
from .base import BaseReporter

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "e2e-results.xml"
FAILED_STATUSES = (TestStatus.FAILED, TestStatus.ERROR)


def _seconds(ms: float) -> str:
    return f"{ms / 1000:.3f}"


def find_first_error(result: TestExecutionResult) -> Optional[BaseException]:
    if result.error:
        return result.error
    for phase in result.phases:
        if phase.error:
            return phase.error
        for step in phase.steps:
            if step.error:
                return step.error
    return None


class JUnitReporter(BaseReporter):
    name = "junit"

    def generate_report(self, result: TestSuiteResult):
        path = self.write_file(self.output or DEFAULT_OUTPUT, self.build_xml(result))
        logger.info(f"JUnit report written to {path}")

    def build_xml(self, result: TestSuiteResult) -> str:
        root = ET.Element(
            "testsuites",
            {
                "name": "E2E Test Suite",
                "tests": str(result.total),
                "failures": str(result.failed),
                "skipped": str(result.skipped),
                "time": _seconds(result.duration),
                "timestamp": datetime.now().isoformat(),
            },
        )
        for suite_name, tests in self._group(result.results).items():
            root.append(self._testsuite(suite_name, tests))

        ET.indent(root)
        body = ET.tostring(root, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'

    @staticmethod
    def _group(results: List[TestExecutionResult]) -> Dict[str, List[TestExecutionResult]]:
        grouped: Dict[str, List[TestExecutionResult]] = {}
        for test_result in results:
            key = test_result.name.split(":")[0] or "default"
            grouped.setdefault(key, []).append(test_result)
        return grouped

    def _testsuite(self, name: str, tests: List[TestExecutionResult]) -> ET.Element:
        suite = ET.Element(
            "testsuite",
            {
                "name": name,
                "tests": str(len(tests)),
                "failures": str(sum(1 for t in tests if t.status in FAILED_STATUSES)),
                "skipped": str(sum(1 for t in tests if t.status == TestStatus.SKIPPED)),
                "time": _seconds(sum(t.duration for t in tests)),
            },
        )
        for test_result in tests:
            suite.append(self._testcase(test_result))
        return suite

    def _testcase(self, result: TestExecutionResult) -> ET.Element:
        case = ET.Element(
            "testcase",
            {
                "name": result.name,
                "classname": re.sub(r"[^a-zA-Z0-9_.-]", "_", result.name),
                "time": _seconds(result.duration),
            },
        )

        if result.status in FAILED_STATUSES:
            error = find_first_error(result)
            details = self.format_error(error) if error else {"message": "Test failed", "stack": None}
            failure = ET.SubElement(
                case,
                "failure",
                {
                    "message": details["message"],
                    "type": "Error" if result.status == TestStatus.ERROR else "AssertionError",
                },
            )
            failure.text = details["stack"] or details["message"]
        elif result.status == TestStatus.SKIPPED:
            skipped = ET.SubElement(case, "skipped")
            if result.skip_reason:
                skipped.set("message", result.skip_reason)

        if self.verbose and result.phases:
            ET.SubElement(case, "system-out").text = self._transcript(result)
        if result.error:
            ET.SubElement(case, "system-err").text = (
                self.format_error(result.error)["stack"] or str(result.error)
            )
        return case

    def _transcript(self, result: TestExecutionResult) -> str:
        lines = []
        for phase in result.phases:
            lines.append(self._phase_line(phase))
            lines.extend(self._step_line(step) for step in phase.steps)
        if result.captured_values:
            lines.append("")
            lines.append("Captured Values:")
            for key, value in result.captured_values.items():
                lines.append(f"  {key}: {json.dumps(value, default=str)}")
        return "\n".join(lines)

    def _phase_line(self, phase: PhaseResult) -> str:
        return (
            f"\n[{phase.phase.value.upper()}] {phase.status.value.upper()} "
            f"({self.format_duration(phase.duration)})"
        )

    def _step_line(self, step: StepResult) -> str:
        status = "OK" if step.status == TestStatus.PASSED else step.status.value.upper()
        description = f" - {step.description}" if step.description else ""
        line = (
            f"  [{step.adapter or 'fn'}] {step.action or step.id}{description}: "
            f"{status} ({self.format_duration(step.duration)})"
        )
        if step.error:
            line += f"\n    Error: {step.error}"
        return line
