"""
Console Reporter

Live progress while tests run, then a summary. Verbose mode also prints
each phase and step as it starts and ends.
"""

import sys
from typing import Any, Dict, Optional, TextIO

from ..models import TestStatus, TestSuiteResult
from .base import BaseReporter

# ANSI colors
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
CYAN = "\033[36m"
GRAY = "\033[90m"

SYMBOLS = {
    "pass": "✓",
    "fail": "✗",
    "skip": "○",
    "error": "✖",
    "arrow": "→",
    "bullet": "•",
}

_STATUS_STYLE = {
    TestStatus.PASSED: ("pass", GREEN),
    TestStatus.FAILED: ("fail", RED),
    TestStatus.SKIPPED: ("skip", YELLOW),
    TestStatus.ERROR: ("error", RED),
}


class ConsoleReporter(BaseReporter):
    name = "console"

    def __init__(self, config: Optional[Dict[str, Any]] = None, stream: Optional[TextIO] = None, **options):
        super().__init__(config, **options)
        self.stream = stream or sys.stdout
        isatty = getattr(self.stream, "isatty", None)
        self.use_colors = not self.no_color and bool(isatty and isatty())

    def colorize(self, text: str, *codes: str) -> str:
        if not self.use_colors or not codes:
            return text
        return f"{''.join(codes)}{text}{RESET}"

    def status_symbol(self, status: TestStatus) -> str:
        symbol, color = _STATUS_STYLE.get(status, ("skip", GRAY))
        return self.colorize(SYMBOLS[symbol], color)

    def status_text(self, status: TestStatus) -> str:
        _, color = _STATUS_STYLE.get(status, ("skip", GRAY))
        return self.colorize(status.value.upper(), color)

    def print(self, message: str = "", indent: int = 0):
        print(f"{'  ' * indent}{message}", file=self.stream)

    def print_divider(self, char: str = "-", length: int = 60):
        self.print(self.colorize(char * length, DIM))

    # =========================================================================
    # Events
    # =========================================================================

    def on_suite_start(self, data: Dict[str, Any]):
        bullet = self.colorize(SYMBOLS["bullet"], BLUE)
        self.print()
        self.print_divider("=")
        self.print(self.colorize(data.get("name", "E2E Test Suite"), BOLD, CYAN))
        self.print_divider("=")
        self.print()
        self.print(f"{bullet} Total tests: {self.colorize(str(data.get('total', 0)), BOLD)}")
        if data.get("timestamp"):
            self.print(f"{bullet} Started at: {self.format_timestamp(data['timestamp'])}")
        self.print()
        self.print_divider()
        self.print()

    def on_test_start(self, data: Dict[str, Any]):
        progress = self.colorize(f"[{data['index'] + 1}/{data['total']}]", DIM)
        self.print(f"{progress} {self.colorize(SYMBOLS['arrow'], BLUE)} {data['test'].name}")

    def on_test_end(self, data: Dict[str, Any]):
        result = data["result"]
        if result.status == TestStatus.SKIPPED and not result.phases:
            # Never started, so no test:start line was printed
            progress = self.colorize(f"[{data['index'] + 1}/{data['total']}]", DIM)
            self.print(f"{progress} {self.colorize(SYMBOLS['arrow'], BLUE)} {result.name}")

        duration = self.colorize(f"({self.format_duration(result.duration)})", DIM)
        line = f"   {self.status_symbol(result.status)} {self.status_text(result.status)} {duration}"
        if result.skip_reason:
            line += f" {self.colorize(result.skip_reason, DIM)}"
        self.print(line)

        if result.status in (TestStatus.FAILED, TestStatus.ERROR) and result.error:
            self.print()
            self.print(self.colorize(f"   Error: {result.error}", RED))
            stack = self.format_error(result.error)["stack"]
            if self.verbose and stack:
                for stack_line in stack.strip().splitlines()[-4:-1]:
                    self.print(self.colorize(f"   {stack_line.strip()}", DIM))

        if result.retry_count > 0:
            self.print(f"   {self.colorize(SYMBOLS['bullet'], YELLOW)} Retries: {result.retry_count}")
        self.print()

    def on_phase_start(self, data: Dict[str, Any]):
        if self.verbose:
            self.print(f"   {self.colorize(SYMBOLS['arrow'], CYAN)} {data['phase'].value.capitalize()} phase", 1)

    def on_phase_end(self, data: Dict[str, Any]):
        if not self.verbose:
            return
        result = data["result"]
        duration = self.colorize(f"({self.format_duration(result.duration)})", DIM)
        self.print(f"   {self.status_symbol(result.status)} {data['phase'].value.capitalize()} {duration}", 1)
        if result.error and result.status == TestStatus.FAILED:
            self.print(self.colorize(f"      Error: {result.error}", RED))

    def on_step_start(self, data: Dict[str, Any]):
        if self.verbose:
            adapter = self.colorize(f"[{data.get('adapter') or 'fn'}]", MAGENTA)
            self.print(f"      {adapter} {data.get('action') or data['step_id']}", 1)

    def on_step_end(self, data: Dict[str, Any]):
        if not self.verbose:
            return
        result = data["result"]
        duration = self.colorize(f"({self.format_duration(result.duration)})", DIM)
        self.print(f"      {self.status_symbol(result.status)} {data['step_id']} {duration}", 1)
        if result.error and result.status == TestStatus.FAILED:
            self.print(self.colorize(f"         Error: {result.error}", RED))

    # =========================================================================
    # Summary
    # =========================================================================

    def generate_report(self, result: TestSuiteResult):
        summary = self.calculate_summary(result)

        self.print_divider()
        self.print()
        self.print(self.colorize("Test Summary", BOLD, CYAN))
        self.print()

        passed = self.colorize(f"{SYMBOLS['pass']} {summary['passed']} passed", GREEN)
        failed = self.colorize(
            f"{SYMBOLS['fail']} {summary['failed']} failed", RED if summary["failed"] else DIM
        )
        skipped = self.colorize(
            f"{SYMBOLS['skip']} {summary['skipped']} skipped", YELLOW if summary["skipped"] else DIM
        )
        self.print(f"  {passed}  |  {failed}  |  {skipped}")
        self.print()

        pass_rate = summary["passRate"]
        bar_length = 30
        filled = round(pass_rate / 100 * bar_length)
        color = GREEN if pass_rate == 100 else YELLOW if pass_rate >= 80 else RED
        bar = self.colorize("█" * filled, color) + self.colorize("░" * (bar_length - filled), DIM)
        self.print(f"  Pass rate: [{bar}] {pass_rate}%")
        self.print()

        bullet = self.colorize(SYMBOLS["bullet"], BLUE)
        self.print(f"  {bullet} Total duration: {summary['duration']}")
        self.print(f"  {bullet} Total tests: {summary['total']}")
        self.print()

        if summary["failed"]:
            self.print(self.colorize("Failed Tests:", RED))
            for test_result in result.results:
                if test_result.status not in (TestStatus.FAILED, TestStatus.ERROR):
                    continue
                self.print(f"  {self.colorize(SYMBOLS['fail'], RED)} {test_result.name}")
                if test_result.error:
                    self.print(f"    {self.colorize(str(test_result.error), DIM)}")
            self.print()

        self.print_divider("=")
        if result.success:
            self.print(self.colorize("  ALL TESTS PASSED  ", BOLD, GREEN))
        else:
            self.print(self.colorize("  TESTS FAILED  ", BOLD, RED))
        self.print_divider("=")
        self.print()
