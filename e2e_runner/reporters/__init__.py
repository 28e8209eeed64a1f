"""
Reporters

    from e2e_runner.reporters import create_reporter_manager

    manager = create_reporter_manager(config.reporters, verbose=True)
    orchestrator.add_listener(manager.handle_event)
    result = await orchestrator.run_suite(tests)
    manager.generate_reports(result)
"""

import logging
from typing import Any, Dict, List, Optional

from ..models import EventType, TestSuiteResult
from .base import BaseReporter
from .console import ConsoleReporter
from .html_reporter import HTMLReporter
from .json_reporter import JSONReporter
from .junit import JUnitReporter

logger = logging.getLogger(__name__)

REPORTER_CLASSES = {
    "console": ConsoleReporter,
    "json": JSONReporter,
    "junit": JUnitReporter,
    "html": HTMLReporter,
}


def get_available_reporter_types() -> List[str]:
    return list(REPORTER_CLASSES)


def is_valid_reporter_type(reporter_type: str) -> bool:
    return reporter_type in REPORTER_CLASSES


def create_reporter(
    reporter_type: str, config: Optional[Dict[str, Any]] = None, **options
) -> BaseReporter:
    """
    Create a reporter by type.

    Raises:
        ValueError: unknown reporter type
    """
    reporter_class = REPORTER_CLASSES.get(reporter_type)
    if reporter_class is None:
        raise ValueError(
            f"Unknown reporter type: {reporter_type}. "
            f"Available types: {', '.join(REPORTER_CLASSES)}"
        )
    config = {"type": reporter_type, **(config or {})}
    if "verbose" not in config and "verbose" in options:
        config["verbose"] = options["verbose"]
    options = {k: v for k, v in options.items() if k != "verbose"}
    return reporter_class(config, **options)


def create_reporters(configs: Optional[List[Dict[str, Any]]], **options) -> List[BaseReporter]:
    """One reporter per config entry; a console reporter when none are given."""
    if not configs:
        return [create_reporter("console", **options)]
    return [create_reporter(c.get("type", "console"), c, **options) for c in configs]


class ReporterManager:
    """Fans orchestrator events and the final result out to several reporters."""

    def __init__(self, reporters: Optional[List[BaseReporter]] = None):
        self.reporters: List[BaseReporter] = list(reporters or [])

    def add_reporter(self, reporter: BaseReporter):
        self.reporters.append(reporter)

    def get_reporters(self) -> List[BaseReporter]:
        return list(self.reporters)

    def handle_event(self, event: EventType, data: Dict[str, Any]):
        for reporter in self.reporters:
            reporter.handle_event(event, data)

    def generate_reports(self, result: TestSuiteResult):
        """Generate every report. One reporter failing does not stop the others."""
        for reporter in self.reporters:
            try:
                reporter.generate_report(result)
            except Exception as e:
                logger.error(f"Reporter {reporter.name} failed to generate report: {e}")


def create_reporter_manager(configs: Optional[List[Dict[str, Any]]], **options) -> ReporterManager:
    return ReporterManager(create_reporters(configs, **options))


__all__ = [
    "BaseReporter",
    "ConsoleReporter",
    "HTMLReporter",
    "JSONReporter",
    "JUnitReporter",
    "REPORTER_CLASSES",
    "ReporterManager",
    "create_reporter",
    "create_reporter_manager",
    "create_reporters",
    "get_available_reporter_types",
    "is_valid_reporter_type",
]
