"""
E2E Test Runner

End-to-end tests across HTTP APIs, PostgreSQL, Redis, MongoDB and Azure
Event Hubs. Tests are defined in data (*.test.yaml) or as Python
functions (*.test.py); both are loaded into the same
UnifiedTestDefinition and run by the Orchestrator:

- loader / procedural: authoring formats
- discovery: finding and filtering test files
- executor: one step with retry, backoff and delay
- orchestrator: phases, bounded parallelism, timeouts, bail, events
- reporters: console, JSON and JUnit output
"""

from .adapters import AdapterRegistry
from .assertions import expect
from .config import ConfigLoader, LoadedConfig, load_config
from .context import AdapterContext, ContextFactory, TestContext
from .discovery import discover_tests, filter_tests, load_tests
from .errors import (
    AdapterConnectionError,
    AdapterError,
    AssertionFailedError,
    ConfigurationError,
    E2ERunnerError,
    ExecutionError,
    InterpolationError,
    LoaderError,
    OperationTimeoutError,
    ValidationError,
)
from .executor import StepExecutor
from .interpolator import interpolate, interpolate_object
from .loader import load_yaml_test, parse_yaml_test
from .models import (
    AdapterType,
    FunctionStep,
    Phase,
    Priority,
    TestExecutionResult,
    TestStatus,
    TestSuiteResult,
    UnifiedStep,
    UnifiedTestDefinition,
)
from .orchestrator import Orchestrator, OrchestratorOptions
from .procedural import e2e, load_python_test

__version__ = "1.0.0"

__all__ = [
    "AdapterConnectionError",
    "AdapterContext",
    "AdapterError",
    "AdapterRegistry",
    "AdapterType",
    "AssertionFailedError",
    "ConfigLoader",
    "ConfigurationError",
    "ContextFactory",
    "E2ERunnerError",
    "ExecutionError",
    "FunctionStep",
    "InterpolationError",
    "LoadedConfig",
    "LoaderError",
    "OperationTimeoutError",
    "Orchestrator",
    "OrchestratorOptions",
    "Phase",
    "Priority",
    "StepExecutor",
    "TestContext",
    "TestExecutionResult",
    "TestStatus",
    "TestSuiteResult",
    "UnifiedStep",
    "UnifiedTestDefinition",
    "ValidationError",
    "discover_tests",
    "e2e",
    "expect",
    "filter_tests",
    "interpolate",
    "interpolate_object",
    "load_config",
    "load_python_test",
    "load_tests",
    "load_yaml_test",
    "parse_yaml_test",
]
