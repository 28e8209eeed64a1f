"""
Context Factory

Builds the per-test scope: merged variables, the captured-values store,
and the two views handed to interpolation and adapters. Both views
reference the same live variables and store, so a value captured by one
step is visible to every later step of the same test. Nothing here is
shared between tests.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from .interpolator import InterpolationContext, create_interpolation_context
from .models import UnifiedTestDefinition

logger = logging.getLogger(__name__)


class CaptureStore(Mapping):
    """
    Values captured during one test. Append-only: entries are added or
    overwritten (last write wins), never removed.
    """

    def __init__(self, owner: str = None):
        self.owner = owner
        self._values: Dict[str, Any] = {}

    def capture(self, name: str, value: Any):
        self._values[name] = value
        logger.debug(f'Captured "{name}" = {value!r}')

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"CaptureStore({self._values!r})"


@dataclass
class AdapterContext:
    """What adapters and procedural test functions receive."""

    variables: Mapping
    captured: CaptureStore
    base_url: str = ""
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("e2e_runner.test"))
    adapters: Any = None  # AdapterRegistry

    def capture(self, name: str, value: Any):
        self.captured.capture(name, value)

    def adapter(self, adapter_type: Any):
        """Look up a connected adapter, e.g. ctx.adapter("redis")."""
        if self.adapters is None:
            raise LookupError("No adapter registry attached to this context")
        return self.adapters.get(adapter_type)


@dataclass
class TestContext:
    """Scope owned by one test execution."""

    test: UnifiedTestDefinition
    variables: Mapping
    captured: CaptureStore
    base_url: str = ""
    adapters: Any = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("e2e_runner.test"))

    def capture(self, name: str, value: Any):
        self.captured.capture(name, value)

    def get_interpolation_context(self) -> InterpolationContext:
        return create_interpolation_context(self.variables, self.captured, self.base_url)

    def create_adapter_context(self) -> AdapterContext:
        return AdapterContext(
            variables=self.variables,
            captured=self.captured,
            base_url=self.base_url,
            logger=self.logger,
            adapters=self.adapters,
        )


class ContextFactory:
    """Creates a fresh TestContext per test."""

    def __init__(
        self,
        variables: Optional[Mapping] = None,
        base_url: str = "",
        adapters: Any = None,
    ):
        self.variables = dict(variables or {})
        self.base_url = base_url or ""
        self.adapters = adapters

    @classmethod
    def from_config(cls, config, adapters=None) -> "ContextFactory":
        """Build from a LoadedConfig."""
        return cls(config.variables, config.environment.base_url, adapters)

    def create_test_context(self, test: UnifiedTestDefinition) -> TestContext:
        # Test-local variables win on collision
        variables = {**self.variables, **(test.variables or {})}
        return TestContext(
            test=test,
            variables=variables,
            captured=CaptureStore(owner=test.name),
            base_url=self.base_url,
            adapters=self.adapters,
            logger=logging.getLogger(f"e2e_runner.test.{test.name}"),
        )


def create_standalone_context(
    variables: Optional[Mapping] = None,
    captured: Optional[CaptureStore] = None,
    base_url: str = "",
    adapters: Any = None,
) -> AdapterContext:
    """Adapter context outside a test run, e.g. for hooks or scripts."""
    return AdapterContext(
        variables=dict(variables or {}),
        captured=captured if captured is not None else CaptureStore(),
        base_url=base_url,
        adapters=adapters,
    )


def create_minimal_context(base_url: str = "") -> AdapterContext:
    return create_standalone_context(base_url=base_url)
