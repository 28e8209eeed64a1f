"""
Base Adapter

Uniform lifecycle over one backend kind: connect, disconnect, execute,
health_check. Subclasses map action names to handler coroutines in
self._handlers; execute() does the dispatch, timing, logging and error
translation so that backend exceptions never leave an adapter as
anything other than AdapterError.

After a successful execute, the step executor applies the step's
capture and assert payloads through capture_values() and
check_assertions(). Subclasses override capture_source()/assertion
handling when their result shape needs it.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Dict, Optional

from ..assertions.jsonpath import UNDEFINED, evaluate_jsonpath
from ..assertions.runner import run_assertion, run_path_assertions
from ..errors import AdapterError, E2ERunnerError
from ..models import AdapterStepResult, AdapterType
from ..utils import now_ms

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any], Any], Awaitable[Any]]


class BaseAdapter(ABC):
    """Abstract base class for backend adapters."""

    adapter_type: AdapterType

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = dict(config or {})
        self.connected = False
        self._handlers: Dict[str, Handler] = {}

    @property
    def name(self) -> str:
        return self.adapter_type.value

    @abstractmethod
    async def connect(self):
        """Connect to the backend. No-op when already connected."""

    @abstractmethod
    async def disconnect(self):
        """Release the backend connection. No-op when not connected."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the backend answers."""

    def is_connected(self) -> bool:
        return self.connected

    @property
    def actions(self):
        return sorted(self._handlers)

    async def execute(self, action: str, params: Dict[str, Any], ctx: Any) -> AdapterStepResult:
        """Run one action and return its data with the elapsed time."""
        handler = self._handlers.get(action)
        if handler is None:
            raise AdapterError(self.name, action, f"Unknown action: {action}")
        self._ensure_connected(action)

        self.log_action(action, params)
        start = now_ms()
        try:
            data = await handler(params, ctx)
        except E2ERunnerError:
            self.log_result(action, False, now_ms() - start)
            raise
        except Exception as e:
            self.log_result(action, False, now_ms() - start)
            raise AdapterError(self.name, action, str(e) or type(e).__name__) from e

        duration = now_ms() - start
        self.log_result(action, True, duration)
        return self.success_result(data, duration)

    def _ensure_connected(self, action: str):
        if not self.connected:
            raise AdapterError(self.name, action, "Not connected")

    # =========================================================================
    # Capture and assertions
    # =========================================================================

    def capture_source(self, data: Any) -> Any:
        """The part of a result that capture paths are evaluated against."""
        return data

    def assertion_source(self, data: Any) -> Any:
        """The part of a result that assertions are evaluated against."""
        return self.capture_source(data)

    def capture_values(self, data: Any, capture: Dict[str, str], ctx: Any):
        source = self.capture_source(data)
        for var_name, path in (capture or {}).items():
            value = evaluate_jsonpath(source, path, UNDEFINED)
            if value is UNDEFINED:
                logger.warning(f"[{self.name}] Nothing to capture for {var_name} at {path}")
                value = None
            ctx.capture(var_name, value)

    def check_assertions(self, data: Any, assertion: Any):
        """Apply an assert payload: a predicate bag or a list of {path, ...}."""
        if not assertion:
            return
        source = self.assertion_source(data)
        if isinstance(assertion, Mapping):
            run_assertion(source, assertion)
        else:
            run_path_assertions(source, assertion)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def success_result(data: Any, duration: int) -> AdapterStepResult:
        return AdapterStepResult(success=True, data=data, duration=duration)

    def require(self, params: Dict[str, Any], key: str, action: str) -> Any:
        value = params.get(key)
        if value is None or value == "":
            raise AdapterError(self.name, action, f"Missing required parameter: {key}")
        return value

    def log_action(self, action: str, params: Optional[Dict[str, Any]] = None):
        logger.debug(f"[{self.name}] Executing {action} {params or {}}")

    def log_result(self, action: str, success: bool, duration: int):
        if success:
            logger.debug(f"[{self.name}] {action} completed in {duration}ms")
        else:
            logger.error(f"[{self.name}] {action} failed after {duration}ms")
