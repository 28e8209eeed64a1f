"""
Lifecycle Hooks

Config `hooks` entries name Python callables run around the suite and
around each test:

    hooks:
      beforeAll: hooks/seed.py            # calls run() in that file
      afterAll: hooks/seed.py:cleanup     # calls cleanup() in that file
      beforeEach: myproject.e2e:reset     # module:function on sys.path

A hook is called as hook(adapters, logger) and may be async.
"""

import importlib
import importlib.util
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .errors import ConfigurationError, wrap_error
from .utils import maybe_await

logger = logging.getLogger(__name__)

HOOK_NAMES = ("beforeAll", "afterAll", "beforeEach", "afterEach")
DEFAULT_HOOK_FUNCTION = "run"


def _split_reference(reference: str):
    # "C:\\x.py" style drive letters are not function separators
    path, sep, function = reference.rpartition(":")
    if not sep or re.fullmatch(r"[A-Za-z]", path):
        return reference, None
    return path, function


def load_hook(reference: str, base_dir: Optional[str] = None) -> Callable[..., Any]:
    """Resolve a hook reference to a callable."""
    target, function = _split_reference(reference)

    if target.endswith(".py"):
        path = Path(target)
        if not path.is_absolute() and base_dir:
            path = Path(base_dir) / path
        if not path.exists():
            raise ConfigurationError(f"Hook file not found: {path}")
        spec = importlib.util.spec_from_file_location(
            "e2e_hook_" + re.sub(r"\W", "_", str(path.resolve())), path
        )
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        function = function or DEFAULT_HOOK_FUNCTION
    else:
        if not function:
            raise ConfigurationError(
                f"Invalid hook reference: {reference}",
                hint='Use "path/to/file.py", "path/to/file.py:function" or "module:function"',
            )
        module = importlib.import_module(target)

    hook = getattr(module, function, None)
    if not callable(hook):
        raise ConfigurationError(f"Hook function {function!r} not found in {target}")
    return hook


class HookRunner:
    """Loads configured hooks once and runs them by name."""

    def __init__(self, hooks: Optional[Dict[str, str]] = None, base_dir: Optional[str] = None):
        self._hooks: Dict[str, Callable[..., Any]] = {}
        for name, reference in (hooks or {}).items():
            if name not in HOOK_NAMES:
                logger.warning(f"Ignoring unknown hook: {name}")
                continue
            if reference:
                self._hooks[name] = load_hook(reference, base_dir)

    def has(self, name: str) -> bool:
        return name in self._hooks

    async def run(self, name: str, adapters: Any, hook_logger: Optional[logging.Logger] = None):
        """
        Run a hook if configured.

        Raises:
            E2ERunnerError: the hook raised (non-runner errors are wrapped)
        """
        hook = self._hooks.get(name)
        if hook is None:
            return
        logger.debug(f"Running {name} hook")
        try:
            await maybe_await(hook(adapters, hook_logger or logger))
        except Exception as e:
            raise wrap_error(e, f"{name} hook failed") from e
