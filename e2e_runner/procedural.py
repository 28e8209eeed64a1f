"""
Procedural Test Loader

Loads *.test.py modules. A module either exports a definition built
with e2e():

    from e2e_runner import e2e, expect

    async def execute(ctx):
        resp = await ctx.adapter("http").request("GET", "/health")
        expect(resp["status"]).to_be(200)

    test = e2e("Health endpoint", execute=execute, priority="P0", tags=["smoke"])

or defines execute (plus optional setup/verify/teardown) at module level
along with optional NAME, PRIORITY, TAGS, TIMEOUT, RETRIES, SKIP,
SKIP_REASON and VARIABLES.

Each phase function becomes a single FunctionStep with id "<phase>-0".
Functions may be plain or async; they receive the AdapterContext.
"""

import importlib.util
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import LoaderError
from .models import FunctionStep, Phase, Priority, SourceType, UnifiedTestDefinition

logger = logging.getLogger(__name__)

PYTHON_TEST_SUFFIX = ".test.py"
MIN_TIMEOUT = 1000

_MODULE_METADATA = {
    "NAME": "name",
    "DESCRIPTION": "description",
    "PRIORITY": "priority",
    "TAGS": "tags",
    "TIMEOUT": "timeout",
    "RETRIES": "retries",
    "SKIP": "skip",
    "SKIP_REASON": "skip_reason",
    "VARIABLES": "variables",
}


@dataclass
class ProceduralTest:
    """What e2e() returns and a .test.py module exports as `test`."""

    name: str
    execute: Callable[..., Any]
    setup: Optional[Callable[..., Any]] = None
    verify: Optional[Callable[..., Any]] = None
    teardown: Optional[Callable[..., Any]] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    timeout: Optional[int] = None
    retries: Optional[int] = None
    skip: bool = False
    skip_reason: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)


def e2e(
    name: str,
    execute: Callable[..., Any],
    setup: Optional[Callable[..., Any]] = None,
    verify: Optional[Callable[..., Any]] = None,
    teardown: Optional[Callable[..., Any]] = None,
    **metadata,
) -> ProceduralTest:
    """Define a procedural test."""
    return ProceduralTest(
        name=name, execute=execute, setup=setup, verify=verify, teardown=teardown, **metadata
    )


def name_from_path(file_path: str) -> str:
    name = Path(file_path).name
    if name.endswith(PYTHON_TEST_SUFFIX):
        return name[: -len(PYTHON_TEST_SUFFIX)]
    return Path(file_path).stem


def import_test_module(file_path: str):
    """Import a test file under a private module name."""
    path = Path(file_path).resolve()
    module_name = "e2e_test_" + re.sub(r"\W", "_", str(path))
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise LoaderError(f"Cannot import {file_path}", file_path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _definition_from_module(module: Any, file_path: str) -> ProceduralTest:
    exported = getattr(module, "test", None)
    if isinstance(exported, ProceduralTest):
        return exported

    execute = getattr(module, "execute", None)
    if execute is None:
        raise LoaderError(
            'Test module must export `test = e2e(...)` or define an "execute" function', file_path
        )

    metadata = {}
    for attr, key in _MODULE_METADATA.items():
        if hasattr(module, attr):
            metadata[key] = getattr(module, attr)
    metadata.setdefault("name", name_from_path(file_path))

    return ProceduralTest(
        execute=execute,
        setup=getattr(module, "setup", None),
        verify=getattr(module, "verify", None),
        teardown=getattr(module, "teardown", None),
        **metadata,
    )


def validate_procedural_test(definition: ProceduralTest) -> List[str]:
    """Returns list of validation errors."""
    errors = []

    if not callable(definition.execute):
        errors.append('Test definition must have an "execute" function')
    for phase in ("setup", "verify", "teardown"):
        fn = getattr(definition, phase)
        if fn is not None and not callable(fn):
            errors.append(f'"{phase}" must be a function')

    if definition.priority and definition.priority not in [p.value for p in Priority]:
        errors.append(f'Invalid priority "{definition.priority}". Must be: P0, P1, P2, P3')
    if definition.tags is not None and not isinstance(definition.tags, (list, tuple)):
        errors.append('"tags" must be an array')
    if definition.timeout is not None and (
        not isinstance(definition.timeout, (int, float)) or definition.timeout < MIN_TIMEOUT
    ):
        errors.append(f'"timeout" must be a number >= {MIN_TIMEOUT}')
    if definition.retries is not None and (
        not isinstance(definition.retries, int) or definition.retries < 0
    ):
        errors.append('"retries" must be a non-negative number')

    return errors


def convert_to_unified(definition: ProceduralTest, file_path: str) -> UnifiedTestDefinition:
    phases = {}
    for phase in Phase:
        fn = getattr(definition, phase.value)
        phases[phase.value] = (
            [
                FunctionStep(
                    id=f"{phase.value}-0",
                    fn=fn,
                    description=f"Execute {phase.value} function",
                )
            ]
            if fn is not None
            else []
        )

    return UnifiedTestDefinition(
        name=definition.name,
        description=definition.description,
        priority=Priority(definition.priority) if definition.priority else None,
        tags=list(definition.tags or []),
        skip=bool(definition.skip),
        skip_reason=definition.skip_reason,
        timeout=definition.timeout,
        retries=definition.retries,
        variables=dict(definition.variables or {}),
        source_file=str(Path(file_path).resolve()),
        source_type=SourceType.PYTHON,
        **phases,
    )


def load_python_test(file_path: str) -> UnifiedTestDefinition:
    """
    Load a single procedural test file.

    Raises:
        LoaderError: missing file, import failure or invalid definition
    """
    logger.debug(f"Loading Python test: {file_path}")

    if not Path(file_path).exists():
        raise LoaderError(f"File not found: {file_path}", file_path)

    try:
        module = import_test_module(file_path)
    except LoaderError:
        raise
    except Exception as e:
        raise LoaderError(f"Failed to load Python test: {e}", file_path) from e

    definition = _definition_from_module(module, file_path)
    errors = validate_procedural_test(definition)
    if errors:
        details = "\n".join(f"  - {e}" for e in errors)
        raise LoaderError(f"Invalid test definition:\n{details}", file_path)

    return convert_to_unified(definition, file_path)


def load_python_tests(file_paths: Iterable[str]) -> List[UnifiedTestDefinition]:
    """Load several procedural tests, raising one LoaderError for all failures."""
    tests = []
    errors = []

    for file_path in file_paths:
        try:
            tests.append(load_python_test(file_path))
        except LoaderError as e:
            errors.append(f"{file_path}: {e}")

    if errors:
        raise LoaderError(f"Failed to load {len(errors)} test(s):\n" + "\n".join(errors))

    return tests


def get_python_test_metadata(file_path: str) -> Dict[str, Any]:
    """Name, priority and tags. Importing the module is unavoidable here."""
    definition = _definition_from_module(import_test_module(file_path), file_path)
    return {
        "name": definition.name,
        "priority": definition.priority,
        "tags": list(definition.tags or []),
    }
