"""
YAML Test Loader

Parses *.test.yaml files into UnifiedTestDefinition. Tests are defined
in data, not code:

    name: Create user
    priority: P0
    tags: [users, smoke]
    variables:
      email: "user-{{$uuid}}@example.com"
    execute:
      - adapter: http
        action: request
        method: POST
        url: /users
        body: {email: "{{email}}"}
        capture:
          userId: $.id
        assert:
          status: 201
    teardown:
      - adapter: postgresql
        action: execute
        sql: DELETE FROM users WHERE id = $1
        params: ["{{userId}}"]
        continueOnError: true

Every step key other than adapter/action/description/continueOnError/
retry/delay/capture/assert becomes part of the step's params.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from .errors import LoaderError, ValidationError
from .models import (
    AdapterType,
    Phase,
    Priority,
    SourceType,
    UnifiedStep,
    UnifiedTestDefinition,
)

logger = logging.getLogger(__name__)

VALID_ADAPTERS = [t.value for t in AdapterType]
VALID_PRIORITIES = [p.value for p in Priority]

MIN_TIMEOUT = 1000
MAX_TIMEOUT = 300000
MAX_RETRIES = 5

STEP_META_KEYS = ("adapter", "action", "description", "continueOnError", "retry", "delay")

ADAPTER_ACTIONS = {
    "http": ["request"],
    "postgresql": ["execute", "query", "queryOne", "count"],
    "redis": ["get", "set", "del", "exists", "incr", "hget", "hset", "hgetall", "keys", "flushPattern"],
    "mongodb": [
        "insertOne",
        "insertMany",
        "findOne",
        "find",
        "updateOne",
        "updateMany",
        "deleteOne",
        "deleteMany",
        "count",
        "aggregate",
    ],
    "eventhub": ["publish", "waitFor", "consume", "clear"],
}

REDIS_KEY_ACTIONS = ("get", "set", "del", "exists", "incr", "hget", "hset", "hgetall")
REDIS_PATTERN_ACTIONS = ("keys", "flushPattern")
EVENTHUB_TOPIC_ACTIONS = ("publish", "waitFor", "consume")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =========================================================================
# Loading
# =========================================================================


def load_yaml_test(file_path: str) -> UnifiedTestDefinition:
    """
    Load a single YAML test file.

    Raises:
        LoaderError: file missing, unreadable or not valid YAML
        ValidationError: document does not describe a valid test
    """
    path = Path(file_path)
    logger.debug(f"Loading YAML test: {file_path}")

    if not path.exists():
        raise LoaderError(f"File not found: {file_path}", file_path)

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise LoaderError(f"Failed to read file: {e}", file_path) from e

    return parse_yaml_test(content, str(path))


def parse_yaml_test(content: str, file_path: str = "<string>") -> UnifiedTestDefinition:
    """Parse and validate YAML text into a test definition."""
    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise LoaderError(f"Failed to parse YAML: {e}", file_path) from e

    errors = validate_yaml_test(raw)
    if errors:
        raise ValidationError(f"Invalid YAML test file: {file_path}", errors, file_path)

    return convert_to_unified(raw, file_path)


def load_yaml_tests(file_paths: Iterable[str]) -> List[UnifiedTestDefinition]:
    """
    Load several YAML test files.

    All files are attempted; failures are collected and raised together.
    """
    tests = []
    errors = []

    for file_path in file_paths:
        try:
            tests.append(load_yaml_test(file_path))
        except (LoaderError, ValidationError) as e:
            errors.append(f"{file_path}: {e}")

    if errors:
        raise LoaderError(f"Failed to load {len(errors)} test(s):\n" + "\n".join(errors))

    return tests


def get_yaml_test_metadata(file_path: str) -> Dict[str, Any]:
    """Name, priority and tags without building the full definition."""
    with open(file_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return {
        "name": raw.get("name"),
        "priority": raw.get("priority"),
        "tags": raw.get("tags") or [],
    }


# =========================================================================
# Validation
# =========================================================================


def validate_yaml_test(raw: Any) -> List[str]:
    """
    Validate a parsed YAML test document.

    Returns list of validation errors.
    """
    if not isinstance(raw, dict):
        return ["Test file must contain a mapping"]

    errors = []

    if not raw.get("name") or not isinstance(raw["name"], str):
        errors.append('Missing or invalid "name" field')

    execute = raw.get("execute")
    if not execute or not isinstance(execute, list):
        errors.append('Missing or empty "execute" array')

    priority = raw.get("priority")
    if priority and priority not in VALID_PRIORITIES:
        errors.append(f'Invalid priority "{priority}". Must be one of: {", ".join(VALID_PRIORITIES)}')

    if raw.get("tags") is not None and not isinstance(raw["tags"], list):
        errors.append('"tags" must be an array')

    timeout = raw.get("timeout")
    if timeout is not None and (not _is_number(timeout) or not MIN_TIMEOUT <= timeout <= MAX_TIMEOUT):
        errors.append(f'"timeout" must be a number between {MIN_TIMEOUT} and {MAX_TIMEOUT}')

    retries = raw.get("retries")
    if retries is not None and (not _is_number(retries) or not 0 <= retries <= MAX_RETRIES):
        errors.append(f'"retries" must be a number between 0 and {MAX_RETRIES}')

    if raw.get("variables") is not None and not isinstance(raw["variables"], dict):
        errors.append('"variables" must be a mapping')

    for phase in Phase:
        steps = raw.get(phase.value)
        if steps is None:
            continue
        if not isinstance(steps, list):
            errors.append(f'"{phase.value}" must be an array')
            continue
        for i, step in enumerate(steps):
            errors.extend(validate_step(step, f"{phase.value}[{i}]"))

    return errors


def validate_step(step: Any, location: str) -> List[str]:
    if not isinstance(step, dict):
        return [f"{location}: Step must be a mapping"]

    errors = []
    adapter = step.get("adapter")
    action = step.get("action")

    if not adapter:
        errors.append(f'{location}: Missing "adapter" field')
    elif adapter not in VALID_ADAPTERS:
        errors.append(
            f'{location}: Invalid adapter "{adapter}". Must be one of: {", ".join(VALID_ADAPTERS)}'
        )

    if not action:
        errors.append(f'{location}: Missing "action" field')

    if adapter in VALID_ADAPTERS and action:
        errors.extend(_validate_adapter_step(step, adapter, action, location))

    return errors


def _validate_adapter_step(step: Dict[str, Any], adapter: str, action: str, location: str) -> List[str]:
    errors = []
    if action not in ADAPTER_ACTIONS[adapter]:
        errors.append(
            f'{location}: Invalid {adapter} action "{action}". '
            f'Must be one of: {", ".join(ADAPTER_ACTIONS[adapter])}'
        )

    if adapter == "postgresql" and not step.get("sql"):
        errors.append(f'{location}: PostgreSQL steps require "sql" field')
    elif adapter == "redis":
        if action in REDIS_KEY_ACTIONS and not step.get("key"):
            errors.append(f'{location}: Redis action "{action}" requires "key" field')
        if action in REDIS_PATTERN_ACTIONS and not step.get("pattern"):
            errors.append(f'{location}: Redis action "{action}" requires "pattern" field')
    elif adapter == "mongodb" and not step.get("collection"):
        errors.append(f'{location}: MongoDB steps require "collection" field')
    elif adapter == "eventhub" and action in EVENTHUB_TOPIC_ACTIONS and not step.get("topic"):
        errors.append(f'{location}: EventHub action "{action}" requires "topic" field')
    elif adapter == "http" and not step.get("url"):
        errors.append(f'{location}: HTTP steps require "url" field')

    return errors


# =========================================================================
# Conversion
# =========================================================================


def convert_to_unified(raw: Dict[str, Any], file_path: str) -> UnifiedTestDefinition:
    """Convert a validated document. sourceFile is made absolute."""
    phases = {
        phase.value: [convert_step(s, phase, i) for i, s in enumerate(raw.get(phase.value) or [])]
        for phase in Phase
    }
    source_file = str(Path(file_path).resolve()) if not file_path.startswith("<") else file_path

    return UnifiedTestDefinition(
        name=raw["name"],
        description=raw.get("description"),
        priority=Priority(raw["priority"]) if raw.get("priority") else None,
        tags=list(raw.get("tags") or []),
        skip=bool(raw.get("skip", False)),
        skip_reason=raw.get("skipReason"),
        timeout=raw.get("timeout"),
        retries=raw.get("retries"),
        variables=dict(raw.get("variables") or {}),
        source_file=source_file,
        source_type=SourceType.YAML,
        **phases,
    )


def convert_step(raw: Dict[str, Any], phase: Phase, index: int) -> UnifiedStep:
    params = {k: v for k, v in raw.items() if k not in STEP_META_KEYS + ("capture", "assert")}
    return UnifiedStep(
        id=f"{phase.value}-{index}",
        adapter=AdapterType(raw["adapter"]),
        action=raw["action"],
        params=params,
        capture=normalize_capture(raw.get("capture")),
        assertion=raw.get("assert"),
        continue_on_error=bool(raw.get("continueOnError", False)),
        retry=raw.get("retry"),
        delay=raw.get("delay"),
        description=raw.get("description"),
    )


def normalize_capture(capture: Any) -> Dict[str, str]:
    """
    Normalize a capture declaration to {variable: path}.

    A bare string names a variable that receives the whole capture
    source, e.g. `capture: session` on a redis get.
    """
    if not capture:
        return {}
    if isinstance(capture, str):
        return {capture: "$"}
    if isinstance(capture, dict):
        return {str(k): str(v) for k, v in capture.items()}
    return {}
