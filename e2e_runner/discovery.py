"""
Test Discovery

Finds test files under a base directory, filters them and loads them
through the matching loader.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import LoaderError, ValidationError
from .loader import get_yaml_test_metadata, load_yaml_test
from .models import SourceType, UnifiedTestDefinition
from .procedural import PYTHON_TEST_SUFFIX, get_python_test_metadata, load_python_test

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS = ["**/*.test.yaml", "**/*.test.yml", "**/*.test.py"]
DEFAULT_EXCLUDE = [
    "**/node_modules/**",
    "**/.git/**",
    "**/__pycache__/**",
    "**/.venv/**",
    "**/reports/**",
]

YAML_SUFFIXES = (".test.yaml", ".test.yml")


@dataclass
class DiscoveredTest:
    """A test file found on disk, not yet loaded."""

    file_path: str
    name: str
    type: SourceType


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a glob where ** spans directories and * stays within one."""
    regex = ""
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            regex += "(?:.*/)?"
            i += 3
        elif pattern.startswith("**", i):
            regex += ".*"
            i += 2
        elif pattern[i] == "*":
            regex += "[^/]*"
            i += 1
        elif pattern[i] == "?":
            regex += "[^/]"
            i += 1
        else:
            regex += re.escape(pattern[i])
            i += 1
    return re.compile(f"^{regex}$")


def matches_glob(path: str, pattern: str) -> bool:
    return glob_to_regex(pattern).match(path.replace("\\", "/")) is not None


def categorize_test_file(file_path: str) -> Optional[SourceType]:
    if file_path.endswith(YAML_SUFFIXES):
        return SourceType.YAML
    if file_path.endswith(PYTHON_TEST_SUFFIX):
        return SourceType.PYTHON
    return None


def get_test_name_from_path(file_path: str) -> str:
    name = Path(file_path).name
    for suffix in YAML_SUFFIXES + (PYTHON_TEST_SUFFIX,):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def discover_tests(
    base_path: str = ".",
    patterns: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
) -> List[DiscoveredTest]:
    """
    Find test files under base_path.

    Returns tests sorted by name. A missing base_path yields an empty list.
    """
    root = Path(base_path).resolve()
    patterns = list(patterns or DEFAULT_PATTERNS)
    exclude = list(DEFAULT_EXCLUDE if exclude is None else exclude)

    if not root.exists():
        logger.warning(f"Test directory not found: {root}")
        return []

    found = []
    for file_path in root.rglob("*"):
        if not file_path.is_file():
            continue
        relative = file_path.relative_to(root).as_posix()
        if any(matches_glob(relative, p) for p in exclude):
            continue
        if not any(matches_glob(relative, p) for p in patterns):
            continue
        source_type = categorize_test_file(relative)
        if source_type is None:
            continue
        found.append(
            DiscoveredTest(
                file_path=str(file_path),
                name=get_test_name_from_path(relative),
                type=source_type,
            )
        )

    found.sort(key=lambda t: (t.name, t.file_path))
    logger.debug(f"Discovered {len(found)} test file(s) in {root}")
    return found


def get_test_metadata(test: DiscoveredTest) -> Dict:
    if test.type == SourceType.YAML:
        return get_yaml_test_metadata(test.file_path)
    return get_python_test_metadata(test.file_path)


def filter_test_files(
    tests: Iterable[DiscoveredTest],
    grep: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    priorities: Optional[Sequence[str]] = None,
) -> List[DiscoveredTest]:
    """
    Filter discovered files before loading them.

    grep matches the file-derived name (case-insensitive regex); tags and
    priorities read each file's metadata. Files whose metadata cannot be
    read are left in so that loading reports the real problem.
    """
    selected = list(tests)
    if grep:
        regex = re.compile(grep, re.IGNORECASE)
        selected = [t for t in selected if regex.search(t.name)]
    if not tags and not priorities:
        return selected

    filtered = []
    for test in selected:
        try:
            meta = get_test_metadata(test)
        except Exception as e:
            logger.warning(f"Could not read metadata from {test.file_path}: {e}")
            filtered.append(test)
            continue
        if tags and not set(tags) & set(meta.get("tags") or []):
            continue
        if priorities and meta.get("priority") not in priorities:
            continue
        filtered.append(test)
    return filtered


def filter_tests(
    tests: Iterable[UnifiedTestDefinition],
    grep: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    priorities: Optional[Sequence[str]] = None,
) -> List[UnifiedTestDefinition]:
    """Filter loaded definitions by name regex, any-of tags and priority."""
    selected = list(tests)
    if grep:
        regex = re.compile(grep, re.IGNORECASE)
        selected = [t for t in selected if regex.search(t.name)]
    if tags:
        selected = [t for t in selected if set(tags) & set(t.tags)]
    if priorities:
        selected = [t for t in selected if t.priority and t.priority.value in priorities]
    return selected


def load_test(test: DiscoveredTest) -> UnifiedTestDefinition:
    if test.type == SourceType.YAML:
        return load_yaml_test(test.file_path)
    return load_python_test(test.file_path)


def load_tests(tests: Iterable[DiscoveredTest]) -> Tuple[List[UnifiedTestDefinition], List[str]]:
    """Load every discovered test. Returns (definitions, error messages)."""
    loaded = []
    errors = []
    for test in tests:
        try:
            loaded.append(load_test(test))
        except (LoaderError, ValidationError) as e:
            errors.append(f"{test.file_path}: {e}")
    return loaded, errors
