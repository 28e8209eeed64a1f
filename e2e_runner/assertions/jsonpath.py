"""
JSONPath Evaluator

Read-only path queries over nested dicts/lists (parsed JSON, DB rows,
event bodies).

Supported syntax:
    $                 root
    .name / ['name']  property (also ["name"] and bare [name])
    [0]               array index
    [*] / .*          wildcard over list items or dict values
    ..name            recursive descent, depth-first pre-order

A path without a leading $ is treated as relative to the root.
Missing intermediate nodes make a path "not found"; they never raise.

Usage:
    evaluate_jsonpath({"a": {"b": [{"x": 1}]}}, "$.a.b[0].x")   # 1
    query_jsonpath({"a": [{"x": 1}, {"x": 2}]}, "$.a[*].x")       # [1, 2]
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, List, NamedTuple, Tuple, Union


class _Undefined:
    """Marker for 'no value at all', distinct from None (null)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "undefined"


UNDEFINED = _Undefined()

PROPERTY = "property"
INDEX = "index"
WILDCARD = "wildcard"
RECURSIVE = "recursive"

_PROPERTY_RE = re.compile(r"^([a-zA-Z_$][a-zA-Z0-9_$-]*)")
_INDEX_RE = re.compile(r"^(\d+)$")
_QUOTED_RE = re.compile(r"""^['"](.+?)['"]$""")


class PathToken(NamedTuple):
    type: str
    value: Union[str, int]


@dataclass
class JSONPathResult:
    """Result of a path evaluation with its found flag."""

    value: Any
    found: bool
    path: str


# =========================================================================
# Public API
# =========================================================================


def evaluate_jsonpath(data: Any, path: str, default: Any = None) -> Any:
    """Value at path, or default when the path is not found."""
    result = evaluate_jsonpath_with_meta(data, path)
    return result.value if result.found else default


def evaluate_jsonpath_with_meta(data: Any, path: str) -> JSONPathResult:
    """
    Evaluate a path and report whether it matched.

    A wildcard or recursive token yields a list of the values the rest
    of the path produced for each match; found is True only if that
    list is non-empty.
    """
    if not path or not path.strip():
        return JSONPathResult(UNDEFINED, False, "")

    normalized = _normalize_path(path)
    tokens = tokenize_path(normalized)
    if not tokens:
        return JSONPathResult(data, True, "$")

    value, found = _evaluate_tokens(data, tokens)
    return JSONPathResult(value if found else UNDEFINED, found, normalized)


def has_jsonpath(data: Any, path: str) -> bool:
    """Check if a value exists at the given path."""
    return evaluate_jsonpath_with_meta(data, path).found


def query_jsonpath(data: Any, path: str) -> List[Any]:
    """All values matching path. Always returns a list."""
    tokens = tokenize_path(_normalize_path(path))
    if not tokens:
        return [] if data is UNDEFINED else [data]
    return _query_tokens(data, tokens)


# =========================================================================
# Parsing
# =========================================================================


def _normalize_path(path: str) -> str:
    normalized = path.strip()
    if not normalized.startswith("$"):
        normalized = "$." + normalized
    return normalized


def tokenize_path(path: str) -> List[PathToken]:
    """Split a normalized path into tokens. Unrecognized characters are skipped."""
    tokens = []
    remaining = path[1:] if path.startswith("$") else path

    while remaining:
        if remaining.startswith(".."):
            prop, remaining = _next_property(remaining[2:])
            if prop is not None:
                tokens.append(PathToken(RECURSIVE, prop))
            continue

        if remaining.startswith("."):
            prop, remaining = _next_property(remaining[1:])
            if prop == "*":
                tokens.append(PathToken(WILDCARD, "*"))
            elif prop is not None:
                tokens.append(PathToken(PROPERTY, prop))
            continue

        if remaining.startswith("["):
            close = _find_matching_bracket(remaining)
            if close == -1:
                break
            content = remaining[1:close]
            remaining = remaining[close + 1 :]

            if content == "*":
                tokens.append(PathToken(WILDCARD, "*"))
                continue
            match = _INDEX_RE.match(content)
            if match:
                tokens.append(PathToken(INDEX, int(match.group(1))))
                continue
            match = _QUOTED_RE.match(content)
            if match:
                tokens.append(PathToken(PROPERTY, match.group(1)))
                continue
            tokens.append(PathToken(PROPERTY, content))
            continue

        remaining = remaining[1:]

    return tokens


def _next_property(path: str) -> Tuple[Any, str]:
    if path.startswith("*"):
        return "*", path[1:]
    match = _PROPERTY_RE.match(path)
    if match:
        name = match.group(1)
        return name, path[len(name) :]
    return None, path


def _find_matching_bracket(text: str) -> int:
    if not text.startswith("["):
        return -1

    depth = 0
    quote = None
    for i, char in enumerate(text):
        if quote:
            if char == quote and text[i - 1] != "\\":
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return i
    return -1


# =========================================================================
# Evaluation
# =========================================================================


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _get_property(node: Any, name: Any) -> Tuple[Any, bool]:
    if isinstance(node, Mapping):
        if name in node:
            return node[name], True
        return UNDEFINED, False
    if _is_list(node) and isinstance(name, str) and name.isdigit():
        idx = int(name)
        if idx < len(node):
            return node[idx], True
    return UNDEFINED, False


def _evaluate_tokens(data: Any, tokens: List[PathToken]) -> Tuple[Any, bool]:
    current = data

    for i, token in enumerate(tokens):
        if current is None or current is UNDEFINED:
            return UNDEFINED, False

        if token.type == PROPERTY:
            current, found = _get_property(current, token.value)
            if not found:
                return UNDEFINED, False

        elif token.type == INDEX:
            if not _is_list(current) or token.value >= len(current):
                return UNDEFINED, False
            current = current[token.value]

        elif token.type == WILDCARD:
            if _is_list(current):
                items = list(current)
            elif isinstance(current, Mapping):
                items = list(current.values())
            else:
                return UNDEFINED, False
            if not items:
                return UNDEFINED, False
            rest = tokens[i + 1 :]
            if not rest:
                return items, True
            return _collect(items, rest)

        elif token.type == RECURSIVE:
            matches = _recursive_search(current, token.value)
            rest = tokens[i + 1 :]
            if not rest:
                return matches, bool(matches)
            return _collect(matches, rest)

    return current, True


def _collect(items: List[Any], tokens: List[PathToken]) -> Tuple[List[Any], bool]:
    results = []
    for item in items:
        value, found = _evaluate_tokens(item, tokens)
        if found:
            results.append(value)
    return results, bool(results)


def _query_tokens(data: Any, tokens: List[PathToken]) -> List[Any]:
    current = [data]

    for token in tokens:
        next_values = []
        for item in current:
            if item is None or item is UNDEFINED:
                continue

            if token.type == PROPERTY:
                value, found = _get_property(item, token.value)
                if found:
                    next_values.append(value)
            elif token.type == INDEX:
                if _is_list(item) and token.value < len(item):
                    next_values.append(item[token.value])
            elif token.type == WILDCARD:
                if _is_list(item):
                    next_values.extend(item)
                elif isinstance(item, Mapping):
                    next_values.extend(item.values())
            elif token.type == RECURSIVE:
                next_values.extend(_recursive_search(item, token.value))

        current = next_values

    return current


def _recursive_search(data: Any, name: str) -> List[Any]:
    results = []

    def search(node):
        if _is_list(node):
            for item in node:
                search(item)
        elif isinstance(node, Mapping):
            if name in node:
                results.append(node[name])
            for value in node.values():
                search(value)

    search(data)
    return results


# =========================================================================
# Simple paths
# =========================================================================


def parse_simple_path(path: str) -> List[str]:
    """
    Split a dot/bracket path into parts. No wildcards or recursion.

    Examples:
        >>> parse_simple_path("data.items[0]['name']")
        ['data', 'items', '0', 'name']
    """
    normalized = re.sub(r"^\$\.?", "", path)
    parts = []
    current = ""
    in_bracket = False

    for char in normalized:
        if char == "[":
            if current:
                parts.append(current)
                current = ""
            in_bracket = True
        elif char == "]":
            if current:
                parts.append(current.strip("'\""))
                current = ""
            in_bracket = False
        elif char == "." and not in_bracket:
            if current:
                parts.append(current)
                current = ""
        else:
            current += char

    if current:
        parts.append(current)
    return parts


def get_by_path(data: Any, path: str, default: Any = None) -> Any:
    """Fast lookup for plain dot/bracket paths such as 'a.b[0].c'."""
    current = data
    for part in parse_simple_path(path):
        if _is_list(current):
            if not part.lstrip("-").isdigit():
                return default
            idx = int(part)
            if idx >= len(current) or idx < -len(current):
                return default
            current = current[idx]
        elif isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        else:
            return default
    return current


def is_valid_jsonpath(path: Any) -> bool:
    """Basic syntax check: non-empty string with balanced brackets."""
    if not path or not isinstance(path, str):
        return False

    depth = 0
    for char in path.strip():
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0
