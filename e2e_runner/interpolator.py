"""
Variable Interpolator

Replaces {{expr}} placeholders in step payloads.

Resolution order for expr:
    1. $name(args)       built-in function call
    2. baseUrl           the active environment's base URL
    3. captured.<path>   dot-path into captured values (missing is an error)
    4. <name>            exact key in captured values
    5. <path>            dot-path into variables
    6. <NAME>            process environment variable
    otherwise InterpolationError("Variable not found: ...")

interpolate() always returns a string. interpolate_object() walks
dicts/lists and, when a string is exactly one placeholder, substitutes
the resolved value with its original type so that numbers, booleans
and objects survive into request bodies and query parameters.

Usage:
    ctx = create_interpolation_context({"id": "X"}, {}, "http://api")
    interpolate("item-{{id}}", ctx)                  # "item-X"
    interpolate_object({"n": "{{$random(1,1)}}"}, ctx)   # {"n": 1}
"""

import base64
import calendar
import hashlib
import json
import logging
import os
import random
import re
import string
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from .assertions.jsonpath import UNDEFINED
from .assertions.matchers import stringify
from .errors import InterpolationError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
FUNCTION_PATTERN = re.compile(r"^\$(\w+)(?:\(([^)]*)\))?$")
_INT_PREFIX = re.compile(r"^\s*([-+]?\d+)")
_ALPHANUMERIC = string.ascii_letters + string.digits


@dataclass(frozen=True)
class InterpolationContext:
    """Read view used to resolve placeholders. Rebuilt before every step."""

    variables: Mapping = field(default_factory=dict)
    captured: Mapping = field(default_factory=dict)
    base_url: str = ""
    env: Mapping = field(default_factory=dict)


def create_interpolation_context(
    variables: Mapping,
    captured: Mapping,
    base_url: str = "",
    env: Optional[Mapping] = None,
) -> InterpolationContext:
    return InterpolationContext(
        variables=variables,
        captured=captured,
        base_url=base_url or "",
        env=os.environ if env is None else env,
    )


# =========================================================================
# Built-in functions
# =========================================================================


def _parse_int(value: Optional[str]) -> int:
    """Leading integer of value, 0 when there is none."""
    if value is None:
        return 0
    match = _INT_PREFIX.match(str(value))
    return int(match.group(1)) if match else 0


def _iso_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def shift_date(moment: datetime, amount: int, unit: str) -> datetime:
    """Move a datetime by amount units (seconds through years; default days)."""
    unit = (unit or "days").strip()
    if unit in ("second", "seconds", "s"):
        return moment + timedelta(seconds=amount)
    if unit in ("minute", "minutes", "m"):
        return moment + timedelta(minutes=amount)
    if unit in ("hour", "hours", "h"):
        return moment + timedelta(hours=amount)
    if unit in ("week", "weeks", "w"):
        return moment + timedelta(weeks=amount)
    if unit in ("month", "months"):
        return _add_months(moment, amount)
    if unit in ("year", "years", "y"):
        return _add_months(moment, amount * 12)
    return moment + timedelta(days=amount)


def format_date(moment: datetime, fmt: str = "iso") -> str:
    """Format local time: iso, date, time, datetime, unix, YYYY-MM-DD, HH:mm:ss."""
    if fmt in ("date", "YYYY-MM-DD"):
        return moment.strftime("%Y-%m-%d")
    if fmt in ("time", "HH:mm:ss"):
        return moment.strftime("%H:%M:%S")
    if fmt == "datetime":
        return moment.strftime("%Y-%m-%d %H:%M:%S")
    if fmt == "unix":
        return str(int(moment.timestamp()))
    return _iso_utc(moment)


def _fn_random(min_value: str = None, max_value: str = None) -> int:
    low = _parse_int(min_value) or 0
    high = _parse_int(max_value) or 100
    if low > high:
        low, high = high, low
    return random.randint(low, high)


def _fn_random_string(length: str = None) -> str:
    size = _parse_int(length) or 8
    return "".join(random.choice(_ALPHANUMERIC) for _ in range(size))


def _fn_env(name: str = None) -> str:
    value = os.environ.get(name or "")
    if value is None:
        raise InterpolationError(f"Environment variable not found: {name}", f"$env({name})")
    return value


def _fn_file(path: str = None) -> str:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except (OSError, TypeError) as e:
        raise InterpolationError(f"Failed to read file: {path}", f"$file({path})") from e


def _fn_json_stringify(value: str = "") -> str:
    try:
        return json.dumps(json.loads(value), separators=(",", ":"))
    except ValueError:
        return value


def _fn_date_add(amount: str = None, unit: str = None) -> str:
    return _iso_utc(shift_date(datetime.now().astimezone(), _parse_int(amount), unit))


def _fn_date_sub(amount: str = None, unit: str = None) -> str:
    return _iso_utc(shift_date(datetime.now().astimezone(), -_parse_int(amount), unit))


BUILT_IN_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "$uuid": lambda *args: str(uuid.uuid4()),
    "$timestamp": lambda *args: int(time.time() * 1000),
    "$isoDate": lambda *args: _iso_utc(datetime.now(timezone.utc)),
    "$random": _fn_random,
    "$randomString": _fn_random_string,
    "$env": _fn_env,
    "$file": _fn_file,
    "$base64": lambda value="": base64.b64encode(value.encode("utf-8")).decode("ascii"),
    "$base64Decode": lambda value="": base64.b64decode(value).decode("utf-8"),
    "$md5": lambda value="": hashlib.md5(value.encode("utf-8")).hexdigest(),
    "$sha256": lambda value="": hashlib.sha256(value.encode("utf-8")).hexdigest(),
    "$now": lambda fmt=None: format_date(datetime.now().astimezone(), fmt or "iso"),
    "$dateAdd": _fn_date_add,
    "$dateSub": _fn_date_sub,
    "$jsonStringify": _fn_json_stringify,
    "$lower": lambda value="": value.lower(),
    "$upper": lambda value="": value.upper(),
    "$trim": lambda value="": value.strip(),
}


def register_function(name: str, fn: Callable[..., Any]):
    """Add or replace a built-in. name may be given with or without the leading $."""
    key = name if name.startswith("$") else f"${name}"
    BUILT_IN_FUNCTIONS[key] = fn


def _parse_args(args: Optional[str]) -> List[str]:
    if not args:
        return []
    return [re.sub(r"""^['"]|['"]$""", "", a.strip()) for a in args.split(",")]


def evaluate_function(expression: str) -> Any:
    """Evaluate a $name(args) expression against the built-in registry."""
    match = FUNCTION_PATTERN.match(expression)
    if not match:
        raise InterpolationError(f"Invalid function expression: {expression}", expression)

    name = f"${match.group(1)}"
    fn = BUILT_IN_FUNCTIONS.get(name)
    if fn is None:
        raise InterpolationError(f"Unknown function: {name}", expression)
    return fn(*_parse_args(match.group(2)))


# =========================================================================
# Resolution
# =========================================================================


def get_nested_value(obj: Any, path: str, default: Any = UNDEFINED) -> Any:
    """Dot-path lookup into nested mappings (numeric parts index lists)."""
    if obj is None:
        return default
    current = obj
    for key in path.split("."):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        elif isinstance(current, (list, tuple)) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return default
    return current


def set_nested_value(obj: Dict[str, Any], path: str, value: Any):
    """Set a dot-path in a dict, creating intermediate dicts."""
    keys = path.split(".")
    current = obj
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def resolve_expression(expression: str, ctx: InterpolationContext) -> Any:
    """Resolve one placeholder body to its raw (typed) value."""
    expr = expression.strip()
    try:
        if expr.startswith("$"):
            return evaluate_function(expr)

        if expr == "baseUrl":
            return ctx.base_url or ""

        if expr.startswith("captured."):
            path = expr[len("captured.") :]
            value = get_nested_value(ctx.captured, path)
            if value is UNDEFINED:
                raise InterpolationError(f"Captured value not found: {path}", expr)
            return value

        if ctx.captured and expr in ctx.captured:
            return ctx.captured[expr]

        value = get_nested_value(ctx.variables, expr)
        if value is not UNDEFINED:
            return value

        if ctx.env and expr in ctx.env:
            return ctx.env[expr]

        raise InterpolationError(f"Variable not found: {expr}", expr)
    except InterpolationError:
        raise
    except Exception as e:
        raise InterpolationError(f"Failed to interpolate: {e}", expr) from e


def interpolate(template: Any, ctx: InterpolationContext) -> Any:
    """Substitute every placeholder in template with its string form."""
    if not template or not isinstance(template, str):
        return template
    return PLACEHOLDER_PATTERN.sub(
        lambda m: stringify(resolve_expression(m.group(1), ctx)), template
    )


def interpolate_value(value: Any, ctx: InterpolationContext) -> Any:
    """
    Interpolate one leaf. A string that is exactly one placeholder keeps
    the resolved value's type; anything else is stringified in place.
    """
    if isinstance(value, str):
        match = PLACEHOLDER_PATTERN.fullmatch(value)
        if match:
            return resolve_expression(match.group(1), ctx)
        return interpolate(value, ctx)
    return value


def interpolate_object(obj: Any, ctx: InterpolationContext) -> Any:
    """Recursively interpolate strings inside dicts and lists. Returns a new structure."""
    if isinstance(obj, str):
        return interpolate_value(obj, ctx)
    if isinstance(obj, Mapping):
        return {key: interpolate_object(value, ctx) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [interpolate_object(item, ctx) for item in obj]
    return obj


def has_interpolation(text: Any) -> bool:
    return isinstance(text, str) and PLACEHOLDER_PATTERN.search(text) is not None


def extract_variable_names(template: str) -> List[str]:
    """Names referenced by a template (function calls excluded), first-seen order."""
    names = []
    for match in PLACEHOLDER_PATTERN.finditer(template or ""):
        expr = match.group(1).strip()
        if not expr.startswith("$") and expr not in names:
            names.append(expr)
    return names
