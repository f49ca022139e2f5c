"""Matcher objects and literal comparison used by every assertion mode."""
from __future__ import annotations

import datetime as dt
import ipaddress
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence
from urllib.parse import urlparse

from .paths import MISSING

TYPE_NAMES = frozenset(
    {"string", "number", "integer", "boolean", "object", "array", "null", "undefined"}
)
RANGE_KEYS = ("gte", "gt", "lte", "lt")
LENGTH_KEYS = ("length", "minLength", "maxLength")
MATCHER_KEYS = frozenset(
    {"type", "pattern", "format", "oneOf", "optional", *RANGE_KEYS, *LENGTH_KEYS}
)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}(:\d{2})?(\.\d+)?(Z|[+-]\d{2}:\d{2})?$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE
)
_HOSTNAME_RE = re.compile(
    r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?(\.[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)*$", re.IGNORECASE
)


@dataclass(frozen=True)
class MatchResult:
    passed: bool
    message: Optional[str] = None
    expected: Any = None
    actual: Any = None


def _is_date_time(value: str) -> bool:
    if not re.match(r"^\d{4}-\d{2}-\d{2}T", value):
        return False
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        dt.datetime.fromisoformat(text)
    except ValueError:
        return False
    return True


def _is_date(value: str) -> bool:
    if not _DATE_RE.match(value):
        return False
    try:
        dt.date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _is_uri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def _is_ip(version: int) -> Callable[[str], bool]:
    def check(value: str) -> bool:
        try:
            return ipaddress.ip_address(value).version == version
        except ValueError:
            return False

    return check


FORMAT_VALIDATORS: Dict[str, Callable[[str], bool]] = {
    "email": lambda value: bool(_EMAIL_RE.match(value)),
    "date-time": _is_date_time,
    "date": _is_date,
    "time": lambda value: bool(_TIME_RE.match(value)),
    "uri": _is_uri,
    "uuid": lambda value: bool(_UUID_RE.match(value)),
    "ipv4": _is_ip(4),
    "ipv6": _is_ip(6),
    "hostname": lambda value: bool(_HOSTNAME_RE.match(value)),
}


def render(value: Any) -> str:
    """Compact JSON-ish rendering used in assertion messages."""

    if value is MISSING:
        return "undefined"
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(value)


def type_name(value: Any) -> str:
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_matcher(value: Any) -> bool:
    """A mapping is a matcher when every key is a matcher keyword and one is well formed."""

    if not isinstance(value, Mapping) or not value:
        return False
    if not set(value) <= MATCHER_KEYS:
        return False
    if value.get("type") in TYPE_NAMES:
        return True
    if isinstance(value.get("pattern"), str) or isinstance(value.get("format"), str):
        return True
    if any(_is_number(value.get(key)) for key in RANGE_KEYS + LENGTH_KEYS):
        return True
    if isinstance(value.get("oneOf"), list):
        return True
    return value.get("optional") is True


def deep_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if set(left) != set(right):
            return False
        return all(deep_equal(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(deep_equal(a, b) for a, b in zip(left, right))
    if type_name(left) != type_name(right):
        return False
    return left == right


def match_type(value: Any, expected: str) -> MatchResult:
    actual = type_name(value)
    if expected == "integer":
        passed = _is_number(value) and float(value).is_integer()
    else:
        passed = actual == expected
    return MatchResult(
        passed=passed,
        expected=f"type {expected}",
        actual=f"type {actual}",
        message=None if passed else f'Expected type "{expected}" but got "{actual}"',
    )


def match_pattern(value: Any, pattern: str) -> MatchResult:
    expected = f"string matching /{pattern}/"
    if not isinstance(pattern, str):
        return MatchResult(False, "Invalid matcher: pattern must be a string", expected, render(value))
    if not isinstance(value, str):
        return MatchResult(
            passed=False,
            expected=expected,
            actual=type_name(value),
            message=f'Cannot match pattern against non-string value of type "{type_name(value)}"',
        )
    try:
        passed = re.search(pattern, value) is not None
    except re.error as exc:
        return MatchResult(False, f"Invalid pattern /{pattern}/: {exc}", expected, value)
    return MatchResult(
        passed=passed,
        expected=expected,
        actual=value,
        message=None if passed else f'String "{value}" does not match pattern /{pattern}/',
    )


def match_format(value: Any, fmt: str) -> MatchResult:
    expected = f'string with format "{fmt}"'
    if not isinstance(fmt, str):
        return MatchResult(False, "Invalid matcher: format must be a string", expected, render(value))
    if not isinstance(value, str):
        return MatchResult(
            passed=False,
            expected=expected,
            actual=type_name(value),
            message=f'Cannot validate format against non-string value of type "{type_name(value)}"',
        )
    validator = FORMAT_VALIDATORS.get(fmt)
    if validator is None:
        return MatchResult(False, f'Unknown format "{fmt}"', expected, value)
    passed = validator(value)
    return MatchResult(
        passed=passed,
        expected=expected,
        actual=value,
        message=None if passed else f'String "{value}" does not match format "{fmt}"',
    )


def _invalid_bounds(bounds: Mapping[str, Any], expected: str, value: Any) -> Optional[MatchResult]:
    bad = [key for key, bound in bounds.items() if not _is_number(bound)]
    if not bad:
        return None
    return MatchResult(
        passed=False,
        expected=expected,
        actual=render(value),
        message=f"Invalid matcher: {', '.join(bad)} must be numeric",
    )


def match_range(value: Any, matcher: Mapping[str, Any]) -> MatchResult:
    bounds = {key: matcher[key] for key in RANGE_KEYS if key in matcher}
    expected = "number " + ", ".join(f"{key}: {bound}" for key, bound in bounds.items())
    invalid = _invalid_bounds(bounds, expected, value)
    if invalid is not None:
        return invalid
    if not _is_number(value):
        return MatchResult(
            passed=False,
            expected="number",
            actual=type_name(value),
            message=f'Cannot compare range against non-number value of type "{type_name(value)}"',
        )
    failed = []
    if "gte" in bounds and value < bounds["gte"]:
        failed.append(f">= {bounds['gte']}")
    if "gt" in bounds and value <= bounds["gt"]:
        failed.append(f"> {bounds['gt']}")
    if "lte" in bounds and value > bounds["lte"]:
        failed.append(f"<= {bounds['lte']}")
    if "lt" in bounds and value >= bounds["lt"]:
        failed.append(f"< {bounds['lt']}")
    return MatchResult(
        passed=not failed,
        expected=expected,
        actual=value,
        message=f"Number {value} failed range check: {', '.join(failed)}" if failed else None,
    )


def match_length(value: Any, matcher: Mapping[str, Any]) -> MatchResult:
    bounds = {key: matcher[key] for key in LENGTH_KEYS if key in matcher}
    expected = ", ".join(f"{key}: {bound}" for key, bound in bounds.items())
    invalid = _invalid_bounds(bounds, expected, value)
    if invalid is not None:
        return invalid
    if not isinstance(value, (str, list, tuple)):
        return MatchResult(
            passed=False,
            expected="string or array",
            actual=type_name(value),
            message=f'Cannot check length of non-string/array value of type "{type_name(value)}"',
        )
    size = len(value)
    failed = []
    if "length" in bounds and size != bounds["length"]:
        failed.append(f"length == {bounds['length']}")
    if "minLength" in bounds and size < bounds["minLength"]:
        failed.append(f"length >= {bounds['minLength']}")
    if "maxLength" in bounds and size > bounds["maxLength"]:
        failed.append(f"length <= {bounds['maxLength']}")
    return MatchResult(
        passed=not failed,
        expected=expected,
        actual=f"length {size}",
        message=f"Length {size} failed check: {', '.join(failed)}" if failed else None,
    )


def match_enum(value: Any, options: Sequence[Any]) -> MatchResult:
    if not isinstance(options, (list, tuple)):
        return MatchResult(False, "Invalid matcher: oneOf must be an array", render(options), render(value))
    passed = any(deep_equal(value, option) for option in options)
    return MatchResult(
        passed=passed,
        expected=f"one of [{', '.join(render(option) for option in options)}]",
        actual=render(value),
        message=None if passed else f"Value {render(value)} is not one of the allowed values",
    )


def match(value: Any, expected: Any) -> MatchResult:
    """Compare ``value`` against a literal or a matcher object."""

    if deep_equal(value, expected):
        return MatchResult(passed=True, expected=expected, actual=value)
    if not is_matcher(expected):
        return MatchResult(
            passed=False,
            expected=render(expected),
            actual=render(value),
            message=f"Expected {render(expected)} but got {render(value)}",
        )
    if expected.get("optional") is True:
        if value is MISSING or value is None:
            return MatchResult(passed=True, expected=expected, actual=value)
        rest = {key: item for key, item in expected.items() if key != "optional"}
        if not rest:
            return MatchResult(passed=True, expected=expected, actual=value)
        return match(value, rest)

    checks = []
    if "type" in expected:
        checks.append(lambda: match_type(value, expected["type"]))
    if "pattern" in expected:
        checks.append(lambda: match_pattern(value, expected["pattern"]))
    if "format" in expected:
        checks.append(lambda: match_format(value, expected["format"]))
    if any(key in expected for key in RANGE_KEYS):
        checks.append(lambda: match_range(value, expected))
    if any(key in expected for key in LENGTH_KEYS):
        checks.append(lambda: match_length(value, expected))
    if "oneOf" in expected:
        checks.append(lambda: match_enum(value, expected["oneOf"]))
    for check in checks:
        result = check()
        if not result.passed:
            return result
    return MatchResult(passed=True, expected=expected, actual=value)
