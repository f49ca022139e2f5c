"""Path expressions addressing values inside decoded response bodies.

Supported forms: ``data.user.name``, ``items[0].id`` and bracket quoting for
keys that themselves contain dots, e.g. ``headers["x.trace"]``.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Sequence, Union

Segment = Union[str, int]


class _Missing:
    """Marker for a value absent from its container (distinct from ``None``)."""

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def looks_like_path(key: str) -> bool:
    """Return True when an expectation key should be read as a path expression."""

    return "." in key or "[" in key


def parse_path(path: str) -> List[Segment]:
    segments: List[Segment] = []
    current = ""
    in_bracket = False
    quote: str | None = None
    quoted = False
    for char in path:
        if quote:
            if char == quote:
                quote = None
            else:
                current += char
            continue
        if char in ("'", '"'):
            quote = char
            quoted = True
            continue
        if char == "[":
            if current:
                segments.append(current)
                current = ""
            in_bracket = True
            continue
        if char == "]":
            if current or quoted:
                segments.append(_bracket_segment(current, quoted))
            current = ""
            quoted = False
            in_bracket = False
            continue
        if char == "." and not in_bracket:
            if current:
                segments.append(current)
                current = ""
            continue
        current += char
    if current:
        segments.append(current)
    return segments


def _bracket_segment(text: str, quoted: bool) -> Segment:
    if not quoted and text.isdigit() and str(int(text)) == text:
        return int(text)
    return text


def get_value_by_path(value: Any, path: str) -> Any:
    """Resolve ``path`` against ``value``; unresolvable paths yield ``MISSING``."""

    if not path or path == ".":
        return value
    current = value
    for segment in parse_path(path):
        if isinstance(current, Mapping):
            if str(segment) not in current:
                return MISSING
            current = current[str(segment)]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not isinstance(segment, int) or segment >= len(current):
                return MISSING
            current = current[segment]
        else:
            return MISSING
    return current


def has_path(value: Any, path: str) -> bool:
    return get_value_by_path(value, path) is not MISSING


def join_path(prefix: str, segment: Segment) -> str:
    """Append a key or index to a rendered path (root is ``""``)."""

    if isinstance(segment, int):
        return f"{prefix}[{segment}]"
    return f"{prefix}.{segment}" if prefix else segment
