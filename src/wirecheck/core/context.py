"""Immutable run context and variable interpolation."""
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from wirecheck.assertions.paths import MISSING, get_value_by_path

_DOLLAR_RE = re.compile(r"\$\{(\w+)\}")
_BRACE_RE = re.compile(r"\{\{(\w+)\}\}")

ENV_ACCESS_TOKEN = "WIRECHECK_ACCESS_TOKEN"
ENV_CLIENT_ID = "WIRECHECK_CLIENT_ID"
ENV_HEADERS = "WIRECHECK_HEADERS"


@dataclass(frozen=True)
class RunContext:
    """Connection settings and variables visible to a test."""

    base_url: str = ""
    access_token: Optional[str] = None
    client_id: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    variables: Mapping[str, Any] = field(default_factory=dict)


def create_context(
    base_url: str = "",
    *,
    access_token: Optional[str] = None,
    client_id: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    variables: Optional[Mapping[str, Any]] = None,
) -> RunContext:
    return RunContext(
        base_url=base_url,
        access_token=access_token,
        client_id=client_id,
        headers=dict(headers or {}),
        variables=dict(variables or {}),
    )


def clone_context(context: RunContext, **overrides: Any) -> RunContext:
    """Copy ``context``; ``headers`` and ``variables`` overrides are merged, not replaced."""

    headers = {**context.headers, **(overrides.pop("headers", None) or {})}
    variables = {**context.variables, **(overrides.pop("variables", None) or {})}
    return replace(context, headers=headers, variables=variables, **overrides)


def set_variable(context: RunContext, key: str, value: Any) -> RunContext:
    return replace(context, variables={**context.variables, key: value})


def get_variable(context: RunContext, key: str, default: Any = None) -> Any:
    return context.variables.get(key, default)


def interpolate(template: str, context: RunContext) -> str:
    """Substitute ``${name}`` and ``{{name}}`` references; unknown names stay verbatim."""

    def _sub(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in context.variables:
            return match.group(0)
        return _stringify(context.variables[key])

    return _BRACE_RE.sub(_sub, _DOLLAR_RE.sub(_sub, template))


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def interpolate_deep(value: Any, context: RunContext) -> Any:
    if isinstance(value, str):
        return interpolate(value, context)
    if isinstance(value, Mapping):
        return {key: interpolate_deep(item, context) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [interpolate_deep(item, context) for item in value]
    return value


def extract_variables(
    response: Any, captures: Mapping[str, str], context: RunContext
) -> tuple[RunContext, Dict[str, Any]]:
    """Bind ``variable -> path`` captures from ``response``; unresolved paths are skipped."""

    captured: Dict[str, Any] = {}
    for name, path in captures.items():
        value = get_value_by_path(response, path)
        if value is MISSING:
            continue
        captured[name] = value
    if not captured:
        return context, captured
    return clone_context(context, variables=captured), captured


def context_from_env(base_url: str, environ: Optional[Mapping[str, str]] = None) -> RunContext:
    env = os.environ if environ is None else environ
    raw_headers = env.get(ENV_HEADERS)
    headers: Dict[str, str] = {}
    if raw_headers:
        try:
            parsed = json.loads(raw_headers)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{ENV_HEADERS} must be a JSON object: {exc}") from exc
        if not isinstance(parsed, Mapping):
            raise ValueError(f"{ENV_HEADERS} must be a JSON object")
        headers = {str(key): str(value) for key, value in parsed.items()}
    return create_context(
        base_url,
        access_token=env.get(ENV_ACCESS_TOKEN) or None,
        client_id=env.get(ENV_CLIENT_ID) or None,
        headers=headers,
    )
