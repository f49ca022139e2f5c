"""Parsing raw test mappings and spec documents into typed cases."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import yaml
from jsonschema import Draft7Validator, FormatChecker

from .models import (
    MATCH_MODES,
    BatchCall,
    BatchCase,
    BatchExpectation,
    PipelineCase,
    PipelineExpectation,
    RestCase,
    RestExpectation,
    RestRequest,
    RpcCase,
    RpcError,
    RpcExpectation,
    TestCase,
    with_id,
)

PROTOCOL_ALIASES = {"mcp": "tool"}
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class SpecDocument:
    """A local spec file: optional metadata plus its test cases."""

    name: str
    description: str
    base_url: Optional[str]
    cases: Tuple[TestCase, ...]


def slugify(name: str) -> str:
    return _WHITESPACE_RE.sub("-", name.strip()).lower()


def default_case_id(case: TestCase) -> str:
    slug = slugify(case.name)
    if isinstance(case, RestCase):
        return f"rest.{case.request.method.upper()}.{case.request.path}.{slug}"
    if isinstance(case, RpcCase):
        return f"{case.protocol}.{case.method}.{slug}"
    return f"{case.protocol}.{slug}"


def infer_protocol(raw: Mapping[str, Any]) -> str:
    """Pick the wire protocol for a raw test mapping."""

    explicit = raw.get("type") or raw.get("protocol")
    if isinstance(explicit, str) and explicit:
        return PROTOCOL_ALIASES.get(explicit, explicit)
    if "request" in raw:
        return "rest"
    if "calls" in raw:
        return "batch"
    if "pipeline" in raw:
        return "pipeline"
    if "method" in raw or "input" in raw:
        return "tool"
    return "rest"


def case_from_mapping(
    raw: Mapping[str, Any],
    *,
    protocol: Optional[str] = None,
    method: Optional[str] = None,
    id_prefix: Optional[str] = None,
) -> TestCase:
    """Build a typed case; ``protocol`` and ``method`` fill in what discovery knows."""

    if not isinstance(raw, Mapping):
        raise ValueError("Test case must be a mapping")
    kind = protocol or infer_protocol(raw)
    kind = PROTOCOL_ALIASES.get(kind, kind)
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Test case requires a non-empty 'name'")
    common = dict(
        name=name,
        id=str(raw.get("id") or ""),
        description=str(raw.get("description") or ""),
        tags=tuple(str(tag) for tag in raw.get("tags") or ()),
        timeout_ms=_parse_timeout(raw),
        skip=_parse_skip(raw.get("skip")),
        only=bool(raw.get("only", False)),
        capture=_parse_capture(raw.get("capture")),
    )
    expect = _mapping(raw.get("expect"), "expect")
    case: TestCase
    if kind == "rest":
        case = RestCase(request=_parse_request(raw.get("request")), expect=_parse_rest_expect(expect), **common)
    elif kind in ("rpc", "tool"):
        resolved = method or raw.get("method") or ""
        if not isinstance(resolved, str):
            raise ValueError("'method' must be a string")
        case = RpcCase(
            method=resolved,
            input=raw.get("input"),
            expect=_parse_rpc_expect(expect),
            protocol=kind,
            **common,
        )
    elif kind == "batch":
        case = BatchCase(calls=_parse_calls(raw.get("calls")), expect=_parse_batch_expect(expect), **common)
    elif kind == "pipeline":
        case = PipelineCase(
            pipeline=_parse_pipeline(raw.get("pipeline")),
            expect=PipelineExpectation(
                output=expect.get("output"),
                has_output="output" in expect,
                match_mode=_parse_mode(expect),
            ),
            **common,
        )
    else:
        raise ValueError(f"Unknown protocol '{kind}'")
    if not case.id:
        identifier = f"{id_prefix}.{slugify(name)}" if id_prefix else default_case_id(case)
        case = with_id(case, identifier)
    return case


def _mapping(raw: Any, field_name: str) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"'{field_name}' must be a mapping")
    return raw


def _parse_timeout(raw: Mapping[str, Any]) -> Optional[int]:
    for key in ("timeout_ms", "timeoutMs", "timeout"):
        value = raw.get(key)
        if value is None:
            continue
        try:
            timeout = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"'{key}' must be a number of milliseconds") from exc
        if timeout < 0:
            raise ValueError(f"'{key}' cannot be negative")
        return timeout
    return None


def _parse_skip(raw: Any) -> Any:
    if isinstance(raw, str):
        return raw or True
    return bool(raw)


def _parse_capture(raw: Any) -> Mapping[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("'capture' must map variable names to paths")
    return {str(key): str(value) for key, value in raw.items()}


def _parse_mode(expect: Mapping[str, Any]) -> str:
    mode = expect.get("match", expect.get("matchMode", expect.get("match_mode", "partial")))
    if mode not in MATCH_MODES:
        raise ValueError(f"Unknown match mode '{mode}'")
    return mode


def _parse_request(raw: Any) -> RestRequest:
    request = _mapping(raw, "request")
    return RestRequest(
        method=str(request.get("method", "GET")).upper(),
        path=str(request.get("path", "/")),
        body=request.get("body"),
        headers={str(k): str(v) for k, v in (request.get("headers") or {}).items()},
        query=dict(request.get("query") or {}),
    )


def _parse_rest_expect(expect: Mapping[str, Any]) -> RestExpectation:
    return RestExpectation(
        status=expect.get("status"),
        headers=dict(expect.get("headers") or {}),
        body=expect.get("body"),
        has_body="body" in expect,
        match_mode=_parse_mode(expect),
    )


def _parse_rpc_expect(expect: Mapping[str, Any]) -> RpcExpectation:
    status = expect.get("status", "success")
    if status not in ("success", "error"):
        raise ValueError("RPC expect.status must be 'success' or 'error'")
    error = None
    if expect.get("error") is not None:
        raw_error = _mapping(expect.get("error"), "expect.error")
        error = RpcError(code=raw_error.get("code"), message=raw_error.get("message"))
    return RpcExpectation(
        status=status,
        output=expect.get("output"),
        has_output="output" in expect,
        error=error,
        match_mode=_parse_mode(expect),
    )


def _parse_calls(raw: Any) -> Tuple[BatchCall, ...]:
    if not isinstance(raw, (list, tuple)):
        raise ValueError("'calls' must be a list")
    calls = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping) or not isinstance(entry.get("path"), str):
            raise ValueError(f"calls[{index}] requires a string 'path'")
        calls.append(BatchCall(path=entry["path"], args=entry.get("args"), id=entry.get("id")))
    return tuple(calls)


def _parse_batch_expect(expect: Mapping[str, Any]) -> BatchExpectation:
    size = expect.get("batchSize", expect.get("batch_size"))
    all_success = expect.get("allSuccess", expect.get("all_success"))
    results = expect.get("results")
    if results is not None and not isinstance(results, (list, tuple)):
        raise ValueError("batch expect.results must be a list")
    return BatchExpectation(
        batch_size=int(size) if size is not None else None,
        all_success=bool(all_success) if all_success is not None else None,
        results=tuple(results) if results is not None else None,
    )


def _parse_pipeline(raw: Any) -> Any:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (list, tuple)):
        return list(raw)
    raise ValueError("'pipeline' must be a string or a list of steps")


def cases_from_document(raw: Mapping[str, Any]) -> List[TestCase]:
    cases: List[TestCase] = []
    for index, entry in enumerate(raw.get("tests") or []):
        cases.append(_located(f"tests[{index}]", entry))
    for tool_index, tool in enumerate(raw.get("tools") or []):
        tool_name = str(tool.get("name", ""))
        for index, entry in enumerate(tool.get("tests") or []):
            cases.append(
                _located(
                    f"tools[{tool_index}].tests[{index}]",
                    entry,
                    protocol="tool",
                    method=tool_name,
                    id_prefix=f"tool.{tool_name}",
                )
            )
    return cases


def _located(location: str, entry: Any, **kwargs: Any) -> TestCase:
    try:
        return case_from_mapping(entry, **kwargs)
    except ValueError as exc:
        raise ValueError(f"{location}: {exc}") from exc


def read_spec_file(path: str) -> Any:
    spec_path = Path(path).expanduser()
    if not spec_path.is_file():
        raise ValueError(f"File not found: {spec_path}")
    text = spec_path.read_text(encoding="utf-8")
    try:
        if spec_path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Could not parse {spec_path}: {exc}") from exc


def validate_spec_document(raw: Any) -> List[str]:
    """Return human-readable problems with a spec document (empty when valid)."""

    if not isinstance(raw, Mapping):
        return ["root: spec file must contain a mapping at the top level"]
    messages = _errors(_document_validator, raw, "")
    if messages:
        return messages
    for index, entry in enumerate(raw.get("tests") or []):
        protocol = infer_protocol(entry) if isinstance(entry, Mapping) else "rest"
        validator = _CASE_VALIDATORS.get(protocol)
        if validator is None:
            messages.append(f"tests[{index}].type: unknown protocol '{protocol}'")
            continue
        messages.extend(_errors(validator, entry, f"tests[{index}]"))
    for tool_index, tool in enumerate(raw.get("tools") or []):
        for index, entry in enumerate(tool.get("tests") or []):
            messages.extend(
                _errors(_CASE_VALIDATORS["tool"], entry, f"tools[{tool_index}].tests[{index}]")
            )
    return messages


def _errors(validator: Draft7Validator, instance: Any, prefix: str) -> List[str]:
    errors = sorted(validator.iter_errors(instance), key=lambda e: _render(prefix, e.absolute_path))
    return [f"{_render(prefix, err.absolute_path)}: {err.message}" for err in errors]


def _render(prefix: str, segments: Iterable[Any]) -> str:
    path = prefix
    for segment in segments:
        if isinstance(segment, int):
            path += f"[{segment}]"
        else:
            path = f"{path}.{segment}" if path else str(segment)
    return path or "root"


def load_spec(path: str) -> SpecDocument:
    """Load and validate a spec file."""

    raw = read_spec_file(path)
    messages = validate_spec_document(raw)
    if messages:
        raise ValueError(f"Spec validation failed: {'; '.join(messages)}")
    return SpecDocument(
        name=str(raw.get("name", "")),
        description=str(raw.get("description", "")),
        base_url=raw.get("baseUrl") or raw.get("base_url"),
        cases=tuple(cases_from_document(raw)),
    )


def count_document_tests(raw: Mapping[str, Any]) -> int:
    total = len(raw.get("tests") or [])
    for tool in raw.get("tools") or []:
        total += len(tool.get("tests") or [])
    return total


_MATCH = {"enum": list(MATCH_MODES)}

CASE_PROPERTIES = {
    "name": {"type": "string", "minLength": 1},
    "id": {"type": "string"},
    "description": {"type": "string"},
    "tags": {"type": "array", "items": {"type": "string"}},
    "timeout": {"type": "number", "minimum": 0},
    "timeoutMs": {"type": "number", "minimum": 0},
    "timeout_ms": {"type": "number", "minimum": 0},
    "skip": {"type": ["boolean", "string"]},
    "only": {"type": "boolean"},
    "capture": {"type": "object", "additionalProperties": {"type": "string"}},
}

REST_CASE_SCHEMA = {
    "type": "object",
    "required": ["name", "request", "expect"],
    "properties": {
        **CASE_PROPERTIES,
        "type": {"const": "rest"},
        "request": {
            "type": "object",
            "properties": {
                "method": {"enum": ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]},
                "path": {"type": "string"},
                "body": {},
                "headers": {"type": "object"},
                "query": {"type": "object"},
            },
        },
        "expect": {
            "type": "object",
            "required": ["status"],
            "properties": {
                "status": {"type": ["integer", "object"]},
                "headers": {"type": "object"},
                "body": {},
                "match": _MATCH,
            },
        },
    },
}

RPC_CASE_SCHEMA = {
    "type": "object",
    "required": ["name", "expect"],
    "properties": {
        **CASE_PROPERTIES,
        "type": {"enum": ["rpc", "tool", "mcp"]},
        "method": {"type": "string"},
        "input": {},
        "expect": {
            "type": "object",
            "required": ["status"],
            "properties": {
                "status": {"enum": ["success", "error"]},
                "output": {},
                "error": {
                    "type": "object",
                    "properties": {"code": {}, "message": {}},
                },
                "match": _MATCH,
            },
        },
    },
}

BATCH_CASE_SCHEMA = {
    "type": "object",
    "required": ["name", "calls", "expect"],
    "properties": {
        **CASE_PROPERTIES,
        "type": {"const": "batch"},
        "calls": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["path"],
                "properties": {"path": {"type": "string"}, "args": {}, "id": {}},
            },
        },
        "expect": {
            "type": "object",
            "properties": {
                "batchSize": {"type": "integer", "minimum": 0},
                "allSuccess": {"type": "boolean"},
                "results": {"type": "array"},
            },
        },
    },
}

PIPELINE_CASE_SCHEMA = {
    "type": "object",
    "required": ["name", "pipeline", "expect"],
    "properties": {
        **CASE_PROPERTIES,
        "type": {"const": "pipeline"},
        "pipeline": {"type": ["string", "array"]},
        "expect": {
            "type": "object",
            "properties": {"output": {}, "match": _MATCH},
        },
    },
}

SPEC_DOCUMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "description": {"type": "string"},
        "baseUrl": {"type": "string", "format": "uri"},
        "tests": {"type": "array", "items": {"type": "object"}},
        "tools": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "inputSchema": {"type": "object"},
                    "outputSchema": {"type": "object"},
                    "tests": {"type": "array", "items": {"type": "object"}},
                },
            },
        },
    },
}

_format_checker = FormatChecker()
_document_validator = Draft7Validator(SPEC_DOCUMENT_SCHEMA, format_checker=_format_checker)
_CASE_VALIDATORS: Mapping[str, Draft7Validator] = {
    "rest": Draft7Validator(REST_CASE_SCHEMA, format_checker=_format_checker),
    "rpc": Draft7Validator(RPC_CASE_SCHEMA, format_checker=_format_checker),
    "tool": Draft7Validator(RPC_CASE_SCHEMA, format_checker=_format_checker),
    "batch": Draft7Validator(BATCH_CASE_SCHEMA, format_checker=_format_checker),
    "pipeline": Draft7Validator(PIPELINE_CASE_SCHEMA, format_checker=_format_checker),
}


__all__: Sequence[str] = [
    "SpecDocument",
    "case_from_mapping",
    "cases_from_document",
    "count_document_tests",
    "default_case_id",
    "infer_protocol",
    "load_spec",
    "read_spec_file",
    "slugify",
    "validate_spec_document",
]
