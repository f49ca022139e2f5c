"""Harvest embedded test cases from a running service."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from wirecheck.core.context import create_context
from wirecheck.core.loader import case_from_mapping
from wirecheck.core.models import TestCase
from wirecheck.protocols.base import (
    DEFAULT_TIMEOUT_MS,
    TRANSPORT_ERRORS,
    ExecutionOptions,
    WireResponse,
    build_headers,
    send,
    with_path,
)

logger = logging.getLogger(__name__)

SOURCES: Tuple[str, ...] = ("qa", "tool", "rpc", "openapi")
OPENAPI_PATHS: Tuple[str, ...] = ("/openapi.json", "/swagger.json", "/api-docs")
HTTP_METHODS: Tuple[str, ...] = ("get", "post", "put", "patch", "delete")


class DiscoveryError(Exception):
    """A discovery source answered with something unusable."""


@dataclass(frozen=True)
class DiscoveryOptions:
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    headers: Mapping[str, str] = field(default_factory=dict)
    access_token: Optional[str] = None
    sources: Tuple[str, ...] = SOURCES
    client: Optional[httpx.AsyncClient] = None
    transport: Optional[httpx.AsyncBaseTransport] = None


@dataclass
class DiscoveryResult:
    tools: List[Mapping[str, Any]] = field(default_factory=list)
    rest_tests: List[TestCase] = field(default_factory=list)
    rpc_tests: List[TestCase] = field(default_factory=list)
    batch_tests: List[TestCase] = field(default_factory=list)
    pipeline_tests: List[TestCase] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def all_tests(self) -> List[TestCase]:
        return [*self.rest_tests, *self.rpc_tests, *self.batch_tests, *self.pipeline_tests]

    @property
    def summary(self) -> Dict[str, Any]:
        by_type: Dict[str, int] = {}
        for case in self.all_tests:
            by_type[case.protocol] = by_type.get(case.protocol, 0) + 1
        return {"total": len(self.all_tests), "by_type": by_type}

    def add(self, case: TestCase) -> None:
        if case.protocol == "rest":
            self.rest_tests.append(case)
        elif case.protocol == "batch":
            self.batch_tests.append(case)
        elif case.protocol == "pipeline":
            self.pipeline_tests.append(case)
        else:
            self.rpc_tests.append(case)


@dataclass
class _Harvest:
    cases: List[TestCase] = field(default_factory=list)
    tools: List[Mapping[str, Any]] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)


async def discover(target: str, options: Optional[DiscoveryOptions] = None) -> DiscoveryResult:
    """Query every enabled source; a failing source contributes zero tests."""

    options = options or DiscoveryOptions()
    execution = ExecutionOptions(
        base_url=target,
        timeout_ms=options.timeout_ms,
        headers=dict(options.headers),
        client=options.client,
        transport=options.transport,
    )
    fetchers = {
        "qa": _harvest_qa,
        "tool": _harvest_tools,
        "rpc": _harvest_schema,
        "openapi": _harvest_openapi,
    }
    enabled = [source for source in options.sources if source in fetchers]
    harvests = await asyncio.gather(
        *(_guarded(source, fetchers[source], target, execution, options) for source in enabled)
    )
    result = DiscoveryResult()
    seen: set = set()
    for harvest in harvests:
        result.tools.extend(harvest.tools)
        result.errors.extend(harvest.problems)
        for case in harvest.cases:
            if case.id in seen:
                logger.debug("dropping duplicate discovered case %s", case.id)
                continue
            seen.add(case.id)
            result.add(case)
    logger.info("discovered %d test(s) at %s", len(result.all_tests), target)
    return result


async def _guarded(source: str, fetcher: Any, target: str, execution: ExecutionOptions, options: DiscoveryOptions) -> _Harvest:
    harvest = _Harvest()
    try:
        await fetcher(target, execution, options, harvest)
    except (DiscoveryError, ValueError, *TRANSPORT_ERRORS) as exc:
        message = str(exc) or type(exc).__name__
        logger.warning("discovery source %s failed: %s", source, message)
        return _Harvest(problems=[f"{source}: {message}"])
    return harvest


def _headers(execution: ExecutionOptions, options: DiscoveryOptions, *, has_body: bool) -> Dict[str, str]:
    context = create_context(access_token=options.access_token)
    return build_headers(execution, context, has_body=has_body)


async def _json_rpc(target: str, path: str, method: str, execution: ExecutionOptions, options: DiscoveryOptions) -> WireResponse:
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": {}}
    return await send(
        execution,
        "POST",
        with_path(target, path),
        headers=_headers(execution, options, has_body=True),
        body=payload,
        timeout_ms=execution.timeout_ms,
    )


def _checked_body(response: WireResponse, label: str) -> Mapping[str, Any]:
    if response.status >= 400:
        raise DiscoveryError(f"{label} returned HTTP {response.status}")
    if not isinstance(response.body, Mapping):
        raise DiscoveryError(f"{label} did not return a JSON object")
    if response.body.get("error") is not None:
        raise DiscoveryError(f"{label} error: {response.body['error']}")
    return response.body


def _collect(harvest: _Harvest, entries: Any, label: str, **kwargs: Any) -> None:
    if entries is None:
        return
    if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)):
        raise DiscoveryError(f"{label} must be a list")
    for index, entry in enumerate(entries):
        try:
            harvest.cases.append(case_from_mapping(entry, **kwargs))
        except ValueError as exc:
            logger.warning("skipping %s[%d]: %s", label, index, exc)
            harvest.problems.append(f"{label}[{index}]: {exc}")


async def _harvest_qa(target: str, execution: ExecutionOptions, options: DiscoveryOptions, harvest: _Harvest) -> None:
    response = await _json_rpc(target, "/qa", "tests/list", execution, options)
    body = _checked_body(response, "/qa")
    listing = body.get("result", body.get("data"))
    if not isinstance(listing, Mapping):
        raise DiscoveryError("/qa response has no test listing")
    _collect(harvest, listing.get("tests"), "/qa tests")


async def _harvest_tools(target: str, execution: ExecutionOptions, options: DiscoveryOptions, harvest: _Harvest) -> None:
    response = await _json_rpc(target, "/mcp", "tools/list", execution, options)
    body = _checked_body(response, "/mcp")
    result = body.get("result")
    tools = result.get("tools") if isinstance(result, Mapping) else None
    if not isinstance(tools, list):
        raise DiscoveryError("/mcp tools/list returned no tools list")
    for tool in tools:
        if not isinstance(tool, Mapping) or not isinstance(tool.get("name"), str):
            continue
        name = tool["name"]
        harvest.tools.append(tool)
        _collect(
            harvest,
            tool.get("tests"),
            f"tool {name}",
            protocol="tool",
            method=name,
            id_prefix=f"tool.{name}",
        )


async def _harvest_schema(target: str, execution: ExecutionOptions, options: DiscoveryOptions, harvest: _Harvest) -> None:
    response = await send(
        execution,
        "GET",
        with_path(target, "/__schema"),
        headers=_headers(execution, options, has_body=False),
        timeout_ms=execution.timeout_ms,
    )
    body = _checked_body(response, "/__schema")
    methods = body.get("methods") or []
    if not isinstance(methods, list):
        raise DiscoveryError("/__schema methods must be a list")
    for method in methods:
        if not isinstance(method, Mapping) or not isinstance(method.get("path"), str):
            continue
        path = method["path"]
        _collect(
            harvest,
            method.get("tests"),
            f"method {path}",
            protocol="rpc",
            method=path,
            id_prefix=f"rpc.{path}",
        )
    _collect(harvest, body.get("batchTests"), "batchTests", protocol="batch")
    _collect(harvest, body.get("pipelineTests"), "pipelineTests", protocol="pipeline")


async def _fetch_openapi(target: str, execution: ExecutionOptions, options: DiscoveryOptions) -> Mapping[str, Any]:
    headers = _headers(execution, options, has_body=False)
    for path in OPENAPI_PATHS:
        try:
            response = await send(
                execution,
                "GET",
                with_path(target, path),
                headers=headers,
                timeout_ms=execution.timeout_ms,
                json_body=True,
            )
        except TRANSPORT_ERRORS as exc:
            logger.debug("no OpenAPI document at %s: %s", path, exc)
            continue
        if response.status < 400 and isinstance(response.body, Mapping):
            return response.body
    raise DiscoveryError(f"no OpenAPI document at {', '.join(OPENAPI_PATHS)}")


async def _harvest_openapi(target: str, execution: ExecutionOptions, options: DiscoveryOptions, harvest: _Harvest) -> None:
    document = await _fetch_openapi(target, execution, options)
    paths = document.get("paths") or {}
    if not isinstance(paths, Mapping):
        raise DiscoveryError("OpenAPI paths must be an object")
    for path, item in paths.items():
        if not isinstance(item, Mapping):
            continue
        for verb in HTTP_METHODS:
            operation = item.get(verb)
            if not isinstance(operation, Mapping):
                continue
            method = verb.upper()
            tests = operation.get("x-tests")
            if isinstance(tests, list):
                tests = [_with_route(entry, method, path) for entry in tests]
            _collect(harvest, tests, f"{method} {path} x-tests", protocol="rest")


def _with_route(entry: Any, method: str, path: str) -> Any:
    """Fill the request method and path an ``x-tests`` entry leaves out."""

    if not isinstance(entry, Mapping):
        return entry
    request = dict(entry.get("request") or {})
    request.setdefault("method", method)
    request.setdefault("path", path)
    return {**entry, "request": request}
