"""Shared HTTP plumbing for protocol executors."""
from __future__ import annotations

import asyncio
import logging
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

import httpx

from wirecheck.assertions import SchemaValidator
from wirecheck.core.context import RunContext
from wirecheck.core.models import AssertionResult, ErrorInfo, TestCase, TestResult, result_status

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000

TRANSPORT_ERRORS = (
    httpx.HTTPError,
    httpx.InvalidURL,
    httpx.StreamError,
    asyncio.TimeoutError,
    OSError,
)


@dataclass(frozen=True)
class ExecutionOptions:
    """Connection settings shared by every executor call in a run."""

    base_url: str = ""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    headers: Mapping[str, str] = field(default_factory=dict)
    client: Optional[httpx.AsyncClient] = None
    transport: Optional[httpx.AsyncBaseTransport] = None
    validator: Optional[SchemaValidator] = None

    def schema_validator(self) -> SchemaValidator:
        return self.validator or SchemaValidator()


@dataclass(frozen=True)
class WireResponse:
    status: int
    headers: Mapping[str, str]
    body: Any

    def as_record(self) -> Dict[str, Any]:
        return {"status": self.status, "headers": dict(self.headers), "body": self.body}


def effective_base_url(options: ExecutionOptions, context: Optional[RunContext]) -> str:
    if context is not None and context.base_url:
        return context.base_url
    return options.base_url


def effective_timeout_ms(case: TestCase, options: ExecutionOptions) -> int:
    return case.timeout_ms if case.timeout_ms is not None else options.timeout_ms


def with_path(base_url: str, path: str) -> str:
    """Replace the path of ``base_url`` (dropping its query and fragment)."""

    parts = urlsplit(base_url)
    if not parts.scheme or not parts.netloc:
        raise httpx.InvalidURL(f"Invalid base URL '{base_url}'")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def build_headers(
    options: ExecutionOptions,
    context: Optional[RunContext],
    request_headers: Optional[Mapping[str, str]] = None,
    *,
    has_body: bool = False,
) -> Dict[str, str]:
    """Merge defaults, context and request headers; later sources win."""

    headers: Dict[str, str] = dict(options.headers)
    if context is not None:
        headers.update(context.headers)
    headers.update(request_headers or {})
    if context is not None and context.access_token and not _has_header(headers, "Authorization"):
        headers["Authorization"] = f"Bearer {context.access_token}"
    if has_body and not _has_header(headers, "Content-Type"):
        headers["Content-Type"] = "application/json"
    return headers


def parse_body(response: httpx.Response, *, json_body: bool = False) -> Any:
    """Decode a response body.

    JSON is decoded when the content type says so or ``json_body`` is set; a
    body that fails to decode raises ``httpx.DecodingError`` so executors
    report it like any other transport failure.
    """

    content_type = response.headers.get("content-type", "")
    if not json_body and "application/json" not in content_type:
        return response.text
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise httpx.DecodingError(
            f"Malformed JSON response (HTTP {response.status_code}): {exc}",
            request=response.request,
        ) from exc


async def send(
    options: ExecutionOptions,
    method: str,
    url: str,
    *,
    headers: Mapping[str, str],
    body: Any = None,
    params: Optional[Mapping[str, Any]] = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    json_body: bool = False,
) -> WireResponse:
    """Perform one HTTP exchange under a hard deadline."""

    timeout_s = max(timeout_ms, 1) / 1000.0
    kwargs: Dict[str, Any] = {"headers": dict(headers), "timeout": timeout_s}
    if body is not None:
        kwargs["json"] = body
    if params:
        kwargs["params"] = {key: str(value) for key, value in params.items()}
    logger.debug("%s %s", method, url)

    async def _exchange() -> WireResponse:
        if options.client is not None:
            response = await options.client.request(method, url, **kwargs)
        else:
            async with httpx.AsyncClient(transport=options.transport) as client:
                response = await client.request(method, url, **kwargs)
        return WireResponse(
            status=response.status_code,
            headers={key.lower(): value for key, value in response.headers.items()},
            body=parse_body(response, json_body=json_body),
        )

    return await asyncio.wait_for(_exchange(), timeout=timeout_s)


def elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def transport_failure(
    case: TestCase,
    request: Mapping[str, Any],
    exc: BaseException,
    started: float,
    timeout_ms: int,
) -> TestResult:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        message = f"Request timed out after {timeout_ms}ms"
    else:
        message = str(exc) or type(exc).__name__
    logger.debug("case %s transport failure: %s", case.id, message)
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return TestResult(
        id=case.id,
        name=case.name,
        protocol=case.protocol,
        status="failed",
        duration_ms=elapsed_ms(started),
        request=dict(request),
        response=None,
        assertions=tuple(),
        error=ErrorInfo(message=message, stack=stack),
        tags=case.tags,
    )


def finish(
    case: TestCase,
    request: Mapping[str, Any],
    response: WireResponse,
    assertions: Sequence[AssertionResult],
    started: float,
) -> TestResult:
    return TestResult(
        id=case.id,
        name=case.name,
        protocol=case.protocol,
        status=result_status(assertions),
        duration_ms=elapsed_ms(started),
        request=dict(request),
        response=response.as_record(),
        assertions=tuple(assertions),
        tags=case.tags,
    )
