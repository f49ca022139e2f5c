"""REST executor: one HTTP request, then status, header and body assertions."""
from __future__ import annotations

import time
from typing import List, Optional
from urllib.parse import urljoin

from wirecheck.assertions import MISSING, assert_expectation, leaf_assertion
from wirecheck.core.context import RunContext, interpolate, interpolate_deep
from wirecheck.core.models import AssertionResult, RestCase, TestResult

from .base import (
    TRANSPORT_ERRORS,
    ExecutionOptions,
    WireResponse,
    build_headers,
    effective_base_url,
    effective_timeout_ms,
    finish,
    send,
    transport_failure,
)


async def execute_rest(
    case: RestCase,
    options: ExecutionOptions,
    context: Optional[RunContext] = None,
) -> TestResult:
    started = time.perf_counter()
    timeout_ms = effective_timeout_ms(case, options)
    request = case.request
    scope = context or RunContext()
    path = interpolate(request.path, scope)
    body = interpolate_deep(request.body, scope)
    query = interpolate_deep(dict(request.query), scope)
    request_headers = interpolate_deep(dict(request.headers), scope)
    url = urljoin(effective_base_url(options, context), path)
    headers = build_headers(options, context, request_headers, has_body=body is not None)
    record = {"method": request.method, "url": url, "headers": headers, "query": query, "body": body}
    try:
        response = await send(
            options,
            request.method,
            url,
            headers=headers,
            body=body,
            params=query,
            timeout_ms=timeout_ms,
        )
    except TRANSPORT_ERRORS as exc:
        return transport_failure(case, record, exc, started, timeout_ms)
    assertions = rest_assertions(case, response, options)
    return finish(case, record, response, assertions, started)


def rest_assertions(case: RestCase, response: WireResponse, options: ExecutionOptions) -> List[AssertionResult]:
    expect = case.expect
    assertions: List[AssertionResult] = []
    if expect.status is not None:
        assertions.append(leaf_assertion(response.status, expect.status, "status"))
    for name, expected in expect.headers.items():
        actual = response.headers.get(name.lower(), MISSING)
        assertions.append(leaf_assertion(actual, expected, f"headers.{name}"))
    if expect.has_body:
        outcome = assert_expectation(
            response.body,
            expect.body,
            expect.match_mode,
            options.schema_validator(),
            scalar_path="body",
        )
        assertions.extend(outcome.assertions)
    return assertions
