"""Batch executor: several calls sent together to ``POST /__batch``."""
from __future__ import annotations

import time
from typing import Any, List, Mapping, Optional

from wirecheck.assertions import assert_expectation
from wirecheck.core.context import RunContext, interpolate_deep
from wirecheck.core.models import AssertionResult, BatchCase, ErrorInfo, TestResult

from .base import (
    TRANSPORT_ERRORS,
    ExecutionOptions,
    WireResponse,
    build_headers,
    effective_base_url,
    effective_timeout_ms,
    elapsed_ms,
    finish,
    send,
    transport_failure,
    with_path,
)

BATCH_PATH = "/__batch"


def batch_payload(case: BatchCase, context: Optional[RunContext] = None) -> dict:
    scope = context or RunContext()
    calls = []
    for index, call in enumerate(case.calls):
        calls.append(
            {
                "path": call.path,
                "args": interpolate_deep(call.args if call.args is not None else [], scope),
                "id": call.id if call.id is not None else index,
            }
        )
    return {"calls": calls}


async def execute_batch(
    case: BatchCase,
    options: ExecutionOptions,
    context: Optional[RunContext] = None,
) -> TestResult:
    started = time.perf_counter()
    timeout_ms = effective_timeout_ms(case, options)
    payload = batch_payload(case, context)
    headers = build_headers(options, context, has_body=True)
    record: dict = {"method": "POST", "headers": headers, "body": payload}
    try:
        url = with_path(effective_base_url(options, context), BATCH_PATH)
        record["url"] = url
        response = await send(
            options, "POST", url, headers=headers, body=payload, timeout_ms=timeout_ms, json_body=True
        )
    except TRANSPORT_ERRORS as exc:
        return transport_failure(case, record, exc, started, timeout_ms)
    results = _results(response)
    if results is None:
        return TestResult(
            id=case.id,
            name=case.name,
            protocol=case.protocol,
            status="failed",
            duration_ms=elapsed_ms(started),
            request=record,
            response=response.as_record(),
            error=ErrorInfo(message=f"Malformed batch response (HTTP {response.status}): expected a 'results' list"),
            tags=case.tags,
        )
    assertions = batch_assertions(case, results, options)
    return finish(case, record, response, assertions, started)


def _results(response: WireResponse) -> Optional[List[Any]]:
    body = response.body
    if not isinstance(body, Mapping) or not isinstance(body.get("results"), list):
        return None
    return body["results"]


def _entry_failed(entry: Any) -> bool:
    return not isinstance(entry, Mapping) or entry.get("error") is not None


def batch_assertions(case: BatchCase, results: List[Any], options: ExecutionOptions) -> List[AssertionResult]:
    expect = case.expect
    assertions: List[AssertionResult] = []
    if expect.batch_size is not None:
        size = len(results)
        passed = size == expect.batch_size
        assertions.append(
            AssertionResult(
                path="batchSize",
                expected=expect.batch_size,
                actual=size,
                passed=passed,
                message=None if passed else f"Expected batch size {expect.batch_size} but got {size}",
            )
        )
    if expect.all_success:
        all_success = not any(_entry_failed(entry) for entry in results)
        assertions.append(
            AssertionResult(
                path="allSuccess",
                expected=True,
                actual=all_success,
                passed=all_success,
                message=None if all_success else "Not all batch calls succeeded",
            )
        )
    for index, expected in enumerate(expect.results or ()):
        prefix = f"results[{index}]"
        if index >= len(results):
            assertions.append(
                AssertionResult(
                    path=prefix,
                    expected=expected,
                    actual=None,
                    passed=False,
                    message=f"Missing batch result at index {index}",
                )
            )
            continue
        entry = results[index]
        actual = entry.get("result") if isinstance(entry, Mapping) else entry
        outcome = assert_expectation(
            actual,
            expected,
            "partial",
            options.schema_validator(),
            prefix=prefix,
        )
        assertions.extend(outcome.assertions)
    return assertions
