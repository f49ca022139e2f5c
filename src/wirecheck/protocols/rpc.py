"""RPC and tool executor: ``POST /a/b`` with a positional ``[input]`` body."""
from __future__ import annotations

import time
from typing import Any, List, Mapping, Optional

from wirecheck.assertions import MISSING, assert_expectation, get_value_by_path, leaf_assertion
from wirecheck.assertions.matchers import render
from wirecheck.core.context import RunContext, interpolate_deep
from wirecheck.core.models import AssertionResult, RpcCase, RpcExpectation, TestResult

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
    with_path,
)


def method_path(method: str) -> str:
    return "/" + method.replace(".", "/")


def is_error_response(response: WireResponse) -> bool:
    """An RPC call failed if the status is 4xx/5xx or the body carries an ``error`` key."""

    return response.status >= 400 or (isinstance(response.body, Mapping) and "error" in response.body)


async def execute_rpc(
    case: RpcCase,
    options: ExecutionOptions,
    context: Optional[RunContext] = None,
) -> TestResult:
    started = time.perf_counter()
    timeout_ms = effective_timeout_ms(case, options)
    payload = [interpolate_deep(case.input, context or RunContext())]
    headers = build_headers(options, context, has_body=True)
    record: dict = {"method": case.method, "headers": headers, "body": payload}
    try:
        url = with_path(effective_base_url(options, context), method_path(case.method))
        record["url"] = url
        response = await send(
            options, "POST", url, headers=headers, body=payload, timeout_ms=timeout_ms, json_body=True
        )
    except TRANSPORT_ERRORS as exc:
        return transport_failure(case, record, exc, started, timeout_ms)
    assertions = rpc_assertions(case.expect, response, options)
    return finish(case, record, response, assertions, started)


def rpc_assertions(expect: RpcExpectation, response: WireResponse, options: ExecutionOptions) -> List[AssertionResult]:
    assertions: List[AssertionResult] = []
    is_error = is_error_response(response)
    actual_status = "error" if is_error else "success"
    if expect.status == "success":
        if is_error:
            assertions.append(
                AssertionResult(
                    path="status",
                    expected="success",
                    actual="error",
                    passed=False,
                    message=f"Expected success but got error: {render(response.body)}",
                )
            )
            return assertions
        assertions.append(AssertionResult(path="status", expected="success", actual="success", passed=True))
        if expect.has_output:
            assertions.extend(output_assertions(response.body, expect.output, expect.match_mode, options))
        return assertions

    if not is_error:
        assertions.append(
            AssertionResult(
                path="status",
                expected="error",
                actual=actual_status,
                passed=False,
                message="Expected error but got success",
            )
        )
        return assertions
    assertions.append(AssertionResult(path="status", expected="error", actual="error", passed=True))
    if expect.error is None:
        return assertions
    if expect.error.code is not None:
        code = get_value_by_path(response.body, "error.code")
        code = None if code is MISSING else code
        passed = code == expect.error.code and type(code) is type(expect.error.code)
        assertions.append(
            AssertionResult(
                path="error.code",
                expected=expect.error.code,
                actual=code,
                passed=passed,
                message=None if passed else f"Expected error code {expect.error.code} but got {code}",
            )
        )
    if expect.error.message is not None:
        message = get_value_by_path(response.body, "error.message")
        assertions.append(leaf_assertion(message, expect.error.message, "error.message"))
    return assertions


def output_assertions(
    actual: Any, expected: Any, mode: str, options: ExecutionOptions
) -> List[AssertionResult]:
    outcome = assert_expectation(
        actual,
        expected,
        mode,
        options.schema_validator(),
        scalar_path="output",
    )
    return list(outcome.assertions)
