"""Pipeline executor: chained steps evaluated server-side via ``POST /__pipeline``."""
from __future__ import annotations

import time
from typing import Optional

from wirecheck.core.context import RunContext, interpolate_deep
from wirecheck.core.models import PipelineCase, TestResult

from .base import (
    TRANSPORT_ERRORS,
    ExecutionOptions,
    build_headers,
    effective_base_url,
    effective_timeout_ms,
    finish,
    send,
    transport_failure,
    with_path,
)
from .rpc import output_assertions

PIPELINE_PATH = "/__pipeline"


async def execute_pipeline(
    case: PipelineCase,
    options: ExecutionOptions,
    context: Optional[RunContext] = None,
) -> TestResult:
    started = time.perf_counter()
    timeout_ms = effective_timeout_ms(case, options)
    payload = {"pipeline": interpolate_deep(case.pipeline, context or RunContext())}
    headers = build_headers(options, context, has_body=True)
    record: dict = {"method": "POST", "headers": headers, "body": payload}
    try:
        url = with_path(effective_base_url(options, context), PIPELINE_PATH)
        record["url"] = url
        response = await send(
            options, "POST", url, headers=headers, body=payload, timeout_ms=timeout_ms, json_body=True
        )
    except TRANSPORT_ERRORS as exc:
        return transport_failure(case, record, exc, started, timeout_ms)
    assertions = []
    if case.expect.has_output:
        assertions = output_assertions(response.body, case.expect.output, case.expect.match_mode, options)
    return finish(case, record, response, assertions, started)
