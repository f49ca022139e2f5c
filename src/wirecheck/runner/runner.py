"""Test runner: selection, retries, timeouts and scheduling."""
from __future__ import annotations

import asyncio
import fnmatch
import logging
import secrets
import time
import traceback
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from wirecheck.assertions import SchemaValidator
from wirecheck.core.context import RunContext, clone_context, create_context, extract_variables
from wirecheck.core.models import ErrorInfo, TestCase, TestResult, TestRun, with_id
from wirecheck.protocols import get_executor
from wirecheck.protocols.base import DEFAULT_TIMEOUT_MS, ExecutionOptions
from wirecheck.reporting.base import ReportManager, Reporter

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


@dataclass(frozen=True)
class RunnerOptions:
    """Selection and scheduling policy for a run."""

    base_url: str = ""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retries: int = 0
    parallel: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    tags: Tuple[str, ...] = tuple()
    ids: Tuple[str, ...] = tuple()
    protocols: Tuple[str, ...] = tuple()
    headers: Mapping[str, str] = field(default_factory=dict)
    transport: Optional[httpx.AsyncBaseTransport] = None


def new_run_id() -> str:
    return f"run-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def select_cases(cases: Sequence[TestCase], options: RunnerOptions) -> List[TestCase]:
    """Apply only/id/tag/protocol filters and make ids unique."""

    selected = list(cases)
    if any(case.only for case in selected):
        selected = [case for case in selected if case.only]
    if options.ids:
        selected = [
            case for case in selected if any(fnmatch.fnmatchcase(case.id, pattern) for pattern in options.ids)
        ]
    if options.tags:
        wanted = set(options.tags)
        selected = [case for case in selected if wanted.intersection(case.tags)]
    if options.protocols:
        protocols = {"tool" if proto == "mcp" else proto for proto in options.protocols}
        selected = [case for case in selected if case.protocol in protocols]
    return _unique_ids(selected)


def _unique_ids(cases: Sequence[TestCase]) -> List[TestCase]:
    counts: Dict[str, int] = {}
    unique: List[TestCase] = []
    for case in cases:
        seen = counts.get(case.id, 0) + 1
        counts[case.id] = seen
        if seen > 1:
            renamed = f"{case.id}#{seen}"
            logger.warning("duplicate test id %s renamed to %s", case.id, renamed)
            case = with_id(case, renamed)
        unique.append(case)
    return unique


def skipped_result(case: TestCase) -> TestResult:
    return TestResult(
        id=case.id,
        name=case.name,
        protocol=case.protocol,
        status="skipped",
        duration_ms=0.0,
        tags=case.tags,
        attempts=0,
        skip_reason=case.skip_reason,
    )


class TestRunner:
    """Executes test cases against a target, sequentially or with bounded concurrency."""

    __test__ = False

    def __init__(
        self,
        options: Optional[RunnerOptions] = None,
        *,
        context: Optional[RunContext] = None,
        reporter: Optional[Reporter] = None,
    ) -> None:
        self._options = options or RunnerOptions()
        self._context = context or create_context(self._options.base_url)
        if reporter is None:
            self._reporter = ReportManager([])
        elif isinstance(reporter, ReportManager):
            self._reporter = reporter
        else:
            self._reporter = ReportManager([reporter])

    @property
    def options(self) -> RunnerOptions:
        return self._options

    def run_sync(self, cases: Sequence[TestCase]) -> TestRun:
        return asyncio.run(self.run(cases))

    async def run(self, cases: Sequence[TestCase]) -> TestRun:
        selected = select_cases(cases, self._options)
        run = TestRun(run_id=new_run_id(), planned=len(selected))
        started = time.perf_counter()
        logger.info("starting %s with %d test(s)", run.run_id, len(selected))
        self._reporter.start(run)
        async with httpx.AsyncClient(transport=self._options.transport) as client:
            execution = ExecutionOptions(
                base_url=self._context.base_url or self._options.base_url,
                timeout_ms=self._options.timeout_ms,
                headers=dict(self._options.headers),
                client=client,
                validator=SchemaValidator(),
            )
            if self._options.parallel:
                await self._run_concurrent(selected, execution, run)
            else:
                await self._run_sequential(selected, execution, run)
        run.seal((time.perf_counter() - started) * 1000.0)
        logger.info(
            "%s finished: %d passed, %d failed, %d skipped",
            run.run_id,
            run.summary.passed,
            run.summary.failed,
            run.summary.skipped,
        )
        self._reporter.complete(run)
        return run

    async def _run_sequential(self, cases: Sequence[TestCase], execution: ExecutionOptions, run: TestRun) -> None:
        context = self._context
        for case in cases:
            if case.skipped:
                run.append(skipped_result(case))
                continue
            result = await self._run_case(case, execution, context)
            run.append(result)
            if result.captured:
                context = clone_context(context, variables=result.captured)

    async def _run_concurrent(self, cases: Sequence[TestCase], execution: ExecutionOptions, run: TestRun) -> None:
        semaphore = asyncio.Semaphore(max(self._options.concurrency, 1))

        async def worker(case: TestCase) -> None:
            async with semaphore:
                result = await self._run_case(case, execution, self._context)
            run.append(result)

        pending = []
        for case in cases:
            if case.skipped:
                run.append(skipped_result(case))
            else:
                pending.append(worker(case))
        await asyncio.gather(*pending)

    async def _run_case(self, case: TestCase, execution: ExecutionOptions, parent: RunContext) -> TestResult:
        self._reporter.handle_start(case)
        context = clone_context(parent)
        max_attempts = max(self._options.retries, 0) + 1
        attempt = 1
        result = await self._execute_case(case, execution, context)
        total_ms = result.duration_ms
        while not result.passed and attempt < max_attempts:
            logger.info("retrying %s after failed attempt %d/%d", case.id, attempt, max_attempts)
            attempt += 1
            result = await self._execute_case(case, execution, context)
            total_ms += result.duration_ms
        result = replace(result, attempts=attempt, duration_ms=total_ms)
        if result.passed and case.capture:
            _, captured = extract_variables(_capture_source(result), case.capture, context)
            result = replace(result, captured=captured)
        self._reporter.handle_result(result)
        return result

    async def _execute_case(self, case: TestCase, execution: ExecutionOptions, context: RunContext) -> TestResult:
        start = time.perf_counter()
        try:
            executor = get_executor(case.protocol)
            return await executor(case, execution, context)
        except Exception as exc:
            logger.exception("executor for %s raised", case.id)
            return TestResult(
                id=case.id,
                name=case.name,
                protocol=case.protocol,
                status="failed",
                duration_ms=(time.perf_counter() - start) * 1000.0,
                error=ErrorInfo(
                    message=str(exc) or type(exc).__name__,
                    stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                ),
                tags=case.tags,
            )


def _capture_source(result: TestResult) -> Any:
    if isinstance(result.response, Mapping):
        return result.response.get("body")
    return None
