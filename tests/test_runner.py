from __future__ import annotations

import asyncio
from typing import List, Optional

import httpx
import pytest

from wirecheck import protocols
from wirecheck.core.context import create_context
from wirecheck.core.loader import case_from_mapping
from wirecheck.core.models import TestCase, TestResult, TestRun
from wirecheck.reporting.base import Reporter
from wirecheck.runner import RunnerOptions, TestRunner, select_cases
from wirecheck.runner.runner import new_run_id

BASE_URL = "http://demo.test"


def _rest(name: str, path: str = "/health", **extra) -> TestCase:
    raw = {"name": name, "request": {"path": path}, "expect": {"status": 200}}
    raw.update(extra)
    return case_from_mapping(raw)


class RecordingReporter(Reporter):
    def __init__(self) -> None:
        self.events: List[str] = []
        self.run: Optional[TestRun] = None

    def on_run_start(self, run: TestRun) -> None:
        self.events.append(f"start:{run.planned}")

    def on_test_start(self, case: TestCase) -> None:
        self.events.append(f"begin:{case.id}")

    def on_test_complete(self, result: TestResult) -> None:
        self.events.append(f"done:{result.id}:{result.status}")

    def on_run_complete(self, run: TestRun) -> None:
        self.run = run
        self.events.append("complete")


def test_run_id_format() -> None:
    assert new_run_id().startswith("run-")
    assert new_run_id() != new_run_id()


def test_select_cases_only_wins() -> None:
    cases = [_rest("a"), _rest("b", only=True), _rest("c")]
    selected = select_cases(cases, RunnerOptions())
    assert [case.name for case in selected] == ["b"]


def test_select_cases_filters() -> None:
    cases = [
        _rest("a", tags=["smoke"]),
        _rest("b", tags=["slow"]),
        case_from_mapping({"name": "c", "type": "mcp", "method": "echo", "expect": {"status": "success"}}),
    ]
    assert [c.name for c in select_cases(cases, RunnerOptions(tags=("smoke", "other")))] == ["a"]
    assert [c.name for c in select_cases(cases, RunnerOptions(protocols=("mcp",)))] == ["c"]
    assert [c.name for c in select_cases(cases, RunnerOptions(ids=("rest.*.b",)))] == ["b"]


def test_select_cases_renames_duplicate_ids() -> None:
    cases = [_rest("a", id="same"), _rest("b", id="same"), _rest("c", id="same")]
    assert [case.id for case in select_cases(cases, RunnerOptions())] == ["same", "same#2", "same#3"]


def test_sequential_run_reports_lifecycle(demo_transport: httpx.MockTransport) -> None:
    reporter = RecordingReporter()
    cases = [_rest("ok"), _rest("missing", path="/nope"), _rest("later", skip="not ready")]
    runner = TestRunner(RunnerOptions(base_url=BASE_URL, transport=demo_transport), reporter=reporter)
    run = runner.run_sync(cases)
    assert reporter.events == [
        "start:3",
        "begin:rest.GET./health.ok",
        "done:rest.GET./health.ok:passed",
        "begin:rest.GET./nope.missing",
        "done:rest.GET./nope.missing:failed",
        "complete",
    ]
    assert run.summary.total == 3
    assert run.summary.passed == 1
    assert run.summary.failed == 1
    assert run.summary.skipped == 1
    assert run.summary.by_type == {"rest": 3}
    assert not run.success
    assert run.completed_at is not None
    skipped = run.results[-1]
    assert skipped.status == "skipped"
    assert skipped.skip_reason == "not ready"
    assert skipped.attempts == 0


def test_retries_until_pass() -> None:
    calls = {"count": 0}

    def flaky(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(503, json={"error": "busy"})
        return httpx.Response(200, json={"status": "ok"})

    runner = TestRunner(RunnerOptions(base_url=BASE_URL, retries=2, transport=httpx.MockTransport(flaky)))
    run = runner.run_sync([_rest("flaky")])
    result = run.results[0]
    assert result.status == "passed"
    assert result.attempts == 3
    assert calls["count"] == 3


def test_retries_exhausted_keep_last_failure() -> None:
    def down(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={})

    runner = TestRunner(RunnerOptions(base_url=BASE_URL, retries=1, transport=httpx.MockTransport(down)))
    result = runner.run_sync([_rest("down")]).results[0]
    assert result.status == "failed"
    assert result.attempts == 2


def test_captures_flow_between_sequential_tests() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/users":
            return httpx.Response(201, json={"data": {"id": "u-7"}})
        if request.url.path == "/users/u-7":
            return httpx.Response(200, json={"id": "u-7", "name": "Ada"})
        return httpx.Response(404, json={})

    create = case_from_mapping(
        {
            "name": "create",
            "request": {"method": "POST", "path": "/users", "body": {"name": "Ada"}},
            "capture": {"userId": "data.id"},
            "expect": {"status": 201},
        }
    )
    fetch = case_from_mapping(
        {"name": "fetch", "request": {"path": "/users/${userId}"}, "expect": {"status": 200, "body": {"name": "Ada"}}}
    )
    run = TestRunner(RunnerOptions(base_url=BASE_URL, transport=httpx.MockTransport(handler))).run_sync([create, fetch])
    assert [result.status for result in run.results] == ["passed", "passed"]
    assert dict(run.results[0].captured) == {"userId": "u-7"}


def test_context_base_url_and_token_are_used() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url), request.headers.get("authorization")))
        return httpx.Response(200, json={})

    context = create_context("http://other.test", access_token="tok")
    runner = TestRunner(RunnerOptions(transport=httpx.MockTransport(handler)), context=context)
    run = runner.run_sync([_rest("ping", path="/ping")])
    assert run.success
    assert seen == [("http://other.test/ping", "Bearer tok")]


def test_parallel_run_respects_concurrency() -> None:
    state = {"active": 0, "peak": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        await asyncio.sleep(0.02)
        state["active"] -= 1
        return httpx.Response(200, json={})

    cases = [_rest(f"case {index}") for index in range(6)]
    options = RunnerOptions(base_url=BASE_URL, parallel=True, concurrency=2, transport=httpx.MockTransport(handler))
    run = TestRunner(options).run_sync(cases)
    assert run.summary.passed == 6
    assert 1 <= state["peak"] <= 2


@pytest.mark.asyncio
async def test_async_run_with_no_cases() -> None:
    reporter = RecordingReporter()
    run = await TestRunner(RunnerOptions(base_url=BASE_URL), reporter=reporter).run([])
    assert run.summary.total == 0
    assert run.success
    assert reporter.events == ["start:0", "complete"]


def test_executor_exception_becomes_failed_result(monkeypatch: pytest.MonkeyPatch) -> None:
    async def explode(case, options, context):
        raise RuntimeError("executor blew up")

    monkeypatch.setitem(protocols.EXECUTORS, "rest", explode)
    run = TestRunner(RunnerOptions(base_url=BASE_URL)).run_sync([_rest("boom")])
    result = run.results[0]
    assert result.status == "failed"
    assert result.error.message == "executor blew up"
    assert "RuntimeError" in result.error.stack
