from __future__ import annotations

import io
import json
from typing import List

import pytest

from wirecheck.core.models import AssertionResult, ErrorInfo, TestResult, TestRun
from wirecheck.reporting import (
    ConsoleReporter,
    JsonReporter,
    JunitReporter,
    ReportManager,
    Reporter,
    TapReporter,
    available_reporters,
    create_reporter,
    register_reporter,
)
from wirecheck.reporting.junit import cdata, escape_xml
from wirecheck.reporting.tap import escape_description


def _passed(name: str, tags=("smoke",)) -> TestResult:
    return TestResult(
        id=f"rest.GET./health.{name}",
        name=name,
        protocol="rest",
        status="passed",
        duration_ms=12.0,
        assertions=(AssertionResult(path="status", expected=200, actual=200, passed=True),),
        tags=tuple(tags),
    )


def _failed(name: str) -> TestResult:
    return TestResult(
        id=f"rpc.users.create.{name}",
        name=name,
        protocol="rpc",
        status="failed",
        duration_ms=30.0,
        assertions=(
            AssertionResult(path="status", expected="error", actual="error", passed=True),
            AssertionResult(
                path="error.code",
                expected="VALIDATION_ERROR",
                actual="NOT_FOUND",
                passed=False,
                message="Expected error code VALIDATION_ERROR but got NOT_FOUND",
            ),
        ),
        tags=("users",),
    )


def _skipped(name: str) -> TestResult:
    return TestResult(
        id=f"rest.GET./later.{name}",
        name=name,
        protocol="rest",
        status="skipped",
        duration_ms=0.0,
        attempts=0,
        skip_reason="not ready",
    )


def _drive(reporter: Reporter, executed: List[TestResult], skipped: List[TestResult] = ()) -> TestRun:
    run = TestRun(run_id="run-1-abcd", planned=len(executed) + len(skipped))
    reporter.on_run_start(run)
    for result in executed:
        run.append(result)
        reporter.on_test_complete(result)
    for result in skipped:
        run.append(result)
    run.seal(42.0)
    reporter.on_run_complete(run)
    return run


def test_tap_counts_and_plan() -> None:
    reporter = TapReporter(echo=False)
    _drive(reporter, [_passed("a"), _passed("b"), _failed("c")])
    lines = reporter.get_output().splitlines()
    assert lines[0] == "TAP version 14"
    assert lines[1] == "ok 1 - a"
    assert lines[2] == "ok 2 - b"
    assert lines[3] == "not ok 3 - c"
    assert lines[4] == "  ---"
    assert "1..3" in lines
    assert "# tests 3" in lines
    assert "# pass 2" in lines
    assert "# fail 1" in lines
    assert lines.index("1..3") > lines.index("  ...")


def test_tap_skip_directive_and_escaping() -> None:
    reporter = TapReporter(echo=False)
    _drive(reporter, [_passed("issue #12")], [_skipped("later")])
    output = reporter.get_output()
    assert "ok 1 - issue \\#12" in output
    assert "ok 2 - later # SKIP not ready" in output
    assert "# skip 1" in output
    assert escape_description("a\nb") == "a b"


def test_tap_echoes_to_stdout(capsys: pytest.CaptureFixture[str]) -> None:
    _drive(TapReporter(), [_passed("a")])
    out = capsys.readouterr().out
    assert out.startswith("TAP version 14\n")
    assert "1..1" in out


def test_junit_groups_by_first_tag() -> None:
    reporter = JunitReporter(include_timestamp=False, echo=False)
    _drive(reporter, [_passed("a"), _failed("c")], [_skipped("later")])
    xml = reporter.get_output()
    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert '<testsuites name="wirecheck" tests="3" failures="1" errors="0" skipped="1"' in xml
    assert '<testsuite name="smoke" tests="1"' in xml
    assert '<testsuite name="users" tests="1" failures="1"' in xml
    assert '<testsuite name="default" tests="1" failures="0" errors="0" skipped="1"' in xml
    assert "<skipped/>" in xml
    assert "Path: error.code" in xml
    assert "timestamp=" not in xml


def test_junit_escapes_names_and_cdata() -> None:
    failing = TestResult(
        id="rest.POST./x.<bad> & \"quoted\"",
        name='<bad> & "quoted"',
        protocol="rest",
        status="failed",
        duration_ms=1.0,
        error=ErrorInfo(message="boom <here>", stack="Traceback ]]> end"),
    )
    reporter = JunitReporter(echo=False)
    _drive(reporter, [failing])
    xml = reporter.get_output()
    assert 'name="&lt;bad&gt; &amp; &quot;quoted&quot;"' in xml
    assert 'message="boom &lt;here&gt;"' in xml
    assert "]]]]><![CDATA[>" in xml
    assert escape_xml("'") == "&apos;"
    assert cdata("a]]>b") == "<![CDATA[a]]]]><![CDATA[>b]]>"


def test_json_buffered_document() -> None:
    reporter = JsonReporter(echo=False)
    _drive(reporter, [_passed("a"), _failed("c")], [_skipped("later")])
    payload = json.loads(reporter.get_output())
    assert payload["schema_version"] == "1.0.0"
    assert payload["run_id"] == "run-1-abcd"
    assert payload["summary"]["total"] == 3
    assert payload["summary"]["by_type"] == {"rest": 2, "rpc": 1}
    assert payload["results"][2]["skip_reason"] == "not ready"
    assert payload["completed_at"].endswith("Z")


def test_json_stream_events(capsys: pytest.CaptureFixture[str]) -> None:
    reporter = JsonReporter(stream=True)
    manager = ReportManager([reporter])
    run = TestRun(run_id="run-2", planned=1)
    manager.start(run)
    result = _passed("a")
    run.append(result)
    manager.handle_result(result)
    run.seal(5.0)
    manager.complete(run)
    lines = capsys.readouterr().out.strip().splitlines()
    events = [json.loads(line)["event"] for line in lines]
    assert events == ["runStart", "testComplete", "runComplete"]
    assert json.loads(lines[-1])["summary"]["passed"] == 1
    assert reporter.get_output().count("\n") == 2


def test_console_renders_summary() -> None:
    stream = io.StringIO()
    reporter = ConsoleReporter(use_color=False, stream=stream, verbose=True)
    _drive(reporter, [_passed("a"), _failed("c")], [_skipped("later")])
    output = stream.getvalue()
    assert "✓ a (12ms)" in output
    assert "✗ c (30ms)" in output
    assert "○ later (not ready)" in output
    assert "error.code: Expected error code VALIDATION_ERROR but got NOT_FOUND" in output
    assert 'Expected: "VALIDATION_ERROR"' in output
    assert "Failures:" in output
    assert "Tests: 1 passed, 1 failed, 1 skipped, 3 total" in output
    assert "Time:  42ms" in output


def test_console_shows_attempts_and_errors() -> None:
    stream = io.StringIO()
    reporter = ConsoleReporter(use_color=False, stream=stream)
    errored = TestResult(
        id="rest.GET./slow.slow",
        name="slow",
        protocol="rest",
        status="failed",
        duration_ms=1500.0,
        attempts=2,
        error=ErrorInfo(message="Request timed out after 10ms"),
    )
    _drive(reporter, [errored])
    output = stream.getvalue()
    assert "✗ slow (1.50s) [attempts: 2]" in output
    assert "Error: Request timed out after 10ms" in output


def test_console_color_can_be_forced() -> None:
    stream = io.StringIO()
    _drive(ConsoleReporter(use_color=True, stream=stream), [_passed("a")])
    assert "\x1b[" in stream.getvalue()


def test_registry() -> None:
    assert available_reporters() == ["console", "json", "junit", "tap"]
    assert isinstance(create_reporter("tap", echo=False), TapReporter)
    with pytest.raises(ValueError, match="Unknown reporter"):
        create_reporter("html")
    with pytest.raises(ValueError, match="already registered"):
        register_reporter("json", JsonReporter)
