"""TAP version 14 reporter."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import click
import yaml

from wirecheck.core.models import TestResult, TestRun

from .base import Reporter
from .json_reporter import jsonify


def escape_description(text: str) -> str:
    return text.replace("\\", "\\\\").replace("#", "\\#").replace("\n", " ")


class TapReporter(Reporter):
    """Streams ``ok``/``not ok`` lines; the plan line is written last."""

    def __init__(self, *, echo: bool = True) -> None:
        self._echo = echo
        self._lines: List[str] = []
        self._count = 0

    def on_run_start(self, run: TestRun) -> None:
        self._lines.clear()
        self._count = 0
        self._write("TAP version 14")

    def on_test_complete(self, result: TestResult) -> None:
        self._count += 1
        name = escape_description(result.name)
        if result.status == "passed":
            self._write(f"ok {self._count} - {name}")
            return
        self._write(f"not ok {self._count} - {name}")
        for line in _diagnostics(result):
            self._write(line)

    def on_run_complete(self, run: TestRun) -> None:
        for result in run.results:
            if result.status != "skipped":
                continue
            self._count += 1
            directive = "# SKIP"
            if result.skip_reason:
                directive += f" {escape_description(result.skip_reason)}"
            self._write(f"ok {self._count} - {escape_description(result.name)} {directive}")
        summary = run.summary
        self._write(f"1..{self._count}")
        self._write(f"# tests {summary.total}")
        self._write(f"# pass {summary.passed}")
        self._write(f"# fail {summary.failed}")
        self._write(f"# skip {summary.skipped}")
        self._write(f"# duration {summary.duration_ms:.0f}ms")

    def get_output(self) -> Optional[str]:
        return "\n".join(self._lines)

    def _write(self, line: str) -> None:
        self._lines.append(line)
        if self._echo:
            click.echo(line)


def _diagnostics(result: TestResult) -> List[str]:
    block: Dict[str, Any] = {}
    if result.error is not None:
        block["message"] = result.error.message
    else:
        failed = result.failed_assertions
        block["message"] = "; ".join(a.message or f"assertion failed at {a.path}" for a in failed) or "Test failed"
        block["assertions"] = [
            jsonify(
                {
                    "path": assertion.path,
                    "expected": assertion.expected,
                    "actual": assertion.actual,
                    "message": assertion.message,
                }
            )
            for assertion in failed
        ]
    block["duration_ms"] = round(result.duration_ms, 3)
    text = yaml.safe_dump(block, sort_keys=False, default_flow_style=False, allow_unicode=True)
    lines = ["  ---"]
    lines.extend(f"  {line}" for line in text.rstrip("\n").splitlines())
    lines.append("  ...")
    return lines
