"""Example plugin adding a ``markdown`` report format.

Enable it with ``WIRECHECK_PLUGINS=markdown_reporter`` (the module must be
importable, e.g. via ``PYTHONPATH=examples/plugins``) and run with
``--format markdown``.
"""
from __future__ import annotations

from typing import Optional

import click

from wirecheck.core.models import TestResult, TestRun
from wirecheck.reporting import Reporter, register_reporter

ICONS = {"passed": "✅", "failed": "❌", "skipped": "⏭️"}


class MarkdownReporter(Reporter):
    def __init__(self, *, echo: bool = True) -> None:
        self._echo = echo
        self._output: Optional[str] = None

    def on_run_start(self, run: TestRun) -> None:
        self._output = None

    def on_test_complete(self, result: TestResult) -> None:
        return None

    def on_run_complete(self, run: TestRun) -> None:
        lines = [f"## wirecheck {run.run_id}", "", "| | Test | Protocol | Time |", "|---|---|---|---|"]
        for result in run.results:
            lines.append(
                f"| {ICONS[result.status]} | {result.name} | {result.protocol} | {result.duration_ms:.0f}ms |"
            )
        summary = run.summary
        lines.extend(["", f"**{summary.passed} passed, {summary.failed} failed, {summary.skipped} skipped**"])
        self._output = "\n".join(lines)
        if self._echo:
            click.echo(self._output)

    def get_output(self) -> Optional[str]:
        return self._output


def register() -> None:
    register_reporter("markdown", MarkdownReporter)
