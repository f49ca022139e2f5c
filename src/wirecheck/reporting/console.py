"""Terminal reporter rendering progress and summaries."""
from __future__ import annotations

import os
import sys
from typing import IO, List, Optional

import click
from colorama import Fore, Style, init as colorama_init

from wirecheck.assertions.matchers import render
from wirecheck.core.models import TestCase, TestResult, TestRun

from .base import Reporter

SYMBOLS = {
    "passed": "✓",
    "failed": "✗",
    "skipped": "○",
    "running": "●",
}

STATUS_COLORS = {
    "passed": Fore.GREEN,
    "failed": Fore.RED,
    "skipped": Fore.YELLOW,
    "running": Fore.CYAN,
}


def format_duration(ms: float) -> str:
    if ms < 1000:
        return f"{int(round(ms))}ms"
    return f"{ms / 1000:.2f}s"


def color_supported(stream: Optional[IO[str]] = None) -> bool:
    """Color only for real terminals, honouring ``NO_COLOR`` and ``TERM=dumb``."""

    if "NO_COLOR" in os.environ:
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    target = stream if stream is not None else sys.stdout
    isatty = getattr(target, "isatty", None)
    return bool(isatty and isatty())


class ConsoleReporter(Reporter):
    """Human-readable reporter; prints one line per finished test."""

    def __init__(
        self,
        *,
        verbose: bool = False,
        use_color: Optional[bool] = None,
        stream: Optional[IO[str]] = None,
    ) -> None:
        self._verbose = verbose
        self._stream = stream
        self._use_color = color_supported(stream) if use_color is None else use_color
        if self._use_color:
            colorama_init()
        self._failures: List[TestResult] = []

    def on_run_start(self, run: TestRun) -> None:
        self._failures.clear()
        self._echo("")
        self._echo(self._styled(f"  wirecheck {run.run_id}: {run.planned} test(s)", Fore.CYAN))
        self._echo("")

    def on_test_start(self, case: TestCase) -> None:
        if self._verbose:
            self._echo(f"  {self._styled(SYMBOLS['running'], STATUS_COLORS['running'])} {case.name}")

    def on_test_complete(self, result: TestResult) -> None:
        self._print_result(result)
        if result.status == "failed":
            self._failures.append(result)
            self._print_failure_details(result)

    def on_run_complete(self, run: TestRun) -> None:
        for result in run.results:
            if result.status == "skipped":
                self._print_result(result)
        if self._failures:
            self._echo("")
            self._echo(self._styled("  Failures:", Fore.RED))
            for result in self._failures:
                self._echo(f"    {result.id}")
                self._print_failure_details(result, indent="      ")
        summary = run.summary
        parts = []
        if summary.passed:
            parts.append(self._styled(f"{summary.passed} passed", Fore.GREEN))
        if summary.failed:
            parts.append(self._styled(f"{summary.failed} failed", Fore.RED))
        if summary.skipped:
            parts.append(self._styled(f"{summary.skipped} skipped", Fore.YELLOW))
        parts.append(f"{summary.total} total")
        self._echo("")
        self._echo(f"  Tests: {', '.join(parts)}")
        self._echo(f"  Time:  {format_duration(summary.duration_ms)}")
        self._echo("")

    def _print_result(self, result: TestResult) -> None:
        symbol = self._styled(SYMBOLS[result.status], STATUS_COLORS[result.status])
        if result.status == "skipped":
            reason = f" ({result.skip_reason})" if result.skip_reason else ""
            self._echo(f"  {symbol} {self._styled(result.name, Style.DIM)}{reason}")
            return
        line = f"  {symbol} {result.name} {self._styled(f'({format_duration(result.duration_ms)})', Style.DIM)}"
        if result.attempts > 1:
            line += f" [attempts: {result.attempts}]"
        self._echo(line)

    def _print_failure_details(self, result: TestResult, *, indent: str = "    ") -> None:
        if result.error is not None:
            self._echo(f"{indent}{self._styled('Error:', Fore.RED)} {result.error.message}")
            return
        for assertion in result.failed_assertions:
            self._echo(f"{indent}{assertion.path}: {assertion.message or 'assertion failed'}")
            if self._verbose:
                self._echo(f"{indent}  Expected: {render(assertion.expected)}")
                self._echo(f"{indent}  Actual:   {render(assertion.actual)}")

    def _styled(self, text: str, color: str) -> str:
        if not self._use_color:
            return text
        return f"{color}{text}{Style.RESET_ALL}"

    def _echo(self, text: str) -> None:
        click.echo(text, file=self._stream)
