"""JUnit XML reporter, one ``<testsuite>`` per leading tag."""
from __future__ import annotations

import json
from typing import Dict, List, Optional

import click

from wirecheck.core.models import TestResult, TestRun

from .base import Reporter

_XML_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&apos;"}


def escape_xml(text: str) -> str:
    return "".join(_XML_ESCAPES.get(char, char) for char in text)


def cdata(text: str) -> str:
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _seconds(ms: float) -> str:
    return f"{ms / 1000:.3f}"


class JunitReporter(Reporter):
    """Renders the sealed run as JUnit XML."""

    def __init__(self, *, suite_name: str = "wirecheck", include_timestamp: bool = True, echo: bool = True) -> None:
        self._suite_name = suite_name
        self._include_timestamp = include_timestamp
        self._echo = echo
        self._output: Optional[str] = None

    def on_run_start(self, run: TestRun) -> None:
        self._output = None

    def on_test_complete(self, result: TestResult) -> None:
        return None

    def on_run_complete(self, run: TestRun) -> None:
        self._output = self.render(run)
        if self._echo:
            click.echo(self._output)

    def get_output(self) -> Optional[str]:
        return self._output

    def render(self, run: TestRun) -> str:
        summary = run.summary
        timestamp = f' timestamp="{escape_xml(run.started_at)}"' if self._include_timestamp else ""
        lines = ['<?xml version="1.0" encoding="UTF-8"?>']
        lines.append(
            f'<testsuites name="{escape_xml(self._suite_name)}" tests="{summary.total}" '
            f'failures="{summary.failed}" errors="0" skipped="{summary.skipped}" '
            f'time="{_seconds(summary.duration_ms)}"{timestamp}>'
        )
        for tag, results in _group_by_tag(run.results).items():
            failures = sum(1 for result in results if result.status == "failed")
            skipped = sum(1 for result in results if result.status == "skipped")
            duration = sum(result.duration_ms for result in results)
            lines.append(
                f'  <testsuite name="{escape_xml(tag)}" tests="{len(results)}" failures="{failures}" '
                f'errors="0" skipped="{skipped}" time="{_seconds(duration)}">'
            )
            for result in results:
                lines.extend(self._testcase(result))
            lines.append("  </testsuite>")
        lines.append("</testsuites>")
        return "\n".join(lines)

    def _testcase(self, result: TestResult) -> List[str]:
        classname = ".".join(result.id.split(".")[:-1]) or self._suite_name
        lines = [
            f'    <testcase name="{escape_xml(result.name)}" classname="{escape_xml(classname)}" '
            f'time="{_seconds(result.duration_ms)}">'
        ]
        if result.status == "failed":
            failed = result.failed_assertions
            if result.error is not None:
                message = result.error.message
            else:
                message = "; ".join(a.message for a in failed if a.message) or "Test failed"
            body: List[str] = []
            if result.error is not None and result.error.stack:
                body.append(result.error.stack)
            for assertion in failed:
                body.append(f"Path: {assertion.path}")
                body.append(f"Expected: {json.dumps(assertion.expected, default=str)}")
                body.append(f"Actual: {json.dumps(assertion.actual, default=str)}")
                if assertion.message:
                    body.append(f"Message: {assertion.message}")
                body.append("")
            lines.append(
                f'      <failure message="{escape_xml(message)}" type="AssertionError">'
                f"{cdata(chr(10).join(body))}</failure>"
            )
        elif result.status == "skipped":
            lines.append("      <skipped/>")
        lines.append("    </testcase>")
        return lines


def _group_by_tag(results: List[TestResult]) -> Dict[str, List[TestResult]]:
    groups: Dict[str, List[TestResult]] = {}
    for result in results:
        tag = result.tags[0] if result.tags else "default"
        groups.setdefault(tag, []).append(result)
    return groups
