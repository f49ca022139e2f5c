"""Reporter interface definitions."""
from __future__ import annotations

from typing import List, Optional, Sequence

from wirecheck.core.models import TestCase, TestResult, TestRun


class Reporter:
    """Interface for output renderers."""

    def on_run_start(self, run: TestRun) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def on_test_start(self, case: TestCase) -> None:
        """Optional hook; most renderers only care about completed results."""

    def on_test_complete(self, result: TestResult) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def on_run_complete(self, run: TestRun) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def get_output(self) -> Optional[str]:
        return None


class ReportManager(Reporter):
    """Dispatches lifecycle callbacks to multiple reporters."""

    def __init__(self, reporters: Sequence[Reporter]) -> None:
        self._reporters = list(reporters)

    def start(self, run: TestRun) -> None:
        for reporter in self._reporters:
            reporter.on_run_start(run)

    def handle_start(self, case: TestCase) -> None:
        for reporter in self._reporters:
            reporter.on_test_start(case)

    def handle_result(self, result: TestResult) -> None:
        for reporter in self._reporters:
            reporter.on_test_complete(result)

    def complete(self, run: TestRun) -> None:
        for reporter in self._reporters:
            reporter.on_run_complete(run)

    on_run_start = start
    on_test_start = handle_start
    on_test_complete = handle_result
    on_run_complete = complete

    def reporters(self) -> List[Reporter]:
        return list(self._reporters)
