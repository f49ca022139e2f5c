"""Test runner orchestration."""

from .runner import DEFAULT_CONCURRENCY, RunnerOptions, TestRunner, new_run_id, select_cases

__all__ = ["DEFAULT_CONCURRENCY", "RunnerOptions", "TestRunner", "new_run_id", "select_cases"]
