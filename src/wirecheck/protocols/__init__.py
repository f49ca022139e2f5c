"""Protocol executors keyed by case protocol tag."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from wirecheck.core.context import RunContext
from wirecheck.core.models import TestResult

from .base import ExecutionOptions
from .batch import execute_batch
from .pipeline import execute_pipeline
from .rest import execute_rest
from .rpc import execute_rpc

Executor = Callable[[Any, ExecutionOptions, Optional[RunContext]], Awaitable[TestResult]]

EXECUTORS: Dict[str, Executor] = {
    "rest": execute_rest,
    "rpc": execute_rpc,
    "tool": execute_rpc,
    "batch": execute_batch,
    "pipeline": execute_pipeline,
}


def get_executor(protocol: str) -> Executor:
    try:
        return EXECUTORS[protocol]
    except KeyError as exc:
        raise KeyError(f"No executor registered for protocol '{protocol}'") from exc


__all__ = [
    "EXECUTORS",
    "ExecutionOptions",
    "Executor",
    "execute_batch",
    "execute_pipeline",
    "execute_rest",
    "execute_rpc",
    "get_executor",
]
