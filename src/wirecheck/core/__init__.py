"""Core data structures for wirecheck."""

from .models import (
    AssertionResult,
    BatchCase,
    ErrorInfo,
    PipelineCase,
    RestCase,
    RpcCase,
    RunSummary,
    TestCase,
    TestResult,
    TestRun,
)

__all__ = [
    "AssertionResult",
    "BatchCase",
    "ErrorInfo",
    "PipelineCase",
    "RestCase",
    "RpcCase",
    "RunSummary",
    "TestCase",
    "TestResult",
    "TestRun",
]
