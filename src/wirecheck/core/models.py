"""Core dataclasses shared across wirecheck subsystems."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

MatchMode = str  # "exact" | "partial" | "schema"
Protocol = str  # "rest" | "rpc" | "tool" | "batch" | "pipeline"
Status = str  # "passed" | "failed" | "skipped"

PROTOCOLS: Tuple[Protocol, ...] = ("rest", "rpc", "tool", "batch", "pipeline")
MATCH_MODES: Tuple[MatchMode, ...] = ("exact", "partial", "schema")


@dataclass(frozen=True)
class RestRequest:
    method: str = "GET"
    path: str = "/"
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RestExpectation:
    status: Any = None  # int literal or range matcher
    headers: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    has_body: bool = False
    match_mode: MatchMode = "partial"


@dataclass(frozen=True)
class RpcError:
    code: Any = None
    message: Any = None


@dataclass(frozen=True)
class RpcExpectation:
    status: str = "success"
    output: Any = None
    has_output: bool = False
    error: Optional[RpcError] = None
    match_mode: MatchMode = "partial"


@dataclass(frozen=True)
class BatchCall:
    path: str
    args: Any = None
    id: Any = None


@dataclass(frozen=True)
class BatchExpectation:
    batch_size: Optional[int] = None
    all_success: Optional[bool] = None
    results: Optional[Tuple[Any, ...]] = None


@dataclass(frozen=True)
class PipelineExpectation:
    output: Any = None
    has_output: bool = False
    match_mode: MatchMode = "partial"


@dataclass(frozen=True)
class CaseBase:
    """Fields shared by every test case variant."""

    name: str
    id: str = ""
    description: str = ""
    tags: Tuple[str, ...] = tuple()
    timeout_ms: Optional[int] = None
    skip: Union[bool, str] = False
    only: bool = False
    capture: Mapping[str, str] = field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        return bool(self.skip)

    @property
    def skip_reason(self) -> Optional[str]:
        if isinstance(self.skip, str) and self.skip:
            return self.skip
        return None


@dataclass(frozen=True)
class RestCase(CaseBase):
    request: RestRequest = field(default_factory=RestRequest)
    expect: RestExpectation = field(default_factory=RestExpectation)
    protocol: Protocol = "rest"


@dataclass(frozen=True)
class RpcCase(CaseBase):
    method: str = ""
    input: Any = None
    expect: RpcExpectation = field(default_factory=RpcExpectation)
    protocol: Protocol = "rpc"

    @property
    def kind(self) -> str:
        return self.protocol


@dataclass(frozen=True)
class BatchCase(CaseBase):
    calls: Tuple[BatchCall, ...] = tuple()
    expect: BatchExpectation = field(default_factory=BatchExpectation)
    protocol: Protocol = "batch"


@dataclass(frozen=True)
class PipelineCase(CaseBase):
    pipeline: Any = tuple()
    expect: PipelineExpectation = field(default_factory=PipelineExpectation)
    protocol: Protocol = "pipeline"


TestCase = Union[RestCase, RpcCase, BatchCase, PipelineCase]


@dataclass(frozen=True)
class AssertionResult:
    """Outcome of a single comparison inside a test."""

    path: str
    expected: Any
    actual: Any
    passed: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    stack: Optional[str] = None


@dataclass(frozen=True)
class TestResult:
    """Outcome of executing (or skipping) one test case."""

    __test__ = False

    id: str
    name: str
    protocol: Protocol
    status: Status
    duration_ms: float
    request: Any = None
    response: Any = None
    assertions: Tuple[AssertionResult, ...] = tuple()
    error: Optional[ErrorInfo] = None
    tags: Tuple[str, ...] = tuple()
    attempts: int = 1
    skip_reason: Optional[str] = None
    captured: Mapping[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    @property
    def failed_assertions(self) -> Tuple[AssertionResult, ...]:
        return tuple(assertion for assertion in self.assertions if not assertion.passed)


def result_status(assertions: Sequence[AssertionResult], error: Optional[ErrorInfo] = None) -> Status:
    if error is not None:
        return "failed"
    return "passed" if all(assertion.passed for assertion in assertions) else "failed"


@dataclass(frozen=True)
class RunSummary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: float = 0.0
    by_type: Mapping[str, int] = field(default_factory=dict)


def utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class TestRun:
    """Mutable run record owned by the runner until sealed."""

    __test__ = False

    run_id: str
    started_at: str = field(default_factory=utc_now_iso)
    planned: int = 0
    completed_at: Optional[str] = None
    summary: RunSummary = field(default_factory=RunSummary)
    results: List[TestResult] = field(default_factory=list)

    def append(self, result: TestResult) -> None:
        self.results.append(result)

    def seal(self, duration_ms: float) -> None:
        by_type: Dict[str, int] = {}
        for result in self.results:
            by_type[result.protocol] = by_type.get(result.protocol, 0) + 1
        self.summary = RunSummary(
            total=len(self.results),
            passed=sum(1 for result in self.results if result.status == "passed"),
            failed=sum(1 for result in self.results if result.status == "failed"),
            skipped=sum(1 for result in self.results if result.status == "skipped"),
            duration_ms=duration_ms,
            by_type=by_type,
        )
        self.completed_at = utc_now_iso()

    @property
    def success(self) -> bool:
        return self.summary.failed == 0


def with_id(case: TestCase, identifier: str) -> TestCase:
    return replace(case, id=identifier)
