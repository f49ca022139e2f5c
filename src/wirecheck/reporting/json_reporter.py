"""JSON reporter emitting a whole-run document or a stream of events."""
from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Dict, List, Mapping, Optional

import click
from jsonschema import validate

from wirecheck.core.models import TestCase, TestResult, TestRun

from .base import Reporter
from .schema import JSON_SCHEMA_V1, SCHEMA_VERSION


class JsonReporter(Reporter):
    """Buffers results into one schema-validated document, or streams JSON lines."""

    def __init__(self, *, pretty: bool = True, stream: bool = False, echo: bool = True) -> None:
        self._pretty = pretty
        self._stream = stream
        self._echo = echo
        self._lines: List[str] = []
        self._document: Optional[str] = None

    def on_run_start(self, run: TestRun) -> None:
        self._lines.clear()
        self._document = None
        if self._stream:
            self._emit(
                {"event": "runStart", "run_id": run.run_id, "started_at": run.started_at, "planned": run.planned}
            )

    def on_test_start(self, case: TestCase) -> None:
        if self._stream:
            self._emit({"event": "testStart", "id": case.id, "name": case.name, "protocol": case.protocol})

    def on_test_complete(self, result: TestResult) -> None:
        if self._stream:
            self._emit({"event": "testComplete", "result": result_to_dict(result)})

    def on_run_complete(self, run: TestRun) -> None:
        payload = run_to_dict(run)
        validate(instance=payload, schema=JSON_SCHEMA_V1)
        if self._stream:
            self._emit({"event": "runComplete", **payload})
            return
        self._document = json.dumps(payload, indent=2 if self._pretty else None)
        if self._echo:
            click.echo(self._document)

    def get_output(self) -> Optional[str]:
        if self._stream:
            return "\n".join(self._lines)
        return self._document

    def _emit(self, event: Dict[str, Any]) -> None:
        line = json.dumps(jsonify(event))
        self._lines.append(line)
        if self._echo:
            click.echo(line)


def run_to_dict(run: TestRun) -> Dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "run_id": run.run_id,
        "started_at": run.started_at,
        "completed_at": run.completed_at,
        "summary": {
            "total": run.summary.total,
            "passed": run.summary.passed,
            "failed": run.summary.failed,
            "skipped": run.summary.skipped,
            "duration_ms": run.summary.duration_ms,
            "by_type": dict(run.summary.by_type),
        },
        "results": [result_to_dict(result) for result in run.results],
    }


def result_to_dict(result: TestResult) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "id": result.id,
        "name": result.name,
        "protocol": result.protocol,
        "status": result.status,
        "duration_ms": result.duration_ms,
        "attempts": result.attempts,
        "request": jsonify(result.request),
        "response": jsonify(result.response),
        "assertions": [jsonify(asdict(assertion)) for assertion in result.assertions],
        "tags": list(result.tags),
    }
    if result.error is not None:
        record["error"] = {"message": result.error.message, "stack": result.error.stack}
    if result.skip_reason:
        record["skip_reason"] = result.skip_reason
    if result.captured:
        record["captured"] = jsonify(result.captured)
    return record


def jsonify(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): jsonify(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonify(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
