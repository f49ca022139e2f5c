from __future__ import annotations

import json
from typing import Any, Dict, List

import httpx
import pytest

from wirecheck import bootstrap

QA_TESTS: List[Dict[str, Any]] = [
    {
        "name": "health check",
        "tags": ["smoke"],
        "request": {"method": "GET", "path": "/health"},
        "expect": {"status": 200, "body": {"status": "ok"}},
    },
    {
        "name": "rejects invalid email",
        "type": "rpc",
        "method": "users.create",
        "tags": ["users"],
        "input": {"email": "not-an-email"},
        "expect": {"status": "error", "error": {"code": "VALIDATION_ERROR"}},
    },
]

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "echo",
        "description": "Echo the input back",
        "tests": [
            {
                "name": "echoes text",
                "input": {"text": "hi"},
                "expect": {"status": "success", "output": {"text": "hi"}},
            }
        ],
    }
]

SCHEMA_METHODS: List[Dict[str, Any]] = [
    {
        "path": "users.create",
        "tests": [
            {
                "name": "creates user",
                "input": {"email": "ada@example.com"},
                "expect": {"status": "success", "output": {"email": "ada@example.com", "id": {"type": "string"}}},
            }
        ],
    }
]

BATCH_TESTS: List[Dict[str, Any]] = [
    {
        "name": "adds in batch",
        "calls": [{"path": "math.add", "args": [1, 2]}, {"path": "math.add", "args": [3, 4]}],
        "expect": {"batchSize": 2, "allSuccess": True, "results": [3, 7]},
    }
]

PIPELINE_TESTS: List[Dict[str, Any]] = [
    {
        "name": "doubles then adds",
        "pipeline": [{"path": "math.double", "args": [2]}, {"path": "math.add", "args": ["$prev", 1]}],
        "expect": {"output": {"value": 5}},
    }
]

OPENAPI_DOC: Dict[str, Any] = {
    "openapi": "3.0.0",
    "info": {"title": "demo", "version": "1.0.0"},
    "paths": {
        "/health": {
            "get": {
                "summary": "Service health",
                "x-tests": [
                    {
                        "name": "Reports uptime",
                        "tags": ["monitoring"],
                        "expect": {"status": 200, "body": {"uptime": {"type": "number"}}},
                    }
                ],
            }
        }
    },
}


def _json_body(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None


def _batch_entry(call: Dict[str, Any]) -> Dict[str, Any]:
    if call["path"] == "math.add":
        return {"id": call["id"], "result": sum(call["args"])}
    return {"id": call["id"], "error": {"code": "NOT_FOUND", "message": f"Unknown method {call['path']}"}}


def demo_handler(request: httpx.Request) -> httpx.Response:
    """A small service exposing every protocol wirecheck speaks."""

    path = request.url.path
    if request.method == "GET" and path == "/health":
        return httpx.Response(200, json={"status": "ok", "uptime": 12.5}, headers={"X-Service": "demo"})
    if path == "/users/create":
        args = _json_body(request)[0]
        if "@" not in str(args.get("email", "")):
            return httpx.Response(
                400, json={"error": {"code": "VALIDATION_ERROR", "message": "Invalid email address"}}
            )
        return httpx.Response(200, json={"id": "u-1", "email": args["email"]})
    if path == "/echo":
        return httpx.Response(200, json=_json_body(request)[0])
    if path == "/__batch":
        calls = _json_body(request)["calls"]
        return httpx.Response(200, json={"results": [_batch_entry(call) for call in calls]})
    if path == "/__pipeline":
        steps = _json_body(request)["pipeline"]
        return httpx.Response(200, json={"steps": len(steps), "value": 5})
    if path == "/qa":
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"tests": QA_TESTS}})
    if path == "/mcp":
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"tools": TOOLS}})
    if request.method == "GET" and path == "/openapi.json":
        return httpx.Response(200, json=OPENAPI_DOC)
    if path == "/__schema":
        return httpx.Response(
            200,
            json={"methods": SCHEMA_METHODS, "batchTests": BATCH_TESTS, "pipelineTests": PIPELINE_TESTS},
        )
    return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": path}})


@pytest.fixture(scope="session", autouse=True)
def setup_wirecheck() -> None:
    """Load configured plugins once for the entire test session."""

    bootstrap()


@pytest.fixture
def demo_transport() -> httpx.MockTransport:
    return httpx.MockTransport(demo_handler)
