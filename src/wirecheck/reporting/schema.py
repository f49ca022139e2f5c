"""JSON schema definition for reporter output."""
from __future__ import annotations

SCHEMA_VERSION = "1.0.0"

_ASSERTION = {
    "type": "object",
    "required": ["path", "passed"],
    "properties": {
        "path": {"type": "string"},
        "expected": {},
        "actual": {},
        "passed": {"type": "boolean"},
        "message": {"type": ["string", "null"]},
    },
}

JSON_SCHEMA_V1 = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "wirecheck report",
    "type": "object",
    "required": ["schema_version", "run_id", "started_at", "summary", "results"],
    "properties": {
        "schema_version": {"type": "string"},
        "run_id": {"type": "string", "minLength": 1},
        "started_at": {"type": "string", "format": "date-time"},
        "completed_at": {"type": ["string", "null"], "format": "date-time"},
        "summary": {
            "type": "object",
            "required": ["total", "passed", "failed", "skipped", "duration_ms", "by_type"],
            "properties": {
                "total": {"type": "integer", "minimum": 0},
                "passed": {"type": "integer", "minimum": 0},
                "failed": {"type": "integer", "minimum": 0},
                "skipped": {"type": "integer", "minimum": 0},
                "duration_ms": {"type": "number", "minimum": 0},
                "by_type": {
                    "type": "object",
                    "additionalProperties": {"type": "integer"},
                },
            },
        },
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name", "protocol", "status", "duration_ms", "assertions", "tags"],
                "properties": {
                    "id": {"type": "string"},
                    "name": {"type": "string"},
                    "protocol": {"enum": ["rest", "rpc", "tool", "batch", "pipeline"]},
                    "status": {"enum": ["passed", "failed", "skipped"]},
                    "duration_ms": {"type": "number", "minimum": 0},
                    "attempts": {"type": "integer", "minimum": 0},
                    "request": {},
                    "response": {},
                    "assertions": {"type": "array", "items": _ASSERTION},
                    "error": {
                        "type": ["object", "null"],
                        "required": ["message"],
                        "properties": {
                            "message": {"type": "string"},
                            "stack": {"type": ["string", "null"]},
                        },
                    },
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "skip_reason": {"type": ["string", "null"]},
                    "captured": {"type": "object"},
                },
            },
        },
    },
}
