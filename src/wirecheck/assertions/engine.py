"""Exact, partial, path-addressed and schema assertions over decoded values."""
from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError
from referencing.exceptions import Unresolvable

from wirecheck.core.models import AssertionResult, MatchMode

from .matchers import is_matcher, match, render, type_name
from .paths import MISSING, get_value_by_path, join_path, looks_like_path


@dataclass(frozen=True)
class AssertOutcome:
    passed: bool
    assertions: Tuple[AssertionResult, ...] = tuple()


def _outcome(assertions: Sequence[AssertionResult]) -> AssertOutcome:
    return AssertOutcome(
        passed=all(assertion.passed for assertion in assertions),
        assertions=tuple(assertions),
    )


def leaf_assertion(actual: Any, expected: Any, path: str) -> AssertionResult:
    result = match(actual, expected)
    return AssertionResult(
        path=path or ".",
        expected=expected,
        actual=None if actual is MISSING else actual,
        passed=result.passed,
        message=result.message,
    )


def _shape_failure(actual: Any, wanted: str, path: str) -> AssertionResult:
    return AssertionResult(
        path=path or ".",
        expected=wanted,
        actual=type_name(actual),
        passed=False,
        message=f"Expected {wanted} but got {type_name(actual)}",
    )


def match_partial(actual: Any, expected: Any, path: str = "") -> AssertOutcome:
    """Subset match: keys absent from ``expected`` are ignored."""

    assertions: List[AssertionResult] = []
    _walk_partial(actual, expected, path, assertions)
    return _outcome(assertions)


def _walk_partial(actual: Any, expected: Any, path: str, out: List[AssertionResult]) -> None:
    if is_matcher(expected) or not isinstance(expected, (Mapping, list, tuple)):
        out.append(leaf_assertion(actual, expected, path))
        return
    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)):
            out.append(_shape_failure(actual, "array", path))
            return
        for index, item in enumerate(expected):
            value = actual[index] if index < len(actual) else MISSING
            _walk_partial(value, item, join_path(path, index), out)
        return
    if not isinstance(actual, Mapping):
        out.append(_shape_failure(actual, "object", path))
        return
    for key, item in expected.items():
        _walk_partial(actual.get(key, MISSING), item, join_path(path, key), out)


def match_exact(actual: Any, expected: Any, path: str = "") -> AssertOutcome:
    """Structural equality: sequence lengths and mapping key sets must agree."""

    assertions: List[AssertionResult] = []
    _walk_exact(actual, expected, path, assertions)
    return _outcome(assertions)


def _walk_exact(actual: Any, expected: Any, path: str, out: List[AssertionResult]) -> None:
    if is_matcher(expected) or not isinstance(expected, (Mapping, list, tuple)):
        out.append(leaf_assertion(actual, expected, path))
        return
    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)):
            out.append(_shape_failure(actual, "array", path))
            return
        if len(actual) != len(expected):
            out.append(
                AssertionResult(
                    path=path or ".",
                    expected=f"array of length {len(expected)}",
                    actual=f"array of length {len(actual)}",
                    passed=False,
                    message=f"Expected array of length {len(expected)} but got {len(actual)}",
                )
            )
            return
        for index, item in enumerate(expected):
            _walk_exact(actual[index], item, join_path(path, index), out)
        return
    if not isinstance(actual, Mapping):
        out.append(_shape_failure(actual, "object", path))
        return
    expected_keys = sorted(expected)
    actual_keys = sorted(actual)
    missing = [key for key in expected_keys if key not in actual]
    extra = [key for key in actual_keys if key not in expected]
    if missing or extra:
        problems = []
        if missing:
            problems.append(f"Missing keys: {', '.join(missing)}")
        if extra:
            problems.append(f"Extra keys: {', '.join(extra)}")
        out.append(
            AssertionResult(
                path=path or ".",
                expected=f"object with keys [{', '.join(expected_keys)}]",
                actual=f"object with keys [{', '.join(actual_keys)}]",
                passed=False,
                message=". ".join(problems),
            )
        )
        return
    for key in expected_keys:
        _walk_exact(actual[key], expected[key], join_path(path, key), out)


def match_with_paths(actual: Any, expected: Mapping[str, Any]) -> AssertOutcome:
    """Evaluate each ``path -> expectation`` entry independently."""

    assertions = [
        leaf_assertion(get_value_by_path(actual, path), expectation, path)
        for path, expectation in expected.items()
    ]
    return _outcome(assertions)


def _instance_path(segments: Sequence[Any]) -> str:
    path = ""
    for segment in segments:
        path = join_path(path, segment)
    return path or "."


def _invalid_schema(detail: str) -> AssertOutcome:
    return _outcome(
        [
            AssertionResult(
                path=".",
                expected="valid JSON schema",
                actual="invalid schema",
                passed=False,
                message=f"Invalid schema: {detail}",
            )
        ]
    )


class SchemaValidator:
    """Compiles JSON schemas once per run and scores instances against them."""

    def __init__(self) -> None:
        self._compiled: Dict[str, Draft7Validator] = {}
        self._format_checker = FormatChecker()

    def _validator_for(self, schema: Mapping[str, Any]) -> Draft7Validator:
        key = json.dumps(schema, sort_keys=True, default=str)
        validator = self._compiled.get(key)
        if validator is None:
            Draft7Validator.check_schema(schema)
            validator = Draft7Validator(schema, format_checker=self._format_checker)
            self._compiled[key] = validator
        return validator

    def validate(self, actual: Any, schema: Any) -> AssertOutcome:
        if not isinstance(schema, Mapping):
            return _outcome(
                [
                    AssertionResult(
                        path=".",
                        expected="JSON schema object",
                        actual=type_name(schema),
                        passed=False,
                        message="Schema expectation must be an object",
                    )
                ]
            )
        instance = None if actual is MISSING else actual
        try:
            validator = self._validator_for(schema)
            errors = sorted(
                validator.iter_errors(instance),
                key=lambda err: _instance_path(err.absolute_path),
            )
        except SchemaError as exc:
            return _invalid_schema(exc.message)
        except Unresolvable as exc:
            # unresolvable $ref only surfaces while evaluating
            return _invalid_schema(str(exc) or type(exc).__name__)
        if not errors:
            return _outcome(
                [
                    AssertionResult(
                        path=".",
                        expected="matches schema",
                        actual="matches schema",
                        passed=True,
                    )
                ]
            )
        return _outcome(
            [
                AssertionResult(
                    path=_instance_path(err.absolute_path),
                    expected=f"{err.validator}: {render(err.validator_value)}",
                    actual="validation failed",
                    passed=False,
                    message=err.message,
                )
                for err in errors
            ]
        )


def assert_value(
    actual: Any,
    expected: Any,
    mode: MatchMode = "partial",
    validator: Optional[SchemaValidator] = None,
) -> AssertOutcome:
    if mode == "schema":
        return (validator or SchemaValidator()).validate(actual, expected)
    if mode == "exact":
        return match_exact(actual, expected)
    return match_partial(actual, expected)


def assert_expectation(
    actual: Any,
    expected: Any,
    mode: MatchMode = "partial",
    validator: Optional[SchemaValidator] = None,
    *,
    scalar_path: str = "",
    prefix: str = "",
) -> AssertOutcome:
    """Score a body or output expectation the way executors need it.

    Mappings with path-like keys are evaluated key by key. Non-mapping
    expectations are compared with ``match`` at ``scalar_path``. Everything
    else goes through ``assert_value``. ``prefix`` is prepended to every
    assertion path.
    """

    if mode != "schema" and isinstance(expected, Mapping) and not is_matcher(expected):
        if any(looks_like_path(str(key)) for key in expected):
            outcome = match_with_paths(actual, expected)
        else:
            outcome = assert_value(actual, expected, mode, validator)
    elif mode != "schema" and not isinstance(expected, (Mapping, list, tuple)):
        outcome = _outcome([leaf_assertion(actual, expected, scalar_path)])
    else:
        outcome = assert_value(actual, expected, mode, validator)
    if not prefix:
        return outcome
    return _outcome([_with_prefix(assertion, prefix) for assertion in outcome.assertions])


def _with_prefix(assertion: AssertionResult, prefix: str) -> AssertionResult:
    if assertion.path in ("", "."):
        path = prefix
    elif assertion.path.startswith("["):
        path = prefix + assertion.path
    else:
        path = f"{prefix}.{assertion.path}"
    return replace(assertion, path=path)


__all__ = [
    "AssertOutcome",
    "SchemaValidator",
    "assert_expectation",
    "assert_value",
    "leaf_assertion",
    "match_exact",
    "match_partial",
    "match_with_paths",
]
