from __future__ import annotations

import pytest

from wirecheck.assertions import MISSING, deep_equal, is_matcher, match
from wirecheck.assertions.matchers import render, type_name
from wirecheck.assertions.paths import get_value_by_path, has_path, join_path, looks_like_path, parse_path


@pytest.mark.parametrize("status", [200, 204, 299])
def test_status_range_accepts_2xx(status: int) -> None:
    assert match(status, {"gte": 200, "lt": 300}).passed


@pytest.mark.parametrize("status", [199, 300, 404])
def test_status_range_rejects_outside(status: int) -> None:
    result = match(status, {"gte": 200, "lt": 300})
    assert not result.passed
    assert "failed range check" in result.message


def test_range_against_string_reports_type() -> None:
    result = match("200", {"gte": 200})
    assert not result.passed
    assert "non-number" in result.message


def test_type_matchers() -> None:
    assert match("x", {"type": "string"}).passed
    assert match(3, {"type": "integer"}).passed
    assert not match(3.5, {"type": "integer"}).passed
    assert not match(True, {"type": "number"}).passed
    assert match(None, {"type": "null"}).passed
    assert match([1], {"type": "array"}).passed
    assert match({"a": 1}, {"type": "object"}).passed


def test_pattern_uses_search_semantics() -> None:
    assert match("user-42", {"pattern": r"\d+"}).passed
    assert not match("user", {"pattern": r"^\d+$"}).passed


def test_invalid_pattern_fails_without_raising() -> None:
    result = match("abc", {"pattern": "("})
    assert not result.passed
    assert result.message.startswith("Invalid pattern")


@pytest.mark.parametrize(
    "fmt,good,bad",
    [
        ("email", "ada@example.com", "ada.example.com"),
        ("uuid", "123e4567-e89b-12d3-a456-426614174000", "123e4567"),
        ("date-time", "2024-01-31T12:00:00Z", "2024-01-31"),
        ("date", "2024-02-29", "2024-02-30"),
        ("ipv4", "10.0.0.1", "::1"),
        ("uri", "https://example.com/a", "not a uri"),
    ],
)
def test_formats(fmt: str, good: str, bad: str) -> None:
    assert match(good, {"format": fmt}).passed
    assert not match(bad, {"format": fmt}).passed


def test_unknown_format_fails() -> None:
    result = match("x", {"format": "credit-card"})
    assert not result.passed
    assert "Unknown format" in result.message


@pytest.mark.parametrize(
    "matcher, message",
    [
        ({"gte": 1, "lt": "x"}, "Invalid matcher: lt must be numeric"),
        ({"gt": None, "lte": 5}, "Invalid matcher: gt must be numeric"),
        ({"minLength": 1, "maxLength": "3"}, "Invalid matcher: maxLength must be numeric"),
        ({"type": "string", "pattern": 5}, "Invalid matcher: pattern must be a string"),
        ({"type": "string", "format": ["email"]}, "Invalid matcher: format must be a string"),
        ({"type": "number", "oneOf": 3}, "Invalid matcher: oneOf must be an array"),
    ],
)
def test_malformed_matcher_fails_without_raising(matcher: dict, message: str) -> None:
    value = "abc" if "minLength" in matcher or matcher.get("type") == "string" else 2
    result = match(value, matcher)
    assert not result.passed
    assert result.message == message


def test_length_bounds() -> None:
    assert match([1, 2, 3], {"minLength": 1, "maxLength": 3}).passed
    assert not match("ab", {"length": 3}).passed
    assert not match(5, {"minLength": 1}).passed


def test_one_of_respects_types() -> None:
    assert match("b", {"oneOf": ["a", "b"]}).passed
    assert not match(True, {"oneOf": [1, 0]}).passed
    assert match({"k": [1]}, {"oneOf": [{"k": [1]}]}).passed


def test_optional_accepts_missing_and_null() -> None:
    matcher = {"optional": True, "type": "string"}
    assert match(MISSING, matcher).passed
    assert match(None, matcher).passed
    assert match("present", matcher).passed
    assert not match(3, matcher).passed


def test_first_failing_check_wins() -> None:
    result = match("abc", {"type": "string", "pattern": "^z", "minLength": 10})
    assert not result.passed
    assert "pattern" in result.message


def test_literal_mismatch_message() -> None:
    result = match(2, 1)
    assert not result.passed
    assert result.message == "Expected 1 but got 2"


def test_matcher_value_matches_itself() -> None:
    matcher = {"type": "string"}
    assert match(matcher, matcher).passed


def test_is_matcher_requires_only_matcher_keys() -> None:
    assert is_matcher({"type": "string"})
    assert is_matcher({"gte": 1})
    assert not is_matcher({"type": "string", "name": "x"})
    assert not is_matcher({"type": "widget"})
    assert not is_matcher({})
    assert not is_matcher(["type"])


def test_deep_equal_keeps_booleans_apart() -> None:
    assert deep_equal(1, 1.0)
    assert not deep_equal(1, True)
    assert not deep_equal({"a": [1, 2]}, {"a": [1, 2, 3]})
    assert deep_equal({"a": [1, {"b": None}]}, {"a": [1, {"b": None}]})


def test_render_and_type_name_for_missing() -> None:
    assert render(MISSING) == "undefined"
    assert type_name(MISSING) == "undefined"
    assert render({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'


def test_parse_path_forms() -> None:
    assert parse_path("data.user.name") == ["data", "user", "name"]
    assert parse_path("items[0].id") == ["items", 0, "id"]
    assert parse_path('headers["x.trace"]') == ["headers", "x.trace"]
    assert parse_path("codes['7']") == ["codes", "7"]


def test_get_value_by_path() -> None:
    body = {"data": {"items": [{"id": 1}, {"id": 2}]}, "meta": None}
    assert get_value_by_path(body, "data.items[1].id") == 2
    assert get_value_by_path(body, "meta") is None
    assert get_value_by_path(body, "data.items[5].id") is MISSING
    assert get_value_by_path(body, "data.missing") is MISSING
    assert get_value_by_path(body, ".") is body
    assert has_path(body, "meta")
    assert not has_path(body, "meta.x")


def test_looks_like_path_and_join() -> None:
    assert looks_like_path("data.id")
    assert looks_like_path("items[0]")
    assert not looks_like_path("name")
    assert join_path("", "a") == "a"
    assert join_path("a", 0) == "a[0]"
    assert join_path("a[0]", "b") == "a[0].b"
