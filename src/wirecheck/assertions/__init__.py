"""Assertion engine: matchers, path expressions and match modes."""

from .engine import (
    AssertOutcome,
    SchemaValidator,
    assert_expectation,
    assert_value,
    leaf_assertion,
    match_exact,
    match_partial,
    match_with_paths,
)
from .matchers import MatchResult, deep_equal, is_matcher, match
from .paths import MISSING, get_value_by_path, has_path, looks_like_path, parse_path

__all__ = [
    "AssertOutcome",
    "MISSING",
    "MatchResult",
    "SchemaValidator",
    "assert_expectation",
    "assert_value",
    "leaf_assertion",
    "deep_equal",
    "get_value_by_path",
    "has_path",
    "is_matcher",
    "looks_like_path",
    "match",
    "match_exact",
    "match_partial",
    "match_with_paths",
    "parse_path",
]
