import pytest

from app.features.grading.comparison import (
    CompareConfig,
    ComparisonMode,
    compare,
    parse_number,
    registry,
    strip_quotes,
)


@pytest.mark.parametrize(
    "actual, expected, should_pass",
    [
        ("12\n", "12", True),
        ("  hello world  ", "hello world", True),
        ("'hello'", "hello", True),
        ('"hello"', "'hello'", True),
        ("3.14159", "3.14", True),
        ("3.15", "3.14", False),
        ("1e3", "1000", True),
        ("Hello", "hello", False),
        ("a b", "a  b", False),
    ],
)
def test_compare_tiers(actual, expected, should_pass):
    assert compare(actual, expected).passed is should_pass


def test_trim_tier_reported_first():
    result = compare("12\n", "12")
    assert result.mode_applied == ComparisonMode.TRIM
    assert len(result.attempts) == 1


def test_quote_tier_reported():
    result = compare("'abc'", "abc")
    assert result.mode_applied == ComparisonMode.QUOTE_NORMALISE


def test_numeric_boundary_is_strict():
    # Exactly one tolerance apart is a failure.
    assert compare("1.5", "1.25", CompareConfig(numeric_tolerance=0.25)).passed is False
    assert compare("1.5", "1.26", CompareConfig(numeric_tolerance=0.25)).passed is True


def test_numeric_verdict_is_authoritative():
    result = compare("2.5", "2.4")
    assert result.passed is False
    assert result.mode_applied == ComparisonMode.NUMERIC_TOLERANCE
    assert "tolerance" in (result.reason or "")


def test_no_tier_matches():
    result = compare("apples", "oranges")
    assert not result
    assert result.mode_applied is None
    assert result.reason == "Output does not match expected"


def test_strip_quotes_single_layer():
    assert strip_quotes("'x'") == "x"
    assert strip_quotes("\"'x'\"") == "'x'"
    assert strip_quotes("'x\"") == "'x\""
    assert strip_quotes("'") == "'"


def test_parse_number():
    assert parse_number("42") == 42.0
    assert parse_number(" -0.5 ") == -0.5
    assert parse_number("nan") is None
    assert parse_number("twelve") is None
    assert parse_number("") is None


def test_registry_order():
    assert registry.list_modes() == [
        ComparisonMode.TRIM,
        ComparisonMode.QUOTE_NORMALISE,
        ComparisonMode.NUMERIC_TOLERANCE,
    ]


def test_compare_is_pure():
    first = compare("3.141", "3.14")
    second = compare("3.141", "3.14")
    assert first.passed == second.passed
    assert first.mode_applied == second.mode_applied
