import pytest

from app.features.grading.errors import InjectionAmbiguityWarning
from app.features.grading.injector import (
    BindingStrategy,
    SubmissionParser,
    extract_setup_vars,
    inject,
    split_components,
)


def test_parse_splits_on_first_delimiter():
    parser = SubmissionParser()
    parsed = parser.parse("a = 5\nb = 7\n# solution code below\nprint(a + b)\n# solution code below\n")
    assert parsed.has_delimiter is True
    assert parsed.setup_vars == ["a", "b"]
    assert parsed.logic_code.startswith("\nprint(a + b)")
    assert parsed.logic_code.count("# solution code below") == 1


def test_parse_without_delimiter_runs_everything():
    parsed = SubmissionParser().parse("print('hi')")
    assert parsed.has_delimiter is False
    assert parsed.setup_vars == []
    assert parsed.logic_code == "print('hi')"


def test_parse_none_is_empty():
    parsed = SubmissionParser().parse(None)
    assert parsed.logic_code == ""


def test_custom_delimiter():
    parsed = SubmissionParser("### tests ###").parse("x = 1\n### tests ###\nprint(x)")
    assert parsed.setup_vars == ["x"]


def test_extract_setup_vars_skips_non_names():
    code = "a = 1\nobj.attr = 2\nitems[0] = 3\nb: int = 4\nc: str\na = 5\nx, y = 1, 2\n"
    assert extract_setup_vars(code) == ["a", "b"]


def test_extract_setup_vars_chained_assignment():
    assert extract_setup_vars("a = b = 0") == ["a", "b"]


def test_extract_setup_vars_falls_back_on_syntax_error():
    assert extract_setup_vars("a = 1\nb = (\nc == 3\n") == ["a", "b"]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("", []),
        ("5, 7", ["5", "7"]),
        ("(5, 7)", ["5", "7"]),
        ("[1, 2], 'x, y'", ["[1, 2]", "'x, y'"]),
        ("[1, 2, 3]", ["[1, 2, 3]"]),
        ("f(1, 2)", ["f(1, 2)"]),
        ("x = 3", None),
    ],
)
def test_split_components(text, expected):
    assert split_components(text) == expected


def test_inject_unpacks_matching_count():
    binding = inject(["a", "b"], "5, 7")
    assert binding.strategy == BindingStrategy.UNPACK
    assert binding.statement == "a, b = 5, 7"
    assert binding.warning is None


def test_inject_single_variable_takes_whole_input():
    binding = inject(["nums"], "1, 2, 3")
    assert binding.strategy == BindingStrategy.SINGLE
    assert "nums = (" in binding.statement
    assert "1, 2, 3" in binding.statement


def test_inject_single_variable_single_value():
    binding = inject(["n"], "10")
    assert binding.strategy == BindingStrategy.UNPACK
    assert binding.statement == "n = 10"


def test_inject_no_vars_runs_statement():
    binding = inject([], "print(add(2, 3))")
    assert binding.strategy == BindingStrategy.STATEMENT
    assert binding.statement == "print(add(2, 3))"
    assert binding.warning is None


def test_inject_count_mismatch_warns():
    binding = inject(["a", "b", "c"], "1, 2")
    assert binding.strategy == BindingStrategy.STATEMENT
    assert isinstance(binding.warning, InjectionAmbiguityWarning)
    assert "3 setup variables" in str(binding.warning)


def test_inject_empty_input_binds_nothing():
    assert inject(["a"], "").strategy == BindingStrategy.NONE
    assert inject([], "   ").statement == ""
