"""Submission parsing and per-test variable injection.

A submission may start with a *setup* segment (the student's own sample
values) followed by a delimiter comment and the *logic under test*::

    a = 5
    b = 7
    # solution code below
    print(a + b)

The setup segment is never executed by the grader. Its simple top-level
``name = ...`` targets are collected instead, and each test case rebinds
them from its input before the logic runs.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field
from typing import List, Optional

from app.features.grading.errors import InjectionAmbiguityWarning

DEFAULT_DELIMITER = "# solution code below"

_ASSIGN_FALLBACK = re.compile(r"^([A-Za-z_]\w*)\s*(?::[^=]*)?=(?!=)", re.MULTILINE)


class BindingStrategy:
    UNPACK = "unpack"
    SINGLE = "single"
    STATEMENT = "statement"
    NONE = "none"


@dataclass
class ParsedSubmission:
    setup_vars: List[str]
    logic_code: str
    setup_code: str = ""
    has_delimiter: bool = False


@dataclass
class Binding:
    statement: str
    strategy: str
    warning: Optional[InjectionAmbiguityWarning] = None
    components: List[str] = field(default_factory=list)


def _dedupe(names: List[str]) -> List[str]:
    seen: List[str] = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return seen


def extract_setup_vars(setup_code: str) -> List[str]:
    """Names bound by simple top-level assignments, in first-seen order."""
    try:
        tree = ast.parse(setup_code)
    except SyntaxError:
        return _dedupe(_ASSIGN_FALLBACK.findall(setup_code))
    names: List[str] = []
    for node in tree.body:
        if isinstance(node, ast.Assign):
            names.extend(t.id for t in node.targets if isinstance(t, ast.Name))
        elif isinstance(node, ast.AnnAssign) and node.value is not None and isinstance(node.target, ast.Name):
            names.append(node.target.id)
    return _dedupe(names)


class SubmissionParser:
    def __init__(self, delimiter: str = DEFAULT_DELIMITER) -> None:
        self.delimiter = delimiter

    def parse(self, code: Optional[str]) -> ParsedSubmission:
        code = code or ""
        if not self.delimiter or self.delimiter not in code:
            return ParsedSubmission(setup_vars=[], logic_code=code)
        setup, _, logic = code.partition(self.delimiter)
        return ParsedSubmission(
            setup_vars=extract_setup_vars(setup),
            logic_code=logic,
            setup_code=setup,
            has_delimiter=True,
        )


def split_components(test_input: str) -> Optional[List[str]]:
    """Top-level comma-separated pieces of ``test_input`` as source text.

    Returns ``None`` when the input is not a single expression (for example
    a statement), so it cannot be treated as literal data.
    """
    text = (test_input or "").strip()
    if not text:
        return []
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError:
        return None
    body = tree.body
    # "5, 7" and "(5, 7)" both count as two components.
    if isinstance(body, ast.Tuple) and body.elts:
        return [ast.get_source_segment(text, elt) for elt in body.elts]
    return [text]


def inject(setup_vars: List[str], test_input: str) -> Binding:
    """Build the statement that binds ``setup_vars`` from one test input."""
    raw = (test_input or "").strip()
    components = split_components(raw)
    count = len(setup_vars)
    if not raw:
        return Binding("", BindingStrategy.NONE)

    if components is not None and len(components) == count:
        if count == 0:
            return Binding("", BindingStrategy.NONE)
        statement = f"{', '.join(setup_vars)} = {', '.join(components)}"
        return Binding(statement, BindingStrategy.UNPACK, components=components)

    if count == 1:
        return Binding(f"{setup_vars[0]} = (\n{raw}\n)", BindingStrategy.SINGLE, components=components or [])

    warning = None
    if count > 1:
        found = "a statement" if components is None else f"{len(components)} value(s)"
        warning = InjectionAmbiguityWarning(
            f"declared {count} setup variables ({', '.join(setup_vars)}) but test input has {found}; "
            "running the input as a statement instead"
        )
    return Binding(raw, BindingStrategy.STATEMENT, warning=warning, components=components or [])


__all__ = [
    "DEFAULT_DELIMITER",
    "BindingStrategy",
    "Binding",
    "ParsedSubmission",
    "SubmissionParser",
    "extract_setup_vars",
    "split_components",
    "inject",
]
