from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

REDACTED = "(hidden)"


class TestRunResultSchema(BaseModel):
    __test__ = False

    input: str
    expected: str
    actual: str = ""
    passed: bool
    visible: bool = True
    error: Optional[str] = None
    compare_mode_applied: Optional[str] = None
    why_failed: Optional[str] = None

    def redacted(self) -> "TestRunResultSchema":
        if self.visible:
            return self
        return self.model_copy(update={"input": REDACTED, "expected": REDACTED, "actual": REDACTED, "error": None})


class QuestionResultSchema(BaseModel):
    question_id: str
    score: int
    max_points: int
    passed_all: bool
    tests: List[TestRunResultSchema] = Field(default_factory=list)
    hints: List[str] = Field(default_factory=list)


class GradingOutcome(BaseModel):
    questions: Dict[str, QuestionResultSchema] = Field(default_factory=dict)
    raw_total: int = 0
    max_total: int = 0

    @property
    def tests_total(self) -> int:
        return sum(len(q.tests) for q in self.questions.values())

    @property
    def tests_passed(self) -> int:
        return sum(1 for q in self.questions.values() for t in q.tests if t.passed)


class PreCheckResultSchema(BaseModel):
    question_id: str
    ratio: float
    passed: int
    total: int
    log: str
    tests: List[TestRunResultSchema] = Field(default_factory=list)
    hints: List[str] = Field(default_factory=list)


class SnippetRunSchema(BaseModel):
    stdout: str = ""
    error: Optional[str] = None
    timed_out: bool = False


__all__ = [
    "REDACTED",
    "TestRunResultSchema",
    "QuestionResultSchema",
    "GradingOutcome",
    "PreCheckResultSchema",
    "SnippetRunSchema",
]
