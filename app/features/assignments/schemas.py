from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TestCaseSchema(BaseModel):
    """One graded run: ``input`` is literal value(s) or a statement, ``expected`` the stdout."""

    __test__ = False  # keep pytest from collecting this as a test class

    input: str = ""
    expected: str
    visible: bool = True
    inputs: List[str] = Field(default_factory=list, description="Lines fed to input() during the run")

    @field_validator("input", "expected", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("visible", mode="before")
    @classmethod
    def _default_visible(cls, value: Any) -> bool:
        # Stored rows omit the flag for visible tests; only an explicit false hides one.
        return value is not False

    @field_validator("inputs", mode="before")
    @classmethod
    def _stringify_inputs(cls, value: Any) -> List[str]:
        return [str(item) for item in (value or [])]


class QuestionSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: Literal["code", "markdown"] = Field("code", alias="type")
    prompt: str = Field("", alias="content")
    points: int = Field(0, ge=0)
    starter_code: str = ""
    hint: Optional[str] = None
    test_cases: List[TestCaseSchema] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _lift_validation_tests(cls, data: Any) -> Any:
        # Older content nests the tests as {"validation": {"test_cases": [...]}}.
        if not isinstance(data, dict) or "validation" not in data:
            return data
        validation = data.get("validation") or {}
        if not isinstance(validation, dict):
            raise ValueError("validation must be an object")
        nested = validation.get("test_cases")
        if nested is None:
            return data
        if data.get("test_cases"):
            raise ValueError("test cases given both at top level and under validation")
        lifted = {key: value for key, value in data.items() if key != "validation"}
        lifted["test_cases"] = nested
        return lifted

    @property
    def is_code(self) -> bool:
        return self.kind == "code"

    def visible_tests(self) -> List[TestCaseSchema]:
        return [test for test in self.test_cases if test.visible]


class AssignmentSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    day_index: int = 0
    kind: Literal["exercise", "homework"] = Field("homework", alias="type")
    title: str = ""
    description: str = ""
    max_score: int = 0
    questions: List[QuestionSchema] = Field(default_factory=list)
    is_locked: bool = False

    def question(self, question_id: str) -> QuestionSchema:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise ValueError("question_not_found")

    def code_questions(self) -> List[QuestionSchema]:
        return [q for q in self.questions if q.is_code]

    def starter_answers(self) -> dict[str, str]:
        return {q.id: q.starter_code for q in self.code_questions() if q.starter_code}


__all__ = ["TestCaseSchema", "QuestionSchema", "AssignmentSchema"]
