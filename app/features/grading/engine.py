"""Grading engine: runs submissions against test cases inside a leased execution session."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Mapping, Optional, Sequence

from app.core.config import Settings, get_settings
from app.features.assignments.schemas import AssignmentSchema, QuestionSchema, TestCaseSchema
from app.features.execution.session import ExecutionSession, SessionManager
from app.features.grading.comparison import CompareConfig, compare
from app.features.grading.injector import Binding, BindingStrategy, ParsedSubmission, SubmissionParser, inject
from app.features.grading.schemas import (
    GradingOutcome,
    PreCheckResultSchema,
    QuestionResultSchema,
    SnippetRunSchema,
    TestRunResultSchema,
)

logger = logging.getLogger(__name__)

DEFAULT_LATE_MULTIPLIER = 0.6


def apply_late_penalty(raw_total: int, is_late: bool, multiplier: float = DEFAULT_LATE_MULTIPLIER) -> int:
    """Late work keeps ``ceil(raw_total * multiplier)`` points; on-time work is unchanged."""
    if not is_late or raw_total <= 0:
        return raw_total
    # A float product can land just above an integer and ceil one point too high.
    return min(raw_total, math.ceil(raw_total * Fraction(str(multiplier))))


@dataclass
class _TestRun:
    result: TestRunResultSchema
    hints: List[str] = field(default_factory=list)


class GradingEngine:
    def __init__(
        self,
        sessions: SessionManager,
        settings: Optional[Settings] = None,
        *,
        parser: Optional[SubmissionParser] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.sessions = sessions
        self.parser = parser or SubmissionParser(self.settings.solution_delimiter)
        self.compare_cfg = CompareConfig(numeric_tolerance=self.settings.numeric_tolerance)

    def required_extensions(self, assignment: AssignmentSchema) -> List[str]:
        return self.settings.required_extensions(assignment.day_index)

    def apply_late_penalty(self, raw_total: int, is_late: bool) -> int:
        return apply_late_penalty(raw_total, is_late, self.settings.late_penalty_multiplier)

    async def _run_binding(self, session: ExecutionSession, binding: Binding) -> Optional[str]:
        """Bind setup variables; returns an error description when the test must fail."""
        if not binding.statement:
            return None
        outcome = await session.run(binding.statement)
        if outcome.fault is None:
            return None
        return f"Could not bind test input: {outcome.fault.describe()}"

    async def _run_test(self, session: ExecutionSession, parsed: ParsedSubmission, test: TestCaseSchema) -> _TestRun:
        hints: List[str] = []
        expected = test.expected.strip()
        await session.reset()

        binding = inject(parsed.setup_vars, test.input)
        if binding.warning is not None:
            logger.warning("injection.ambiguous %s", binding.warning)
            hints.append(str(binding.warning))

        deferred: Optional[str] = None
        if binding.strategy == BindingStrategy.STATEMENT and binding.statement:
            outcome = await session.run(binding.statement)
            if outcome.fault is not None and outcome.fault.exc_type == "NameError":
                # The input calls something the logic defines, e.g. "print(add(2, 3))".
                deferred = binding.statement
            elif outcome.fault is not None:
                # A raw input statement that fails is advisory only; the logic still runs.
                hints.append(f"Test input could not run on its own: {outcome.fault.describe()}")
        else:
            bind_error = await self._run_binding(session, binding)
            if bind_error:
                return _TestRun(
                    TestRunResultSchema(input=test.input, expected=expected, actual="Runtime Error",
                                        passed=False, visible=test.visible, error=bind_error,
                                        why_failed="binding_failed"),
                    hints,
                )

        outcome = await session.run(parsed.logic_code, inputs=test.inputs)
        stdout = outcome.stdout
        fault = outcome.fault
        if fault is None and deferred:
            follow_up = await session.run(deferred, inputs=test.inputs)
            if follow_up.fault is not None and follow_up.fault.exc_type == "NameError":
                hints.append(f"Test input could not run: {follow_up.fault.describe()}")
            else:
                stdout += follow_up.stdout
                fault = follow_up.fault

        if fault is not None:
            logger.info("test.fault type=%s", fault.exc_type)
            return _TestRun(
                TestRunResultSchema(input=test.input, expected=expected, actual=fault.marker, passed=False,
                                    visible=test.visible, error=fault.describe(),
                                    why_failed="timeout" if fault.marker == "Timeout" else "runtime_error"),
                hints,
            )

        actual = stdout.strip()
        verdict = compare(actual, expected, self.compare_cfg)
        return _TestRun(
            TestRunResultSchema(
                input=test.input,
                expected=expected,
                actual=actual,
                passed=verdict.passed,
                visible=test.visible,
                compare_mode_applied=verdict.mode_applied,
                why_failed=None if verdict.passed else (verdict.reason or "outputs_mismatch"),
            ),
            hints,
        )

    async def _grade_question(self, session: ExecutionSession, question: QuestionSchema, code: str) -> QuestionResultSchema:
        parsed = self.parser.parse(code)
        if not question.test_cases:
            passed_all = bool(parsed.logic_code.strip())
            return QuestionResultSchema(
                question_id=question.id,
                score=question.points if passed_all else 0,
                max_points=question.points,
                passed_all=passed_all,
            )

        results: List[TestRunResultSchema] = []
        hints: List[str] = []
        for test in question.test_cases:
            run = await self._run_test(session, parsed, test)
            results.append(run.result)
            hints.extend(h for h in run.hints if h not in hints)
        passed_all = all(r.passed for r in results)
        return QuestionResultSchema(
            question_id=question.id,
            score=question.points if passed_all else 0,
            max_points=question.points,
            passed_all=passed_all,
            tests=results,
            hints=hints,
        )

    async def grade(self, assignment: AssignmentSchema, answers: Mapping[str, str]) -> GradingOutcome:
        """Run every test case of every code question; all-or-nothing per question."""
        outcome = GradingOutcome()
        async with self.sessions.lease(self.required_extensions(assignment)) as session:
            for question in assignment.code_questions():
                result = await self._grade_question(session, question, answers.get(question.id) or "")
                outcome.questions[question.id] = result
                outcome.raw_total += result.score
                outcome.max_total += result.max_points
        logger.info(
            "grade.done assignment=%s raw_total=%s/%s tests=%s/%s",
            assignment.id, outcome.raw_total, outcome.max_total, outcome.tests_passed, outcome.tests_total,
        )
        return outcome

    async def pre_check(self, assignment: AssignmentSchema, question_id: str,
                        answers: Mapping[str, str]) -> PreCheckResultSchema:
        """Run the visible tests of one question and report the fraction passed."""
        question = assignment.question(question_id)
        tests = question.visible_tests()
        if not tests:
            return PreCheckResultSchema(question_id=question_id, ratio=1.0, passed=0, total=0,
                                        log="No visible tests.")

        parsed = self.parser.parse(answers.get(question_id) or "")
        results: List[TestRunResultSchema] = []
        hints: List[str] = []
        async with self.sessions.lease(self.required_extensions(assignment)) as session:
            for test in tests:
                run = await self._run_test(session, parsed, test)
                results.append(run.result)
                hints.extend(h for h in run.hints if h not in hints)

        passed = sum(1 for r in results if r.passed)
        return PreCheckResultSchema(
            question_id=question_id,
            ratio=passed / len(results),
            passed=passed,
            total=len(results),
            log=self.format_log(results, has_delimiter=parsed.has_delimiter),
            tests=results,
            hints=hints,
        )

    def format_log(self, results: Sequence[TestRunResultSchema], *, has_delimiter: bool) -> str:
        lines: List[str] = []
        for idx, result in enumerate(results, start=1):
            if result.passed:
                lines.append(f"[Test #{idx}] PASS")
                lines.append(f"   Input: {result.input}")
                lines.append(f"   Output: {result.actual}")
                continue
            lines.append(f"[Test #{idx}] FAIL")
            lines.append(f"   Input: {result.input}")
            lines.append(f"   Expected: {result.expected}")
            lines.append(f"   Got: {result.actual}")
            if result.error:
                lines.append(f"   Error: {result.error}")
            if not has_delimiter:
                lines.append(f"   Hint: ensure the '{self.parser.delimiter}' delimiter is present.")
        return "\n".join(lines) + "\n"

    async def execute_snippet(self, assignment: AssignmentSchema, code: str,
                              inputs: Optional[Sequence[str]] = None) -> SnippetRunSchema:
        """Free run of a code cell in a clean namespace; no comparison, no scoring."""
        async with self.sessions.lease(self.required_extensions(assignment)) as session:
            await session.reset()
            outcome = await session.run(code, inputs=inputs)
        if outcome.fault is None:
            return SnippetRunSchema(stdout=outcome.stdout)
        return SnippetRunSchema(
            stdout=outcome.stdout,
            error=outcome.fault.traceback or outcome.fault.describe(),
            timed_out=outcome.fault.marker == "Timeout",
        )

    async def restart(self) -> List[Dict[str, object]]:
        return await self.sessions.restart()


__all__ = ["GradingEngine", "apply_late_penalty", "DEFAULT_LATE_MULTIPLIER"]
