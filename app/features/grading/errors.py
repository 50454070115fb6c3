"""Failure types shared by the execution session, grading engine and submission flow."""

from __future__ import annotations

from typing import Optional


class GradingError(Exception):
    """Base class for grading subsystem failures."""


class EngineBootstrapError(GradingError):
    """The execution session or one of its extensions failed to initialise.

    Fatal to the in-flight call; retryable by acquiring the session again.
    """

    def __init__(self, message: str, *, extension: Optional[str] = None) -> None:
        super().__init__(message)
        self.extension = extension


class RuntimeExecutionFault(GradingError):
    """Submitted code raised while running a single test case.

    Never raised out of the engine; carried on the run outcome instead.
    """

    marker = "Runtime Error"

    def __init__(self, message: str, *, exc_type: Optional[str] = None, traceback: Optional[str] = None) -> None:
        super().__init__(message)
        self.exc_type = exc_type
        self.traceback = traceback

    def describe(self) -> str:
        if self.exc_type:
            return f"{self.exc_type}: {self}"
        return str(self)


class RunTimeout(RuntimeExecutionFault):
    """A single run exceeded its wall-clock budget and was interrupted."""

    marker = "Timeout"

    def __init__(self, budget_seconds: float) -> None:
        super().__init__(f"execution exceeded {budget_seconds:g}s budget", exc_type="TimeoutError")
        self.budget_seconds = budget_seconds


class PersistenceConflict(GradingError):
    """A write lost the race against the record's current status."""

    def __init__(self, message: str = "submission_already_submitted", *, current_status: Optional[str] = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class SubmissionLockedError(GradingError):
    """Edits, pre-checks and runs are rejected once a record is Submitted."""

    def __init__(self, message: str = "submission_locked") -> None:
        super().__init__(message)


class InjectionAmbiguityWarning(UserWarning):
    """Declared setup variables did not match the shape of a test input."""


__all__ = [
    "GradingError",
    "EngineBootstrapError",
    "RuntimeExecutionFault",
    "RunTimeout",
    "PersistenceConflict",
    "SubmissionLockedError",
    "InjectionAmbiguityWarning",
]
