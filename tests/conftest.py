import sys
import os
from datetime import date, datetime, timezone

# Ensure repo root on sys.path for imports like `app...`
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db.base import Base
import app.db.models  # noqa: F401
from app.features.assignments.repository import AssignmentsRepository
from app.features.assignments.schemas import AssignmentSchema
from app.features.execution.session import SessionManager
from app.features.grading.engine import GradingEngine
from app.features.submissions.repository import SubmissionsRepository
from app.features.submissions.service import AssignmentGradingService

# Monday; day 1 is due Tuesday 13:00.
COURSE_START = date(2024, 1, 1)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    s = Settings()
    s.course_start_date = None
    s.course_timezone = "UTC"
    s.deadline_hour = 13
    s.late_penalty_multiplier = 0.6
    s.numeric_tolerance = 0.01
    s.reveal_hidden_results = True
    s.solution_delimiter = "# solution code below"
    s.run_timeout_seconds = 3.0
    s.session_boot_timeout_seconds = 60.0
    s.session_pool_size = 1
    return s


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def assignments_repo(session_factory, settings):
    return AssignmentsRepository(session_factory, settings)


@pytest.fixture
def submissions_repo(session_factory):
    return SubmissionsRepository(session_factory)


@pytest.fixture
def session_manager(settings):
    manager = SessionManager(settings)
    yield manager
    manager.close()


@pytest.fixture
def engine(session_manager, settings):
    return GradingEngine(session_manager, settings)


@pytest.fixture
def clock():
    # Well before the day-1 deadline.
    return FixedClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(settings, engine, assignments_repo, submissions_repo, clock):
    return AssignmentGradingService(
        settings=settings,
        engine=engine,
        assignments=assignments_repo,
        submissions=submissions_repo,
        clock=clock,
    )


def make_assignment(**overrides) -> AssignmentSchema:
    payload = {
        "id": "day1-homework",
        "day_index": 1,
        "type": "homework",
        "title": "Day 1",
        "max_score": 30,
        "questions": [
            {"id": "intro", "type": "markdown", "content": "Read me"},
            {
                "id": "add",
                "type": "code",
                "content": "Print the sum of a and b",
                "points": 20,
                "starter_code": "a = 1\nb = 2\n# solution code below\n",
                "test_cases": [
                    {"input": "5, 7", "expected": "12"},
                    {"input": "1, 1", "expected": "2", "visible": False},
                ],
            },
            {
                "id": "hello",
                "type": "code",
                "content": "Print hello",
                "points": 10,
                "test_cases": [{"input": "", "expected": "hello"}],
            },
        ],
    }
    payload.update(overrides)
    return AssignmentSchema(**payload)


@pytest.fixture
def assignment():
    return make_assignment()
