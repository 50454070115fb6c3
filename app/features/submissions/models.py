import enum

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, UniqueConstraint
from sqlalchemy.sql import func

from app.db.base import Base


class SubmissionStatus(str, enum.Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    submitted = "submitted"


class AssignmentSubmission(Base):
    __tablename__ = "assignment_submissions"
    __table_args__ = (UniqueConstraint("user_id", "assignment_id", name="uq_assignment_submissions_user_assignment"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    assignment_id = Column(String(64), nullable=False, index=True)
    saved_answers = Column(JSON, nullable=False, default=dict)
    validation_status = Column(JSON, nullable=False, default=dict)
    # not_started is never stored; absence of a row means not started.
    status = Column(String(20), nullable=False, default=SubmissionStatus.in_progress.value)
    score = Column(Integer, nullable=True)
    raw_score = Column(Integer, nullable=True)
    max_score = Column(Integer, nullable=True)
    is_late = Column(Boolean, nullable=False, default=False)
    results = Column(JSON, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AssignmentSubmission(user_id={self.user_id}, assignment_id={self.assignment_id}, status={self.status})>"
