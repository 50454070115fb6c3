from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


class AssignmentRecord(Base):
    __tablename__ = "assignments"
    id = Column(String(64), primary_key=True)
    day_index = Column(Integer, nullable=False, default=0)
    kind = Column(String(20), nullable=False, default="homework")
    title = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    max_score = Column(Integer, nullable=False, default=0)
    questions = Column(JSON, nullable=False, default=list)
    is_locked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AssignmentRecord(id={self.id}, day_index={self.day_index}, kind={self.kind})>"


class AppSetting(Base):
    __tablename__ = "app_settings"
    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)

    def __repr__(self):
        return f"<AppSetting(key={self.key})>"
