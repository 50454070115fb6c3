# Import all models here so Alembic can discover them
from app.db.base import Base

from app.features.assignments.models import AppSetting, AssignmentRecord
from app.features.submissions.models import AssignmentSubmission

__all__ = [
	"Base",
	"AppSetting",
	"AssignmentRecord",
	"AssignmentSubmission",
]
