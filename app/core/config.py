from __future__ import annotations

import os
from datetime import date
from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv, find_dotenv

_env_path = find_dotenv(".env") or ".env"
load_dotenv(_env_path, override=False)

# Course day -> extension packages preloaded into the execution session.
_DAY_EXTENSIONS: Dict[int, List[str]] = {
    9: ["numpy", "pandas"],
    10: ["numpy", "pandas", "matplotlib"],
}


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_date(name: str) -> Optional[date]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


class Settings:
    """Central configuration (env driven)."""

    def __init__(self) -> None:
        # Database
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./grader.db")
        # App meta
        self.app_name: str = "Course Grader Backend"
        self.debug: bool = _env_bool("DEBUG", "false")
        # Deadlines
        self.course_start_date: Optional[date] = _env_date("COURSE_START_DATE")
        self.course_timezone: str = os.getenv("COURSE_TIMEZONE", "UTC")
        self.deadline_hour: int = int(os.getenv("DEADLINE_HOUR", "13"))
        # Scoring
        self.late_penalty_multiplier: float = float(os.getenv("LATE_PENALTY_MULTIPLIER", "0.6"))
        self.numeric_tolerance: float = float(os.getenv("NUMERIC_TOLERANCE", "0.01"))
        self.reveal_hidden_results: bool = _env_bool("REVEAL_HIDDEN_RESULTS", "true")
        # Submissions
        self.solution_delimiter: str = os.getenv("SOLUTION_DELIMITER", "# solution code below")
        # Execution sessions
        self.run_timeout_seconds: float = float(os.getenv("RUN_TIMEOUT_SECONDS", "5"))
        self.session_boot_timeout_seconds: float = float(os.getenv("SESSION_BOOT_TIMEOUT_SECONDS", "30"))
        self.session_pool_size: int = max(1, int(os.getenv("SESSION_POOL_SIZE", "1")))
        # CORS
        self.allow_origins: List[str] = [
            o.strip().rstrip("/")
            for o in os.getenv("ALLOW_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
            if o.strip()
        ]

    def required_extensions(self, day_index: int) -> List[str]:
        return list(_DAY_EXTENSIONS.get(int(day_index or 0), []))

    def get_database_url(self) -> str:
        return self.database_url


@lru_cache()
def get_settings() -> Settings:
    return Settings()
