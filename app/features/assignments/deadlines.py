"""Due-date arithmetic for course-day indexed assignments.

Course days count weekdays only: day 1 is the first weekday of the course
week, day 5 the last, day 6 the first weekday of the following week. Work
is due the next course morning at ``deadline_hour``; work set on the last
weekday is due after the weekend.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import Settings, get_settings

COURSE_DAYS_PER_WEEK = 5
DEFAULT_DEADLINE_HOUR = 13


def _resolve_tz(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return timezone.utc


def due_date(
    course_start: Union[date, datetime, None],
    day_index: int,
    *,
    tz: tzinfo = timezone.utc,
    hour: int = DEFAULT_DEADLINE_HOUR,
) -> Optional[datetime]:
    if course_start is None or day_index is None or int(day_index) <= 0:
        return None
    adjusted = int(day_index) - 1
    weeks_elapsed, day_of_week = divmod(adjusted, COURSE_DAYS_PER_WEEK)
    buffer_days = 3 if day_of_week == COURSE_DAYS_PER_WEEK - 1 else 1
    start_day = course_start.date() if isinstance(course_start, datetime) else course_start
    due_day = start_day + timedelta(days=weeks_elapsed * 7 + day_of_week + buffer_days)
    return datetime.combine(due_day, time(hour=hour), tzinfo=tz)


def is_late(due: Optional[datetime], now: datetime) -> bool:
    if due is None:
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=due.tzinfo)
    return now > due


class DeadlineCalculator:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self.tz = _resolve_tz(settings.course_timezone)
        self.hour = settings.deadline_hour

    def due_date(self, course_start: Union[date, datetime, None], day_index: int) -> Optional[datetime]:
        return due_date(course_start, day_index, tz=self.tz, hour=self.hour)

    def is_late(self, due: Optional[datetime], now: datetime) -> bool:
        return is_late(due, now)


__all__ = ["DeadlineCalculator", "due_date", "is_late", "COURSE_DAYS_PER_WEEK"]
