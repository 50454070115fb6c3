from datetime import date, datetime, timedelta, timezone

import pytest

from app.features.assignments.deadlines import DeadlineCalculator, due_date, is_late

MONDAY = date(2024, 1, 1)


@pytest.mark.parametrize(
    "day_index, expected_day",
    [
        (1, date(2024, 1, 2)),   # Mon work, due Tue
        (4, date(2024, 1, 5)),   # Thu work, due Fri
        (5, date(2024, 1, 8)),   # Fri work, due after the weekend
        (6, date(2024, 1, 9)),   # week 2 Mon, due Tue
        (10, date(2024, 1, 15)), # week 2 Fri, due Mon
        (11, date(2024, 1, 16)),
    ],
)
def test_due_date_course_days(day_index, expected_day):
    due = due_date(MONDAY, day_index)
    assert due == datetime(expected_day.year, expected_day.month, expected_day.day, 13, tzinfo=timezone.utc)


def test_due_date_unknown_without_course_start():
    assert due_date(None, 3) is None


@pytest.mark.parametrize("day_index", [0, -1])
def test_due_date_unknown_for_non_positive_day(day_index):
    assert due_date(MONDAY, day_index) is None


def test_due_date_accepts_datetime_start():
    due = due_date(datetime(2024, 1, 1, 8, 30), 1)
    assert due.date() == date(2024, 1, 2)
    assert due.hour == 13


def test_is_late_boundary():
    due = due_date(MONDAY, 1)
    assert is_late(due, due) is False
    assert is_late(due, due + timedelta(seconds=1)) is True
    assert is_late(due, due - timedelta(hours=1)) is False


def test_unknown_due_date_is_never_late():
    assert is_late(None, datetime(2099, 1, 1, tzinfo=timezone.utc)) is False


def test_naive_now_uses_due_timezone():
    due = due_date(MONDAY, 1)
    assert is_late(due, datetime(2024, 1, 2, 13, 1)) is True


def test_calculator_uses_configured_zone_and_hour(settings):
    settings.course_timezone = "Africa/Johannesburg"
    settings.deadline_hour = 9
    calc = DeadlineCalculator(settings)
    due = calc.due_date(MONDAY, 1)
    assert due.hour == 9
    assert due.utcoffset() == timedelta(hours=2)
    # 08:00 UTC is 10:00 in Johannesburg.
    assert calc.is_late(due, datetime(2024, 1, 2, 8, 0, tzinfo=timezone.utc)) is True


def test_calculator_unknown_zone_falls_back_to_utc(settings):
    settings.course_timezone = "Not/AZone"
    due = DeadlineCalculator(settings).due_date(MONDAY, 1)
    assert due.utcoffset() == timedelta(0)
