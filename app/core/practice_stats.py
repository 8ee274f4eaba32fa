"""Practice Statistics — pure date windows and aggregations for practice-session stats.

Invariants:
    - Dates are "YYYY-MM-DD" strings (same format as practice_sessions.date)
    - Weekly window = 7 days ending today (inclusive); monthly = every day of today's month
    - Every day in a window is present in the output, zero when no sessions were logged
    - Durations are whole seconds (floor of elapsed time)
"""

import calendar
import math
from datetime import date, datetime, timedelta

DATE_FORMAT = "%Y-%m-%d"


def format_day(day: date) -> str:
    return day.strftime(DATE_FORMAT)


def weekly_days(today: date) -> list[str]:
    start = today - timedelta(days=6)
    return [format_day(start + timedelta(days=i)) for i in range(7)]


def monthly_days(today: date) -> list[str]:
    _, days_in_month = calendar.monthrange(today.year, today.month)
    return [
        format_day(today.replace(day=d)) for d in range(1, days_in_month + 1)
    ]


def fill_daily_totals(days: list[str], totals: dict[str, int]) -> dict[str, int]:
    """Map each day in the window to its total, defaulting to 0."""
    return {day: int(totals.get(day) or 0) for day in days}


def elapsed_seconds(start: datetime, end: datetime) -> int:
    return max(0, math.floor((end - start).total_seconds()))


def seconds_to_hours(seconds: int | float) -> float:
    """Hours rounded to one decimal; halves round up (4500s -> 1.3)."""
    hours = (seconds or 0) / 3600
    return math.floor(hours * 10 + 0.5) / 10
