"""Expansion of recurring schedules into concrete occurrences."""

import calendar
from datetime import datetime, timedelta
from typing import Optional, Sequence

from services.booking_service.models import RecurrencePattern

# Upper bound on generated occurrences per recurring schedule
MAX_OCCURRENCES = 366


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last day for starts on the 29th-31st
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _weekly_starts(
    start: datetime, interval: int, until: datetime, days_of_week: Sequence[int]
):
    week_start = start - timedelta(days=start.weekday())
    days = sorted(set(days_of_week))
    while week_start <= until:
        for day in days:
            occurrence = week_start + timedelta(days=day)
            if start <= occurrence <= until:
                yield occurrence
        week_start += timedelta(weeks=interval)


def expand_occurrences(
    start: datetime,
    end: datetime,
    pattern: Optional[RecurrencePattern],
    interval: int = 1,
    until: Optional[datetime] = None,
    days_of_week: Optional[Sequence[int]] = None,
) -> list[tuple[datetime, datetime]]:
    """Return ``(start, end)`` pairs for every occurrence up to ``until``.

    Each occurrence keeps the duration of the first one. ``days_of_week``
    holds weekday numbers (0 = Monday) and only applies to weekly patterns.
    Without a pattern or an end date the first occurrence is returned alone.
    """
    if end < start:
        raise ValueError("end must not be before start")
    if interval < 1:
        raise ValueError("interval must be at least 1")

    duration = end - start
    if pattern is None or until is None:
        return [(start, end)]

    if pattern == RecurrencePattern.WEEKLY and days_of_week:
        if any(day < 0 or day > 6 for day in days_of_week):
            raise ValueError("days_of_week values must be between 0 and 6")
        starts = _weekly_starts(start, interval, until, days_of_week)
    else:
        starts = _simple_starts(start, pattern, interval, until)

    occurrences = []
    for occurrence in starts:
        occurrences.append((occurrence, occurrence + duration))
        if len(occurrences) >= MAX_OCCURRENCES:
            break
    return occurrences


def _simple_starts(
    start: datetime, pattern: RecurrencePattern, interval: int, until: datetime
):
    step = 0
    while True:
        if pattern == RecurrencePattern.DAILY:
            occurrence = start + timedelta(days=step * interval)
        elif pattern == RecurrencePattern.WEEKLY:
            occurrence = start + timedelta(weeks=step * interval)
        else:
            occurrence = _add_months(start, step * interval)
        if occurrence > until:
            return
        yield occurrence
        step += 1
