"""Expansion of recurring booking patterns into concrete occurrences.

Everything here is pure: no database, no clock. A pattern is turned into a
fully materialised, date-ordered list that the booking service then checks
occurrence by occurrence.
"""
from __future__ import annotations

import calendar
from datetime import date, time, timedelta
from typing import Iterator, List, NamedTuple, Optional

from dateutil.relativedelta import relativedelta

from common.errors import ValidationError
from common.schemas import Frequency, RecurringPattern

MAX_OCCURRENCES = 366


class Occurrence(NamedTuple):
    booking_date: date
    start_time: time
    end_time: time


def _shift(current: date, days: int = 0, months: int = 0) -> Optional[date]:
    """Step forward, or None once the step leaves the representable calendar."""
    try:
        return current + (relativedelta(months=months) if months else timedelta(days=days))
    except (OverflowError, ValueError):
        return None


def _daily(pattern: RecurringPattern, base_date: date) -> Iterator[date]:
    current: Optional[date] = base_date
    while current is not None and current <= pattern.end_date:
        yield current
        current = _shift(current, days=pattern.interval)


def _weekly(pattern: RecurringPattern, base_date: date) -> Iterator[date]:
    if not pattern.days_of_week:
        current: Optional[date] = base_date
        while current is not None and current <= pattern.end_date:
            yield current
            current = _shift(current, days=7 * pattern.interval)
        return

    offsets = sorted({day.weekday_number for day in pattern.days_of_week})
    week_start: Optional[date] = base_date - timedelta(days=base_date.weekday())
    while week_start is not None and week_start <= pattern.end_date:
        for offset in offsets:
            current = _shift(week_start, days=offset)
            if current is None or current > pattern.end_date:
                return
            if current >= base_date:
                yield current
        week_start = _shift(week_start, days=7 * pattern.interval)


def _monthly(pattern: RecurringPattern, base_date: date) -> Iterator[date]:
    first_of_month = base_date.replace(day=1)
    step = 0
    while True:
        month = _shift(first_of_month, months=step) if step else first_of_month
        if month is None or month > pattern.end_date:
            return
        # Months without the base day (e.g. Feb 30) are skipped, not clamped.
        if base_date.day <= calendar.monthrange(month.year, month.month)[1]:
            current = month.replace(day=base_date.day)
            if current > pattern.end_date:
                return
            yield current
        step += pattern.interval


_GENERATORS = {
    Frequency.DAILY: _daily,
    Frequency.WEEKLY: _weekly,
    Frequency.MONTHLY: _monthly,
}


def expand(
    pattern: Optional[RecurringPattern],
    base_date: date,
    start_time: time,
    end_time: time,
    max_occurrences: int = MAX_OCCURRENCES,
) -> List[Occurrence]:
    """Return every occurrence of ``pattern`` starting at ``base_date``.

    A missing pattern yields the single base occurrence. Generation stops at
    ``pattern.end_date`` or after ``max_occurrences`` items, whichever comes
    first; callers can compare the result length to the cap to detect
    truncation.
    """

    if start_time >= end_time:
        raise ValidationError("start_time must be before end_time")
    if pattern is None:
        return [Occurrence(base_date, start_time, end_time)]
    if pattern.interval < 1:
        raise ValidationError("Recurrence interval must be a positive integer")
    if pattern.end_date < base_date:
        raise ValidationError("Recurrence end_date must not be before the booking date")
    if pattern.days_of_week and pattern.frequency != Frequency.WEEKLY:
        raise ValidationError("days_of_week is only valid for weekly patterns")
    if max_occurrences < 1:
        raise ValidationError("max_occurrences must be positive")

    occurrences: List[Occurrence] = []
    for current in _GENERATORS[pattern.frequency](pattern, base_date):
        occurrences.append(Occurrence(current, start_time, end_time))
        if len(occurrences) >= max_occurrences:
            break
    return occurrences
