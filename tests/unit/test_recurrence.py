"""Unit tests for recurring pattern expansion."""
from datetime import date, time

import pytest

from common.errors import ValidationError
from common.schemas import Frequency, RecurringPattern
from scheduling.recurrence import MAX_OCCURRENCES, Occurrence, expand

START, END = time(9, 0), time(10, 0)


def _dates(pattern, base):
    return [occurrence.booking_date for occurrence in expand(pattern, base, START, END)]


class TestExpand:
    """Test the pure expansion function."""

    def test_no_pattern_yields_base_occurrence(self):
        assert expand(None, date(2025, 1, 6), START, END) == [Occurrence(date(2025, 1, 6), START, END)]

    def test_weekly_selected_days(self):
        """Mondays and Wednesdays through January 2025 give eight meetings."""
        pattern = RecurringPattern(frequency=Frequency.WEEKLY, days_of_week=["MON", "WED"], end_date=date(2025, 1, 31))

        dates = _dates(pattern, date(2025, 1, 6))

        assert len(dates) == 8
        assert dates[:3] == [date(2025, 1, 6), date(2025, 1, 8), date(2025, 1, 13)]
        assert dates[-1] == date(2025, 1, 29)

    def test_weekly_skips_days_before_base(self):
        pattern = RecurringPattern(frequency=Frequency.WEEKLY, days_of_week=["MON", "FRI"], end_date=date(2025, 1, 17))

        # Base is a Wednesday: Monday of the same week is skipped.
        assert _dates(pattern, date(2025, 1, 8)) == [date(2025, 1, 10), date(2025, 1, 13), date(2025, 1, 17)]

    def test_weekly_interval_counts_weeks_from_base_week(self):
        pattern = RecurringPattern(
            frequency=Frequency.WEEKLY, interval=2, days_of_week=["TUE"], end_date=date(2025, 2, 28)
        )

        assert _dates(pattern, date(2025, 1, 6)) == [
            date(2025, 1, 7),
            date(2025, 1, 21),
            date(2025, 2, 4),
            date(2025, 2, 18),
        ]

    def test_weekly_without_days_repeats_base_weekday(self):
        pattern = RecurringPattern(frequency=Frequency.WEEKLY, end_date=date(2025, 1, 31))

        assert _dates(pattern, date(2025, 1, 9)) == [
            date(2025, 1, 9),
            date(2025, 1, 16),
            date(2025, 1, 23),
            date(2025, 1, 30),
        ]

    def test_daily_with_interval(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, interval=3, end_date=date(2025, 1, 10))

        assert _dates(pattern, date(2025, 1, 1)) == [
            date(2025, 1, 1),
            date(2025, 1, 4),
            date(2025, 1, 7),
            date(2025, 1, 10),
        ]

    def test_monthly_skips_months_without_the_day(self):
        pattern = RecurringPattern(frequency=Frequency.MONTHLY, end_date=date(2025, 6, 30))

        assert _dates(pattern, date(2025, 1, 30)) == [
            date(2025, 1, 30),
            date(2025, 3, 30),
            date(2025, 4, 30),
            date(2025, 5, 30),
            date(2025, 6, 30),
        ]

    def test_monthly_with_interval(self):
        pattern = RecurringPattern(frequency=Frequency.MONTHLY, interval=2, end_date=date(2025, 12, 31))

        assert _dates(pattern, date(2025, 1, 15)) == [date(2025, m, 15) for m in (1, 3, 5, 7, 9, 11)]

    def test_end_date_is_inclusive(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, end_date=date(2025, 1, 2))

        assert _dates(pattern, date(2025, 1, 1)) == [date(2025, 1, 1), date(2025, 1, 2)]

    def test_occurrences_keep_times(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, end_date=date(2025, 1, 3))

        for occurrence in expand(pattern, date(2025, 1, 1), time(14, 30), time(15, 0)):
            assert (occurrence.start_time, occurrence.end_time) == (time(14, 30), time(15, 0))

    def test_result_is_sorted_and_unique(self):
        pattern = RecurringPattern(
            frequency=Frequency.WEEKLY, days_of_week=["FRI", "MON", "MON"], end_date=date(2025, 3, 31)
        )

        dates = _dates(pattern, date(2025, 1, 1))

        assert dates == sorted(set(dates))


class TestLimits:
    def test_cap_truncates(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, end_date=date(2030, 1, 1))

        occurrences = expand(pattern, date(2025, 1, 1), START, END)

        assert len(occurrences) == MAX_OCCURRENCES
        assert occurrences[-1].booking_date == date(2026, 1, 1)

    def test_custom_cap(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, end_date=date(2025, 12, 31))

        assert len(expand(pattern, date(2025, 1, 1), START, END, max_occurrences=10)) == 10

    def test_end_before_base_rejected(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, end_date=date(2024, 12, 31))

        with pytest.raises(ValidationError):
            expand(pattern, date(2025, 1, 1), START, END)

    def test_inverted_times_rejected(self):
        with pytest.raises(ValidationError):
            expand(None, date(2025, 1, 1), END, START)


class TestEndOfCalendar:
    """Huge intervals or an open-ended series stop at the last representable date."""

    @pytest.mark.parametrize(
        "frequency,interval",
        [(Frequency.DAILY, 3_000_000), (Frequency.WEEKLY, 500_000), (Frequency.MONTHLY, 100_000)],
    )
    def test_huge_interval_yields_only_the_base(self, frequency, interval):
        pattern = RecurringPattern(frequency=frequency, interval=interval, end_date=date.max)

        assert _dates(pattern, date(2026, 11, 2)) == [date(2026, 11, 2)]

    def test_interval_beyond_timedelta_range(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, interval=10**12, end_date=date.max)

        assert _dates(pattern, date(2026, 11, 2)) == [date(2026, 11, 2)]

    def test_selected_days_in_the_last_week(self):
        """9999-12-31 is a Friday; the Saturday and Sunday of that week do not exist."""
        pattern = RecurringPattern(frequency=Frequency.WEEKLY, days_of_week=["FRI", "SUN"], end_date=date.max)

        assert _dates(pattern, date(9999, 12, 20)) == [date(9999, 12, 24), date(9999, 12, 26), date(9999, 12, 31)]

    def test_daily_runs_into_date_max(self):
        pattern = RecurringPattern(frequency=Frequency.DAILY, end_date=date.max)

        assert _dates(pattern, date(9999, 12, 30)) == [date(9999, 12, 30), date(9999, 12, 31)]

    def test_monthly_runs_into_the_last_month(self):
        pattern = RecurringPattern(frequency=Frequency.MONTHLY, end_date=date.max)

        assert _dates(pattern, date(9999, 11, 15)) == [date(9999, 11, 15), date(9999, 12, 15)]
