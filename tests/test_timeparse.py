"""Tests for venuecrawl.timeparse module."""

from __future__ import annotations

from datetime import date

from venuecrawl.timeparse import (
    DAY_LABELS,
    expand_day_range,
    normalize_time,
    normalize_time_range,
    parse_day,
    parse_day_spec,
    to_minutes,
    weekday_label,
)


class TestNormalizeTime:
    def test_am(self):
        assert normalize_time("10am") == "10:00"

    def test_pm_with_minutes(self):
        assert normalize_time("2.30 p.m.") == "14:30"

    def test_twenty_four_hour(self):
        assert normalize_time("14:30") == "14:30"

    def test_noon_and_midnight(self):
        assert normalize_time("noon") == "12:00"
        assert normalize_time("midnight") == "00:00"

    def test_twelve_am(self):
        assert normalize_time("12am") == "00:00"

    def test_twelve_pm(self):
        assert normalize_time("12pm") == "12:00"

    def test_invalid(self):
        assert normalize_time("soon") is None
        assert normalize_time("25:00") is None
        assert normalize_time("") is None
        assert normalize_time(None) is None


class TestNormalizeTimeRange:
    def test_both_suffixes(self):
        assert normalize_time_range("10am", "5pm") == ("10:00", "17:00")

    def test_suffix_only_on_close(self):
        assert normalize_time_range("10", "5pm") == ("10:00", "17:00")

    def test_afternoon_range_shares_pm(self):
        assert normalize_time_range("1", "4pm") == ("13:00", "16:00")

    def test_bare_close_after_open(self):
        assert normalize_time_range("9:30", "5") == ("09:30", "17:00")

    def test_twenty_four_hour_pair(self):
        assert normalize_time_range("09:30", "17:30") == ("09:30", "17:30")

    def test_unparseable(self):
        assert normalize_time_range("late", "5pm") is None


class TestToMinutes:
    def test_values(self):
        assert to_minutes("00:00") == 0
        assert to_minutes("17:30") == 1050

    def test_malformed(self):
        assert to_minutes("") == 0
        assert to_minutes("ab:cd") == 0


class TestDays:
    def test_parse_day_variants(self):
        assert parse_day("Wednesdays") == "Wed"
        assert parse_day("tues") == "Tue"
        assert parse_day("Thurs.") == "Thu"
        assert parse_day("month") is None
        assert parse_day(None) is None

    def test_expand_range(self):
        assert expand_day_range("Mon", "Fri") == ["Mon", "Tue", "Wed", "Thu", "Fri"]

    def test_expand_range_wraps(self):
        assert expand_day_range("Sat", "Mon") == ["Sat", "Sun", "Mon"]

    def test_expand_single(self):
        assert expand_day_range("Sun", "Sun") == ["Sun"]

    def test_parse_day_spec_range(self):
        assert parse_day_spec("Mon–Fri") == ["Mon", "Tue", "Wed", "Thu", "Fri"]

    def test_parse_day_spec_list(self):
        assert parse_day_spec("Sat, Sun") == ["Sat", "Sun"]
        assert parse_day_spec("Saturday and Sunday") == ["Sat", "Sun"]

    def test_parse_day_spec_daily(self):
        assert parse_day_spec("Daily") == list(DAY_LABELS)

    def test_weekday_label(self):
        assert weekday_label(date(2026, 6, 1)) == "Mon"
        assert weekday_label(date(2026, 6, 7)) == "Sun"
