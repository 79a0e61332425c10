"""Tests for relative duration parsing and age formatting."""

import datetime

import pytest

from ami_cleanup.duration import format_age, parse_duration
from ami_cleanup.errors import DurationError, InvalidUnit, InvalidValue


class TestParseDuration:

    @pytest.mark.parametrize("expression,expected", [
        ("30s", datetime.timedelta(seconds=30)),
        ("-30s", datetime.timedelta(seconds=-30)),
        ("15m", datetime.timedelta(minutes=15)),
        ("2h", datetime.timedelta(hours=2)),
        ("7d", datetime.timedelta(days=7)),
        ("2w", datetime.timedelta(weeks=2)),
        ("1M", datetime.timedelta(days=30)),
        ("1y", datetime.timedelta(days=365)),
    ])
    def test_units(self, expression, expected):
        assert parse_duration(expression) == expected

    def test_lowercase_m_is_minutes_uppercase_is_months(self):
        """m and M must never be confused"""
        assert parse_duration("1m") == datetime.timedelta(minutes=1)
        assert parse_duration("1M") == datetime.timedelta(days=30)

    def test_fractional_hours(self):
        expected = datetime.timedelta(hours=2, minutes=18)
        assert abs(parse_duration("2.3h") - expected) <= datetime.timedelta(seconds=1)
        assert abs(parse_duration("-2.3h") + expected) <= datetime.timedelta(seconds=1)

    def test_invalid_unit(self):
        with pytest.raises(InvalidUnit):
            parse_duration("10x")

    def test_invalid_value(self):
        with pytest.raises(InvalidValue):
            parse_duration("abc10s")

    def test_empty_expression(self):
        with pytest.raises(InvalidUnit):
            parse_duration("")

    @pytest.mark.parametrize("expression", ["100000000y", "-100000000y", "1e300s"])
    def test_out_of_range_value(self, expression):
        with pytest.raises(InvalidValue):
            parse_duration(expression)

    @pytest.mark.parametrize("expression", [" 7d", "7 d", "7d ", "\t7d"])
    def test_whitespace_is_rejected(self, expression):
        with pytest.raises(DurationError):
            parse_duration(expression)

    def test_unit_without_number(self):
        with pytest.raises(InvalidValue):
            parse_duration("d")

    def test_errors_are_value_errors(self):
        """Callers that only know about ValueError still catch parse failures"""
        with pytest.raises(ValueError):
            parse_duration("10x")
        assert issubclass(InvalidValue, DurationError)


class TestFormatAge:

    @pytest.mark.parametrize("delta,expected", [
        (datetime.timedelta(seconds=30), "30s"),
        (datetime.timedelta(seconds=90), "1m"),
        (datetime.timedelta(minutes=15), "15m"),
        (datetime.timedelta(hours=2), "2h"),
        (datetime.timedelta(seconds=3661), "1h"),
        (datetime.timedelta(days=3), "3d"),
        (datetime.timedelta(weeks=2), "2w"),
        (datetime.timedelta(days=45), "1M"),
        (datetime.timedelta(days=400), "1y"),
    ])
    def test_largest_unit(self, delta, expected):
        assert format_age(delta) == expected

    def test_truncates_instead_of_rounding(self):
        assert format_age(datetime.timedelta(minutes=59, seconds=59)) == "59m"
        assert format_age(datetime.timedelta(days=6, hours=23)) == "6d"

    def test_sub_second(self):
        assert format_age(datetime.timedelta(milliseconds=500)) == "0s"

    def test_format_then_parse_never_exceeds_original(self):
        delta = datetime.timedelta(days=10, hours=5)
        assert parse_duration(format_age(delta)) <= delta
