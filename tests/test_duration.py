"""Tests for duration parsing."""

from datetime import timedelta

import pytest

from collegemate import parse_duration


class TestParseDuration:
    """Tests for parse_duration function."""

    def test_milliseconds(self) -> None:
        assert parse_duration("250ms") == pytest.approx(0.25)
        assert parse_duration("0ms") == 0

    def test_seconds_minutes_hours_days(self) -> None:
        assert parse_duration("30s") == 30
        assert parse_duration("5m") == 300
        assert parse_duration("2h") == 7_200
        assert parse_duration("1d") == 86_400

    def test_fractional_values(self) -> None:
        assert parse_duration("1.5s") == pytest.approx(1.5)

    def test_numbers_are_seconds(self) -> None:
        assert parse_duration(10) == 10.0
        assert parse_duration(0.5) == 0.5

    def test_unitless_strings_are_seconds(self) -> None:
        assert parse_duration("30") == 30.0
        assert parse_duration(" 2.5 ") == 2.5

    def test_timedelta(self) -> None:
        assert parse_duration(timedelta(minutes=1)) == 60.0

    def test_invalid_format(self) -> None:
        for value in ("invalid", "10x", "s10", "", "-5", "1e3"):
            with pytest.raises(ValueError, match="Invalid duration"):
                parse_duration(value)

    def test_negative_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            parse_duration(-1)

    def test_bool_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_duration(True)
