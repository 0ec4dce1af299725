"""Tests for advance-time validation."""

from datetime import UTC, datetime, timedelta

import pytest

from ratwatch.watches.types import AdvanceTimeError
from ratwatch.watches.validation import validate_advance_time

NOW = datetime(2025, 1, 10, 15, 0, tzinfo=UTC)


class TestValidateAdvanceTime:
    """Tests for the allowed scheduling window."""

    def test_inside_window(self):
        validate_advance_time(NOW + timedelta(hours=2), 1, 1, now=NOW)

    def test_exact_bounds_are_allowed(self):
        validate_advance_time(NOW + timedelta(minutes=1), 1, 1, now=NOW)
        validate_advance_time(NOW + timedelta(days=1), 1, 1, now=NOW)

    def test_too_soon(self):
        with pytest.raises(AdvanceTimeError, match="at least 1 minute"):
            validate_advance_time(NOW + timedelta(seconds=30), 1, 1, now=NOW)

    def test_too_soon_plural(self):
        with pytest.raises(AdvanceTimeError, match="at least 5 minutes"):
            validate_advance_time(NOW + timedelta(minutes=2), 5, 1, now=NOW)

    def test_too_far(self):
        with pytest.raises(AdvanceTimeError, match="24 hours"):
            validate_advance_time(NOW + timedelta(days=1, seconds=1), 1, 1, now=NOW)

    def test_fractional_days(self):
        # max_advance_hours=6 is passed as 0.25 days
        validate_advance_time(NOW + timedelta(hours=6), 1, 0.25, now=NOW)
        with pytest.raises(AdvanceTimeError, match="6 hours"):
            validate_advance_time(NOW + timedelta(hours=7), 1, 0.25, now=NOW)

    def test_multi_day_limit_message(self):
        with pytest.raises(AdvanceTimeError, match="7 days"):
            validate_advance_time(NOW + timedelta(days=8), 1, 7, now=NOW)

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError):
            validate_advance_time(datetime(2025, 1, 10, 16, 0), 1, 1, now=NOW)
