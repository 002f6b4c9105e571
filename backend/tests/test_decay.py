"""Tests for time-decay weighting."""

from datetime import UTC, datetime, timedelta

import pytest

from app.coverage.decay import age_in_days, decay_factor

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class TestDecayFactor:
    """Tests for decay_factor()."""

    def test_same_instant_is_full_weight(self):
        """decay_factor(t, t) is exactly 1.0."""
        assert decay_factor(NOW, NOW) == 1.0

    @pytest.mark.parametrize(
        "days,expected",
        [
            (0, 1.0),
            (7, 1.0),
            (8, 0.85),
            (14, 0.85),
            (15, 0.7),
            (30, 0.7),
            (31, 0.5),
            (90, 0.5),
            (91, 0.2),
            (400, 0.2),
        ],
    )
    def test_steps(self, days, expected):
        """Each age band maps to its weight."""
        assert decay_factor(NOW - timedelta(days=days), NOW) == expected

    def test_partial_days_are_floored(self):
        """Seven days and 23 hours still counts as seven days."""
        assert decay_factor(NOW - timedelta(days=7, hours=23), NOW) == 1.0

    def test_monotonic_as_now_advances(self):
        """For a fixed last update, the factor never increases over time."""
        last_update = NOW
        factors = [decay_factor(last_update, NOW + timedelta(hours=h)) for h in range(0, 24 * 120, 7)]
        assert all(a >= b for a, b in zip(factors, factors[1:]))
        assert all(0 < f <= 1 for f in factors)

    def test_accepts_iso_string(self):
        """ISO-8601 strings are parsed, including a trailing Z."""
        assert decay_factor("2026-09-19T12:00:00.000Z", NOW) == 0.7

    def test_missing_last_update(self):
        """A cell with no update time is not decayed."""
        assert decay_factor(None, NOW) == 1.0

    def test_future_last_update(self):
        """A last update in the future is not decayed."""
        assert decay_factor(NOW + timedelta(days=3), NOW) == 1.0


class TestAgeInDays:
    """Tests for age_in_days()."""

    def test_whole_days(self):
        assert age_in_days(NOW - timedelta(days=3), NOW) == 3

    def test_negative_for_future(self):
        assert age_in_days(NOW + timedelta(hours=1), NOW) == -1
