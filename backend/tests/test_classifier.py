"""Tests for reliability tier classification."""

import pytest

from app.coverage.classifier import (
    STYLE_BY_TIER,
    TIER_STYLES,
    Tier,
    classify,
    color_for,
    success_rate,
)


class TestClassify:
    """Tests for classify()."""

    def test_no_data(self):
        """Zero evidence is NoData, never a zero-reliability tier."""
        assert classify(0, 0) is Tier.NO_DATA

    def test_top_boundary_inclusive(self):
        """A rate of exactly 0.8 is VeryReliable."""
        assert classify(8, 2) is Tier.VERY_RELIABLE

    def test_just_below_top(self):
        """A rate of 0.79 is UsuallyWorks."""
        assert classify(79, 21) is Tier.USUALLY_WORKS

    def test_perfect_rate(self):
        """A rate of 1.0 belongs to the top tier."""
        assert classify(5, 0) is Tier.VERY_RELIABLE

    @pytest.mark.parametrize(
        "received,lost,tier",
        [
            (5, 5, Tier.USUALLY_WORKS),
            (3, 7, Tier.SPOTTY),
            (49, 51, Tier.SPOTTY),
            (1, 9, Tier.RARELY_WORKS),
            (29, 71, Tier.RARELY_WORKS),
            (9, 91, Tier.DEAD_ZONE),
            (0, 5, Tier.DEAD_ZONE),
        ],
    )
    def test_lower_bounds_inclusive(self, received, lost, tier):
        """Each tier includes its lower bound and excludes its upper bound."""
        assert classify(received, lost) is tier

    def test_fractional_totals(self):
        """Decayed (fractional) totals classify by rate."""
        assert classify(0.7 * 10 + 1, 0.5) is Tier.VERY_RELIABLE
        assert classify(0.2, 0.2) is Tier.USUALLY_WORKS

    def test_crowd_scenarios(self):
        """Merged totals from several observers classify as one cell."""
        assert classify(10 + 8, 0 + 1) is Tier.VERY_RELIABLE
        assert classify(5 + 0, 0 + 3) is Tier.USUALLY_WORKS
        assert classify(0 + 1, 10 + 9) is Tier.DEAD_ZONE


class TestSuccessRate:
    """Tests for success_rate()."""

    def test_rate(self):
        assert success_rate(18, 1) == pytest.approx(0.947, abs=1e-3)

    def test_none_without_evidence(self):
        assert success_rate(0, 0) is None


class TestStyles:
    """Tests for tier presentation details."""

    def test_every_tier_has_a_style(self):
        """Every tier has exactly one style."""
        assert set(STYLE_BY_TIER) == set(Tier)
        assert len(TIER_STYLES) == len(Tier)

    def test_colors_are_distinct(self):
        """No two tiers render with the same color."""
        colors = [style.color for style in TIER_STYLES]
        assert len(set(colors)) == len(colors)

    def test_ranges_are_contiguous(self):
        """Rated tiers cover [0, 1] without gaps."""
        rated = [style for style in TIER_STYLES if style.min_rate is not None]
        assert rated[0].max_rate == 1.0
        assert rated[-1].min_rate == 0.0
        for upper, lower in zip(rated, rated[1:]):
            assert lower.max_rate == upper.min_rate

    def test_color_for(self):
        assert color_for(Tier.NO_DATA) == STYLE_BY_TIER[Tier.NO_DATA].color
