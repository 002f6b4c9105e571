"""Reliability tiers and map colors derived from merged cell totals."""

import enum
from dataclasses import dataclass


class Tier(str, enum.Enum):
    """Discrete reliability classification of a cell."""

    NO_DATA = "NoData"
    VERY_RELIABLE = "VeryReliable"
    USUALLY_WORKS = "UsuallyWorks"
    SPOTTY = "Spotty"
    RARELY_WORKS = "RarelyWorks"
    DEAD_ZONE = "DeadZone"


@dataclass(frozen=True)
class TierStyle:
    """Presentation details for a tier."""

    tier: Tier
    label: str
    color: str
    min_rate: float | None  # inclusive lower bound; None for NoData
    max_rate: float | None  # exclusive upper bound, except 1.0 for the top tier


# Ordered from best to worst; the first tier whose lower bound is met wins.
TIER_STYLES: tuple[TierStyle, ...] = (
    TierStyle(Tier.VERY_RELIABLE, "Very reliable", "rgba(34, 139, 34, 0.6)", 0.8, 1.0),
    TierStyle(Tier.USUALLY_WORKS, "Usually works", "rgba(154, 205, 50, 0.6)", 0.5, 0.8),
    TierStyle(Tier.SPOTTY, "Spotty", "rgba(255, 215, 0, 0.6)", 0.3, 0.5),
    TierStyle(Tier.RARELY_WORKS, "Rarely works", "rgba(255, 140, 0, 0.6)", 0.1, 0.3),
    TierStyle(Tier.DEAD_ZONE, "Dead zone", "rgba(220, 20, 60, 0.7)", 0.0, 0.1),
    TierStyle(Tier.NO_DATA, "No data", "rgba(128, 128, 128, 0.4)", None, None),
)

STYLE_BY_TIER = {style.tier: style for style in TIER_STYLES}


def success_rate(received: float, lost: float) -> float | None:
    """Return received / (received + lost), or None when there is no evidence."""
    total = received + lost
    if total <= 0:
        return None
    return received / total


def classify(received: float, lost: float) -> Tier:
    """Map merged totals to a tier."""
    rate = success_rate(received, lost)
    if rate is None:
        return Tier.NO_DATA
    for style in TIER_STYLES:
        if style.min_rate is not None and rate >= style.min_rate:
            return style.tier
    return Tier.DEAD_ZONE


def color_for(tier: Tier) -> str:
    """Get the map color for a tier."""
    return STYLE_BY_TIER[tier].color
