"""Age-based down-weighting of accumulated cell evidence."""

from datetime import datetime, timedelta

from app.coverage.cell import parse_timestamp

# (minimum age in whole days, exclusive) -> weight; checked oldest first
DECAY_STEPS: tuple[tuple[int, float], ...] = (
    (90, 0.2),
    (30, 0.5),
    (14, 0.7),
    (7, 0.85),
)


def age_in_days(last_update: datetime, now: datetime) -> int:
    """Whole days elapsed between ``last_update`` and ``now`` (floored)."""
    return (now - last_update) // timedelta(days=1)


def decay_factor(last_update: datetime | str | None, now: datetime) -> float:
    """Weight to apply to a cell's stored totals before adding new evidence.

    Cells touched within the last week keep full weight. Cells with no
    update time, or one in the future, are not decayed.
    """
    if last_update is None:
        return 1.0
    if isinstance(last_update, str):
        last_update = parse_timestamp(last_update)

    age = age_in_days(last_update, now)
    for threshold, factor in DECAY_STEPS:
        if age > threshold:
            return factor
    return 1.0
