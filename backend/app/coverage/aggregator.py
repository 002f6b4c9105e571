"""Fold a batch of probes into per-bucket deltas.

This stage is pure: it performs no I/O, so it can be retried freely and
finishes before any storage access begins.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from app.coverage.cell import CellDelta, Contribution, Outcome, Probe, SourceInfo, parse_timestamp
from app.coverage.errors import MalformedProbe
from app.coverage.geohash import DEFAULT_PRECISION, encode
from app.coverage.identity import identify

logger = logging.getLogger(__name__)

AlreadySeen = Callable[[str, str], bool]


@dataclass
class Aggregation:
    """Deltas produced from one batch plus per-probe bookkeeping."""

    deltas: dict[str, CellDelta] = field(default_factory=dict)
    accepted: int = 0
    malformed: int = 0
    duplicates: int = 0

    @property
    def processed(self) -> int:
        return self.accepted + self.malformed + self.duplicates


def locate(probe: Probe, now: datetime) -> tuple[float, float, datetime]:
    """Validate a probe's coordinates and timestamp.

    Raises MalformedProbe when the probe cannot be placed on the map.
    """
    lat, lon = probe.latitude, probe.longitude
    if lat is None or lon is None:
        raise MalformedProbe("missing coordinates")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise MalformedProbe("non-finite coordinates")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise MalformedProbe(f"coordinates out of range: {lat}, {lon}")

    if not probe.timestamp:
        return lat, lon, now
    try:
        timestamp = parse_timestamp(probe.timestamp)
    except ValueError as e:
        raise MalformedProbe(f"invalid timestamp {probe.timestamp!r}") from e
    # A cell's lastUpdate never lies in the future
    return lat, lon, min(timestamp, now)


def to_contribution(probe: Probe, key: str, timestamp: datetime) -> Contribution:
    """Build the contribution a probe makes to its cell."""
    outcome = probe.outcome
    source = None
    if outcome is Outcome.RECEIVED and probe.has_valid_source:
        source = SourceInfo(
            display_name=probe.source_name or probe.source_id,
            last_seen=timestamp,
            signal_strength=probe.signal_strength,
            signal_quality=probe.signal_quality,
        )
    return Contribution(
        key=key,
        outcome=outcome,
        timestamp=timestamp,
        source_id=probe.source_id if source is not None else None,
        source=source,
    )


def aggregate(
    probes: Iterable[Probe],
    already_seen: AlreadySeen | None = None,
    precision: int = DEFAULT_PRECISION,
    now: datetime | None = None,
) -> Aggregation:
    """Group probes by bucket, dropping malformed and duplicate submissions.

    A probe is a duplicate when ``already_seen(bucket, key)`` says so, or when
    the same key was already consumed for that bucket earlier in this batch.
    Probes are consumed in input order, so the first occurrence of a key wins.
    """
    now = now or datetime.now(UTC)
    result = Aggregation()
    consumed: dict[str, set[str]] = {}

    for probe in probes:
        try:
            lat, lon, timestamp = locate(probe, now)
        except MalformedProbe as e:
            logger.debug(f"Dropping probe: {e}")
            result.malformed += 1
            continue

        bucket = encode(lat, lon, precision)
        key = identify(probe)
        bucket_keys = consumed.setdefault(bucket, set())
        if key in bucket_keys or (already_seen is not None and already_seen(bucket, key)):
            result.duplicates += 1
            continue
        bucket_keys.add(key)

        delta = result.deltas.get(bucket)
        if delta is None:
            delta = result.deltas[bucket] = CellDelta(bucket=bucket)
        delta.add(to_contribution(probe, key, timestamp))
        result.accepted += 1

    return result
