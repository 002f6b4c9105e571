"""Probe, cell and delta types shared by the aggregation pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

UNKNOWN_SOURCE = "Unknown"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Naive timestamps are taken to be UTC. Raises ValueError when unparseable.
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way browsers emit ``Date.toISOString()``."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Outcome(str, enum.Enum):
    """How a single probe counts toward its cell."""

    RECEIVED = "received"
    LOST = "lost"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class Probe:
    """A normalized connectivity probe."""

    latitude: float | None
    longitude: float | None
    timestamp: str | None = None
    id: str | None = None
    source_id: str | None = None
    source_name: str | None = None
    ping_success: bool | None = None
    signal_strength: float | None = None
    signal_quality: float | None = None

    @property
    def has_valid_source(self) -> bool:
        return bool(self.source_id) and self.source_id != UNKNOWN_SOURCE

    @property
    def outcome(self) -> Outcome:
        """Classify the probe; success wins over any failure indication."""
        if self.ping_success is True or self.has_valid_source:
            return Outcome.RECEIVED
        if self.ping_success is False or self.source_id == UNKNOWN_SOURCE:
            return Outcome.LOST
        return Outcome.NEUTRAL


@dataclass
class SourceInfo:
    """Latest known details of one radio source heard inside a cell."""

    display_name: str
    last_seen: datetime
    signal_strength: float | None = None
    signal_quality: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "signalStrength": self.signal_strength,
            "signalQuality": self.signal_quality,
            "lastSeen": format_timestamp(self.last_seen),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceInfo:
        return cls(
            display_name=data.get("displayName", ""),
            last_seen=parse_timestamp(data["lastSeen"]),
            signal_strength=data.get("signalStrength"),
            signal_quality=data.get("signalQuality"),
        )


def merge_source(sources: dict[str, SourceInfo], source_id: str, info: SourceInfo) -> bool:
    """Store ``info`` unless an entry at least as new already exists.

    Returns True when ``sources`` was modified.
    """
    current = sources.get(source_id)
    if current is not None and current.last_seen >= info.last_seen:
        return False
    sources[source_id] = info
    return True


@dataclass(frozen=True)
class Contribution:
    """One deduplicated probe as it will be applied to a cell."""

    key: str
    outcome: Outcome
    timestamp: datetime
    source_id: str | None = None
    source: SourceInfo | None = None


@dataclass
class CellDelta:
    """New evidence for one bucket, built from a single batch."""

    bucket: str
    received: float = 0.0
    lost: float = 0.0
    samples: int = 0
    sources: dict[str, SourceInfo] = field(default_factory=dict)
    first_seen: datetime | None = None
    last_update: datetime | None = None
    contributions: dict[str, Contribution] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.contributions)

    @property
    def keys(self) -> list[str]:
        return list(self.contributions)

    def add(self, contribution: Contribution) -> bool:
        """Fold a contribution in. Returns False if its key is already present."""
        if contribution.key in self.contributions:
            return False
        self.contributions[contribution.key] = contribution

        if contribution.outcome is Outcome.RECEIVED:
            self.received += 1
        elif contribution.outcome is Outcome.LOST:
            self.lost += 1
        self.samples += 1

        if contribution.source_id and contribution.source is not None:
            merge_source(self.sources, contribution.source_id, contribution.source)

        ts = contribution.timestamp
        if self.last_update is None or ts > self.last_update:
            self.last_update = ts
        if self.first_seen is None or ts < self.first_seen:
            self.first_seen = ts
        return True

    def without(self, keys: set[str] | frozenset[str]) -> CellDelta:
        """Return a new delta rebuilt from the contributions not in ``keys``."""
        remaining = CellDelta(bucket=self.bucket)
        for key, contribution in self.contributions.items():
            if key not in keys:
                remaining.add(contribution)
        return remaining

    def split(self, limit: int) -> tuple[CellDelta, list[str]]:
        """Keep the first ``limit`` contributions in input order.

        Returns the trimmed delta and the keys that were left out.
        """
        if len(self) <= limit:
            return self, []
        keys = self.keys
        return self.without(frozenset(keys[limit:])), keys[limit:]


@dataclass
class Cell:
    """Persisted aggregate for one bucket."""

    received: float = 0.0
    lost: float = 0.0
    samples: int = 0
    sources: dict[str, SourceInfo] = field(default_factory=dict)
    first_seen: datetime | None = None
    last_update: datetime | None = None
    seen_probe_ids: list[str] = field(default_factory=list)

    @property
    def total(self) -> float:
        return self.received + self.lost

    def to_dict(self) -> dict[str, Any]:
        return {
            "received": self.received,
            "lost": self.lost,
            "samples": self.samples,
            "sources": {sid: info.to_dict() for sid, info in self.sources.items()},
            "firstSeen": format_timestamp(self.first_seen) if self.first_seen else None,
            "lastUpdate": format_timestamp(self.last_update) if self.last_update else None,
            "seenProbeIds": list(self.seen_probe_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cell:
        first_seen = data.get("firstSeen")
        last_update = data.get("lastUpdate")
        return cls(
            received=max(float(data.get("received", 0.0)), 0.0),
            lost=max(float(data.get("lost", 0.0)), 0.0),
            samples=int(data.get("samples", 0)),
            sources={
                sid: SourceInfo.from_dict(info)
                for sid, info in (data.get("sources") or {}).items()
            },
            first_seen=parse_timestamp(first_seen) if first_seen else None,
            last_update=parse_timestamp(last_update) if last_update else None,
            seen_probe_ids=list(data.get("seenProbeIds") or []),
        )
