"""Schemas for probe ingestion and coverage reads."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.coverage.cell import Probe


class ProbeIn(BaseModel):
    """A probe as submitted by a client.

    Clients disagree on field names (``lat``/``latitude``, ``nodeId``/
    ``sourceId``, ``rssi``/``signalStrength``...). All accepted spellings
    are resolved here so the rest of the pipeline only sees :class:`Probe`.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    latitude: float | None = Field(
        default=None, validation_alias=AliasChoices("latitude", "lat")
    )
    longitude: float | None = Field(
        default=None, validation_alias=AliasChoices("longitude", "lng", "lon")
    )
    timestamp: str | None = None
    source_id: str | None = Field(
        default=None, validation_alias=AliasChoices("sourceId", "source_id", "nodeId")
    )
    source_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("sourceName", "source_name", "repeaterName"),
    )
    ping_success: bool | None = Field(
        default=None, validation_alias=AliasChoices("pingSuccess", "ping_success")
    )
    signal_strength: float | None = Field(
        default=None,
        validation_alias=AliasChoices("signalStrength", "signal_strength", "rssi"),
    )
    signal_quality: float | None = Field(
        default=None,
        validation_alias=AliasChoices("signalQuality", "signal_quality", "snr"),
    )

    @field_validator("id", "source_id", mode="before")
    @classmethod
    def stringify_identifier(cls, v: Any) -> Any:
        """Accept numeric identifiers; blank strings count as absent."""
        if isinstance(v, bool):
            return v
        if isinstance(v, int | float):
            return str(v)
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_probe(self) -> Probe:
        """Convert to the canonical probe shape."""
        return Probe(
            id=self.id,
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self.timestamp,
            source_id=self.source_id,
            source_name=self.source_name,
            ping_success=self.ping_success,
            signal_strength=self.signal_strength,
            signal_quality=self.signal_quality,
        )


def normalize_samples(samples: list[Any]) -> tuple[list[Probe], int]:
    """Validate raw sample dicts. Returns the probes and the number rejected."""
    probes: list[Probe] = []
    rejected = 0
    for raw in samples:
        try:
            probes.append(ProbeIn.model_validate(raw).to_probe())
        except ValidationError:
            rejected += 1
    return probes, rejected


class IngestRequest(BaseModel):
    """Request body for submitting a batch of probes."""

    samples: list[Any] = Field(default_factory=list)


class IngestResponse(BaseModel):
    """Summary of an ingest request."""

    success: bool
    processed: int
    accepted: int
    malformed: int
    duplicates: int
    created: int
    updated: int
    unchanged: int
    failed: int
    deferred: int
    deferred_samples: int = 0
    budget_exceeded: bool = False
    failed_buckets: list[str] = Field(default_factory=list)
    deferred_buckets: list[str] = Field(default_factory=list)
    deferred_sample_ids: list[str] = Field(default_factory=list)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BoundsView(_CamelModel):
    """Rectangle covered by a cell."""

    south: float
    west: float
    north: float
    east: float


class SourceView(_CamelModel):
    """A radio source heard in a cell."""

    display_name: str
    signal_strength: float | None
    signal_quality: float | None
    last_seen: str


class CellView(_CamelModel):
    """A persisted cell with its derived reliability tier."""

    received: float
    lost: float
    samples: int
    sources: dict[str, SourceView]
    first_seen: str | None
    last_update: str | None
    success_rate: float | None
    tier: str
    color: str
    bounds: BoundsView


class CoverageResponse(BaseModel):
    """A page of coverage cells keyed by geohash."""

    coverage: dict[str, CellView]
    count: int
    next: str | None = None


class ClearResponse(BaseModel):
    """Response for the clear-all operation."""

    success: bool
    message: str
    deleted: int


class LegendEntry(BaseModel):
    """One tier of the map legend."""

    tier: str
    label: str
    color: str
    min_rate: float | None
    max_rate: float | None
