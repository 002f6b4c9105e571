"""Coverage aggregation engine.

Probes are bucketed by geohash, deduplicated, folded into per-cell deltas
and merged into persisted cells with time decay. Tiers are derived from the
merged totals on read.
"""

from app.coverage.aggregator import Aggregation, aggregate
from app.coverage.cell import Cell, CellDelta, Probe, SourceInfo
from app.coverage.classifier import Tier, classify
from app.coverage.decay import decay_factor
from app.coverage.geohash import decode_bounds, encode
from app.coverage.identity import identify

__all__ = [
    "Aggregation",
    "Cell",
    "CellDelta",
    "Probe",
    "SourceInfo",
    "Tier",
    "aggregate",
    "classify",
    "decay_factor",
    "decode_bounds",
    "encode",
    "identify",
]
