"""Coverage ingest, read and clear operations over the cell store."""

import asyncio
import logging
from typing import Any

from app.config import Settings
from app.coverage.aggregator import aggregate
from app.coverage.cell import Cell, format_timestamp
from app.coverage.classifier import TIER_STYLES, classify, color_for, success_rate
from app.coverage.geohash import decode_bounds
from app.coverage.merge import (
    CELL_KEY_PREFIX,
    MergeCoordinator,
    MergeReport,
    bucket_from_key,
    cell_key,
)
from app.schemas.samples import (
    BoundsView,
    CellView,
    CoverageResponse,
    IngestResponse,
    LegendEntry,
    SourceView,
    normalize_samples,
)
from app.services.store import BudgetedStore, KeyValueStore

logger = logging.getLogger(__name__)


def cell_view(bucket: str, cell: Cell) -> CellView:
    """Render a cell for the map, deriving its tier from the merged totals."""
    south, west, north, east = decode_bounds(bucket)
    tier = classify(cell.received, cell.lost)
    return CellView(
        received=cell.received,
        lost=cell.lost,
        samples=cell.samples,
        sources={
            source_id: SourceView(
                display_name=info.display_name,
                signal_strength=info.signal_strength,
                signal_quality=info.signal_quality,
                last_seen=format_timestamp(info.last_seen),
            )
            for source_id, info in cell.sources.items()
        },
        first_seen=format_timestamp(cell.first_seen) if cell.first_seen else None,
        last_update=format_timestamp(cell.last_update) if cell.last_update else None,
        success_rate=success_rate(cell.received, cell.lost),
        tier=tier.value,
        color=color_for(tier),
        bounds=BoundsView(south=south, west=west, north=north, east=east),
    )


def legend() -> list[LegendEntry]:
    """Tier thresholds and colors, best to worst."""
    return [
        LegendEntry(
            tier=style.tier.value,
            label=style.label,
            color=style.color,
            min_rate=style.min_rate,
            max_rate=style.max_rate,
        )
        for style in TIER_STYLES
    ]


class CoverageService:
    """Request-scoped entry point for the coverage map."""

    def __init__(self, store: KeyValueStore, settings: Settings):
        self.store = store
        self.settings = settings

    def _coordinator(self) -> MergeCoordinator:
        budgeted = BudgetedStore(self.store, self.settings.max_store_ops_per_request)
        return MergeCoordinator(
            budgeted,
            seen_ids_cap=self.settings.seen_ids_cap,
            max_buckets=self.settings.max_buckets_per_request,
            concurrency=self.settings.merge_concurrency,
            cas_max_attempts=self.settings.cas_max_attempts,
            timeout=self.settings.merge_timeout_seconds,
        )

    async def ingest(self, samples: list[Any]) -> tuple[IngestResponse, MergeReport]:
        """Aggregate a batch and merge it into the store."""
        probes, rejected = normalize_samples(samples)
        aggregation = aggregate(probes, precision=self.settings.geohash_precision)
        report = await self._coordinator().merge(aggregation.deltas)

        # Keys the cells had already merged are duplicates, not accepted
        deferred_samples = len(report.deferred_keys)
        response = IngestResponse(
            success=report.failed == 0 and report.deferred == 0 and not deferred_samples,
            processed=len(samples),
            accepted=aggregation.accepted - report.duplicates - deferred_samples,
            malformed=rejected + aggregation.malformed,
            duplicates=aggregation.duplicates + report.duplicates,
            created=report.created,
            updated=report.updated,
            unchanged=report.unchanged,
            failed=report.failed,
            deferred=report.deferred,
            deferred_samples=deferred_samples,
            budget_exceeded=report.budget_exceeded,
            failed_buckets=report.failed_buckets,
            deferred_buckets=report.deferred_buckets,
            deferred_sample_ids=report.deferred_keys,
        )
        logger.info(
            f"Ingested {response.processed} samples into {len(aggregation.deltas)} cells: "
            f"{response.created} created, {response.updated} updated, "
            f"{response.unchanged} unchanged, {response.failed} failed, "
            f"{response.deferred} deferred ({response.malformed} malformed, "
            f"{response.duplicates} duplicates, {response.deferred_samples} samples deferred)"
        )
        return response, report

    async def list_cells(self, after: str | None = None, limit: int | None = None) -> CoverageResponse:
        """Return one page of cells ordered by geohash, starting after ``after``."""
        limit = limit or self.settings.default_page_size
        keys = await self.store.list_keys(CELL_KEY_PREFIX)
        if after:
            start = cell_key(after)
            keys = [key for key in keys if key > start]
        page, rest = keys[:limit], keys[limit:]

        semaphore = asyncio.Semaphore(self.settings.merge_concurrency)

        async def load(key: str) -> Cell | None:
            async with semaphore:
                stored = await self.store.get(key)
            if stored is None:
                return None
            try:
                return Cell.from_dict(stored.value)
            except (KeyError, TypeError, ValueError) as e:
                # Unreadable cells are left out of the page
                logger.error(f"Skipping unreadable cell {key}: {e}")
                return None

        cells = await asyncio.gather(*(load(key) for key in page))
        coverage = {
            bucket_from_key(key): cell_view(bucket_from_key(key), cell)
            for key, cell in zip(page, cells)
            if cell is not None
        }
        return CoverageResponse(
            coverage=coverage,
            count=len(coverage),
            next=bucket_from_key(page[-1]) if rest and page else None,
        )

    async def clear_all(self) -> int:
        """Delete every persisted cell. Returns the number removed."""
        keys = await self.store.list_keys(CELL_KEY_PREFIX)
        deleted = 0
        for key in keys:
            if await self.store.delete(key):
                deleted += 1
        logger.info(f"Cleared {deleted} coverage cells")
        return deleted
