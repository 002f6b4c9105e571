"""Prometheus metrics endpoint."""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from app.config import Settings, get_settings
from app.coverage.cell import Cell
from app.coverage.classifier import Tier, classify
from app.coverage.merge import CELL_KEY_PREFIX
from app.services.store import KeyValueStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["metrics"])


async def collect_metrics(store: KeyValueStore, concurrency: int = 8) -> bytes:
    """Collect all metrics and return Prometheus format.

    Cells are read in parallel, at most ``concurrency`` at a time.
    """
    registry = CollectorRegistry()

    cells_total = Gauge(
        "coverage_cells_total",
        "Persisted coverage cells",
        registry=registry,
    )
    cells_by_tier = Gauge(
        "coverage_cells_by_tier",
        "Coverage cells per reliability tier",
        ["tier"],
        registry=registry,
    )
    evidence = Gauge(
        "coverage_evidence_total",
        "Decayed evidence mass across all cells",
        ["outcome"],
        registry=registry,
    )
    samples_total = Gauge(
        "coverage_samples_total",
        "Raw samples merged across all cells",
        registry=registry,
    )

    tier_counts = {tier: 0 for tier in Tier}
    received = lost = 0.0
    samples = 0

    semaphore = asyncio.Semaphore(concurrency)

    async def load(key: str) -> Cell | None:
        async with semaphore:
            stored = await store.get(key)
        if stored is None:
            return None
        try:
            return Cell.from_dict(stored.value)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable cell {key} in metrics: {e}")
            return None

    keys = await store.list_keys(CELL_KEY_PREFIX)
    cells = await asyncio.gather(*(load(key) for key in keys))
    for cell in cells:
        if cell is None:
            continue
        tier_counts[classify(cell.received, cell.lost)] += 1
        received += cell.received
        lost += cell.lost
        samples += cell.samples

    cells_total.set(sum(tier_counts.values()))
    for tier, count in tier_counts.items():
        cells_by_tier.labels(tier=tier.value).set(count)
    evidence.labels(outcome="received").set(received)
    evidence.labels(outcome="lost").set(lost)
    samples_total.set(samples)

    return generate_latest(registry)


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    metrics_data = await collect_metrics(store, settings.merge_concurrency)
    return PlainTextResponse(content=metrics_data, media_type=CONTENT_TYPE_LATEST)
