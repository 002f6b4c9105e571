"""Merge batch deltas into persisted cells.

Each affected cell costs one read and one write. Cells are merged
concurrently with no ordering between them; within a cell the write is a
compare-and-swap on the version token from the read, retried on conflict.

If the store cannot do conditional writes, the write follows the read
immediately and a concurrent writer to the same cell can still overwrite
this merge's contribution. That undercount is accepted and logged rather
than prevented.

A request commits at most ``seen_ids_cap`` contributions to any one cell,
taking them in input order. The rest are reported in ``deferred_keys``.
Every committed key is then still inside the cell's seen window, so
replaying the same request is a no-op.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from app.coverage.cell import Cell, CellDelta, merge_source
from app.coverage.decay import decay_factor
from app.coverage.errors import (
    BudgetExceeded,
    CorruptCell,
    StorageError,
    StorageUnavailable,
    WriteConflict,
)

if TYPE_CHECKING:
    from app.services.store import KeyValueStore, StoredValue

logger = logging.getLogger(__name__)

CELL_KEY_PREFIX = "cell:"
DEFAULT_SEEN_IDS_CAP = 150


def cell_key(bucket: str) -> str:
    """Store key for a bucket's cell."""
    return f"{CELL_KEY_PREFIX}{bucket}"


def bucket_from_key(key: str) -> str:
    """Inverse of :func:`cell_key`."""
    return key.removeprefix(CELL_KEY_PREFIX)


def already_seen(existing: Cell | None, delta: CellDelta) -> int:
    """Count the delta's keys that the persisted cell has already merged."""
    if existing is None:
        return 0
    seen = set(existing.seen_probe_ids)
    return sum(1 for key in delta.keys if key in seen)


def merge_cell(
    existing: Cell | None,
    delta: CellDelta,
    now: datetime,
    seen_ids_cap: int = DEFAULT_SEEN_IDS_CAP,
) -> Cell | None:
    """Combine a persisted cell with new evidence.

    Contributions whose keys the cell has already seen are discarded first.
    Returns None when nothing new remains, meaning no write is needed. The
    stored totals are decayed by the cell's own age; new evidence is added
    at full weight.
    """
    base = existing or Cell()
    fresh = delta.without(frozenset(base.seen_probe_ids))
    if not fresh:
        return None

    factor = decay_factor(base.last_update, now) if existing else 1.0

    sources = dict(base.sources)
    for source_id, info in fresh.sources.items():
        merge_source(sources, source_id, info)

    last_updates = [ts for ts in (base.last_update, fresh.last_update) if ts is not None]
    first_seens = [ts for ts in (base.first_seen, fresh.first_seen) if ts is not None]

    return Cell(
        received=base.received * factor + fresh.received,
        lost=base.lost * factor + fresh.lost,
        samples=base.samples + fresh.samples,
        sources=sources,
        first_seen=min(first_seens) if first_seens else None,
        last_update=max(last_updates) if last_updates else None,
        seen_probe_ids=(base.seen_probe_ids + fresh.keys)[-seen_ids_cap:],
    )


class BucketStatus(str, enum.Enum):
    """Result of merging one bucket."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    DEFERRED = "deferred"


@dataclass
class MergeReport:
    """Per-request merge outcome."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed_buckets: list[str] = field(default_factory=list)
    deferred_buckets: list[str] = field(default_factory=list)
    deferred_keys: list[str] = field(default_factory=list)
    duplicates: int = 0  # contributions the cells had already seen
    unavailable: int = 0  # failures caused by StorageUnavailable
    budget_exceeded: bool = False

    @property
    def failed(self) -> int:
        return len(self.failed_buckets)

    @property
    def deferred(self) -> int:
        return len(self.deferred_buckets)

    @property
    def storage_outage(self) -> bool:
        """True when every bucket that reached the store failed to reach it."""
        succeeded = self.created + self.updated + self.unchanged
        return self.unavailable > 0 and self.unavailable == self.failed and succeeded == 0


class MergeCoordinator:
    """Apply cell deltas to a key-value store.

    Parameters
    ----------
    store
        Backend holding one JSON cell per bucket.
    seen_ids_cap
        Number of recent dedup keys kept per cell, and the most contributions
        committed to one cell per call. Extra contributions are reported in
        ``deferred_keys``.
    max_buckets
        Most buckets merged per call. Extra buckets are deferred, keeping the
        most recently updated ones, and reported in ``deferred_buckets``.
    concurrency
        Buckets merged in parallel.
    cas_max_attempts
        Read-merge-write attempts per bucket before reporting a conflict.
    timeout
        Seconds after which buckets that have not started are deferred.
    clock
        Source of "now" for decay.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        seen_ids_cap: int = DEFAULT_SEEN_IDS_CAP,
        max_buckets: int | None = None,
        concurrency: int = 8,
        cas_max_attempts: int = 3,
        timeout: float | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.store = store
        self.seen_ids_cap = seen_ids_cap
        self.max_buckets = max_buckets
        self.concurrency = concurrency
        self.cas_max_attempts = cas_max_attempts
        self.timeout = timeout
        self._clock = clock
        self._warned_blind_writes = False

    def select(self, deltas: dict[str, CellDelta]) -> tuple[dict[str, CellDelta], list[str]]:
        """Split deltas into those merged now and those deferred by the ceiling."""
        if self.max_buckets is None or len(deltas) <= self.max_buckets:
            return deltas, []

        def priority(item: tuple[str, CellDelta]) -> tuple[float, int, str]:
            bucket, delta = item
            newest = delta.last_update.timestamp() if delta.last_update else 0.0
            return -newest, -len(delta), bucket

        ranked = sorted(deltas.items(), key=priority)
        selected = dict(ranked[: self.max_buckets])
        deferred = sorted(bucket for bucket, _ in ranked[self.max_buckets :])
        return selected, deferred

    async def merge(self, deltas: dict[str, CellDelta]) -> MergeReport:
        """Merge every non-empty delta and report per-bucket outcomes."""
        now = self._clock()
        report = MergeReport()

        pending: dict[str, CellDelta] = {}
        for bucket, delta in deltas.items():
            if not delta:
                continue
            pending[bucket], extra = delta.split(self.seen_ids_cap)
            if extra:
                report.budget_exceeded = True
                report.deferred_keys.extend(extra)
                logger.warning(
                    f"Cell {bucket} received {len(delta)} contributions, over the limit of "
                    f"{self.seen_ids_cap} per request; deferring {len(extra)}"
                )

        selected, overflow = self.select(pending)
        if overflow:
            report.budget_exceeded = True
            report.deferred_buckets.extend(overflow)
            logger.warning(
                f"Batch touches {len(pending)} cells, over the limit of {self.max_buckets}; "
                f"deferring {len(overflow)}"
            )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout else None
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(
            bucket: str, delta: CellDelta
        ) -> tuple[BucketStatus, int, Exception | None]:
            async with semaphore:
                if deadline is not None and loop.time() >= deadline:
                    return BucketStatus.DEFERRED, 0, None
                try:
                    status, seen = await self._merge_bucket(bucket, delta, now)
                    return status, seen, None
                except BudgetExceeded as e:
                    return BucketStatus.DEFERRED, 0, e
                except StorageError as e:
                    return BucketStatus.FAILED, 0, e

        buckets = list(selected)
        results = await asyncio.gather(*(run(bucket, selected[bucket]) for bucket in buckets))

        timed_out = 0
        for bucket, (status, seen, error) in zip(buckets, results):
            report.duplicates += seen
            if status is BucketStatus.CREATED:
                report.created += 1
            elif status is BucketStatus.UPDATED:
                report.updated += 1
            elif status is BucketStatus.UNCHANGED:
                report.unchanged += 1
            elif status is BucketStatus.DEFERRED:
                report.deferred_buckets.append(bucket)
                if isinstance(error, BudgetExceeded):
                    report.budget_exceeded = True
                else:
                    timed_out += 1
            else:
                report.failed_buckets.append(bucket)
                if isinstance(error, StorageUnavailable):
                    report.unavailable += 1
                logger.error(f"Merge of cell {bucket} failed: {error}")

        if timed_out:
            logger.warning(f"Merge timeout reached; deferred {timed_out} cells not yet started")
        return report

    async def _merge_bucket(
        self, bucket: str, delta: CellDelta, now: datetime
    ) -> tuple[BucketStatus, int]:
        """Merge one delta. Returns the status and how many keys the cell had seen."""
        key = cell_key(bucket)
        for attempt in range(1, self.cas_max_attempts + 1):
            stored = await self.store.get(key)
            existing = self._decode(key, stored)
            seen = already_seen(existing, delta)
            cell = merge_cell(existing, delta, now, self.seen_ids_cap)
            if cell is None:
                return BucketStatus.UNCHANGED, seen
            status = BucketStatus.UPDATED if existing else BucketStatus.CREATED

            if not self.store.conditional_writes:
                self._warn_blind_writes()
                if not await self.store.put(key, cell.to_dict()):
                    raise StorageUnavailable(f"put {key} was rejected")
                return status, seen

            version = stored.version if stored else 0
            if await self.store.put(key, cell.to_dict(), if_version=version):
                return status, seen
            logger.debug(f"Version conflict on {key} (attempt {attempt}), re-reading")

        raise WriteConflict(key, self.cas_max_attempts)

    @staticmethod
    def _decode(key: str, stored: StoredValue | None) -> Cell | None:
        if stored is None:
            return None
        try:
            return Cell.from_dict(stored.value)
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptCell(f"{key}: {e}") from e

    def _warn_blind_writes(self) -> None:
        if not self._warned_blind_writes:
            self._warned_blind_writes = True
            logger.warning(
                "Store has no conditional writes; concurrent merges to the same cell "
                "may undercount"
            )
