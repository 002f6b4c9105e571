"""Exceptions raised by the coverage aggregation engine."""


class CoverageError(Exception):
    """Base class for coverage engine errors."""


class MalformedProbe(CoverageError):
    """A probe cannot be placed on the map (missing or invalid coordinates/time)."""


class StorageError(CoverageError):
    """Base class for key-value store failures affecting a single bucket."""


class StorageUnavailable(StorageError):
    """A get/put/list/delete call against the store failed."""


class CorruptCell(StorageError):
    """A persisted cell could not be decoded."""


class WriteConflict(StorageError):
    """A conditional write kept losing to concurrent writers."""

    def __init__(self, key: str, attempts: int):
        super().__init__(f"Conditional write to {key} failed after {attempts} attempts")
        self.key = key
        self.attempts = attempts


class BudgetExceeded(CoverageError):
    """The per-request storage operation budget has been used up."""
