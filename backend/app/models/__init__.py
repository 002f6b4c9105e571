"""SQLAlchemy ORM models."""

from app.models.kv_entry import KVEntry

__all__ = [
    "KVEntry",
]
