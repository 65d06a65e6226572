"""Errors raised by the thing cache services."""

from typing import Optional


class CacheError(Exception):
    """Base exception for the thing cache."""
    pass


class ClassificationError(CacheError):
    """Storage could not be read while classifying ids as fresh or stale."""
    pass


class PersistenceError(CacheError):
    """Storage unreachable (or rejected a write) during an upsert or a read."""
    pass


class UpsertValidationError(CacheError):
    """One record was rejected before reaching storage."""

    def __init__(self, thing_id: Optional[str], field: str, message: str):
        super().__init__(f"thing {thing_id!r}: {field} {message}")
        self.thing_id = thing_id
        self.field = field
        self.message = message
