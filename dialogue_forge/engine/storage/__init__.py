"""Storage utilities."""

from .sqlite import SCHEMA_PATH, UPDATABLE_FIELDS, SQLiteGraphStore

__all__ = ["SQLiteGraphStore", "SCHEMA_PATH", "UPDATABLE_FIELDS"]
