"""Storage surface for history, analytics, saved prompts and comments."""

from vectorsheet.storage.base import EVENT_TYPES, StorageSurface
from vectorsheet.storage.duckdb_store import DuckDBStorage, parse_mentions

__all__ = ["EVENT_TYPES", "DuckDBStorage", "StorageSurface", "parse_mentions"]
