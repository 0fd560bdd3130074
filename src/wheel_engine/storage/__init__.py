"""Persistent key-value stores."""

from .store import DuckDBStore, JsonFileStore, KeyValueStore, MemoryStore, open_store

__all__ = [
    "DuckDBStore",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "open_store",
]
