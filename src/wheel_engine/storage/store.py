"""Pluggable key-value stores backing the Greeks cache.

Stores hold opaque string values. The caching policy (TTL, staleness) lives
in ``greeks.cache``; stores only persist bytes so the policy can be tested
against ``MemoryStore`` and run against DuckDB or a JSON file.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

import duckdb

from ..config import StorageConfig
from ..exceptions import CacheCorruptionError, StoreInitializationError
from ..utils import get_logger

logger = get_logger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal persistent mapping of string keys to string values."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def clear(self) -> None: ...


class MemoryStore:
    """Process-local store; nothing survives a restart."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore:
    """
    Single JSON document on disk, rewritten atomically on every change.

    The file is read lazily on first access. A file that exists but cannot
    be parsed raises ``CacheCorruptionError`` from that access; ``clear()``
    resets it.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreInitializationError(f"Cannot create directory for {self.path}: {e}") from e

        if self.path.exists() and not os.access(self.path, os.R_OK | os.W_OK):
            raise StoreInitializationError(f"Store file is not readable and writable: {self.path}")

        self._data: Optional[dict[str, str]] = None

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = {}
            return self._data

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorruptionError(f"Unreadable store file {self.path}: {e}") from e

        if not isinstance(raw, dict) or not all(isinstance(v, str) for v in raw.values()):
            raise CacheCorruptionError(f"Store file {self.path} does not hold a string mapping")

        self._data = {str(k): v for k, v in raw.items()}
        return self._data

    def _flush(self) -> None:
        data = self._data or {}
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._flush()

    def keys(self) -> list[str]:
        return sorted(self._load())

    def clear(self) -> None:
        self._data = {}
        self._flush()


# Messages DuckDB uses for a file that exists but cannot be read as a database
_CORRUPT_DB_MARKERS = ("not a valid duckdb database", "corrupt", "checksum", "serialization")


def _is_corrupt_database(error: duckdb.Error) -> bool:
    message = str(error).lower()
    return isinstance(error, duckdb.SerializationException) or any(
        marker in message for marker in _CORRUPT_DB_MARKERS
    )


class DuckDBStore:
    """
    Key-value table inside a DuckDB database file (``:memory:`` allowed).

    A file that DuckDB cannot read as a database is renamed to
    ``<name>.corrupt`` and replaced with an empty one; ``quarantined`` then
    holds the renamed path. Permission and lock failures still raise
    ``StoreInitializationError``.
    """

    TABLE = "kv_store"

    def __init__(self, path: Union[str, Path] = ":memory:"):
        self.path = str(path) if str(path) == ":memory:" else str(Path(path).expanduser())
        self.quarantined: Optional[Path] = None

        if self.path != ":memory:":
            try:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreInitializationError(f"Cannot open DuckDB store at {self.path}: {e}") from e

        try:
            self._conn = self._connect()
        except duckdb.Error as e:
            if self.path == ":memory:" or not _is_corrupt_database(e):
                raise StoreInitializationError(f"Cannot open DuckDB store at {self.path}: {e}") from e
            self._quarantine(e)
            try:
                self._conn = self._connect()
            except duckdb.Error as retry_error:
                raise StoreInitializationError(
                    f"Cannot open DuckDB store at {self.path}: {retry_error}"
                ) from retry_error

        logger.debug("DuckDB store opened", extra={"path": self.path})

    def _connect(self) -> duckdb.DuckDBPyConnection:
        conn = duckdb.connect(self.path)
        try:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.TABLE} (
                    key VARCHAR PRIMARY KEY,
                    value VARCHAR NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """
            )
        except duckdb.Error:
            conn.close()
            raise
        return conn

    def _quarantine(self, error: duckdb.Error) -> None:
        """Move an unreadable database (and its WAL) aside so a fresh one can be created."""
        source = Path(self.path)
        target = source.with_name(source.name + ".corrupt")
        try:
            source.replace(target)
            wal = source.with_name(source.name + ".wal")
            if wal.exists():
                wal.replace(target.with_name(target.name + ".wal"))
        except OSError as e:
            raise StoreInitializationError(
                f"Cannot move unreadable DuckDB store {self.path} aside: {e}"
            ) from e

        self.quarantined = target
        logger.warning(
            "DuckDB store unreadable, starting with an empty cache",
            extra={"path": self.path, "moved_to": str(target), "error": str(error)},
        )

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            f"SELECT value FROM {self.TABLE} WHERE key = ?", [key]
        ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            f"INSERT OR REPLACE INTO {self.TABLE} (key, value, updated_at) VALUES (?, ?, ?)",
            [key, value, datetime.now(timezone.utc).replace(tzinfo=None)],
        )

    def delete(self, key: str) -> None:
        self._conn.execute(f"DELETE FROM {self.TABLE} WHERE key = ?", [key])

    def keys(self) -> list[str]:
        rows = self._conn.execute(f"SELECT key FROM {self.TABLE} ORDER BY key").fetchall()
        return [row[0] for row in rows]

    def clear(self) -> None:
        self._conn.execute(f"DELETE FROM {self.TABLE}")

    def close(self) -> None:
        self._conn.close()


def open_store(config: StorageConfig) -> KeyValueStore:
    """
    Open the store selected by ``config``.

    Raises
    ------
    StoreInitializationError
        If the backing medium cannot be opened
    """
    if config.backend == "json":
        store: KeyValueStore = JsonFileStore(config.path)
    elif config.backend == "duckdb":
        store = DuckDBStore(config.path)
    else:
        store = MemoryStore()

    logger.info(
        "Greeks store opened",
        extra={"backend": config.backend, "path": str(config.path) if config.path else None},
    )
    return store
