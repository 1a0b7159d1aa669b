"""SQLite-backed blob store."""

import json
import sqlite3
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from loguru import logger

SCHEMA_VERSION = 1

_TABLES = (
    """CREATE TABLE IF NOT EXISTS blobs (
        name TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        written_at INTEGER NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS store_info (
        name TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )""",
)


def read_schema_version(conn: sqlite3.Connection) -> int | None:
    """Schema version recorded in the database, None for a fresh file."""
    try:
        row = conn.execute(
            "SELECT value FROM store_info WHERE name = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    return int(row[0]) if row else None


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the tables of a fresh database.

    Raises:
        ValueError: The database was written by a newer schema version.
    """
    version = read_schema_version(conn)
    if version is None:
        with conn:
            for statement in _TABLES:
                conn.execute(statement)
            conn.execute(
                "INSERT OR REPLACE INTO store_info (name, value) VALUES ('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )
        logger.debug("Created bookmark store schema v{}", SCHEMA_VERSION)
    elif version > SCHEMA_VERSION:
        msg = f"Store schema v{version} is newer than the supported v{SCHEMA_VERSION}"
        raise ValueError(msg)


class SqliteBlobStore:
    """Blob store keeping each value as a JSON document in one SQLite row."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        ensure_schema(conn)

    @classmethod
    def open(cls, path: str | Path) -> "SqliteBlobStore":
        """Open (creating if needed) the database file at path."""
        db_path = Path(path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Opening SQLite store {}", db_path)
        return cls(sqlite3.connect(str(db_path)))

    def get(self, key: str, default: Any = None) -> Any:
        row = self.conn.execute("SELECT payload FROM blobs WHERE name = ?", (key,)).fetchone()
        return default if row is None else json.loads(row[0])

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, Any]) -> None:
        """Write all values in one transaction."""
        now = int(time.time())
        rows = [(key, json.dumps(value, sort_keys=True), now) for key, value in values.items()]
        # The connection context commits, or rolls back if any write fails.
        with self.conn:
            self.conn.executemany(
                "INSERT OR REPLACE INTO blobs (name, payload, written_at) VALUES (?, ?, ?)",
                rows,
            )

    def close(self) -> None:
        self.conn.close()
