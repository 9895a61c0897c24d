"""Persistence backends: whole-collection JSON documents on disk or in SQLite."""

import json
import logging
import os
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS collections (
    name TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT DEFAULT (datetime('now'))
);
"""


class StorageError(Exception):
    """Raised when a collection cannot be written."""


class JsonFileBackend:
    """One ``.<collection>.json`` file per collection inside ``data_dir``."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def path_for(self, collection: str) -> Path:
        return self.data_dir / f".{collection}.json"

    def load(self, collection: str) -> Any:
        path = self.path_for(collection)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Could not read %s, starting empty", path)
            return None

    def save(self, collection: str, data: Any) -> None:
        path = self.path_for(collection)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            logger.error("Failed to save %s: %s", collection, e)
            raise StorageError(f"Failed to save {collection}: {e}") from e


class SqliteBackend:
    """Collections stored as JSON text rows in a single SQLite database."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        with self.connect():
            pass

    @contextmanager
    def connect(self):
        """Open a short-lived connection; callers may run on any thread."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        with closing(conn):
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            yield conn

    def load(self, collection: str) -> Any:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT data FROM collections WHERE name = ?", (collection,)
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning("Collection %s is not valid JSON, starting empty", collection)
            return None

    def save(self, collection: str, data: Any) -> None:
        try:
            with self.connect() as conn:
                conn.execute(
                    """INSERT INTO collections (name, data) VALUES (?, ?)
                       ON CONFLICT(name) DO UPDATE
                       SET data = excluded.data, updated_at = datetime('now')""",
                    (collection, json.dumps(data)),
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error("Failed to save %s: %s", collection, e)
            raise StorageError(f"Failed to save {collection}: {e}") from e


def open_backend(data_dir: Path, storage: str = "json"):
    """Create the backend named by ``storage`` rooted at ``data_dir``."""
    if storage == "json":
        return JsonFileBackend(data_dir)
    if storage == "sqlite":
        return SqliteBackend(Path(data_dir) / "relay.db")
    raise ValueError(f"Unknown storage backend: {storage}")
