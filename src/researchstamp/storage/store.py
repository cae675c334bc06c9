"""
Durable key-value stores for researchstamp.

The registry cache persists its whole state as one blob per key, so any
medium offering load(key) and save(key, blob) will do. Three are provided:

    - MemoryStore: a dict, for tests and throwaway sessions
    - JsonFileStore: one file per key inside a directory
    - SqliteStore: SQLite with WAL mode, read-only access supported

Every medium failure is raised as TransportError so callers handle one
exception type whatever the backend.
"""

import abc
import logging
import os
import re
import sqlite3
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from researchstamp.core.errors import TransportError
from researchstamp.storage.schema import (
    SCHEMA_VERSION,
    CREATE_TABLES_SQL,
    INDEXES_SQL,
    get_schema_hash,
)

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def _validate_key(key: str) -> None:
    if not isinstance(key, str) or not _KEY_PATTERN.match(key):
        raise ValueError(f"invalid storage key: {key!r}")


class KeyValueStore(abc.ABC):
    """
    Durable storage collaborator.

    load() returns None when nothing is stored under the key. Both methods
    raise TransportError when the medium itself fails.
    """

    @abc.abstractmethod
    def load(self, key: str) -> Optional[str]:
        """Return the blob stored under key, or None."""

    @abc.abstractmethod
    def save(self, key: str, blob: str) -> None:
        """Store blob under key, replacing any previous value."""

    def close(self) -> None:
        """Release resources held by the store."""

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class MemoryStore(KeyValueStore):
    """In-process store backed by a dict."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        _validate_key(key)
        return self._data.get(key)

    def save(self, key: str, blob: str) -> None:
        _validate_key(key)
        if not isinstance(blob, str):
            raise TypeError(f"Expected str blob, got {type(blob).__name__}")
        self._data[key] = blob

    def keys(self) -> List[str]:
        return sorted(self._data)


class JsonFileStore(KeyValueStore):
    """
    Directory-backed store writing <key>.json files.

    Writes go to a temporary file that is renamed over the target, so a
    crash mid-write leaves the previous blob intact.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self._dir = Path(directory)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransportError(f"cannot create store directory {self._dir}: {e}") from e

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        _validate_key(key)
        return self._dir / f"{key}.json"

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise TransportError(f"cannot read {path}: {e}") from e

    def save(self, key: str, blob: str) -> None:
        path = self._path(key)
        try:
            fd, tmp = tempfile.mkstemp(dir=str(self._dir), prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(blob)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise
        except OSError as e:
            raise TransportError(f"cannot write {path}: {e}") from e


class SqliteStore(KeyValueStore):
    """
    SQLite-backed key-value store.

    The database uses:
        - WAL mode for crash safety and concurrent reads
        - Parameterized queries for every statement
        - One transaction per save

    Attributes:
        path: Path to the database file.
        read_only: Whether the database is opened in read-only mode.

    Example:
        >>> with SqliteStore("./researchstamp.db") as store:
        ...     store.save("registry", blob)
        ...     store.load("registry")
    """

    def __init__(
        self,
        path: Union[str, Path],
        read_only: bool = False,
    ) -> None:
        """
        Open (and if needed create) the store.

        Args:
            path: Path to the SQLite database file.
            read_only: Open without write access; the file must exist.

        Raises:
            FileNotFoundError: If read_only is True and the file does not exist.
            TransportError: If the database cannot be opened.
            ValueError: If the schema version does not match.
        """
        self._path = Path(path)
        self._read_only = read_only
        self._conn: Optional[sqlite3.Connection] = None

        if read_only and not self._path.exists():
            raise FileNotFoundError(
                f"Store file not found: {self._path}. "
                "Cannot open non-existent store in read-only mode."
            )

        try:
            self._connect()
            self._initialize_schema()
        except sqlite3.Error as e:
            self.close()
            raise TransportError(f"cannot open store {self._path}: {e}") from e

    def _connect(self) -> None:
        """Establish connection to the database."""
        if self._read_only:
            uri = f"file:{self._path}?mode=ro"
            self._conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        else:
            self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.row_factory = sqlite3.Row

    def _initialize_schema(self) -> None:
        """Initialize or verify the database schema."""
        if self._read_only:
            cursor = self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            if cursor.fetchone() is None:
                raise ValueError("Store schema not initialized. Cannot use read-only mode.")
            return

        self._conn.executescript(CREATE_TABLES_SQL)
        self._conn.executescript(INDEXES_SQL)

        cursor = self._conn.execute("SELECT version FROM schema_version LIMIT 1")
        row = cursor.fetchone()

        if row is None:
            self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            self._conn.commit()
        elif row[0] != SCHEMA_VERSION:
            raise ValueError(
                f"Schema version mismatch. Store has version {row[0]}, "
                f"but code expects version {SCHEMA_VERSION}. "
                "Migration required."
            )

    @property
    def path(self) -> Path:
        """Return the database file path."""
        return self._path

    @property
    def read_only(self) -> bool:
        """Return whether the store is in read-only mode."""
        return self._read_only

    def __del__(self) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        if getattr(self, "_conn", None) is not None:
            self._conn.close()
            self._conn = None

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise TransportError(f"store {self._path} is closed")
        return self._conn

    def load(self, key: str) -> Optional[str]:
        _validate_key(key)
        conn = self._require_connection()
        try:
            row = conn.execute(
                "SELECT blob FROM kv_entries WHERE key = ?",
                (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise TransportError(f"cannot read {key!r} from {self._path}: {e}") from e
        return None if row is None else row["blob"]

    def save(self, key: str, blob: str) -> None:
        _validate_key(key)
        if self._read_only:
            raise PermissionError("Cannot write to store opened in read-only mode.")
        conn = self._require_connection()
        updated_at = datetime.now(timezone.utc).isoformat()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO kv_entries (key, blob, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        blob = excluded.blob,
                        updated_at = excluded.updated_at
                    """,
                    (key, blob, updated_at),
                )
        except sqlite3.Error as e:
            raise TransportError(f"cannot write {key!r} to {self._path}: {e}") from e

    def get_statistics(self) -> Dict[str, Any]:
        """
        Summarize the store.

        Returns:
            Dictionary with schema_version, schema_hash, entry_count and,
            per key, the last update time.
        """
        conn = self._require_connection()
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        entries = conn.execute(
            "SELECT key, updated_at FROM kv_entries ORDER BY updated_at DESC"
        ).fetchall()
        return {
            "schema_version": row[0] if row else None,
            "schema_hash": get_schema_hash(),
            "entry_count": len(entries),
            "entries": {r["key"]: r["updated_at"] for r in entries},
        }


def open_store(location: Union[str, Path], read_only: bool = False) -> KeyValueStore:
    """
    Open the store implied by a location.

    ":memory:" gives a MemoryStore, an existing directory or a path ending in
    a separator gives a JsonFileStore, anything else is a SQLite file.
    """
    text = str(location)
    if text == ":memory:":
        return MemoryStore()
    path = Path(location)
    if path.is_dir() or text.endswith(("/", os.sep)):
        return JsonFileStore(path)
    logger.debug("Opening SQLite store at %s", path)
    return SqliteStore(path, read_only=read_only)
