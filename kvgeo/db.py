"""Database operations needed by the key/value service, backed by SQLite."""

from __future__ import annotations

import os
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from kvgeo.model import Entry, Key, ModelError, Version

_SCHEMA = """
CREATE TABLE IF NOT EXISTS store (
    key TEXT PRIMARY KEY NOT NULL,
    value TEXT NOT NULL,
    version INTEGER NOT NULL
)
"""


class DbError(Exception):
    """Base class for database errors."""


class NotFoundError(DbError):
    """Raised when the requested entity does not exist."""

    def __init__(self, message: str = "Entity not found") -> None:
        super().__init__(message)


class BackendError(DbError):
    """Raised when the database backend fails or returns inconsistent data."""


@contextmanager
def _backend_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        raise BackendError(str(e)) from e


class Database:
    """A SQLite database shared by all callers through a single connection."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        with _backend_errors():
            self._conn = sqlite3.connect(
                path, check_same_thread=False, isolation_level=None
            )
        self._lock = threading.RLock()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yields the connection in autocommit mode, for exclusive use."""
        with self._lock:
            yield self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yields the connection inside a transaction committed on success."""
        with self._lock:
            with _backend_errors():
                self._conn.execute("BEGIN")
            try:
                yield self._conn
            except BaseException:
                with _backend_errors():
                    self._conn.rollback()
                raise
            with _backend_errors():
                self._conn.commit()

    def close(self) -> None:
        """Closes the underlying connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def init_schema(conn: sqlite3.Connection) -> None:
    """Creates the tables used by the service."""
    with _backend_errors():
        conn.execute(_SCHEMA)


def get_keys(conn: sqlite3.Connection) -> list[Key]:
    """Returns all existing keys in ascending order."""
    with _backend_errors():
        rows = conn.execute("SELECT key FROM store ORDER BY key").fetchall()
    return [Key(key) for (key,) in rows]


def get_key(conn: sqlite3.Connection, key: Key) -> Entry:
    """Returns the current entry of `key`."""
    with _backend_errors():
        row = conn.execute(
            "SELECT value, version FROM store WHERE key = ?", (key.value,)
        ).fetchone()
    if row is None:
        raise NotFoundError()
    value, version = row
    try:
        return Entry(value, Version.from_i32(version))
    except ModelError as e:
        raise BackendError(str(e)) from e


def get_key_version(conn: sqlite3.Connection, key: Key) -> Version | None:
    """Returns the current version of `key`, or None if it does not exist."""
    with _backend_errors():
        row = conn.execute(
            "SELECT version FROM store WHERE key = ?", (key.value,)
        ).fetchone()
    if row is None:
        return None
    try:
        return Version.from_u32(row[0])
    except ModelError as e:
        raise BackendError(str(e)) from e


def set_key(conn: sqlite3.Connection, key: Key, entry: Entry) -> None:
    """Sets `key` to `entry`, creating or replacing it."""
    with _backend_errors():
        cursor = conn.execute(
            """
            INSERT INTO store (key, value, version) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           version = excluded.version
            """,
            (key.value, entry.value, entry.version.as_i32),
        )
    if cursor.rowcount != 1:
        raise BackendError("Upsert affected more than one row")


def delete_key(conn: sqlite3.Connection, key: Key) -> None:
    """Deletes `key`."""
    with _backend_errors():
        cursor = conn.execute("DELETE FROM store WHERE key = ?", (key.value,))
    if cursor.rowcount == 0:
        raise NotFoundError()
    if cursor.rowcount != 1:
        raise BackendError("Deletion affected more than one row")