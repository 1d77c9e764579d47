"""Business logic of the key/value service."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from kvgeo import db
from kvgeo.db import Database, DbError, NotFoundError
from kvgeo.model import Entry, Key, ModelError, Version


class DriverError(Exception):
    """Raised when a business operation fails."""


class DriverNotFoundError(DriverError):
    """Raised when an operation refers to an entity that does not exist."""


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except NotFoundError as e:
        raise DriverNotFoundError(str(e)) from e
    except (DbError, ModelError) as e:
        raise DriverError(str(e)) from e


class Driver:
    """Entry point to the service's operations.

    Each operation runs on its own, so two calls never share a transaction.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def delete_key(self, key: Key) -> None:
        """Deletes an existing `key`."""
        with _translate_errors(), self._db.connection() as conn:
            db.delete_key(conn, key)

    def get_key(self, key: Key) -> Entry:
        """Returns the current entry of `key`."""
        with _translate_errors(), self._db.connection() as conn:
            return db.get_key(conn, key)

    def set_key(self, key: Key, value: str) -> Entry:
        """Sets `key` to `value`, incrementing its version, and returns the new entry."""
        with _translate_errors(), self._db.transaction() as conn:
            current = db.get_key_version(conn, key)
            version = current.next() if current is not None else Version.initial()
            entry = Entry(value, version)
            db.set_key(conn, key, entry)
        return entry

    def get_keys(self) -> list[Key]:
        """Returns all existing keys in ascending order."""
        with _translate_errors(), self._db.transaction() as conn:
            return db.get_keys(conn)