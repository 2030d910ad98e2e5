"""
Bounded SQLite connection pool.

One pool per process, shared by the write and read paths. Connections are
opened lazily up to pool_size; further callers wait in a bounded queue and
fail fast with StorageError once the queue is full or the wait times out.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from viewcounter.core.errors import StorageError

logger = logging.getLogger(__name__)

# Stored timestamps are naive UTC with microseconds so they sort lexically
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_ts(dt: datetime) -> str:
    """Format an aware or naive-UTC datetime for storage."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt.strftime(TIMESTAMP_FORMAT)


def parse_ts(s: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    return datetime.strptime(s, TIMESTAMP_FORMAT).replace(tzinfo=UTC)


# -----------------------------------------------------------------------------
# Pool
# -----------------------------------------------------------------------------


class SQLiteConnectionPool:
    """Thread-safe, bounded pool of SQLite connections."""

    def __init__(
        self,
        db_path: str,
        pool_size: int = 10,
        queue_limit: int = 50,
        acquire_timeout: float = 5.0,
    ) -> None:
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        self.db_path = db_path
        self.pool_size = pool_size
        self.queue_limit = queue_limit
        self.acquire_timeout = acquire_timeout

        self._idle: list[sqlite3.Connection] = []
        self._opened = 0
        self._waiting = 0
        self._closed = False
        self._cond = threading.Condition()

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = dict_factory
            if self.db_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL;")
            conn.execute("PRAGMA busy_timeout = 5000;")
        except sqlite3.Error as e:
            raise StorageError(f"Could not open database: {e}") from e
        return conn

    def _wait_for_slot(self) -> sqlite3.Connection | None:
        """Wait (lock held) for an idle connection or a free slot (None)."""
        if self._waiting >= self.queue_limit:
            raise StorageError("Connection pool exhausted")
        self._waiting += 1
        deadline = time.monotonic() + self.acquire_timeout
        try:
            while True:
                if self._closed:
                    raise StorageError("Connection pool is closed")
                if self._idle:
                    return self._idle.pop()
                if self._opened < self.pool_size:
                    self._opened += 1
                    return None
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise StorageError("Timed out waiting for a database connection")
                self._cond.wait(remaining)
        finally:
            self._waiting -= 1

    def _acquire(self) -> sqlite3.Connection:
        with self._cond:
            if self._closed:
                raise StorageError("Connection pool is closed")
            if self._idle:
                return self._idle.pop()
            if self._opened < self.pool_size:
                self._opened += 1
            else:
                conn = self._wait_for_slot()
                if conn is not None:
                    return conn

        try:
            return self._open()
        except StorageError:
            with self._cond:
                self._opened -= 1
                self._cond.notify()
            raise

    def _release(self, conn: sqlite3.Connection) -> None:
        with self._cond:
            if self._closed:
                conn.close()
                self._opened -= 1
                return
            self._idle.append(conn)
            self._cond.notify()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection; rolls back uncommitted work on error."""
        conn = self._acquire()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release(conn)

    def stats(self) -> dict[str, int]:
        with self._cond:
            return {
                "open": self._opened,
                "idle": len(self._idle),
                "waiting": self._waiting,
            }

    def close(self) -> None:
        """Close every idle connection; borrowed ones close on release."""
        with self._cond:
            self._closed = True
            while self._idle:
                self._idle.pop().close()
                self._opened -= 1
            self._cond.notify_all()
        logger.info("Database connections closed")

    def __enter__(self) -> SQLiteConnectionPool:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
