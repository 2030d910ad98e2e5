"""
Database port.

The pool is the only way the core reaches storage; repositories borrow a
connection for the duration of one statement group and hand it back.
"""

from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from typing import Protocol


class ConnectionPoolPort(Protocol):
    """Bounded connection pool shared by the write and read paths."""

    def connection(self) -> AbstractContextManager[sqlite3.Connection]:
        """Borrow a connection; it is returned to the pool on exit."""
        ...

    def close(self) -> None:
        """Close every pooled connection."""
        ...
