"""
NewsMirror Database Connection Management
=========================================

A small pool of SQLite connections shared by the repositories.

Connections run in autocommit mode; multi-statement writes go through
``transaction()``, which takes the write lock up front with
``BEGIN IMMEDIATE`` so a crawler and the CLI never deadlock on upgrade.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, Iterator, Optional

from .schema import EXPECTED_TABLES

logger = logging.getLogger(__name__)

CONNECTION_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
)

# Seconds a connection waits on a locked database before failing
BUSY_TIMEOUT = 30.0

# Seconds a caller waits for a pooled connection before opening an extra one
POOL_WAIT = 10.0


def _adapt_datetime(value: datetime) -> str:
    return value.isoformat()


# Timestamps are stored as ISO-8601 text, offsets included
sqlite3.register_adapter(datetime, _adapt_datetime)


class DatabaseConnection:
    """Thread-safe pool of SQLite connections to one database file."""

    def __init__(self, db_path: str = "data/newsmirror.db", pool_size: int = 5):
        """
        Args:
            db_path: SQLite database file, created with its directory if missing
            pool_size: Connections kept open
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.pool_size = pool_size
        self.pool: Queue = Queue(maxsize=pool_size)
        self._lock = threading.Lock()
        self._open_count = 0

        for _ in range(pool_size):
            self.pool.put(self._open())

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=BUSY_TIMEOUT,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        for pragma in CONNECTION_PRAGMAS:
            conn.execute(pragma)

        with self._lock:
            self._open_count += 1
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection; it goes back to the pool afterwards.

        An open transaction left behind by a failed block is rolled back
        before the connection is reused.
        """
        try:
            conn = self.pool.get(timeout=POOL_WAIT)
        except Empty:
            logger.warning(f"All {self.pool_size} pooled connections busy; opening an extra one")
            conn = self._open()

        try:
            yield conn
        finally:
            if conn.in_transaction:
                conn.rollback()
            try:
                self.pool.put_nowait(conn)
            except Full:
                conn.close()
                with self._lock:
                    self._open_count -= 1

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one write transaction; commit on success, roll back on error."""
        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException as e:
                conn.rollback()
                logger.debug(f"Transaction rolled back: {e!r}")
                raise
            conn.commit()

    def execute_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """First row of a query, or None."""
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchone()

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Run a single autocommitted write; returns the affected row count."""
        with self.get_connection() as conn:
            return conn.execute(query, params).rowcount

    def get_database_info(self) -> Dict[str, Any]:
        """File size and row counts of the crawler tables."""
        with self.get_connection() as conn:
            page_count = conn.execute("PRAGMA page_count").fetchone()[0]
            page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            existing = {
                row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
            table_counts = {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] if table in existing else 0
                for table in sorted(EXPECTED_TABLES)
            }

        return {
            "database_size_mb": page_count * page_size / (1024 * 1024),
            "table_counts": table_counts,
            "connection_pool_size": self.pool.qsize(),
            "total_connections": self._open_count,
        }

    def close_all_connections(self) -> None:
        """Close every idle pooled connection."""
        while True:
            try:
                conn = self.pool.get_nowait()
            except Empty:
                break
            conn.close()
            with self._lock:
                self._open_count -= 1
        logger.debug(f"Closed pooled connections for {self.db_path}")


_db_manager: Optional[DatabaseConnection] = None


def get_db_manager(db_path: str = "data/newsmirror.db", pool_size: int = 5) -> DatabaseConnection:
    """Process-wide pool, created on first use with the given path."""
    global _db_manager

    if _db_manager is None:
        _db_manager = DatabaseConnection(db_path, pool_size=pool_size)

    return _db_manager
