"""
Database Utilities

Centralized SQLite connection management plus the table-oriented datastore
contract the replication core consumes:

- scan_table(name)                 whole-table read
- upsert(conn, table, cols, vals)  insert-or-replace keyed on primary key
- transaction() / with_transaction(fn)  atomic batch of statements

Usage:
    from medsync.db import RecordStore

    store = RecordStore(settings.db_path)
    store.init_schema()
    rows = store.scan_table("ame_records")
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence, TypeVar, Union

from medsync.models import Row
from medsync.schema import TABLE_SCHEMAS
from medsync.sql_safety import quote_identifier, validate_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_sqlite_connection(
    database: Union[str, Path],
    check_same_thread: bool = True,
    timeout: float = 30.0
) -> sqlite3.Connection:
    """
    Create a SQLite connection with performance optimizations.

    Automatically enables:
    - WAL mode so exports can read while an import is writing
    - Foreign key constraints
    - Row factory for dict-like access

    Args:
        database: Path to SQLite database file
        check_same_thread: Whether to check same thread (default True for safety)
        timeout: Busy timeout in seconds; concurrent writers wait this long for the lock

    Returns:
        Configured SQLite connection
    """
    conn = sqlite3.connect(
        str(database),
        check_same_thread=check_same_thread,
        timeout=timeout
    )

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA synchronous=NORMAL")

    conn.row_factory = sqlite3.Row

    logger.debug(f"SQLite connection created for {database} (WAL mode enabled)")

    return conn


class RecordStore:
    """
    Local medical records datastore.

    Opens a fresh connection per operation so the store can be shared between
    the event loop and worker threads. SQLite's own locking is the only mutual
    exclusion between writers.
    """

    def __init__(self, db_path: Union[str, Path], timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        return get_sqlite_connection(self.db_path, timeout=self.timeout)

    def init_schema(self) -> None:
        """Create the tracked tables if they do not exist yet"""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = self.connect()
        try:
            for schema in TABLE_SCHEMAS.values():
                conn.execute(schema)
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Record tables initialized: {self.db_path}")

    def scan_table(self, name: str) -> List[Row]:
        """
        Read every row of a table, unordered, as column -> value dicts.

        Raises:
            sqlite3.Error: if the table cannot be read
        """
        safe_table = quote_identifier(validate_identifier(name, context="table name"))

        conn = self.connect()
        try:
            cursor = conn.execute(f"SELECT * FROM {safe_table}")
            return [dict(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def table_columns(self, name: str) -> List[str]:
        """Column names of a table, in declaration order"""
        safe_table = quote_identifier(validate_identifier(name, context="table name"))

        conn = self.connect()
        try:
            cursor = conn.execute(f"PRAGMA table_info({safe_table})")
            return [row["name"] for row in cursor.fetchall()]
        finally:
            conn.close()

    @staticmethod
    def upsert(
        conn: sqlite3.Connection,
        table: str,
        columns: Sequence[str],
        values: Sequence[Any]
    ) -> None:
        """
        Insert a row, replacing any existing row with the same primary key.

        Identifiers must already be validated by the caller; they are quoted
        here. Values are always bound as parameters.
        """
        safe_table = quote_identifier(table)
        column_names = ",".join(quote_identifier(col) for col in columns)
        placeholders = ",".join("?" * len(columns))

        conn.execute(
            f"INSERT OR REPLACE INTO {safe_table} ({column_names}) VALUES ({placeholders})",
            list(values)
        )

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Atomic batch: commits once on clean exit, rolls back on any exception.

        BEGIN IMMEDIATE takes the write lock up front so two imports cannot
        interleave.
        """
        conn = self.connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")
        finally:
            conn.close()

    def with_transaction(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run fn(conn) atomically and return its result"""
        with self.transaction() as conn:
            return fn(conn)

    def count_rows(self, name: str) -> int:
        safe_table = quote_identifier(validate_identifier(name, context="table name"))

        conn = self.connect()
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {safe_table}").fetchone()[0]
        finally:
            conn.close()


def open_store(db_path: Optional[Union[str, Path]] = None) -> RecordStore:
    """Open the configured datastore, creating the tracked tables"""
    if db_path is None:
        from medsync.config import get_settings
        db_path = get_settings().db_path

    store = RecordStore(db_path)
    store.init_schema()
    return store
