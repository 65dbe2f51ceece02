"""
Snapshot Importer

Applies a decoded snapshot to the local datastore as ONE transaction of
per-row upserts (INSERT OR REPLACE). Conflict policy is last-writer-wins at
row granularity: an incoming row replaces the stored row with the same
primary key entirely, with no column merge and no version comparison.

Any failure rolls back every row of the snapshot.
"""

import logging
import sqlite3
from typing import Sequence

from medsync.db import RecordStore
from medsync.errors import ErrorType, SnapshotImportError
from medsync.models import TRACKED_TABLES, ImportResult, Snapshot
from medsync.sql_safety import SQLInjectionError, validate_identifier

logger = logging.getLogger(__name__)


class SnapshotImporter:
    """Merges snapshots received from a peer into the local datastore"""

    def __init__(self, store: RecordStore, tables: Sequence[str] = TRACKED_TABLES):
        self.store = store
        self.tables = tuple(tables)

    def validate(self, snapshot: Snapshot) -> None:
        """
        Reject snapshots that name unknown tables or unsafe columns.

        Runs before any transaction is opened; imports never create tables.
        """
        for table, rows in snapshot.items():
            try:
                validate_identifier(table, allowed=self.tables, context="table name")
            except SQLInjectionError as e:
                raise SnapshotImportError(
                    str(e),
                    error_type=ErrorType.UNKNOWN_TABLE,
                    details={"table": table}
                ) from e

            for index, row in enumerate(rows):
                if not row:
                    raise SnapshotImportError(
                        f"Row {index} of {table} has no columns",
                        error_type=ErrorType.INVALID_COLUMN,
                        details={"table": table, "row": index}
                    )
                for column in row:
                    try:
                        validate_identifier(column, context="column name")
                    except SQLInjectionError as e:
                        raise SnapshotImportError(
                            str(e),
                            error_type=ErrorType.INVALID_COLUMN,
                            details={"table": table, "row": index, "column": column}
                        ) from e

    def import_snapshot(self, snapshot: Snapshot) -> ImportResult:
        """
        Upsert every row of every table atomically.

        Returns:
            ImportResult with per-table row counts

        Raises:
            SnapshotImportError: validation failed or the transaction was rolled back
        """
        self.validate(snapshot)

        result = ImportResult()
        current = {"table": None, "row": None}

        def apply(conn: sqlite3.Connection) -> None:
            for table, rows in snapshot.items():
                current["table"] = table
                for index, row in enumerate(rows):
                    current["row"] = index
                    self.store.upsert(conn, table, list(row.keys()), list(row.values()))
                result.rows_applied[table] = len(rows)

        try:
            self.store.with_transaction(apply)
        except (sqlite3.Error, OverflowError) as e:
            # OverflowError: an integer outside SQLite's 64-bit range
            logger.error(
                f"Import rolled back at {current['table']} row {current['row']}: {e}"
            )
            raise SnapshotImportError(
                f"Import rolled back: {e}",
                error_type=ErrorType.UPSERT_FAILED,
                details=dict(current)
            ) from e

        logger.info(
            f"Imported {result.total_rows} rows into {len(result.rows_applied)} tables"
        )
        return result
