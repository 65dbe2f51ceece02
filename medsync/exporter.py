"""
Snapshot Exporter

Reads every row of every tracked table into a fresh snapshot.

Tables are read one statement at a time, so a local write landing between two
reads can produce a snapshot that mixes states across tables. No isolation is
added on purpose.

A table that cannot be read is exported as an empty list (best effort per
table). That path is logged at WARNING with the "Export skipped table" prefix
and recorded in `skipped_tables`, because it can hide data loss.
"""

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Sequence, Union

from medsync.codec import write_snapshot_file
from medsync.db import RecordStore
from medsync.models import TRACKED_TABLES, Snapshot, row_count
from medsync.sql_safety import SQLInjectionError

logger = logging.getLogger(__name__)


class SnapshotExporter:
    """Builds full-table snapshots from the local datastore"""

    def __init__(self, store: RecordStore, tables: Sequence[str] = TRACKED_TABLES):
        self.store = store
        self.tables = tuple(tables)

        # Tables substituted with [] during the most recent export
        self.skipped_tables: List[str] = []

    def export(self) -> Snapshot:
        """
        Full unordered scan of every tracked table.

        Returns:
            Snapshot with one entry per tracked table (possibly empty lists)
        """
        snapshot: Snapshot = {}
        skipped: List[str] = []

        for table in self.tables:
            try:
                snapshot[table] = self.store.scan_table(table)
            except (sqlite3.Error, SQLInjectionError) as e:
                logger.warning(f"Export skipped table {table}: {e}")
                snapshot[table] = []
                skipped.append(table)

        self.skipped_tables = skipped

        logger.info(
            f"Exported {row_count(snapshot)} rows from {len(snapshot)} tables"
            + (f" ({len(skipped)} skipped)" if skipped else "")
        )
        return snapshot

    async def export_to_file(self, path: Optional[Union[str, Path]] = None) -> Path:
        """
        Export to a JSON file on disk.

        Args:
            path: Destination file (defaults to settings.export_path)
        """
        if path is None:
            from medsync.config import get_settings
            path = get_settings().export_path

        snapshot = self.export()
        return await write_snapshot_file(path, snapshot)
