"""
MedSync - offline device-to-device replication of medical records.

A device exports its tracked tables as a JSON snapshot and pushes it over a
single TCP connection to a peer found by mDNS; the peer applies it in one
transaction with last-writer-wins upserts.
"""

from medsync.client import ReplicationClient
from medsync.codec import decode_snapshot, encode_snapshot
from medsync.exporter import SnapshotExporter
from medsync.importer import SnapshotImporter
from medsync.listener import ReplicationListener
from medsync.models import TRACKED_TABLES, PeerEndpoint

__version__ = "1.0.0"

__all__ = [
    "TRACKED_TABLES",
    "PeerEndpoint",
    "ReplicationClient",
    "ReplicationListener",
    "SnapshotExporter",
    "SnapshotImporter",
    "decode_snapshot",
    "encode_snapshot",
]
