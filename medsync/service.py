"""
Replication Service

Wires the exporter, importer, client, listener and link service together
behind the actions the UI triggers: discover, connect, send, export, import.

Each send is one-directional (this device -> peer). Syncing both ways means
each device sends once.
"""

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

from medsync.client import ReplicationClient
from medsync.codec import read_snapshot_file
from medsync.config import MedSyncSettings, get_settings
from medsync.db import RecordStore
from medsync.discovery import PeerLinkService, ZeroconfLinkService
from medsync.errors import ErrorType, LinkError
from medsync.exporter import SnapshotExporter
from medsync.importer import SnapshotImporter
from medsync.listener import ReplicationListener
from medsync.models import (
    ConnectionOutcome,
    ImportResult,
    PeerDescriptor,
    PeerEndpoint,
    TransferReceipt,
)

logger = logging.getLogger(__name__)

HISTORY_SIZE = 20


class ReplicationService:
    """Device-level replication facade"""

    def __init__(self,
                 settings: MedSyncSettings,
                 store: Optional[RecordStore] = None,
                 link: Optional[PeerLinkService] = None):
        self.settings = settings
        self.store = store or RecordStore(settings.db_path)
        self.store.init_schema()

        self.exporter = SnapshotExporter(self.store)
        self.importer = SnapshotImporter(self.store)
        self.client = ReplicationClient(self.exporter, connect_timeout=settings.connect_timeout)
        self.listener = ReplicationListener(
            self.importer,
            host=settings.listen_host,
            port=settings.replication_port,
            read_chunk_size=settings.read_chunk_size,
            on_complete=self._record_outcome
        )

        self.link = link
        self.transfers_sent = 0
        self.sent: Deque[TransferReceipt] = deque(maxlen=HISTORY_SIZE)
        self.received: Deque[ConnectionOutcome] = deque(maxlen=HISTORY_SIZE)

    # ===== Listener =====

    async def start_listener(self) -> int:
        """Start receiving snapshots; returns the bound port"""
        await self.listener.start()
        return self.listener.bound_port

    async def stop_listener(self) -> None:
        await self.listener.stop()

    def _record_outcome(self, outcome: ConnectionOutcome) -> None:
        self.received.append(outcome)

    # ===== Discovery / link =====

    async def start_discovery(self) -> PeerLinkService:
        """Announce this device and browse for peers"""
        if self.link is None:
            self.link = ZeroconfLinkService(
                display_name=self.settings.announced_name,
                device_name=self.settings.device_name,
                port=self.listener.bound_port or self.settings.replication_port,
                service_type=self.settings.service_type
            )

        start = getattr(self.link, "start", None)
        if start is not None:
            await start()
        return self.link

    async def stop_discovery(self) -> None:
        stop = getattr(self.link, "stop", None)
        if stop is not None:
            await stop()

    def list_peers(self) -> List[PeerDescriptor]:
        if self.link is None:
            return []
        return self.link.list_available_peers()

    # ===== Sending =====

    async def send_to_peer(self, peer_address: str) -> TransferReceipt:
        """
        Link to a discovered peer and push a snapshot to it.

        Raises:
            LinkError: discovery not started, or peer unknown/unreachable
            TransferError: the snapshot could not be written
        """
        if self.link is None:
            raise LinkError(
                "Peer discovery has not been started",
                error_type=ErrorType.DISCOVERY_FAILED
            )

        endpoint = await self.link.connect(peer_address)
        return await self.send_to_endpoint(endpoint)

    async def send_to_endpoint(self, endpoint: PeerEndpoint) -> TransferReceipt:
        """Push a snapshot to an already resolved endpoint"""
        receipt = await self.client.send(endpoint)
        self.transfers_sent += 1
        self.sent.append(receipt)
        return receipt

    # ===== Files =====

    async def export_to_file(self, path: Optional[Union[str, Path]] = None) -> Path:
        return await self.exporter.export_to_file(path or self.settings.export_path)

    async def import_from_file(self, path: Union[str, Path]) -> ImportResult:
        """
        Apply a snapshot file written by export_to_file.

        Raises:
            MalformedSnapshot / SnapshotImportError
        """
        snapshot = await read_snapshot_file(path)
        return await asyncio.to_thread(self.importer.import_snapshot, snapshot)

    # ===== Stats =====

    def get_stats(self) -> Dict[str, Any]:
        link_stats = None
        get_link_stats = getattr(self.link, "get_stats", None)
        if get_link_stats is not None:
            link_stats = get_link_stats()

        return {
            "db_path": str(self.store.db_path),
            "listener": self.listener.get_stats(),
            "discovery": link_stats,
            "transfers_sent": self.transfers_sent,
            "last_export_skipped_tables": list(self.exporter.skipped_tables),
            "recent_sent": [r.to_dict() for r in self.sent],
            "recent_received": [
                {
                    "transfer_id": o.transfer_id,
                    "peer": o.peer,
                    "bytes_received": o.bytes_received,
                    "status": o.status,
                    "rows_applied": o.result.total_rows if o.result else 0,
                    "error": o.error,
                }
                for o in self.received
            ],
        }

    async def shutdown(self) -> None:
        await self.stop_listener()
        await self.stop_discovery()


# Singleton instance
_replication_service: Optional[ReplicationService] = None


def get_replication_service() -> ReplicationService:
    """Get singleton replication service instance"""
    global _replication_service

    if _replication_service is None:
        _replication_service = ReplicationService(get_settings())
        logger.info("Replication service ready")

    return _replication_service
