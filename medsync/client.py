"""
Replication Client

Pushes one full snapshot to a peer's listener:

    open connection -> export -> encode -> write all -> half-close -> close

Fire-and-forget: the peer never acknowledges, so a returned TransferReceipt
only means the bytes were handed to the local socket. No retries.
"""

import asyncio
import logging
import uuid
from typing import Optional

from medsync.codec import encode_snapshot
from medsync.errors import ErrorType, TransferError
from medsync.exporter import SnapshotExporter
from medsync.models import PeerEndpoint, TransferReceipt, row_count
from medsync.structured_logger import transfer_id_ctx

logger = logging.getLogger(__name__)


class ReplicationClient:
    """Sends local snapshots to a peer"""

    def __init__(self,
                 exporter: SnapshotExporter,
                 connect_timeout: Optional[float] = None):
        self.exporter = exporter
        self.connect_timeout = connect_timeout

    async def send(self, peer: PeerEndpoint) -> TransferReceipt:
        """
        Transfer a fresh snapshot to `peer`.

        Raises:
            TransferError: connection could not be opened or the write failed
        """
        transfer_id = uuid.uuid4().hex[:12]
        token = transfer_id_ctx.set(transfer_id)

        try:
            logger.info(f"Connecting to {peer} for replication")
            reader, writer = await self._open(peer)

            try:
                snapshot = await asyncio.to_thread(self.exporter.export)
                payload = encode_snapshot(snapshot)

                writer.write(payload)
                await writer.drain()

                # Half-close marks the end of the snapshot for the listener
                if writer.can_write_eof():
                    writer.write_eof()
            except (ConnectionError, OSError) as e:
                logger.error(f"Write to {peer} failed: {e}")
                raise TransferError(
                    f"Write to {peer} failed: {e}",
                    error_type=ErrorType.WRITE_FAILED,
                    details={"peer": str(peer)}
                ) from e
            finally:
                writer.close()
                try:
                    await writer.wait_closed()
                except (ConnectionError, OSError) as e:
                    logger.debug(f"Error closing connection to {peer}: {e}")

            receipt = TransferReceipt(
                peer=peer,
                bytes_written=len(payload),
                tables=list(snapshot.keys()),
                row_count=row_count(snapshot),
                transfer_id=transfer_id
            )
            logger.info(f"Snapshot sent to {peer}: {receipt.row_count} rows, {receipt.bytes_written} bytes")
            return receipt

        finally:
            transfer_id_ctx.reset(token)

    async def _open(self, peer: PeerEndpoint):
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(peer.host, peer.port),
                timeout=self.connect_timeout
            )
        except (ConnectionError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Could not connect to {peer}: {e}")
            raise TransferError(
                f"Could not connect to {peer}: {e}",
                error_type=ErrorType.CONNECT_FAILED,
                details={"peer": str(peer)}
            ) from e
