"""
Replication Listener

Accepts inbound snapshot transfers on the well-known port.

Per connection (one asyncio task each, concurrent with other connections):
1. Accumulate bytes into a buffer local to the task until the peer half-closes
2. Decode via the codec; malformed data is logged and dropped
3. Run the importer in a worker thread; failures are logged and dropped

Nothing is ever sent back to the sender. There is no read timeout: a peer that
never half-closes keeps its task waiting until the listener is stopped.
"""

import asyncio
import inspect
import logging
import uuid
from typing import Any, Callable, Dict, Optional, Set

from medsync.codec import decode_snapshot
from medsync.errors import MalformedSnapshot, SnapshotImportError
from medsync.importer import SnapshotImporter
from medsync.models import ConnectionOutcome, row_count
from medsync.structured_logger import log_with_context, transfer_id_ctx

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5555

OutcomeCallback = Callable[[ConnectionOutcome], Any]


class ReplicationListener:
    """
    Long-lived TCP server feeding received snapshots to the importer

    Usage:
        listener = ReplicationListener(importer, port=5555)
        await listener.start()
        ...
        await listener.stop()
    """

    def __init__(self,
                 importer: SnapshotImporter,
                 host: str = "0.0.0.0",
                 port: int = DEFAULT_PORT,
                 read_chunk_size: int = 64 * 1024,
                 on_complete: Optional[OutcomeCallback] = None):
        self.importer = importer
        self.host = host
        self.port = port
        self.read_chunk_size = read_chunk_size
        self.on_complete = on_complete

        self._server: Optional[asyncio.AbstractServer] = None
        self._handlers: Set[asyncio.Task] = set()

        self.stats: Dict[str, int] = {
            "connections_accepted": 0,
            "snapshots_imported": 0,
            "malformed_snapshots": 0,
            "import_failures": 0,
            "connection_errors": 0,
            "rows_applied": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port (differs from `port` when port=0)"""
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        """Bind and start accepting connections"""
        if self.is_running:
            return

        self._server = await asyncio.start_server(
            self._handle_connection,
            host=self.host,
            port=self.port
        )

        logger.info(f"Replication listener on {self.host}:{self.bound_port}")

    async def serve(self) -> None:
        """Run until cancelled (the external stop)"""
        await self.start()
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop accepting and cancel connections still waiting for data"""
        if self._server is None:
            return

        server = self._server
        self._server = None
        server.close()

        for task in list(self._handlers):
            task.cancel()
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)

        await server.wait_closed()
        logger.info("Replication listener stopped")

    async def _handle_connection(self,
                                 reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)

        transfer_id = uuid.uuid4().hex[:12]
        transfer_id_ctx.set(transfer_id)

        peername = writer.get_extra_info("peername")
        peer = f"{peername[0]}:{peername[1]}" if peername else None
        self.stats["connections_accepted"] += 1
        logger.info(f"Accepted replication connection from {peer}")

        try:
            outcome = await self._receive(reader, transfer_id, peer)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Error closing connection from {peer}: {e}")
            if task is not None:
                self._handlers.discard(task)

        await self._notify(outcome)

    async def _receive(self,
                       reader: asyncio.StreamReader,
                       transfer_id: str,
                       peer: Optional[str]) -> ConnectionOutcome:
        buffer = bytearray()

        try:
            while True:
                chunk = await reader.read(self.read_chunk_size)
                if not chunk:
                    break
                buffer.extend(chunk)
        except (ConnectionError, OSError) as e:
            self.stats["connection_errors"] += 1
            logger.error(f"Connection from {peer} failed after {len(buffer)} bytes: {e}")
            return ConnectionOutcome(transfer_id, peer, len(buffer), "connection_error", error=str(e))

        logger.debug(f"Received {len(buffer)} bytes from {peer}")

        try:
            snapshot = decode_snapshot(bytes(buffer))
        except MalformedSnapshot as e:
            self.stats["malformed_snapshots"] += 1
            logger.error(f"Discarding malformed snapshot from {peer}: {e.message}")
            return ConnectionOutcome(transfer_id, peer, len(buffer), "malformed", error=e.message)

        try:
            result = await asyncio.to_thread(self.importer.import_snapshot, snapshot)
        except SnapshotImportError as e:
            self.stats["import_failures"] += 1
            logger.error(f"Import of snapshot from {peer} failed: {e.message}")
            return ConnectionOutcome(transfer_id, peer, len(buffer), "import_failed", error=e.message)

        self.stats["snapshots_imported"] += 1
        self.stats["rows_applied"] += result.total_rows
        log_with_context(
            logger, "info", f"Imported snapshot from {peer}: {row_count(snapshot)} rows",
            {"peer": peer, "bytes": len(buffer), "rows_applied": result.rows_applied}
        )

        return ConnectionOutcome(transfer_id, peer, len(buffer), "imported", result=result)

    async def _notify(self, outcome: ConnectionOutcome) -> None:
        if not self.on_complete:
            return

        try:
            ret = self.on_complete(outcome)
            if inspect.isawaitable(ret):
                await ret
        except Exception as e:
            logger.error(f"Listener outcome callback error: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get listener statistics"""
        return {
            "is_running": self.is_running,
            "host": self.host,
            "port": self.bound_port or self.port,
            "active_connections": len(self._handlers),
            **self.stats,
        }
