"""
Replication API - Transfer Routes

Listener control, snapshot send ("connect" + "send" in the sync screen),
and JSON file export/import.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from medsync.errors import ReplicationError
from medsync.models import PeerEndpoint
from medsync.routes.models import (
    ExportRequest,
    ExportResponse,
    ImportRequest,
    ImportResponse,
    ListenerResponse,
    SendRequest,
    StatusResponse,
    TransferResponse,
)
from medsync.service import ReplicationService, get_replication_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/listener/start", response_model=ListenerResponse)
async def start_listener(
    service: ReplicationService = Depends(get_replication_service)
) -> ListenerResponse:
    """Start accepting snapshots from peers on the replication port"""
    port = await service.start_listener()
    return ListenerResponse(status="listening", port=port)


@router.post("/listener/stop", response_model=StatusResponse)
async def stop_listener(
    service: ReplicationService = Depends(get_replication_service)
) -> StatusResponse:
    """Stop accepting snapshots"""
    await service.stop_listener()
    return StatusResponse(status="stopped")


@router.post("/send", response_model=TransferResponse)
async def send_snapshot(
    body: SendRequest,
    service: ReplicationService = Depends(get_replication_service)
) -> TransferResponse:
    """
    Push a full snapshot of the local records to one peer

    Flow:
    1. Resolve the peer (discovered peer_id, or explicit host/port)
    2. Open a connection to its replication listener
    3. Export, encode and write the snapshot, then half-close

    Notes:
        - "sent" only means the bytes left this device; the receiver never
          reports whether it applied them
        - To sync both ways, the peer must send back separately
    """
    try:
        if body.peer_id:
            receipt = await service.send_to_peer(body.peer_id)
        else:
            endpoint = PeerEndpoint(
                host=body.host,
                port=body.port or service.settings.replication_port
            )
            receipt = await service.send_to_endpoint(endpoint)
    except ReplicationError as e:
        logger.error(f"Failed to send snapshot: {e.message}")
        raise e.to_http_exception()

    return TransferResponse(status="sent", **receipt.to_dict())


@router.post("/export", response_model=ExportResponse)
async def export_snapshot(
    body: ExportRequest,
    service: ReplicationService = Depends(get_replication_service)
) -> ExportResponse:
    """Write a snapshot of the local records to a JSON file"""
    try:
        path = await service.export_to_file(body.path)
    except ReplicationError as e:
        logger.error(f"Failed to export snapshot: {e.message}")
        raise e.to_http_exception()

    return ExportResponse(status="exported", path=str(path))


@router.post("/import", response_model=ImportResponse)
async def import_snapshot(
    body: ImportRequest,
    service: ReplicationService = Depends(get_replication_service)
) -> ImportResponse:
    """Apply a snapshot JSON file to the local records (all-or-nothing)"""
    try:
        result = await service.import_from_file(body.path)
    except FileNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Snapshot file not found: {body.path}"
        )
    except OSError as e:
        logger.error(f"Failed to read snapshot file {body.path}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Snapshot file cannot be read: {body.path} ({e.strerror or e})"
        )
    except ReplicationError as e:
        logger.error(f"Failed to import snapshot: {e.message}")
        raise e.to_http_exception()

    return ImportResponse(
        status="imported",
        rows_applied=result.rows_applied,
        total_rows=result.total_rows
    )


@router.get("/stats")
async def get_replication_stats(
    service: ReplicationService = Depends(get_replication_service)
) -> Dict[str, Any]:
    """Listener counters, discovery state and recent transfers"""
    return service.get_stats()
