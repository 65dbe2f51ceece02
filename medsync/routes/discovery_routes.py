"""
Replication API - Discovery Routes

mDNS peer discovery endpoints ("discover" in the sync screen).
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from medsync.errors import ReplicationError
from medsync.routes.models import (
    DiscoveryStartResponse,
    PeersListResponse,
    StatusResponse,
)
from medsync.service import ReplicationService, get_replication_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/discovery/start", response_model=DiscoveryStartResponse)
async def start_discovery(
    service: ReplicationService = Depends(get_replication_service)
) -> DiscoveryStartResponse:
    """
    Start mDNS peer discovery on the local link

    Announces this device's replication listener and browses for other
    devices. Poll GET /peers for the discovered list.
    """
    try:
        link = await service.start_discovery()
    except ReplicationError as e:
        logger.error(f"Failed to start discovery: {e.message}")
        raise e.to_http_exception()

    return DiscoveryStartResponse(
        status="started",
        peer_id=getattr(link, "peer_id", None),
        display_name=service.settings.announced_name,
        device_name=service.settings.device_name
    )


@router.post("/discovery/stop", response_model=StatusResponse)
async def stop_discovery(
    service: ReplicationService = Depends(get_replication_service)
) -> StatusResponse:
    """Stop peer discovery"""
    await service.stop_discovery()
    return StatusResponse(status="stopped")


@router.get("/peers", response_model=PeersListResponse)
async def get_discovered_peers(
    service: ReplicationService = Depends(get_replication_service)
) -> PeersListResponse:
    """Get list of peers currently visible on the local link"""
    peers = service.list_peers()

    return PeersListResponse(
        count=len(peers),
        peers=[p.to_dict() for p in peers]
    )


@router.get("/discovery/stats")
async def get_discovery_stats(
    service: ReplicationService = Depends(get_replication_service)
) -> Dict[str, Any]:
    """Get discovery statistics"""
    return service.get_stats()["discovery"] or {"is_running": False}
