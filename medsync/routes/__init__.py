"""
Replication Routes Package

FastAPI Router for device-to-device replication.

Components:
- models.py: Pydantic request/response models
- discovery_routes.py: mDNS peer discovery endpoints
- replication_routes.py: listener control, snapshot send, file export/import
"""

from fastapi import APIRouter

# Import models for re-export
from medsync.routes.models import (
    DiscoveryStartResponse,
    ExportRequest,
    ExportResponse,
    ImportRequest,
    ImportResponse,
    ListenerResponse,
    PeerInfo,
    PeersListResponse,
    SendRequest,
    StatusResponse,
    TransferResponse,
)

# Import sub-routers
from medsync.routes.discovery_routes import (
    router as discovery_router,
    start_discovery,
    stop_discovery,
    get_discovered_peers,
    get_discovery_stats,
)
from medsync.routes.replication_routes import (
    router as replication_router,
    start_listener,
    stop_listener,
    send_snapshot,
    export_snapshot,
    import_snapshot,
    get_replication_stats,
)

# Create main router that includes all sub-routers
router = APIRouter(
    prefix="/api/v1/replication",
    tags=["Replication"]
)
router.include_router(discovery_router)
router.include_router(replication_router)


__all__ = [
    # Main router
    "router",
    # Response models
    "DiscoveryStartResponse",
    "ExportResponse",
    "ImportResponse",
    "ListenerResponse",
    "PeerInfo",
    "PeersListResponse",
    "StatusResponse",
    "TransferResponse",
    # Request models
    "ExportRequest",
    "ImportRequest",
    "SendRequest",
    # Discovery endpoints
    "start_discovery",
    "stop_discovery",
    "get_discovered_peers",
    "get_discovery_stats",
    # Replication endpoints
    "start_listener",
    "stop_listener",
    "send_snapshot",
    "export_snapshot",
    "import_snapshot",
    "get_replication_stats",
]
