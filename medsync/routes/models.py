"""
Replication API - Pydantic Models

Request and response models for the replication routes.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class StatusResponse(BaseModel):
    status: str


class ListenerResponse(BaseModel):
    status: str
    port: Optional[int] = None


class DiscoveryStartResponse(BaseModel):
    status: str
    peer_id: Optional[str] = None
    display_name: str
    device_name: str


class PeerInfo(BaseModel):
    peer_id: str
    display_name: str
    device_name: str
    address: str
    port: int
    status: str
    last_seen: str


class PeersListResponse(BaseModel):
    count: int
    peers: List[PeerInfo]


class TransferResponse(BaseModel):
    """Bytes were written to the peer; the peer never confirms applying them"""
    status: str
    peer: str
    bytes_written: int
    tables: List[str]
    row_count: int
    transfer_id: str


class ExportResponse(BaseModel):
    status: str
    path: str


class ImportResponse(BaseModel):
    status: str
    rows_applied: Dict[str, int]
    total_rows: int


# ============================================================================
# REQUEST MODELS
# ============================================================================

class SendRequest(BaseModel):
    """Target either a discovered peer (peer_id) or an explicit host/port"""
    peer_id: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)

    @model_validator(mode="after")
    def require_target(self) -> "SendRequest":
        if not self.peer_id and not self.host:
            raise ValueError("Either peer_id or host is required")
        return self


class ExportRequest(BaseModel):
    path: Optional[str] = None


class ImportRequest(BaseModel):
    path: str
