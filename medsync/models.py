"""
Replication data model

A Snapshot is a plain mapping of table name -> ordered rows; a Row is a
mapping of column name -> scalar. Both stay plain dicts/lists so the codec can
serialize them directly.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

# Fixed table set known to both peers; never negotiated on the wire
TRACKED_TABLES: Tuple[str, ...] = (
    "ame_records",
    "low_medical_records",
    "prescriptions",
)

Scalar = Union[str, int, float, None]
Row = Dict[str, Scalar]
Snapshot = Dict[str, List[Row]]


@dataclass(frozen=True)
class PeerEndpoint:
    """Resolved replication address of a peer, consumed once per send"""
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class PeerDescriptor:
    """A peer visible to the link service"""
    peer_id: str
    display_name: str
    device_name: str
    address: str
    port: int
    last_seen: str
    status: str = "online"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TransferReceipt:
    """
    Result of a send.

    Only states that the snapshot bytes were handed to the socket. The peer
    never acknowledges, so this says nothing about the data being applied.
    """
    peer: PeerEndpoint
    bytes_written: int
    tables: List[str]
    row_count: int
    transfer_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "peer": str(self.peer),
            "bytes_written": self.bytes_written,
            "tables": self.tables,
            "row_count": self.row_count,
            "transfer_id": self.transfer_id,
        }


@dataclass
class ImportResult:
    """Rows upserted per table by one committed import"""
    rows_applied: Dict[str, int] = field(default_factory=dict)

    @property
    def total_rows(self) -> int:
        return sum(self.rows_applied.values())


@dataclass
class ConnectionOutcome:
    """What happened to one inbound listener connection"""
    transfer_id: str
    peer: Optional[str]
    bytes_received: int
    status: str  # 'imported', 'malformed', 'import_failed', 'connection_error'
    result: Optional[ImportResult] = None
    error: Optional[str] = None


def row_count(snapshot: Snapshot) -> int:
    """Total number of rows across all tables of a snapshot"""
    return sum(len(rows) for rows in snapshot.values())
