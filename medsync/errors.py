"""
Replication Error Types - Enums and exception classes for error handling

Contains:
- ErrorType enum (standardized replication failure kinds)
- Exception classes (ReplicationError and subclasses)

Propagation:
- LinkError / TransferError are raised to the caller (UI / HTTP routes)
- MalformedSnapshot / SnapshotImportError are caught and logged by the listener;
  the sender is never informed
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ErrorType(Enum):
    """Standard replication error types"""
    # Discovery/link errors
    DISCOVERY_FAILED = "discovery_failed"
    PEER_NOT_FOUND = "peer_not_found"
    LINK_FAILED = "link_failed"

    # Transfer errors
    CONNECT_FAILED = "connect_failed"
    WRITE_FAILED = "write_failed"

    # Codec errors
    INVALID_ENCODING = "invalid_encoding"
    INVALID_SHAPE = "invalid_shape"
    UNSUPPORTED_VALUE = "unsupported_value"

    # Import errors
    UNKNOWN_TABLE = "unknown_table"
    INVALID_COLUMN = "invalid_column"
    UPSERT_FAILED = "upsert_failed"


class ReplicationError(Exception):
    """Base exception for MedSync"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "code": self.error_type.value,
                "message": self.message,
                "details": self.details
            }
        )


class LinkError(ReplicationError):
    """Peer discovery or link establishment failed (retryable by the user)"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.LINK_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_type=error_type,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details
        )


class TransferError(ReplicationError):
    """Connection could not be opened, or dropped while writing the snapshot"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.WRITE_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_type=error_type,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )


class MalformedSnapshot(ReplicationError):
    """Bytes do not decode into a table -> rows snapshot"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INVALID_SHAPE,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_type=error_type,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class SnapshotImportError(ReplicationError):
    """Snapshot rejected or its transaction rolled back; datastore unchanged"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UPSERT_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_type=error_type,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


__all__ = [
    "ErrorType",
    "ReplicationError",
    "LinkError",
    "TransferError",
    "MalformedSnapshot",
    "SnapshotImportError",
]
