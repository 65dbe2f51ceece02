"""
Unified Configuration Management for MedSync

Single source of truth for replication settings using Pydantic BaseSettings.
All settings can be overridden via environment variables with MEDSYNC_ prefix.

Usage:
    from medsync.config import get_settings

    settings = get_settings()
    print(settings.replication_port)
    print(settings.db_path)
"""

import socket
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MedSyncSettings(BaseSettings):
    """
    Unified configuration for MedSync

    All settings can be overridden via environment variables with MEDSYNC_ prefix.
    Example: MEDSYNC_REPLICATION_PORT=6000
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================
    # SYSTEM SETTINGS
    # ============================================

    environment: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Application environment"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    structured_logs: bool = Field(
        default=False,
        description="Emit JSON log lines instead of plain text"
    )

    # ============================================
    # DATASTORE SETTINGS
    # ============================================

    data_dir: Path = Field(
        default_factory=lambda: Path.cwd() / ".medsync_data",
        description="Base data directory for the local datastore and exports"
    )

    db_filename: str = Field(
        default="medical_records.db",
        description="SQLite datastore file name inside data_dir"
    )

    export_filename: str = Field(
        default="db_export.json",
        description="File name used when exporting a snapshot to disk"
    )

    # ============================================
    # REPLICATION SETTINGS
    # ============================================

    listen_host: str = Field(
        default="0.0.0.0",
        description="Interface the replication listener binds to"
    )

    replication_port: int = Field(
        default=5555,
        description="Well-known TCP port of the replication listener"
    )

    read_chunk_size: int = Field(
        default=64 * 1024,
        description="Bytes requested per read while accumulating a snapshot"
    )

    connect_timeout: Optional[float] = Field(
        default=None,
        description="Seconds to wait for a peer connection (None = wait indefinitely)"
    )

    autostart_listener: bool = Field(
        default=True,
        description="Start the replication listener when the API starts"
    )

    # ============================================
    # API SETTINGS
    # ============================================

    api_host: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP control API binds to"
    )

    api_port: int = Field(
        default=8000,
        description="Port of the HTTP control API"
    )

    # ============================================
    # DISCOVERY SETTINGS
    # ============================================

    service_type: str = Field(
        default="_medsync._tcp.local.",
        description="mDNS service type advertised and browsed by peers"
    )

    device_name: str = Field(
        default_factory=socket.gethostname,
        description="Device identifier announced to peers"
    )

    display_name: str = Field(
        default="",
        description="Human readable name announced to peers (defaults to device name)"
    )

    @field_validator("replication_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Port 0 asks the OS for an ephemeral port"""
        if not 0 <= v <= 65535:
            raise ValueError(f"replication_port must be between 0 and 65535, got {v}")
        return v

    @field_validator("read_chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("read_chunk_size must be positive")
        return v

    @field_validator("data_dir", mode="after")
    @classmethod
    def ensure_data_dir_exists(cls, v: Path) -> Path:
        """Ensure data directory exists"""
        v.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def export_path(self) -> Path:
        return self.data_dir / self.export_filename

    @property
    def announced_name(self) -> str:
        return self.display_name or f"MedSync ({self.device_name})"


@lru_cache()
def get_settings() -> MedSyncSettings:
    """
    Get cached settings instance (singleton pattern)

    Returns:
        MedSyncSettings: Application settings
    """
    return MedSyncSettings()
