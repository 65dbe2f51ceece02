"""
Shared pytest fixtures for MedSync tests.

Provides:
- Record store fixtures (empty and populated, one per simulated device)
- Settings pointing at a temporary data directory and an ephemeral port
- Singleton reset for the replication service and cached settings
"""

import pytest
from pathlib import Path
from typing import Generator

from medsync.config import MedSyncSettings, get_settings
from medsync.db import RecordStore


# ============================================================================
# Record Store Fixtures
# ============================================================================

def _make_store(path: Path) -> RecordStore:
    store = RecordStore(path)
    store.init_schema()
    return store


@pytest.fixture
def store(tmp_path: Path) -> RecordStore:
    """Empty datastore with the tracked tables created"""
    return _make_store(tmp_path / "device_a" / "records.db")


@pytest.fixture
def peer_store(tmp_path: Path) -> RecordStore:
    """Second, independent datastore standing in for the peer device"""
    return _make_store(tmp_path / "device_b" / "records.db")


@pytest.fixture
def populated_store(store: RecordStore) -> RecordStore:
    """Datastore with rows in every tracked table"""
    with store.transaction() as conn:
        store.upsert(conn, "ame_records", ["id", "name", "personnel_id", "rank"],
                     [1, "X", "IC-1001", "Maj"])
        store.upsert(conn, "ame_records", ["id", "name", "personnel_id", "bmi"],
                     [2, "Y", "IC-1002", 23.4])
        store.upsert(conn, "low_medical_records", ["id", "personnel_id", "category"],
                     [1, "IC-2001", "A1"])
        store.upsert(conn, "prescriptions", ["id", "full_name", "diagnosis", "medications"],
                     [1, "Col Rao", "Hypertension", "Amlodipine 5mg"])
    return store


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path: Path) -> MedSyncSettings:
    """Settings isolated to tmp_path, listener on an ephemeral loopback port"""
    return MedSyncSettings(
        data_dir=tmp_path / "medsync_data",
        listen_host="127.0.0.1",
        replication_port=0,
        autostart_listener=False,
        device_name="test-device",
    )


@pytest.fixture
def reset_singleton() -> Generator[None, None, None]:
    """Reset replication service singleton and cached settings"""
    import medsync.service as module

    original = module._replication_service
    module._replication_service = None
    get_settings.cache_clear()
    yield
    module._replication_service = original
    get_settings.cache_clear()
