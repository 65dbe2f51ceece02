"""
Tests for medsync/service.py

Tests the replication facade the UI/API drives:
- Listener start/stop and received-outcome history
- Discovery through an injected link service
- send_to_peer / send_to_endpoint between two services
- File export/import
- Singleton pattern
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from medsync.config import MedSyncSettings
from medsync.errors import ErrorType, LinkError, MalformedSnapshot
from medsync.models import PeerDescriptor, PeerEndpoint
from medsync.service import ReplicationService, get_replication_service


# ========== Fixtures ==========

@pytest.fixture
def peer_settings(tmp_path):
    """Settings for a second device"""
    return MedSyncSettings(
        data_dir=tmp_path / "peer_data",
        listen_host="127.0.0.1",
        replication_port=0,
        autostart_listener=False,
        device_name="peer-device",
    )


@pytest.fixture
def fake_link():
    """In-memory link service"""
    link = MagicMock()
    link.start = AsyncMock()
    link.stop = AsyncMock()
    link.connect = AsyncMock()
    link.list_available_peers.return_value = []
    link.get_stats.return_value = {"is_running": True}
    return link


async def _wait_for_received(service, count=1):
    for _ in range(200):
        if len(service.received) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("listener did not record an outcome")


# ========== Tests ==========

class TestServiceInit:
    """Tests for ReplicationService construction"""

    def test_creates_schema(self, settings):
        """Test the datastore is initialized at settings.db_path"""
        service = ReplicationService(settings)

        assert settings.db_path.exists()
        assert service.store.count_rows("ame_records") == 0

    def test_listener_uses_settings(self, settings):
        """Test listener host/port/chunk size come from settings"""
        service = ReplicationService(settings)

        assert service.listener.host == "127.0.0.1"
        assert service.listener.port == 0
        assert service.listener.read_chunk_size == settings.read_chunk_size

    def test_list_peers_without_discovery(self, settings):
        """Test no peers before discovery starts"""
        assert ReplicationService(settings).list_peers() == []


class TestDeviceToDevice:
    """Two services on loopback"""

    @pytest.mark.asyncio
    async def test_send_to_endpoint(self, settings, peer_settings):
        """Test A's records land in B and both sides record the transfer"""
        device_a = ReplicationService(settings)
        device_b = ReplicationService(peer_settings)
        with device_a.store.transaction() as conn:
            device_a.store.upsert(conn, "ame_records", ["id", "name"], [1, "X"])

        port = await device_b.start_listener()
        try:
            receipt = await device_a.send_to_endpoint(PeerEndpoint("127.0.0.1", port))
            await _wait_for_received(device_b)
        finally:
            await device_b.shutdown()

        assert device_b.store.scan_table("ame_records")[0]["name"] == "X"
        assert receipt.row_count == 1

        stats_a = device_a.get_stats()
        assert stats_a["transfers_sent"] == 1
        assert stats_a["recent_sent"][0]["row_count"] == 1

        received = device_b.get_stats()["recent_received"]
        assert received[0]["status"] == "imported"
        assert received[0]["rows_applied"] == 1

    @pytest.mark.asyncio
    async def test_send_to_discovered_peer(self, settings, peer_settings, fake_link):
        """Test send_to_peer resolves through the link service"""
        device_a = ReplicationService(settings, link=fake_link)
        device_b = ReplicationService(peer_settings)

        port = await device_b.start_listener()
        fake_link.connect.return_value = PeerEndpoint("127.0.0.1", port)
        try:
            receipt = await device_a.send_to_peer("peer-b")
            await _wait_for_received(device_b)
        finally:
            await device_b.shutdown()

        fake_link.connect.assert_awaited_once_with("peer-b")
        assert receipt.peer.port == port

    @pytest.mark.asyncio
    async def test_send_to_peer_without_discovery(self, settings):
        """Test sending by peer ID before discovery raises LinkError"""
        service = ReplicationService(settings)

        with pytest.raises(LinkError) as exc_info:
            await service.send_to_peer("peer-b")

        assert exc_info.value.error_type == ErrorType.DISCOVERY_FAILED

    @pytest.mark.asyncio
    async def test_link_error_propagates(self, settings, fake_link):
        """Test an unknown peer error is surfaced unchanged"""
        fake_link.connect.side_effect = LinkError("gone", error_type=ErrorType.PEER_NOT_FOUND)
        service = ReplicationService(settings, link=fake_link)

        with pytest.raises(LinkError):
            await service.send_to_peer("peer-b")

        assert service.transfers_sent == 0


class TestDiscovery:
    """Tests for discovery control"""

    @pytest.mark.asyncio
    async def test_start_and_stop_injected_link(self, settings, fake_link):
        """Test start/stop delegate to the link service"""
        service = ReplicationService(settings, link=fake_link)

        assert await service.start_discovery() is fake_link
        await service.stop_discovery()

        fake_link.start.assert_awaited_once()
        fake_link.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_creates_zeroconf_link(self, settings):
        """Test a ZeroconfLinkService is built from settings on first start"""
        service = ReplicationService(settings)

        with patch("medsync.service.ZeroconfLinkService") as mock_link_cls:
            mock_link_cls.return_value.start = AsyncMock()
            await service.start_discovery()

        kwargs = mock_link_cls.call_args.kwargs
        assert kwargs["display_name"] == "MedSync (test-device)"
        assert kwargs["device_name"] == "test-device"
        assert kwargs["service_type"] == settings.service_type

    def test_list_peers_delegates(self, settings, fake_link):
        """Test peers come from the link service"""
        peer = PeerDescriptor("peer-b", "B", "b", "10.0.0.2", 5555, "2026-01-01T00:00:00")
        fake_link.list_available_peers.return_value = [peer]

        assert ReplicationService(settings, link=fake_link).list_peers() == [peer]

    def test_stats_include_discovery(self, settings, fake_link):
        """Test discovery stats are reported"""
        stats = ReplicationService(settings, link=fake_link).get_stats()

        assert stats["discovery"] == {"is_running": True}


class TestFiles:
    """Tests for export_to_file / import_from_file"""

    @pytest.mark.asyncio
    async def test_export_then_import_on_peer(self, settings, peer_settings):
        """Test a file exported on A applies on B"""
        device_a = ReplicationService(settings)
        device_b = ReplicationService(peer_settings)
        with device_a.store.transaction() as conn:
            device_a.store.upsert(conn, "prescriptions", ["id", "diagnosis"], [1, "Flu"])

        path = await device_a.export_to_file()
        result = await device_b.import_from_file(path)

        assert path == settings.export_path
        assert result.rows_applied["prescriptions"] == 1
        assert device_b.store.scan_table("prescriptions")[0]["diagnosis"] == "Flu"

    @pytest.mark.asyncio
    async def test_import_malformed_file(self, settings, tmp_path):
        """Test a corrupt file raises MalformedSnapshot"""
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")

        with pytest.raises(MalformedSnapshot):
            await ReplicationService(settings).import_from_file(path)


class TestSingleton:
    """Tests for get_replication_service"""

    def test_singleton(self, settings, reset_singleton):
        """Test the same instance is returned"""
        with patch("medsync.service.get_settings", return_value=settings):
            first = get_replication_service()
            second = get_replication_service()

        assert first is second
        assert first.settings is settings
