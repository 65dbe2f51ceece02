"""
Tests for Peer Discovery / Link Service

Tests the mDNS-based peer discovery and resolution of a chosen peer to its
replication endpoint. Zeroconf is mocked throughout.
"""

import socket

import pytest
from unittest.mock import MagicMock, patch

from medsync.discovery import (
    SERVICE_TYPE,
    PeerBrowserListener,
    ZeroconfLinkService,
    generate_peer_id,
    get_local_ip,
)
from medsync.errors import ErrorType, LinkError
from medsync.models import PeerDescriptor, PeerEndpoint


# ========== Fixtures ==========

@pytest.fixture
def link():
    """Link service that has not started mDNS"""
    return ZeroconfLinkService(
        display_name="MedSync (ward-1)",
        device_name="ward-1",
        port=5555,
        peer_id="local-peer"
    )


def _service_info(peer_id="peer-b", address="192.168.1.20", port=5555,
                  display_name="MedSync (ward-2)", device_name="ward-2"):
    info = MagicMock()
    info.properties = {
        b"peer_id": peer_id.encode("utf-8"),
        b"display_name": display_name.encode("utf-8"),
        b"device_name": device_name.encode("utf-8"),
    }
    info.parsed_addresses.return_value = [address] if address else []
    info.port = port
    return info


class TestHelpers:
    """Tests for module helpers"""

    def test_generate_peer_id_stable(self):
        """Test peer ID is stable and 16 hex chars"""
        first = generate_peer_id()

        assert first == generate_peer_id()
        assert len(first) == 16
        int(first, 16)

    def test_get_local_ip(self):
        """Test a dotted-quad address is returned"""
        ip = get_local_ip()

        socket.inet_aton(ip)

    def test_get_local_ip_fallback(self):
        """Test loopback fallback when no route exists"""
        with patch("medsync.discovery.socket.socket") as mock_socket:
            mock_socket.return_value.connect.side_effect = OSError("no route")

            assert get_local_ip() == "127.0.0.1"

    def test_service_type_constant(self):
        """Test the mDNS service type"""
        assert SERVICE_TYPE == "_medsync._tcp.local."


class TestPeerRecords:
    """Tests for recording peers from browse events"""

    def test_record_peer(self, link):
        """Test a resolved service becomes an online peer"""
        link._record_peer("ward-2._medsync._tcp.local.", _service_info())

        peers = link.list_available_peers()
        assert len(peers) == 1
        peer = peers[0]
        assert isinstance(peer, PeerDescriptor)
        assert peer.peer_id == "peer-b"
        assert peer.address == "192.168.1.20"
        assert peer.port == 5555
        assert peer.status == "online"

    def test_own_announcement_ignored(self, link):
        """Test this device never lists itself"""
        link._record_peer("self", _service_info(peer_id="local-peer"))

        assert link.list_available_peers() == []

    def test_peer_without_address_ignored(self, link):
        """Test a service with no address is not recorded"""
        link._record_peer("ghost", _service_info(address=None))

        assert link.peers == {}

    def test_mark_offline(self, link):
        """Test removed services drop out of the available list"""
        link._record_peer("ward-2", _service_info())

        link._mark_offline("ward-2")

        assert link.list_available_peers() == []
        assert link.peers["peer-b"].status == "offline"

    def test_mark_offline_unknown_name(self, link):
        """Test removing an unknown service is harmless"""
        link._mark_offline("never-seen")

        assert link.peers == {}

    def test_get_peer_by_id_or_address(self, link):
        """Test lookup accepts peer ID or address"""
        link._record_peer("ward-2", _service_info())

        assert link.get_peer("peer-b").address == "192.168.1.20"
        assert link.get_peer("192.168.1.20").peer_id == "peer-b"
        assert link.get_peer("10.9.9.9") is None


class TestPeerBrowserListener:
    """Tests for the zeroconf ServiceListener adapter"""

    def test_add_service(self, link):
        """Test add_service resolves and records the peer"""
        zc = MagicMock()
        zc.get_service_info.return_value = _service_info()

        PeerBrowserListener(link).add_service(zc, SERVICE_TYPE, "ward-2")

        zc.get_service_info.assert_called_once_with(SERVICE_TYPE, "ward-2")
        assert link.get_peer("peer-b") is not None

    def test_add_service_unresolved(self, link):
        """Test unresolvable services are skipped"""
        zc = MagicMock()
        zc.get_service_info.return_value = None

        PeerBrowserListener(link).add_service(zc, SERVICE_TYPE, "ward-2")

        assert link.peers == {}

    def test_update_service_refreshes_address(self, link):
        """Test update_service replaces the stored address"""
        zc = MagicMock()
        listener = PeerBrowserListener(link)
        zc.get_service_info.return_value = _service_info()
        listener.add_service(zc, SERVICE_TYPE, "ward-2")

        zc.get_service_info.return_value = _service_info(address="192.168.1.77")
        listener.update_service(zc, SERVICE_TYPE, "ward-2")

        assert link.get_peer("peer-b").address == "192.168.1.77"

    def test_remove_service(self, link):
        """Test remove_service marks the peer offline"""
        zc = MagicMock()
        zc.get_service_info.return_value = _service_info()
        listener = PeerBrowserListener(link)
        listener.add_service(zc, SERVICE_TYPE, "ward-2")

        listener.remove_service(zc, SERVICE_TYPE, "ward-2")

        assert link.list_available_peers() == []


class TestConnect:
    """Tests for resolving a peer to its replication endpoint"""

    @pytest.mark.asyncio
    async def test_connect_known_peer(self, link):
        """Test connect returns the peer's endpoint"""
        link._record_peer("ward-2", _service_info(port=6000))

        endpoint = await link.connect("peer-b")

        assert endpoint == PeerEndpoint("192.168.1.20", 6000)

    @pytest.mark.asyncio
    async def test_connect_not_found(self, link):
        """Test unknown peers raise PEER_NOT_FOUND"""
        with pytest.raises(LinkError) as exc_info:
            await link.connect("nobody")

        assert exc_info.value.error_type == ErrorType.PEER_NOT_FOUND
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connect_offline_peer(self, link):
        """Test offline peers raise LINK_FAILED"""
        link._record_peer("ward-2", _service_info())
        link._mark_offline("ward-2")

        with pytest.raises(LinkError) as exc_info:
            await link.connect("peer-b")

        assert exc_info.value.error_type == ErrorType.LINK_FAILED


class TestLifecycle:
    """Async start/stop with zeroconf mocked"""

    @pytest.mark.asyncio
    async def test_start_registers_and_browses(self, link):
        """Test start announces this device and starts a browser"""
        with patch("medsync.discovery.Zeroconf") as mock_zc, \
                patch("medsync.discovery.ServiceBrowser") as mock_browser:
            await link.start()

        assert link.is_running is True
        mock_zc.return_value.register_service.assert_called_once()
        info = mock_zc.return_value.register_service.call_args.args[0]
        assert info.port == 5555
        assert info.properties[b"peer_id"] == b"local-peer"
        mock_browser.assert_called_once()
        assert mock_browser.call_args.args[1] == SERVICE_TYPE

    @pytest.mark.asyncio
    async def test_start_failure_raises_link_error(self, link):
        """Test an mDNS socket error surfaces as DISCOVERY_FAILED"""
        with patch("medsync.discovery.Zeroconf") as mock_zc, \
                patch("medsync.discovery.ServiceBrowser"):
            mock_zc.return_value.register_service.side_effect = OSError("no multicast")

            with pytest.raises(LinkError) as exc_info:
                await link.start()

        assert exc_info.value.error_type == ErrorType.DISCOVERY_FAILED
        assert link.is_running is False
        assert link.zeroconf is None
        mock_zc.return_value.unregister_service.assert_not_called()
        mock_zc.return_value.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop(self, link):
        """Test stop unregisters, cancels the browser and closes zeroconf"""
        with patch("medsync.discovery.Zeroconf") as mock_zc, \
                patch("medsync.discovery.ServiceBrowser") as mock_browser:
            await link.start()
            await link.stop()

        assert link.is_running is False
        assert link.zeroconf is None
        assert link.service_browser is None
        mock_browser.return_value.cancel.assert_called_once()
        mock_zc.return_value.unregister_service.assert_called_once()
        mock_zc.return_value.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, link):
        """Test stop before start is harmless"""
        await link.stop()

        assert link.is_running is False

    def test_get_stats(self, link):
        """Test statistics include discovered peers"""
        link._record_peer("ward-2", _service_info())

        stats = link.get_stats()

        assert stats["is_running"] is False
        assert stats["peer_id"] == "local-peer"
        assert stats["discovered_peers"] == 1
        assert stats["peers"][0]["address"] == "192.168.1.20"
