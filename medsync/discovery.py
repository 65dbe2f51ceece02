"""
Peer Discovery / Link Service for MedSync

Local network peer discovery using mDNS (zero-configuration networking).
Each device announces its replication listener; the initiating device picks a
peer from the discovered list and `connect` resolves it to the endpoint the
replication client dials.

The core only depends on the PeerLinkService protocol; ZeroconfLinkService is
the LAN implementation.
"""

import asyncio
import hashlib
import logging
import socket
import threading
import uuid
from datetime import datetime, UTC
from typing import Dict, List, Optional, Protocol

from zeroconf import Error as ZeroconfError
from zeroconf import ServiceBrowser, ServiceInfo, ServiceListener, Zeroconf

from medsync.errors import ErrorType, LinkError
from medsync.models import PeerDescriptor, PeerEndpoint

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_medsync._tcp.local."


class PeerLinkService(Protocol):
    """What the replication core needs from a discovery/link layer"""

    def list_available_peers(self) -> List[PeerDescriptor]:
        ...

    async def connect(self, peer_address: str) -> PeerEndpoint:
        ...


def generate_peer_id() -> str:
    """Stable peer ID derived from the MAC address"""
    mac = ':'.join(['{:02x}'.format((uuid.getnode() >> elements) & 0xff)
                    for elements in range(0, 2 * 6, 2)][::-1])
    return hashlib.sha256(mac.encode()).hexdigest()[:16]


def get_local_ip() -> str:
    """Get local IP address"""
    try:
        # UDP connect only selects a route; nothing is sent
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError:
        return "127.0.0.1"


class PeerBrowserListener(ServiceListener):
    """Feeds zeroconf browse events into a ZeroconfLinkService"""

    def __init__(self, link: "ZeroconfLinkService"):
        self.link = link

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service added: {name}")
        info = zc.get_service_info(type_, name)
        if info:
            self.link._record_peer(name, info)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service updated: {name}")
        info = zc.get_service_info(type_, name)
        if info:
            self.link._record_peer(name, info)

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service removed: {name}")
        self.link._mark_offline(name)


class ZeroconfLinkService:
    """
    Offline peer discovery using mDNS (Bonjour/Avahi)

    Announces this device's replication port and browses for other MedSync
    devices. Works without internet; only requires a shared local link.
    """

    def __init__(self,
                 display_name: str,
                 device_name: str,
                 port: int,
                 service_type: str = SERVICE_TYPE,
                 peer_id: Optional[str] = None):
        self.display_name = display_name
        self.device_name = device_name
        self.port = port
        self.service_type = service_type
        self.peer_id = peer_id or generate_peer_id()

        self.peers: Dict[str, PeerDescriptor] = {}
        self._names: Dict[str, str] = {}  # mDNS service name -> peer_id
        self._lock = threading.Lock()

        self.zeroconf: Optional[Zeroconf] = None
        self.service_browser: Optional[ServiceBrowser] = None
        self.service_info: Optional[ServiceInfo] = None

        self.is_running = False

    async def start(self) -> None:
        """
        Start announcing and browsing.

        Raises:
            LinkError: if mDNS could not be started
        """
        if self.is_running:
            return

        try:
            self.zeroconf = Zeroconf()
            info = self._build_service_info()

            await asyncio.to_thread(self.zeroconf.register_service, info)
            self.service_info = info

            self.service_browser = ServiceBrowser(
                self.zeroconf,
                self.service_type,
                listener=PeerBrowserListener(self)
            )
        except (OSError, ValueError, ZeroconfError) as e:
            logger.error(f"Failed to start peer discovery: {e}")
            await self._close_zeroconf()
            raise LinkError(
                f"Failed to start peer discovery: {e}",
                error_type=ErrorType.DISCOVERY_FAILED
            ) from e

        self.is_running = True
        logger.info(f"Peer discovery started: {self.display_name} (peer {self.peer_id}) on port {self.port}")

    def _build_service_info(self) -> ServiceInfo:
        local_ip = get_local_ip()
        service_name = f"{self.display_name} ({self.peer_id}).{self.service_type}"

        properties = {
            'peer_id': self.peer_id,
            'display_name': self.display_name,
            'device_name': self.device_name,
        }

        return ServiceInfo(
            self.service_type,
            service_name,
            addresses=[socket.inet_aton(local_ip)],
            port=self.port,
            properties={k: v.encode('utf-8') for k, v in properties.items()},
            server=f"{self.device_name}.local."
        )

    def _record_peer(self, name: str, info: ServiceInfo) -> None:
        """Store a resolved peer; ignores our own announcement"""
        properties = {
            k.decode('utf-8'): (v.decode('utf-8') if v is not None else '')
            for k, v in (info.properties or {}).items()
        }

        peer_id = properties.get('peer_id') or name
        if peer_id == self.peer_id:
            return

        addresses = info.parsed_addresses()
        if not addresses:
            logger.warning(f"Peer {name} announced no address")
            return

        peer = PeerDescriptor(
            peer_id=peer_id,
            display_name=properties.get('display_name', 'Unknown'),
            device_name=properties.get('device_name', 'Unknown'),
            address=addresses[0],
            port=info.port,
            last_seen=datetime.now(UTC).isoformat(),
            status='online'
        )

        with self._lock:
            self.peers[peer_id] = peer
            self._names[name] = peer_id

        logger.info(f"Peer discovered: {peer.display_name} at {peer.address}:{peer.port}")

    def _mark_offline(self, name: str) -> None:
        with self._lock:
            peer_id = self._names.get(name)
            peer = self.peers.get(peer_id) if peer_id else None
            if peer:
                peer.status = 'offline'

        if peer:
            logger.info(f"Peer left: {peer.display_name}")

    def list_available_peers(self) -> List[PeerDescriptor]:
        """Peers currently online"""
        with self._lock:
            return [p for p in self.peers.values() if p.status == 'online']

    def get_peer(self, peer_address: str) -> Optional[PeerDescriptor]:
        """Look a peer up by peer ID or by network address"""
        with self._lock:
            if peer_address in self.peers:
                return self.peers[peer_address]
            for peer in self.peers.values():
                if peer.address == peer_address:
                    return peer
        return None

    async def connect(self, peer_address: str) -> PeerEndpoint:
        """
        Resolve a discovered peer to its replication endpoint.

        Raises:
            LinkError: unknown or offline peer
        """
        peer = self.get_peer(peer_address)

        if peer is None:
            raise LinkError(
                f"Peer {peer_address} not found",
                error_type=ErrorType.PEER_NOT_FOUND,
                details={"peer": peer_address}
            )

        if peer.status != 'online':
            raise LinkError(
                f"Peer {peer.display_name} is offline",
                error_type=ErrorType.LINK_FAILED,
                details={"peer": peer_address}
            )

        logger.info(f"Linked to {peer.display_name} at {peer.address}:{peer.port}")
        return PeerEndpoint(host=peer.address, port=peer.port)

    async def stop(self) -> None:
        """Stop discovery service"""
        if not self.is_running:
            return

        self.is_running = False
        await self._close_zeroconf()
        logger.info("Peer discovery stopped")

    async def _close_zeroconf(self) -> None:
        if self.service_browser:
            self.service_browser.cancel()
            self.service_browser = None

        if self.zeroconf:
            if self.service_info:
                await asyncio.to_thread(self.zeroconf.unregister_service, self.service_info)
            await asyncio.to_thread(self.zeroconf.close)

        self.zeroconf = None
        self.service_info = None

    def get_stats(self) -> Dict:
        """Get discovery statistics"""
        with self._lock:
            peers = [p.to_dict() for p in self.peers.values()]

        return {
            'is_running': self.is_running,
            'peer_id': self.peer_id,
            'display_name': self.display_name,
            'device_name': self.device_name,
            'port': self.port,
            'discovered_peers': len(peers),
            'peers': peers,
        }
