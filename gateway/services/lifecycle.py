import ipaddress
import logging
import uuid
from datetime import datetime, timezone
from ipaddress import IPv4Address, IPv4Network

from gateway.models.peer import Peer
from gateway.schemas.peer import PeerProvisioned
from gateway.services import keys
from gateway.services.audit import audit
from gateway.services.errors import DeviceError, ForbiddenAddressError, InternalError, ValidationError
from gateway.services.registry import PeerRegistry
from gateway.services.wireguard import DeviceGateway

logger = logging.getLogger(__name__)


def classify_client_address(client_host: str | None) -> IPv4Address:
    """Return the caller's IPv4 address or raise; IPv6 callers are refused."""
    if not client_host:
        raise ValidationError("missing client ip")
    try:
        addr = ipaddress.ip_address(client_host)
    except ValueError as e:
        raise ValidationError("invalid client ip") from e
    if isinstance(addr, ipaddress.IPv6Address):
        if addr.ipv4_mapped is None:
            raise ForbiddenAddressError("ipv6 not allowed")
        addr = addr.ipv4_mapped
    return addr


def host_network(addr: IPv4Address) -> IPv4Network:
    return IPv4Network(f"{addr}/32")


class PeerLifecycle:
    def __init__(
        self,
        registry: PeerRegistry,
        device: DeviceGateway,
        interface: str,
        endpoint: str,
        use_preshared_key: bool = False,
    ) -> None:
        self.registry = registry
        self.device = device
        self.interface = interface
        self.endpoint = endpoint
        self.use_preshared_key = use_preshared_key

    def _generate_keys(self) -> tuple[str, str, str | None]:
        try:
            private_key, public_key = keys.generate_key_pair()
            preshared_key = keys.generate_preshared_key() if self.use_preshared_key else None
        except Exception as e:
            logger.exception("Key generation failed")
            raise InternalError("generate key") from e
        return private_key, public_key, preshared_key

    def create_peer(self, client_host: str | None, note: str = "") -> PeerProvisioned:
        client_address = classify_client_address(client_host)

        peer_id = str(uuid.uuid4())
        private_key, public_key, preshared_key = self._generate_keys()
        allowed_network = host_network(client_address)

        self.device.add_peer(public_key, preshared_key, [allowed_network])

        now = datetime.now(timezone.utc)
        peer = Peer(
            id=peer_id,
            public_key=public_key,
            private_key=private_key,
            preshared_key=preshared_key,
            client_address=client_address,
            allowed_network=allowed_network,
            interface=self.interface,
            created_at=now,
        )
        try:
            self.registry.add(peer)
        except Exception as e:
            logger.exception("Failed to register peer %s, removing it from %s", peer_id, self.interface)
            self._discard_untracked(public_key)
            raise InternalError("register peer") from e

        audit("peer_created", peer_id=peer_id, detail=f"client={client_address} allowed_ips={allowed_network}")

        return PeerProvisioned(
            peer_id=peer_id,
            interface=self.interface,
            client_ipv4=str(client_address),
            peer_public_key=public_key,
            peer_private_key=private_key,
            preshared_key=preshared_key,
            allowed_ips=str(allowed_network),
            endpoint=self.endpoint,
            created_at=now,
            note=note,
        )

    def _discard_untracked(self, public_key: str) -> None:
        try:
            self.device.remove_peer(public_key)
        except DeviceError:
            logger.error("Peer %s stays configured on %s without a registry entry", public_key, self.interface)

    def delete_peer(self, peer_id: str) -> Peer:
        peer = self.registry.delete(peer_id)

        try:
            keys.parse_key(peer.public_key)
        except keys.InvalidKeyError as e:
            logger.error("Stored public key for %s is malformed: %s", peer_id, e)
            raise InternalError("parse public key") from e

        self.device.remove_peer(peer.public_key)
        audit("peer_deleted", peer_id=peer_id, detail=f"client={peer.client_address}")
        return peer
