import dataclasses
from dataclasses import dataclass
from datetime import datetime
from ipaddress import IPv4Address, IPv4Network


@dataclass
class Peer:
    id: str
    public_key: str
    private_key: str
    client_address: IPv4Address
    allowed_network: IPv4Network
    interface: str
    created_at: datetime
    preshared_key: str | None = None
    last_handshake_at: datetime | None = None

    def copy(self) -> "Peer":
        return dataclasses.replace(self)

    @property
    def connected(self) -> bool:
        return self.last_handshake_at is not None
