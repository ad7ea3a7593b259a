import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from ipaddress import IPv4Network
from typing import Sequence

import httpx

from gateway.config import Settings
from gateway.services.errors import DeviceError

logger = logging.getLogger(__name__)


class DeviceGateway(ABC):
    """Peer configuration on the WireGuard interface."""

    @abstractmethod
    def add_peer(self, public_key: str, preshared_key: str | None, allowed_networks: Sequence[IPv4Network]) -> None:
        ...

    @abstractmethod
    def remove_peer(self, public_key: str) -> None:
        ...

    @abstractmethod
    def handshakes(self) -> dict[str, datetime | None]:
        """Latest handshake per public key; None for peers that never completed one."""

    def verify_interface(self) -> None:
        pass

    def close(self) -> None:
        pass


def _handshake_time(epoch) -> datetime | None:
    if not epoch:
        return None
    try:
        return datetime.fromtimestamp(int(epoch), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as e:
        raise DeviceError(f"bad handshake timestamp {epoch!r}") from e


class WgctlDeviceGateway(DeviceGateway):
    """WireGuard control via wg-daemon (unix socket)."""

    def __init__(
        self,
        interface: str,
        token: str,
        socket_path: str | None = None,
        keepalive_seconds: int = 0,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.interface = interface
        self._token = token
        self._keepalive = keepalive_seconds if keepalive_seconds > 0 else None
        if client is None:
            client = httpx.Client(
                transport=httpx.HTTPTransport(uds=socket_path),
                base_url="http://wgctl",
                timeout=timeout,
            )
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "WgctlDeviceGateway":
        return cls(
            interface=settings.interface,
            token=settings.wgctl_token,
            socket_path=settings.wgctl_socket,
            keepalive_seconds=settings.persistent_keepalive_seconds,
            timeout=settings.wgctl_timeout_seconds,
        )

    def _call(self, op: str, method: str, path: str, pubkey: str | None = None, **kwargs) -> dict:
        try:
            r = self._client.request(
                method,
                path,
                headers={"X-WGCTL-Token": self._token},
                **kwargs,
            )
            r.raise_for_status()
            data = r.json() if r.content else {}
        except httpx.HTTPStatusError as e:
            body = getattr(e.response, "text", "")
            logger.error("[WG] %s FAILED iface=%s pubkey=%s status=%s body=%r",
                         op, self.interface, pubkey, e.response.status_code, body)
            raise DeviceError(f"{op}: wgctl returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.exception("[WG] %s ERROR iface=%s pubkey=%s err=%r",
                             op, self.interface, pubkey, e)
            raise DeviceError(f"{op}: {e}") from e
        if not isinstance(data, dict):
            logger.error("[WG] %s FAILED iface=%s pubkey=%s unexpected response %r",
                         op, self.interface, pubkey, data)
            raise DeviceError(f"{op}: unexpected wgctl response")
        return data

    def add_peer(self, public_key: str, preshared_key: str | None, allowed_networks: Sequence[IPv4Network]) -> None:
        allowed_ips = [str(net) for net in allowed_networks]
        logger.info("[WG] add peer iface=%s pubkey=%s allowed_ips=%s",
                    self.interface, public_key, allowed_ips)
        data = self._call(
            "add peer",
            "POST",
            "/peer/add",
            pubkey=public_key,
            json={
                "interface": self.interface,
                "pubkey": public_key,
                "preshared_key": preshared_key,
                "allowed_ips": allowed_ips,
                "replace_allowed_ips": True,
                "persistent_keepalive": self._keepalive,
            },
        )
        logger.info("[WG] add peer OK iface=%s pubkey=%s action=%s",
                    self.interface, public_key, data.get("action"))

    def remove_peer(self, public_key: str) -> None:
        logger.info("[WG] remove peer iface=%s pubkey=%s", self.interface, public_key)
        data = self._call(
            "remove peer",
            "POST",
            "/peer/remove",
            pubkey=public_key,
            json={"interface": self.interface, "pubkey": public_key},
        )
        logger.info("[WG] remove peer OK iface=%s pubkey=%s action=%s",
                    self.interface, public_key, data.get("action"))

    def handshakes(self) -> dict[str, datetime | None]:
        data = self._call("handshakes", "GET", "/peer/handshakes", params={"interface": self.interface})
        result: dict[str, datetime | None] = {}
        peers = data.get("peers") or []
        if not isinstance(peers, list):
            raise DeviceError(f"handshakes: peers is {type(peers).__name__}, not a list")
        for peer in peers:
            if not isinstance(peer, dict):
                raise DeviceError(f"handshakes: bad peer entry {peer!r}")
            pubkey = peer.get("pubkey")
            if pubkey:
                result[pubkey] = _handshake_time(peer.get("latest_handshake"))
        return result

    def verify_interface(self) -> None:
        data = self._call("load device", "GET", "/device", params={"interface": self.interface})
        logger.info("[WG] interface %s ready, %d peer(s) configured",
                    self.interface, len(data.get("peers") or []))

    def close(self) -> None:
        self._client.close()
