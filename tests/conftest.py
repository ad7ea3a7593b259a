"""Shared fixtures for the gateway tests."""

import threading
from datetime import datetime
from ipaddress import IPv4Network

import pytest
from fastapi.testclient import TestClient

from gateway.api.deps import get_client_host
from gateway.config import Settings
from gateway.main import create_app
from gateway.services.errors import DeviceError
from gateway.services.registry import PeerRegistry
from gateway.services.renderer import TemplateRenderer
from gateway.services.security import create_token
from gateway.services.wireguard import DeviceGateway

JWT_SECRET = "test-secret"
ADMIN_AUTH = ("user", "pass")

TEMPLATE = (
    '{"peer_id": "$peer_id", "interface": "$interface", "client_ipv4": "$client_ipv4", '
    '"public_key": "$peer_public_key", "private_key": "$peer_private_key", '
    '"preshared_key": "$preshared_key", "allowed_ips": "$allowed_ips", '
    '"endpoint": "$endpoint", "created_at": "$created_at_rfc3339", "note": "$note"}'
)


class FakeDevice(DeviceGateway):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.peers: dict[str, dict] = {}
        self.added: list[str] = []
        self.removed: list[str] = []
        self.handshake_times: dict[str, datetime | None] = {}
        self.fail_add = False
        self.fail_remove = False
        self.fail_handshakes = False

    def add_peer(self, public_key: str, preshared_key: str | None, allowed_networks: list[IPv4Network]) -> None:
        if self.fail_add:
            raise DeviceError("add peer: boom")
        with self._lock:
            self.added.append(public_key)
            self.peers[public_key] = {"preshared_key": preshared_key, "allowed": list(allowed_networks)}

    def remove_peer(self, public_key: str) -> None:
        if self.fail_remove:
            raise DeviceError("remove peer: boom")
        with self._lock:
            self.removed.append(public_key)
            self.peers.pop(public_key, None)

    def handshakes(self) -> dict[str, datetime | None]:
        if self.fail_handshakes:
            raise DeviceError("handshakes: boom")
        return dict(self.handshake_times)


@pytest.fixture()
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture()
def registry() -> PeerRegistry:
    return PeerRegistry()


@pytest.fixture()
def template_path(tmp_path):
    path = tmp_path / "peer.json.tmpl"
    path.write_text(TEMPLATE, encoding="utf-8")
    return path


@pytest.fixture()
def settings(template_path) -> Settings:
    return Settings(
        _env_file=None,
        interface="wg0",
        endpoint="vpn.example.com:51820",
        json_template_path=str(template_path),
        basic_auth_username=ADMIN_AUTH[0],
        basic_auth_password=ADMIN_AUTH[1],
        jwt_secret=JWT_SECRET,
    )


@pytest.fixture()
def app(settings, device, registry):
    return create_app(settings, device=device, registry=registry, renderer=TemplateRenderer(settings.json_template_path))


@pytest.fixture()
def client_host():
    return {"value": "203.0.113.7"}


@pytest.fixture()
def client(app, client_host) -> TestClient:
    app.dependency_overrides[get_client_host] = lambda: client_host["value"]
    return TestClient(app)


@pytest.fixture()
def bearer() -> dict[str, str]:
    return {"Authorization": "Bearer " + create_token({"sub": "test"}, JWT_SECRET)}
