import json
from datetime import datetime, timezone
from ipaddress import IPv4Network

import httpx
import pytest

from gateway.services.errors import DeviceError
from gateway.services.wireguard import WgctlDeviceGateway


def _gateway(handler, keepalive: int = 25) -> WgctlDeviceGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://wgctl")
    return WgctlDeviceGateway(interface="wg0", token="tok", keepalive_seconds=keepalive, client=client)


def test_add_peer_sends_config():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"action": "added"})

    _gateway(handler).add_peer("PUB", "PSK", [IPv4Network("192.0.2.1/32")])

    request = seen[0]
    assert request.url.path == "/peer/add"
    assert request.headers["X-WGCTL-Token"] == "tok"
    assert json.loads(request.content) == {
        "interface": "wg0",
        "pubkey": "PUB",
        "preshared_key": "PSK",
        "allowed_ips": ["192.0.2.1/32"],
        "replace_allowed_ips": True,
        "persistent_keepalive": 25,
    }


def test_keepalive_disabled_is_null():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    _gateway(handler, keepalive=0).add_peer("PUB", None, [IPv4Network("192.0.2.1/32")])
    assert bodies[0]["persistent_keepalive"] is None
    assert bodies[0]["preshared_key"] is None


def test_remove_peer():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"action": "removed"})

    _gateway(handler).remove_peer("PUB")
    assert seen[0].url.path == "/peer/remove"
    assert json.loads(seen[0].content) == {"interface": "wg0", "pubkey": "PUB"}


def test_handshakes_parses_epochs():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["interface"] == "wg0"
        return httpx.Response(200, json={"peers": [
            {"pubkey": "A", "latest_handshake": 1700000000},
            {"pubkey": "B", "latest_handshake": 0},
            {"latest_handshake": 5},
        ]})

    result = _gateway(handler).handshakes()
    assert result == {
        "A": datetime.fromtimestamp(1700000000, tz=timezone.utc),
        "B": None,
    }

def test_null_peer_list_means_no_handshakes():
    gateway = _gateway(lambda request: httpx.Response(200, json={"peers": None}))
    assert gateway.handshakes() == {}


@pytest.mark.parametrize(
    "payload",
    [
        [{"pubkey": "A", "latest_handshake": 1}],
        {"peers": {"pubkey": "A"}},
        {"peers": ["A", None]},
        {"peers": [{"pubkey": "A", "latest_handshake": "soon"}]},
    ],
)
def test_malformed_handshakes_become_device_errors(payload):
    gateway = _gateway(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(DeviceError):
        gateway.handshakes()


@pytest.mark.parametrize("payload", [[], "ok", 7])
def test_non_object_reply_becomes_device_error(payload):
    gateway = _gateway(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(DeviceError):
        gateway.add_peer("PUB", None, [IPv4Network("192.0.2.1/32")])
    with pytest.raises(DeviceError):
        gateway.remove_peer("PUB")



@pytest.mark.parametrize("status, content", [(500, b"boom"), (200, b"not json")])
def test_failures_become_device_errors(status, content):
    gateway = _gateway(lambda request: httpx.Response(status, content=content))
    with pytest.raises(DeviceError):
        gateway.remove_peer("PUB")
    with pytest.raises(DeviceError):
        gateway.handshakes()


def test_transport_error_becomes_device_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("socket missing", request=request)

    with pytest.raises(DeviceError):
        _gateway(handler).add_peer("PUB", None, [])


def test_verify_interface():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/device":
            return httpx.Response(200, json={"peers": []})
        return httpx.Response(404)

    _gateway(handler).verify_interface()
    with pytest.raises(DeviceError):
        _gateway(lambda request: httpx.Response(404)).verify_interface()
