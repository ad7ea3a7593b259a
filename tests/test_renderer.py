import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from gateway.schemas.peer import PeerProvisioned
from gateway.services.renderer import TemplateError, TemplateRenderer


def test_values_are_json_escaped(tmp_path):
    path = tmp_path / "t.tmpl"
    path.write_text('{"note": "$note", "psk": "$preshared_key"}', encoding="utf-8")

    rendered = TemplateRenderer(path).render({"note": 'a "quoted"\nline\\', "preshared_key": None})

    assert json.loads(rendered) == {"note": 'a "quoted"\nline\\', "psk": ""}


def test_missing_file(tmp_path):
    with pytest.raises(TemplateError):
        TemplateRenderer(tmp_path / "missing.tmpl")


def test_invalid_placeholder(tmp_path):
    path = tmp_path / "t.tmpl"
    path.write_text('{"a": "$"}', encoding="utf-8")
    with pytest.raises(TemplateError):
        TemplateRenderer(path)


def test_unknown_placeholder_fails_render(tmp_path):
    path = tmp_path / "t.tmpl"
    path.write_text('{"a": "$nope"}', encoding="utf-8")
    with pytest.raises(TemplateError):
        TemplateRenderer(path).render({"peer_id": "x"})


def test_reload_swaps_template(tmp_path):
    path = tmp_path / "t.tmpl"
    path.write_text('{"v": 1}', encoding="utf-8")
    renderer = TemplateRenderer(path)

    path.write_text('{"v": 2}', encoding="utf-8")
    assert renderer.render({}) == '{"v": 1}'
    renderer.reload()
    assert renderer.render({}) == '{"v": 2}'


def test_shipped_template_renders():
    payload = PeerProvisioned(
        peer_id="p",
        interface="wg0",
        client_ipv4="192.0.2.1",
        peer_public_key="pub",
        peer_private_key="priv",
        allowed_ips="192.0.2.1/32",
        endpoint="vpn.example.com:51820",
        created_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )
    template = Path(__file__).resolve().parent.parent / "templates" / "peer.json.tmpl"
    body = json.loads(TemplateRenderer(template).render(payload.template_context()))

    assert body["created_at"] == "2024-01-01T12:00:00Z"
    assert body["preshared_key"] == ""
