"""Tests for the outbound WhatsApp route."""

import httpx

from tests.fixtures.message_fixtures import ALICE


def test_send_text(client, gateway):
    response = client.post("/outbound/whatsapp", json={"jid": ALICE, "text": "hello"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"platform_message_id": "SENT-1"}}
    assert gateway.payload() == {"number": ALICE, "text": "hello"}


def test_send_media(client, gateway):
    response = client.post(
        "/outbound/whatsapp",
        json={"jid": ALICE, "media_url": "https://cdn.test/a.jpg", "caption": "look"},
    )
    assert response.status_code == 200
    assert gateway.requests[0].url.path.startswith("/message/sendMedia/")


def test_send_requires_text_or_media(client, gateway):
    response = client.post("/outbound/whatsapp", json={"jid": ALICE})
    assert response.status_code == 422
    assert gateway.requests == []


def test_send_gateway_failure_is_502(client, gateway):
    gateway.queue(*(httpx.Response(500) for _ in range(3)))
    response = client.post("/outbound/whatsapp", json={"jid": ALICE, "text": "hello"})
    assert response.status_code == 502


def test_send_gateway_timeout_is_504(client, gateway):
    gateway.queue(*(httpx.ReadTimeout("slow") for _ in range(3)))
    response = client.post("/outbound/whatsapp", json={"jid": ALICE, "text": "hello"})
    assert response.status_code == 504
    assert len(gateway.requests) == 3
