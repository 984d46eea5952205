"""Tests for the WhatsApp webhook route."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.models.message import Message
from app.services.message_service import MessageService
from tests.fixtures.message_fixtures import ALICE, GROUP_JID, make_upsert_payload
from tests.fixtures.pipeline_fixtures import WEBHOOK_APIKEY

HEADERS = {"apikey": WEBHOOK_APIKEY}


def test_webhook_rejects_bad_apikey(client, db):
    response = client.post(
        "/webhook/whatsapp", json=make_upsert_payload("MSG-1"), headers={"apikey": "nope"}
    )
    assert response.status_code == 401
    assert db.query(Message).count() == 0


def test_webhook_persists_message(client, db):
    payload = make_upsert_payload("MSG-1", remote_jid=GROUP_JID, participant=ALICE)
    response = client.post("/webhook/whatsapp", json=payload, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message_id": "MSG-1", "is_new": True}
    assert db.query(Message).filter_by(message_id="MSG-1").count() == 1


def test_webhook_redelivery_reports_not_new(client, db):
    payload = make_upsert_payload("MSG-1")
    client.post("/webhook/whatsapp", json=payload, headers=HEADERS)
    response = client.post("/webhook/whatsapp", json=payload, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["is_new"] is False
    assert db.query(Message).count() == 1


def test_webhook_ignores_other_events(client, db):
    response = client.post(
        "/webhook/whatsapp",
        json={"event": "connection.update", "data": {"state": "open"}},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert db.query(Message).count() == 0


def test_webhook_ignores_reactions(client, db):
    payload = make_upsert_payload(
        "MSG-R", message={"reactionMessage": {"text": "👍"}}, message_type="reactionMessage"
    )
    response = client.post("/webhook/whatsapp", json=payload, headers=HEADERS)
    assert response.json()["status"] == "ignored"
    assert db.query(Message).count() == 0


def test_webhook_acknowledges_malformed_payload(client, db):
    payload = make_upsert_payload("MSG-1")
    del payload["data"]["key"]["remoteJid"]
    response = client.post("/webhook/whatsapp", json=payload, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ignored"
    assert body["reason"]
    assert db.query(Message).count() == 0


def test_webhook_rejects_invalid_json(client):
    response = client.post(
        "/webhook/whatsapp",
        content=b"{not json",
        headers={**HEADERS, "content-type": "application/json"},
    )
    assert response.status_code == 400


def test_webhook_rejects_non_object_body(client):
    response = client.post("/webhook/whatsapp", json=[1, 2], headers=HEADERS)
    assert response.status_code == 400


def test_webhook_store_failure_is_500(client, db):
    with patch.object(
        MessageService, "save_message", side_effect=OperationalError("INSERT", {}, Exception("db down"))
    ):
        response = client.post(
            "/webhook/whatsapp", json=make_upsert_payload("MSG-1"), headers=HEADERS
        )
    assert response.status_code == 500
    assert db.query(Message).count() == 0


def batched(*message_ids):
    payloads = [make_upsert_payload(mid) for mid in message_ids]
    return {**payloads[0], "data": [p["data"] for p in payloads]}


def test_webhook_processes_every_message_in_list(client, db):
    response = client.post("/webhook/whatsapp", json=batched("L-1", "L-2"), headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert [(r["message_id"], r["is_new"]) for r in body["results"]] == [("L-1", True), ("L-2", True)]
    assert sorted(m.message_id for m in db.query(Message).all()) == ["L-1", "L-2"]


def test_webhook_list_reports_each_message(client, db):
    payload = batched("L-1", "L-2")
    del payload["data"][1]["key"]["remoteJid"]
    response = client.post("/webhook/whatsapp", json=payload, headers=HEADERS)
    results = response.json()["results"]
    assert [r["status"] for r in results] == ["ok", "ignored"]
    assert [m.message_id for m in db.query(Message).all()] == ["L-1"]


def test_webhook_empty_list_is_ignored(client, db):
    payload = make_upsert_payload("L-1")
    payload["data"] = []
    response = client.post("/webhook/whatsapp", json=payload, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert db.query(Message).count() == 0
