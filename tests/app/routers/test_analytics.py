"""Tests for the dashboard read API."""

import json
from unittest.mock import patch

from app.analytics.alert_engine import AlertEngine
from app.services.alert_service import AlertService
from app.services.message_service import MessageService
from app.services.relationship_service import RelationshipService
from tests.fixtures.message_fixtures import (
    ALICE,
    BOB,
    GROUP_JID,
    add_message,
    add_sentiment,
    make_upsert_payload,
)
from tests.fixtures.pipeline_fixtures import WEBHOOK_APIKEY

API = "/api/analytics"


def deliver(client, *payloads):
    for payload in payloads:
        response = client.post("/webhook/whatsapp", json=payload, headers={"apikey": WEBHOOK_APIKEY})
        assert response.status_code == 200


def assert_envelope(response, status_code=200):
    assert response.status_code == status_code
    body = response.json()
    assert set(body) == {"success", "data", "error"}
    return body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["analytics_running"] is True


def test_overview(client):
    deliver(
        client,
        make_upsert_payload("M1", remote_jid=GROUP_JID, participant=ALICE),
        make_upsert_payload("M2", remote_jid=GROUP_JID, participant=BOB, push_name="Bob"),
        make_upsert_payload("M3", remote_jid=ALICE),
    )
    body = assert_envelope(client.get(f"{API}/dashboard/overview"))
    assert body["success"] is True
    metrics = body["data"]["metrics"]
    assert metrics["total_messages"] == 3
    assert metrics["total_participants"] == 2
    assert metrics["total_conversations"] == 2
    assert metrics["group_conversations"] == 1
    assert metrics["unread_alerts"] == 0


def test_overview_failure_uses_envelope(client):
    with patch.object(MessageService, "get_overview_counts", side_effect=RuntimeError("db gone")):
        body = assert_envelope(client.get(f"{API}/dashboard/overview"), 500)
    assert body["success"] is False
    assert body["data"] is None
    assert "db gone" in body["error"]


def test_participants_and_profile(client):
    deliver(
        client,
        make_upsert_payload("M1", remote_jid=GROUP_JID, participant=ALICE),
        make_upsert_payload("M2", remote_jid=GROUP_JID, participant=ALICE),
    )
    body = assert_envelope(client.get(f"{API}/participants"))
    assert [(p["jid"], p["message_count"]) for p in body["data"]] == [(ALICE, 2)]

    body = assert_envelope(client.get(f"{API}/participants/{ALICE}/profile"))
    assert body["data"]["participant"]["name"] == "Alice"
    assert body["data"]["patterns"] == []
    assert body["data"]["sentiment_shift"]["is_significant"] is False
    assert body["data"]["emotional_climate"] == {
        "average_sentiment": 0.0,
        "dominant_emotion": "neutral",
        "emotional_volatility": 0.0,
        "trend": "stable",
    }


def test_profile_unknown_participant(client):
    body = assert_envelope(client.get(f"{API}/participants/{BOB}/profile"), 404)
    assert body["success"] is False
    assert body["error"] == "Participant not found"


def test_analyze_participant(client):
    deliver(client, make_upsert_payload("M1", remote_jid=GROUP_JID, participant=ALICE))
    body = assert_envelope(client.post(f"{API}/participants/{ALICE}/analyze"))
    assert {p["pattern_type"] for p in body["data"]} == {"active_hours", "message_frequency"}


def test_conversations(client):
    deliver(
        client,
        make_upsert_payload("M1", remote_jid=GROUP_JID, participant=ALICE, timestamp=1700000000),
        make_upsert_payload("M2", remote_jid=GROUP_JID, participant=BOB, timestamp=1700000100),
    )
    body = assert_envelope(client.get(f"{API}/conversations"))
    assert [(c["jid"], c["type"], c["message_count"]) for c in body["data"]] == [(GROUP_JID, "group", 2)]

    body = assert_envelope(client.get(f"{API}/conversations/{GROUP_JID}"))
    assert body["data"]["jid"] == GROUP_JID

    body = assert_envelope(client.get(f"{API}/conversations/{GROUP_JID}/messages", params={"limit": 1}))
    assert [m["message_id"] for m in body["data"]] == ["M2"]


def test_unknown_conversation(client):
    body = assert_envelope(client.get(f"{API}/conversations/nobody@g.us"), 404)
    assert body["error"] == "Conversation not found"


def test_sentiment_routes(client, db):
    add_message(db, "S1", ALICE, 1700000000, content="fantastic news")
    add_message(db, "S2", BOB, 1700000100, content="meh")
    add_sentiment(db, "S1", "positive", 0.9)
    add_sentiment(db, "S2", "neutral", 0.1)

    body = assert_envelope(client.get(f"{API}/sentiment/conversation/{GROUP_JID}/progression"))
    assert [p["message_id"] for p in body["data"]] == ["S1", "S2"]

    body = assert_envelope(client.get(f"{API}/sentiment/conversation/{GROUP_JID}/peaks"))
    assert [p["message_id"] for p in body["data"]] == ["S1"]


def test_relationship_routes(client, db):
    deliver(
        client,
        make_upsert_payload("M1", remote_jid=GROUP_JID, participant=ALICE),
        make_upsert_payload("M2", remote_jid=GROUP_JID, participant=BOB, push_name="Bob"),
    )
    RelationshipService(db).upsert_relationship(ALICE, BOB, strength=0.4, total_interactions=20)

    body = assert_envelope(client.get(f"{API}/relationships/strongest"))
    assert body["data"][0]["relationship_strength"] == 0.4

    body = assert_envelope(client.get(f"{API}/relationships/graph", params={"conversation": GROUP_JID}))
    assert {n["id"] for n in body["data"]["nodes"]} == {ALICE, BOB}
    assert len(body["data"]["edges"]) == 1


def test_generate_and_list_insights(client, fake_llm, db):
    add_message(db, "M1", ALICE, 1700000000, content="anyone around this weekend?")
    fake_llm.queue(json.dumps([{"type": "trend", "title": "Quiet group", "confidence": 0.7}]))

    body = assert_envelope(
        client.post(f"{API}/insights/generate", json={"target_type": "conversation", "target_id": GROUP_JID})
    )
    assert [i["title"] for i in body["data"]] == ["Quiet group"]

    body = assert_envelope(client.get(f"{API}/insights"))
    assert body["data"][0]["subject_id"] == GROUP_JID


def test_generate_insights_validates_target(client):
    response = client.post(f"{API}/insights/generate", json={"target_type": "planet", "target_id": "x"})
    assert response.status_code == 422


def test_alerts_and_mark_read(client, db):
    alert = AlertService(db).open_alert("negative_burst", "critical", ALICE, "Burst", "5 negative messages")

    body = assert_envelope(client.get(f"{API}/alerts"))
    assert [a["id"] for a in body["data"]] == [alert.id]

    body = assert_envelope(client.post(f"{API}/alerts/{alert.id}/read"))
    assert body["data"]["is_read"] is True

    body = assert_envelope(client.get(f"{API}/alerts"))
    assert body["data"] == []
    body = assert_envelope(client.get(f"{API}/alerts", params={"unread_only": False}))
    assert len(body["data"]) == 1


def test_mark_unknown_alert(client):
    body = assert_envelope(client.post(f"{API}/alerts/999/read"), 404)
    assert body["error"] == "Alert not found"


def test_profile_sentiment_summary(client, db, now_ts):
    deliver(client, make_upsert_payload("M0", remote_jid=GROUP_JID, participant=ALICE))
    for i, (days_ago, score) in enumerate([(10, 0.8), (10, 0.6), (2, -0.5), (2, -0.3)]):
        add_message(db, f"S{i}", ALICE, now_ts - days_ago * 86400 - i, content="something")
        add_sentiment(db, f"S{i}", "positive" if score > 0 else "negative", score, anger=0.4)

    data = assert_envelope(client.get(f"{API}/participants/{ALICE}/profile"))["data"]
    assert data["sentiment_shift"]["is_significant"] is True
    assert data["emotional_climate"]["trend"] == "declining"
    assert data["emotional_climate"]["dominant_emotion"] == "anger"


def test_alert_routes_use_alert_engine(client, db):
    AlertService(db).open_alert("inactivity", "warning", BOB, "Quiet", "no messages this week")
    with patch.object(AlertEngine, "list_alerts", return_value=[]) as listed:
        body = assert_envelope(client.get(f"{API}/alerts"))
    assert body["data"] == []
    listed.assert_called_once_with(unread_only=True, limit=50)
