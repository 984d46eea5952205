"""Webhook payload builders and seeded message rows."""

import time
from typing import Any, Optional

import pytest

from app.models.message import Message
from app.models.message_sentiment import MessageSentiment

GROUP_JID = "120363000000000001@g.us"
ALICE = "5511900000001@s.whatsapp.net"
BOB = "5511900000002@s.whatsapp.net"
CAROL = "5511900000003@s.whatsapp.net"


def make_upsert_payload(
    message_id: str,
    remote_jid: str = ALICE,
    text: Optional[str] = "hello there",
    participant: Optional[str] = None,
    from_me: bool = False,
    timestamp: Optional[int] = None,
    push_name: Optional[str] = "Alice",
    message: Optional[dict[str, Any]] = None,
    message_type: Optional[str] = None,
) -> dict[str, Any]:
    """Build a messages.upsert webhook envelope the way the gateway sends it."""
    key: dict[str, Any] = {"remoteJid": remote_jid, "fromMe": from_me, "id": message_id}
    if participant:
        key["participant"] = participant
    if message is None:
        message = {"conversation": text} if text is not None else {}
    data: dict[str, Any] = {
        "key": key,
        "pushName": push_name,
        "message": message,
        "messageTimestamp": timestamp if timestamp is not None else int(time.time()),
    }
    if message_type:
        data["messageType"] = message_type
    return {
        "event": "messages.upsert",
        "instance": "test-instance",
        "data": data,
        "sender": "5511999999999@s.whatsapp.net",
    }


def add_message(
    db,
    message_id: str,
    sender_jid: str,
    timestamp: int,
    conversation_jid: str = GROUP_JID,
    content: Optional[str] = "hi",
    quoted_message_id: Optional[str] = None,
    is_from_me: bool = False,
) -> Message:
    message = Message(
        message_id=message_id,
        instance="test-instance",
        conversation_jid=conversation_jid,
        sender_jid=sender_jid,
        message_type="conversation",
        content=content,
        timestamp=timestamp,
        is_from_me=is_from_me,
        has_media=False,
        quoted_message_id=quoted_message_id,
    )
    db.add(message)
    db.commit()
    return message


def add_sentiment(db, message_id: str, label: str, score: float = 0.0, **emotions: float) -> MessageSentiment:
    sentiment = MessageSentiment(
        message_id=message_id,
        sentiment_label=label,
        sentiment_score=score,
        emotions={
            "joy": 0.0, "sadness": 0.0, "anger": 0.0, "fear": 0.0, "surprise": 0.0, "disgust": 0.0,
            **emotions,
        },
        confidence=0.9,
        model_used="fake-llm",
    )
    db.add(sentiment)
    db.commit()
    return sentiment


@pytest.fixture
def now_ts():
    return int(time.time())


@pytest.fixture
def group_payload(faker):
    return make_upsert_payload(
        faker.uuid4(),
        remote_jid=GROUP_JID,
        participant=ALICE,
        text=faker.sentence(nb_words=6),
    )
