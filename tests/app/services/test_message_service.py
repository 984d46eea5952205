from app.schemas.whatsapp import NormalizedMessage
from app.services.message_service import MessageService, epoch_to_datetime
from tests.fixtures.message_fixtures import ALICE, BOB, GROUP_JID, add_message


def normalized(faker, message_id, sender_jid=ALICE, timestamp=1700000000, **overrides):
    data = {
        "message_id": message_id,
        "instance": "test-instance",
        "conversation_jid": GROUP_JID,
        "sender_jid": sender_jid,
        "sender_name": None,
        "message_type": "conversation",
        "content": faker.sentence(),
        "timestamp": timestamp,
        "is_from_me": False,
        "has_media": False,
    }
    data.update(overrides)
    return NormalizedMessage(**data)


def test_epoch_to_datetime_is_naive_utc():
    dt = epoch_to_datetime(0)
    assert dt.tzinfo is None
    assert (dt.year, dt.hour) == (1970, 0)


def test_save_message_once(db, faker):
    service = MessageService(db)
    row, is_new = service.save_message(normalized(faker, "MSG-1"))
    assert is_new
    assert row.sender_jid == ALICE
    original = row.content

    again, is_new = service.save_message(normalized(faker, "MSG-1", content="different"))
    assert not is_new
    assert again.id == row.id
    assert again.content == original != "different"


def test_upsert_participant_counts_stored_messages(db):
    service = MessageService(db)
    add_message(db, "m1", ALICE, 1700000000)
    add_message(db, "m2", ALICE, 1700000500)

    participant = service.upsert_participant(ALICE, name="Alice", seen_at=epoch_to_datetime(1700000500))
    assert participant.message_count == 2

    # repeated upserts do not inflate the count and a missing name keeps the old one
    participant = service.upsert_participant(ALICE, name=None, seen_at=epoch_to_datetime(1700000000))
    db.expire_all()
    participant = service.get_participant(ALICE)
    assert participant.message_count == 2
    assert participant.name == "Alice"
    assert participant.first_seen_at == epoch_to_datetime(1700000000)
    assert participant.last_seen_at == epoch_to_datetime(1700000500)


def test_upsert_conversation_keeps_latest_message_time(db):
    service = MessageService(db)
    add_message(db, "m1", ALICE, 1700000000)
    service.upsert_conversation(GROUP_JID, "group", message_at=epoch_to_datetime(1700000900))
    service.upsert_conversation(GROUP_JID, "group", name="Family", message_at=epoch_to_datetime(1700000100))
    db.expire_all()
    conversation = service.get_conversation(GROUP_JID)
    assert conversation.message_count == 1
    assert conversation.name == "Family"
    assert conversation.last_message_at == epoch_to_datetime(1700000900)


def test_message_reads(db):
    for i in range(5):
        add_message(db, f"m{i}", ALICE if i % 2 else BOB, 1700000000 + i)
    service = MessageService(db)

    page = service.get_messages_by_conversation(GROUP_JID, limit=2, offset=1)
    assert [m.message_id for m in page] == ["m3", "m2"]
    assert [m.message_id for m in service.get_messages_by_participant(ALICE)] == ["m3", "m1"]


def test_other_recent_senders_excludes_self_and_bot(db):
    add_message(db, "m1", ALICE, 1700000000)
    add_message(db, "m2", BOB, 1700000100)
    add_message(db, "m3", "me@whatsapp", 1700000200, is_from_me=True)
    add_message(db, "m4", BOB, 1600000000, conversation_jid=GROUP_JID)
    senders = MessageService(db).get_other_recent_senders(GROUP_JID, exclude_jid=ALICE, since_ts=1690000000)
    assert senders == [BOB]
