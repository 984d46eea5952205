"""
Message store for messages and their participant/conversation aggregates.

Every write is a single-statement upsert keyed by the natural identifier, so
re-delivering the same message is safe without locks. Aggregate counters are
recomputed from the messages table rather than incremented, which keeps them
exact under re-delivery and lets a re-drive repair a partially applied write.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from app.models.conversation import Conversation
from app.models.message import Message
from app.models.participant import Participant
from app.schemas.whatsapp import NormalizedMessage
from app.utils.db.upsert import insert_for


def epoch_to_datetime(ts: int) -> datetime:
    """Seconds since epoch -> naive UTC datetime (the DateTime columns store no tz)."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


class MessageService:
    """Persistence for messages, participants and conversations."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_message(self, msg: NormalizedMessage) -> Tuple[Message, bool]:
        """
        Insert the message unless its message_id already exists.

        Returns (row, is_new). On re-delivery only sender_name is backfilled.
        """
        stmt = (
            insert_for(self.db, Message)
            .values(
                message_id=msg.message_id,
                instance=msg.instance,
                conversation_jid=msg.conversation_jid,
                sender_jid=msg.sender_jid,
                sender_name=msg.sender_name,
                message_type=msg.message_type,
                content=msg.content,
                timestamp=msg.timestamp,
                is_from_me=msg.is_from_me,
                has_media=msg.has_media,
                media_type=msg.media_type,
                quoted_message_id=msg.quoted_message_id,
            )
            .on_conflict_do_nothing(index_elements=["message_id"])
        )
        result = self.db.execute(stmt)
        is_new = result.rowcount == 1
        if not is_new and msg.sender_name:
            self.db.execute(
                update(Message)
                .where(Message.message_id == msg.message_id)
                .values(sender_name=msg.sender_name)
            )
        self.db.commit()
        return self.get_message(msg.message_id), is_new

    def upsert_participant(
        self,
        jid: str,
        name: Optional[str] = None,
        instance: Optional[str] = None,
        seen_at: Optional[datetime] = None,
    ) -> Participant:
        """Create or refresh a participant; message_count is the number of stored messages it sent."""
        seen_at = seen_at or datetime.now(timezone.utc).replace(tzinfo=None)
        message_count = (
            select(func.count(Message.id))
            .where(Message.sender_jid == jid)
            .scalar_subquery()
        )
        stmt = insert_for(self.db, Participant).values(
            jid=jid,
            name=name,
            instance=instance,
            message_count=message_count,
            first_seen_at=seen_at,
            last_seen_at=seen_at,
        )
        table = Participant.__table__.c
        stmt = stmt.on_conflict_do_update(
            index_elements=["jid"],
            set_={
                "name": func.coalesce(stmt.excluded.name, table.name),
                "message_count": stmt.excluded.message_count,
                "first_seen_at": case(
                    (stmt.excluded.first_seen_at < table.first_seen_at, stmt.excluded.first_seen_at),
                    else_=table.first_seen_at,
                ),
                "last_seen_at": case(
                    (stmt.excluded.last_seen_at > table.last_seen_at, stmt.excluded.last_seen_at),
                    else_=table.last_seen_at,
                ),
                "updated_at": func.now(),
            },
        )
        self.db.execute(stmt)
        self.db.commit()
        return self.get_participant(jid)

    def upsert_conversation(
        self,
        jid: str,
        conversation_type: str,
        name: Optional[str] = None,
        instance: Optional[str] = None,
        message_at: Optional[datetime] = None,
    ) -> Conversation:
        """Create or refresh a conversation; message_count is the number of stored messages in it."""
        message_count = (
            select(func.count(Message.id))
            .where(Message.conversation_jid == jid)
            .scalar_subquery()
        )
        stmt = insert_for(self.db, Conversation).values(
            jid=jid,
            name=name,
            type=conversation_type,
            instance=instance,
            message_count=message_count,
            last_message_at=message_at,
        )
        table = Conversation.__table__.c
        stmt = stmt.on_conflict_do_update(
            index_elements=["jid"],
            set_={
                "name": func.coalesce(stmt.excluded.name, table.name),
                "message_count": stmt.excluded.message_count,
                "last_message_at": case(
                    (table.last_message_at.is_(None), stmt.excluded.last_message_at),
                    (
                        stmt.excluded.last_message_at > table.last_message_at,
                        stmt.excluded.last_message_at,
                    ),
                    else_=table.last_message_at,
                ),
                "updated_at": func.now(),
            },
        )
        self.db.execute(stmt)
        self.db.commit()
        return self.get_conversation(jid)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_message(self, message_id: str) -> Optional[Message]:
        return self.db.query(Message).filter(Message.message_id == message_id).first()

    def get_messages_by_conversation(
        self, conversation_jid: str, limit: int = 100, offset: int = 0
    ) -> List[Message]:
        return (
            self.db.query(Message)
            .filter(Message.conversation_jid == conversation_jid)
            .order_by(Message.timestamp.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def get_messages_by_participant(
        self, participant_jid: str, limit: int = 100
    ) -> List[Message]:
        return (
            self.db.query(Message)
            .filter(Message.sender_jid == participant_jid)
            .order_by(Message.timestamp.desc())
            .limit(limit)
            .all()
        )

    def get_participant(self, jid: str) -> Optional[Participant]:
        return self.db.query(Participant).filter(Participant.jid == jid).first()

    def get_participants(self, limit: int = 100) -> List[Participant]:
        return (
            self.db.query(Participant)
            .order_by(Participant.message_count.desc(), Participant.last_seen_at.desc())
            .limit(limit)
            .all()
        )

    def get_conversation(self, jid: str) -> Optional[Conversation]:
        return self.db.query(Conversation).filter(Conversation.jid == jid).first()

    def get_conversations(self, limit: int = 100) -> List[Conversation]:
        return (
            self.db.query(Conversation)
            .order_by(Conversation.last_message_at.desc())
            .limit(limit)
            .all()
        )

    def get_other_recent_senders(
        self,
        conversation_jid: str,
        exclude_jid: str,
        since_ts: int,
        limit: int = 50,
    ) -> List[str]:
        """Distinct non-bot senders in a conversation since since_ts, other than exclude_jid."""
        rows = (
            self.db.query(Message.sender_jid)
            .filter(
                Message.conversation_jid == conversation_jid,
                Message.sender_jid != exclude_jid,
                Message.is_from_me.is_(False),
                Message.timestamp >= since_ts,
            )
            .distinct()
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]

    def get_recently_active_participants(
        self, since: datetime, limit: int = 100
    ) -> List[str]:
        rows = (
            self.db.query(Participant.jid)
            .filter(Participant.last_seen_at >= since)
            .order_by(Participant.last_seen_at.desc())
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]

    def get_overview_counts(self) -> dict[str, int]:
        return {
            "total_messages": self.db.query(func.count(Message.id)).scalar() or 0,
            "total_participants": self.db.query(func.count(Participant.id)).scalar() or 0,
            "total_conversations": self.db.query(func.count(Conversation.id)).scalar() or 0,
            "group_conversations": self.db.query(func.count(Conversation.id))
            .filter(Conversation.type == "group")
            .scalar()
            or 0,
        }
