from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.message import Message
from app.models.participant import Participant
from app.models.participant_relationship import ParticipantRelationship
from app.utils.db.upsert import insert_for


def canonical_pair(jid_a: str, jid_b: str) -> Tuple[str, str]:
    """Order a pair so the smaller jid comes first."""
    return (jid_a, jid_b) if jid_a < jid_b else (jid_b, jid_a)


class RelationshipService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_pair_messages(
        self, jid_a: str, jid_b: str, since_ts: int
    ) -> List[Tuple[str, str, int]]:
        """(conversation_jid, sender_jid, timestamp) for both senders since since_ts, oldest first."""
        rows = (
            self.db.query(Message.conversation_jid, Message.sender_jid, Message.timestamp)
            .filter(
                Message.sender_jid.in_([jid_a, jid_b]),
                Message.timestamp >= since_ts,
            )
            .order_by(Message.conversation_jid, Message.timestamp)
            .all()
        )
        return [(c, s, t) for c, s, t in rows]

    def upsert_relationship(
        self,
        jid_a: str,
        jid_b: str,
        strength: float,
        total_interactions: int,
        last_interaction_at: Optional[datetime] = None,
    ) -> ParticipantRelationship:
        a, b = canonical_pair(jid_a, jid_b)
        stmt = insert_for(self.db, ParticipantRelationship).values(
            participant_a_jid=a,
            participant_b_jid=b,
            relationship_strength=strength,
            total_interactions=total_interactions,
            last_interaction_at=last_interaction_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["participant_a_jid", "participant_b_jid"],
            set_={
                "relationship_strength": stmt.excluded.relationship_strength,
                "total_interactions": stmt.excluded.total_interactions,
                "last_interaction_at": stmt.excluded.last_interaction_at,
                "updated_at": func.now(),
            },
        )
        self.db.execute(stmt)
        self.db.commit()
        return self.get_relationship(a, b)

    def get_relationship(self, jid_a: str, jid_b: str) -> Optional[ParticipantRelationship]:
        a, b = canonical_pair(jid_a, jid_b)
        return (
            self.db.query(ParticipantRelationship)
            .filter(
                ParticipantRelationship.participant_a_jid == a,
                ParticipantRelationship.participant_b_jid == b,
            )
            .first()
        )

    def get_strongest(self, limit: int = 20) -> List[ParticipantRelationship]:
        return (
            self.db.query(ParticipantRelationship)
            .order_by(ParticipantRelationship.relationship_strength.desc())
            .limit(limit)
            .all()
        )

    def get_for_participant(self, jid: str, limit: int = 10) -> List[ParticipantRelationship]:
        return (
            self.db.query(ParticipantRelationship)
            .filter(
                or_(
                    ParticipantRelationship.participant_a_jid == jid,
                    ParticipantRelationship.participant_b_jid == jid,
                )
            )
            .order_by(ParticipantRelationship.relationship_strength.desc())
            .limit(limit)
            .all()
        )

    def get_edges(
        self,
        min_strength: float = 0.1,
        jids: Optional[Sequence[str]] = None,
        limit: int = 200,
    ) -> List[ParticipantRelationship]:
        query = self.db.query(ParticipantRelationship).filter(
            ParticipantRelationship.relationship_strength > min_strength
        )
        if jids is not None:
            query = query.filter(
                ParticipantRelationship.participant_a_jid.in_(jids),
                ParticipantRelationship.participant_b_jid.in_(jids),
            )
        return (
            query.order_by(ParticipantRelationship.relationship_strength.desc())
            .limit(limit)
            .all()
        )

    def get_graph_nodes(
        self, conversation_jid: Optional[str] = None, limit: int = 100
    ) -> List[Participant]:
        query = self.db.query(Participant)
        if conversation_jid:
            senders = (
                self.db.query(Message.sender_jid)
                .filter(Message.conversation_jid == conversation_jid)
                .distinct()
            )
            query = query.filter(Participant.jid.in_(senders))
        return query.order_by(Participant.message_count.desc()).limit(limit).all()
