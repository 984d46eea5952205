from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, aliased

from app.models.behavior_pattern import BehaviorPattern
from app.models.message import Message
from app.schemas.analytics import DetectedPattern
from app.utils.db.upsert import insert_for


class BehaviorPatternService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_sender_timestamps(self, participant_jid: str, since_ts: int) -> List[int]:
        rows = (
            self.db.query(Message.timestamp)
            .filter(Message.sender_jid == participant_jid, Message.timestamp >= since_ts)
            .order_by(Message.timestamp)
            .all()
        )
        return [row[0] for row in rows]

    def get_reply_pairs(self, participant_jid: str, since_ts: int) -> List[Tuple[int, int]]:
        """(quoted_ts, reply_ts) for replies by participant_jid to someone else's message."""
        quoted = aliased(Message)
        rows = (
            self.db.query(quoted.timestamp, Message.timestamp)
            .select_from(Message)
            .join(quoted, quoted.message_id == Message.quoted_message_id)
            .filter(
                Message.sender_jid == participant_jid,
                quoted.sender_jid != participant_jid,
                quoted.timestamp >= since_ts,
            )
            .all()
        )
        return [(q, r) for q, r in rows]

    def upsert_pattern(self, pattern: DetectedPattern) -> BehaviorPattern:
        """One row per (participant, type); redetection bumps observation_count."""
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        stmt = insert_for(self.db, BehaviorPattern).values(
            participant_jid=pattern.participant_jid,
            pattern_type=pattern.pattern_type,
            pattern_name=pattern.pattern_name,
            pattern_data=pattern.pattern_data,
            confidence=pattern.confidence,
            observation_count=1,
            detected_at=now,
            last_observed_at=now,
        )
        table = BehaviorPattern.__table__.c
        stmt = stmt.on_conflict_do_update(
            index_elements=["participant_jid", "pattern_type"],
            set_={
                "pattern_name": stmt.excluded.pattern_name,
                "pattern_data": stmt.excluded.pattern_data,
                "confidence": stmt.excluded.confidence,
                "observation_count": table.observation_count + 1,
                "last_observed_at": stmt.excluded.last_observed_at,
            },
        )
        self.db.execute(stmt)
        self.db.commit()
        return self.get_pattern(pattern.participant_jid, pattern.pattern_type)

    def get_pattern(self, participant_jid: str, pattern_type: str) -> Optional[BehaviorPattern]:
        return (
            self.db.query(BehaviorPattern)
            .filter(
                BehaviorPattern.participant_jid == participant_jid,
                BehaviorPattern.pattern_type == pattern_type,
            )
            .first()
        )

    def get_patterns(self, participant_jid: str) -> List[BehaviorPattern]:
        return (
            self.db.query(BehaviorPattern)
            .filter(BehaviorPattern.participant_jid == participant_jid)
            .order_by(BehaviorPattern.pattern_type)
            .all()
        )
