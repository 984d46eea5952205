from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.message import Message
from app.models.message_sentiment import MessageSentiment
from app.schemas.analytics import EMOTION_KEYS, SentimentAnalysis
from app.utils.db.upsert import insert_for


class SentimentService:
    """Persistence and read projections for message_sentiment."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def upsert_sentiment(
        self,
        message_id: str,
        analysis: SentimentAnalysis,
        model_used: Optional[str] = None,
    ) -> MessageSentiment:
        """Write the analysis for message_id, replacing any earlier one."""
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        values = {
            "message_id": message_id,
            "sentiment_label": analysis.label,
            "sentiment_score": analysis.score,
            "emotions": analysis.emotions.model_dump(),
            "confidence": analysis.confidence,
            "model_used": model_used,
            "analyzed_at": now,
        }
        stmt = insert_for(self.db, MessageSentiment).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["message_id"],
            set_={k: v for k, v in values.items() if k != "message_id"},
        )
        self.db.execute(stmt)
        self.db.commit()
        return self.get_sentiment(message_id)

    def get_sentiment(self, message_id: str) -> Optional[MessageSentiment]:
        return (
            self.db.query(MessageSentiment)
            .filter(MessageSentiment.message_id == message_id)
            .first()
        )

    def has_sentiment(self, message_id: str) -> bool:
        return (
            self.db.query(MessageSentiment.id)
            .filter(MessageSentiment.message_id == message_id)
            .first()
            is not None
        )

    def senders_with_label_since(
        self, label: str, since_ts: int, min_count: int
    ) -> List[tuple[str, int]]:
        """(sender_jid, count) for senders with at least min_count messages of label since since_ts."""
        count = func.count(MessageSentiment.id)
        rows = (
            self.db.query(Message.sender_jid, count)
            .select_from(MessageSentiment)
            .join(Message, Message.message_id == MessageSentiment.message_id)
            .filter(
                Message.timestamp >= since_ts,
                MessageSentiment.sentiment_label == label,
            )
            .group_by(Message.sender_jid)
            .having(count >= min_count)
            .all()
        )
        return [(jid, n) for jid, n in rows]

    def progression(self, conversation_jid: str, limit: int = 50) -> List[dict[str, Any]]:
        """Chronological sentiment scores for a conversation."""
        rows = (
            self.db.query(
                Message.message_id,
                Message.timestamp,
                MessageSentiment.sentiment_score,
                MessageSentiment.sentiment_label,
            )
            .join(MessageSentiment, MessageSentiment.message_id == Message.message_id)
            .filter(Message.conversation_jid == conversation_jid)
            .order_by(Message.timestamp.asc())
            .limit(limit)
            .all()
        )
        return [
            {
                "message_id": message_id,
                "timestamp": timestamp,
                "score": score,
                "label": label,
            }
            for message_id, timestamp, score, label in rows
        ]

    def peaks(
        self, conversation_jid: str, threshold: float = 0.7, limit: int = 10
    ) -> List[dict[str, Any]]:
        """Messages whose |score| >= threshold, strongest first, with their dominant emotion."""
        rows = (
            self.db.query(Message, MessageSentiment)
            .join(MessageSentiment, MessageSentiment.message_id == Message.message_id)
            .filter(
                Message.conversation_jid == conversation_jid,
                func.abs(MessageSentiment.sentiment_score) >= threshold,
            )
            .order_by(func.abs(MessageSentiment.sentiment_score).desc())
            .limit(limit)
            .all()
        )
        peaks = []
        for message, sentiment in rows:
            emotions = sentiment.emotions or {}
            dominant = max(EMOTION_KEYS, key=lambda k: emotions.get(k, 0.0))
            peaks.append(
                {
                    "message_id": message.message_id,
                    "content": message.content,
                    "timestamp": message.timestamp,
                    "sentiment_score": sentiment.sentiment_score,
                    "dominant_emotion": dominant if emotions.get(dominant) else None,
                }
            )
        return peaks

    def participant_average(self, participant_jid: str) -> Optional[float]:
        avg = (
            self.db.query(func.avg(MessageSentiment.sentiment_score))
            .select_from(MessageSentiment)
            .join(Message, Message.message_id == MessageSentiment.message_id)
            .filter(Message.sender_jid == participant_jid)
            .scalar()
        )
        return float(avg) if avg is not None else None

    def participant_window_scores(
        self, participant_jid: str, since_ts: int, until_ts: Optional[int] = None
    ) -> List[float]:
        """Scores of the participant's analyzed messages with since_ts <= timestamp < until_ts."""
        query = (
            self.db.query(MessageSentiment.sentiment_score)
            .select_from(MessageSentiment)
            .join(Message, Message.message_id == MessageSentiment.message_id)
            .filter(Message.sender_jid == participant_jid, Message.timestamp >= since_ts)
        )
        if until_ts is not None:
            query = query.filter(Message.timestamp < until_ts)
        return [score for (score,) in query.all()]

    def participant_sentiments(self, participant_jid: str) -> List[tuple[float, dict[str, float]]]:
        """(score, emotions) for every analyzed message the participant sent."""
        rows = (
            self.db.query(MessageSentiment.sentiment_score, MessageSentiment.emotions)
            .select_from(MessageSentiment)
            .join(Message, Message.message_id == MessageSentiment.message_id)
            .filter(Message.sender_jid == participant_jid)
            .all()
        )
        return [(score, emotions or {}) for score, emotions in rows]
