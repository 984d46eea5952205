"""Sentiment record: at most one per message, overwritten on re-analysis."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Integer, String

from app.db import Base, JSONType
from app.models.mixins import utcnow


class MessageSentiment(Base):
    __tablename__ = "message_sentiment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), unique=True, nullable=False, index=True)
    sentiment_label = Column(String(16), nullable=False)
    sentiment_score = Column(Float, nullable=False, default=0.0)
    emotions = Column(JSONType, nullable=False, default=dict)
    confidence = Column(Float, nullable=False, default=0.5)
    model_used = Column(String(128), nullable=True)
    analyzed_at = Column(DateTime, nullable=False, default=utcnow)
