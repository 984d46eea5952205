"""LLM-generated insight about a participant or conversation."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text

from app.db import Base, JSONType
from app.models.mixins import utcnow


class AIInsight(Base):
    __tablename__ = "ai_insights"

    id = Column(Integer, primary_key=True, autoincrement=True)
    insight_type = Column(String(32), nullable=False)
    subject_type = Column(String(32), nullable=False)  # 'participant' | 'conversation'
    subject_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    severity = Column(String(16), nullable=False, default="info")
    confidence = Column(Float, nullable=False, default=0.5)
    supporting_data = Column(JSONType, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    detected_at = Column(DateTime, nullable=False, default=utcnow)
