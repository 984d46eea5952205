"""Behaviour pattern: one row per (participant, pattern_type), overwritten on redetection."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint

from app.db import Base, JSONType
from app.models.mixins import utcnow


class BehaviorPattern(Base):
    __tablename__ = "behavior_patterns"

    __table_args__ = (
        UniqueConstraint(
            "participant_jid", "pattern_type", name="uq_behavior_patterns_type"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_jid = Column(String(255), nullable=False, index=True)
    pattern_type = Column(String(32), nullable=False)
    pattern_name = Column(String(255), nullable=True)
    pattern_data = Column(JSONType, nullable=False, default=dict)
    confidence = Column(Float, nullable=False)
    observation_count = Column(Integer, nullable=False, default=1)
    detected_at = Column(DateTime, nullable=False, default=utcnow)
    last_observed_at = Column(DateTime, nullable=False, default=utcnow)
