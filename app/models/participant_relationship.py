"""
Pairwise relationship between two participants.

The pair is stored in canonical order (participant_a_jid < participant_b_jid)
so each unordered pair maps to exactly one row.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
)

from app.db import Base
from app.models.mixins import TimestampMixin


class ParticipantRelationship(Base, TimestampMixin):
    __tablename__ = "participant_relationships"

    __table_args__ = (
        UniqueConstraint(
            "participant_a_jid",
            "participant_b_jid",
            name="uq_participant_relationships_pair",
        ),
        CheckConstraint(
            "participant_a_jid < participant_b_jid",
            name="ck_participant_relationships_canonical_order",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_a_jid = Column(String(255), nullable=False, index=True)
    participant_b_jid = Column(String(255), nullable=False, index=True)
    relationship_strength = Column(Float, nullable=False, default=0.0)
    total_interactions = Column(Integer, nullable=False, default=0)
    last_interaction_at = Column(DateTime, nullable=True)
