"""
Alert model. Append-only: rows are never deleted or rewritten.

Only is_read/acknowledged_at (by a reader) and resolved_at (when the
triggering condition clears) change after insert. At most one open alert
exists per (participant_jid, alert_type).
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, text

from app.db import Base, JSONType
from app.models.mixins import utcnow


class Alert(Base):
    __tablename__ = "alerts"

    __table_args__ = (
        Index(
            "uq_alerts_open_participant_type",
            "participant_jid",
            "alert_type",
            unique=True,
            postgresql_where=text("resolved_at IS NULL"),
            sqlite_where=text("resolved_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_type = Column(String(64), nullable=False)
    severity = Column(String(16), nullable=False)  # info | warning | critical
    participant_jid = Column(String(255), nullable=True)
    conversation_jid = Column(String(255), nullable=True)
    title = Column(String(255), nullable=True)
    message = Column(Text, nullable=False)
    extra = Column("metadata", JSONType, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    triggered_at = Column(DateTime, nullable=False, default=utcnow)
    acknowledged_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
