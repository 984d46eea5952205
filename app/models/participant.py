"""Participant aggregate: one row per sender jid."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String

from app.db import Base
from app.models.mixins import TimestampMixin


class Participant(Base, TimestampMixin):
    """Running totals for a sender. message_count only grows; last_seen_at only moves forward."""

    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jid = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    instance = Column(String(128), nullable=True)
    message_count = Column(Integer, nullable=False, default=0)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False, index=True)
