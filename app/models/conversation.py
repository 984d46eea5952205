"""Conversation aggregate: one row per chat jid (group or private)."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String

from app.db import Base
from app.models.mixins import TimestampMixin


class Conversation(Base, TimestampMixin):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jid = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    type = Column(String(16), nullable=False)  # 'group' | 'private'
    instance = Column(String(128), nullable=True)
    message_count = Column(Integer, nullable=False, default=0)
    last_message_at = Column(DateTime, nullable=True)
