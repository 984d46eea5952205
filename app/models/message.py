"""
Message model: one row per WhatsApp message seen by the gateway.

Rows are keyed by the gateway's message id; re-delivery upserts the same row.
Content is immutable; only sender_name may be backfilled.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Index,
    Integer,
    String,
    Text,
)

from app.db import Base
from app.models.mixins import TimestampMixin


class Message(Base, TimestampMixin):
    """Single inbound or outbound chat message."""

    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_jid", "timestamp"),
        Index("ix_messages_sender_timestamp", "sender_jid", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), unique=True, nullable=False, index=True)
    instance = Column(String(128), nullable=True)
    conversation_jid = Column(String(255), nullable=False)
    sender_jid = Column(String(255), nullable=False)
    sender_name = Column(String(255), nullable=True)
    message_type = Column(String(64), nullable=False, default="conversation")
    content = Column(Text, nullable=True)
    timestamp = Column(BigInteger, nullable=False)  # seconds since epoch
    is_from_me = Column(Boolean, nullable=False, default=False)
    has_media = Column(Boolean, nullable=False, default=False)
    media_type = Column(String(32), nullable=True)
    quoted_message_id = Column(String(255), nullable=True, index=True)
