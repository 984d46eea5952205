"""
Evolution API (WhatsApp gateway) contracts.

Inbound webhook envelopes are parsed loosely: the gateway sends many event
shapes and optional fields, and missing identifiers are reported as
MalformedPayload by the adapter rather than as validation errors here.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

GROUP_JID_SUFFIX = "@g.us"
MESSAGES_UPSERT_EVENT = "messages.upsert"
IGNORED_MESSAGE_TYPES = frozenset({"protocolMessage", "reactionMessage"})


class MessageKey(BaseModel):
    """Message key as sent by the gateway (remoteJid, fromMe, id, participant)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    remote_jid: Optional[str] = Field(None, alias="remoteJid")
    from_me: bool = Field(False, alias="fromMe")
    id: Optional[str] = None
    participant: Optional[str] = None


class WhatsAppMessageData(BaseModel):
    """The `data` object of a messages.upsert event."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    key: MessageKey = Field(default_factory=MessageKey)
    push_name: Optional[str] = Field(None, alias="pushName")
    message: Optional[dict[str, Any]] = None
    message_type: Optional[str] = Field(None, alias="messageType")
    message_timestamp: Optional[int] = Field(None, alias="messageTimestamp")

    @model_validator(mode="before")
    @classmethod
    def coerce_timestamp(cls, values: Any) -> Any:
        """The gateway sometimes sends the timestamp as a numeric string."""
        if isinstance(values, dict):
            ts = values.get("messageTimestamp")
            if isinstance(ts, str):
                values = dict(values)
                values["messageTimestamp"] = int(ts) if ts.isdigit() else None
        return values


class EvolutionWebhookPayload(BaseModel):
    """Webhook envelope: {event, instance, data, sender}."""

    model_config = ConfigDict(extra="allow")

    event: str
    instance: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    sender: Optional[str] = None


class NormalizedMessage(BaseModel):
    """Canonical message record produced by the adapter (gateway -> core)."""

    message_id: str
    instance: Optional[str] = None
    conversation_jid: str
    sender_jid: str
    sender_name: Optional[str] = None
    message_type: str = "conversation"
    content: Optional[str] = None
    timestamp: int
    is_from_me: bool = False
    has_media: bool = False
    media_type: Optional[str] = None
    quoted_message_id: Optional[str] = None

    @property
    def is_group(self) -> bool:
        return self.conversation_jid.endswith(GROUP_JID_SUFFIX)

    @property
    def conversation_type(self) -> str:
        return "group" if self.is_group else "private"


class OutboundWhatsAppMessage(BaseModel):
    """Outbound message request: plain text, or media with optional caption."""

    jid: str = Field(..., min_length=1)
    text: Optional[str] = None
    media_url: Optional[str] = None
    caption: Optional[str] = None

    @model_validator(mode="after")
    def require_body(self) -> "OutboundWhatsAppMessage":
        if not self.text and not self.media_url:
            raise ValueError("Either text or media_url is required")
        return self


class OutboundSendResult(BaseModel):
    """Result of sending an outbound message (success + optional message_id)."""

    success: bool
    platform_message_id: Optional[str] = None
