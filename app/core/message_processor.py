"""
Message processor: normalize, persist, then announce.

Each store write is its own idempotent upsert. A failure part-way leaves the
earlier writes in place; re-delivering the same payload converges because
every write can be replayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List

from sqlalchemy.exc import SQLAlchemyError

from app.adapters.base import BasePlatformAdapter
from app.core.events import EventBus, MessageAnalyze, MessageSaved, RelationshipUpdate
from app.db import SessionFactory
from app.exceptions import MalformedPayload, PersistenceError
from app.models.message import Message
from app.schemas.whatsapp import NormalizedMessage
from app.services.message_service import MessageService, epoch_to_datetime

logger = logging.getLogger(__name__)


@dataclass
class PersistedMessage:
    record: Message
    normalized: NormalizedMessage
    is_new: bool


class MessageProcessor:
    def __init__(
        self,
        adapter: BasePlatformAdapter,
        session_factory: SessionFactory,
        event_bus: EventBus,
    ) -> None:
        self.adapter = adapter
        self.session_factory = session_factory
        self.event_bus = event_bus

    async def process_inbound_message(self, raw_payload: dict[str, Any]) -> PersistedMessage:
        """
        Persist one inbound message and emit its events.

        Raises:
            MalformedPayload: the payload lacks a message id or conversation id.
            PersistenceError: the store rejected a write.
        """
        normalized = self.adapter.parse_webhook(raw_payload)
        persisted = self._persist(normalized)
        self._emit_events(persisted)
        return persisted

    async def process_batch(self, payloads: Iterable[dict[str, Any]]) -> List[PersistedMessage]:
        """Ingest a history import; bad payloads are logged and skipped."""
        results: List[PersistedMessage] = []
        for payload in payloads:
            try:
                results.append(await self.process_inbound_message(payload))
            except MalformedPayload as e:
                logger.warning("Skipping malformed payload in batch: %s", e)
            except PersistenceError as e:
                logger.error("Failed to persist message in batch: %s", e)
        logger.info("Batch processed: %d saved", len(results))
        return results

    def _persist(self, msg: NormalizedMessage) -> PersistedMessage:
        step = "message"
        try:
            with self.session_factory() as db:
                service = MessageService(db)
                record, is_new = service.save_message(msg)
                # a redelivery may lack messageTimestamp; the stored row keeps the original
                seen_at = epoch_to_datetime(record.timestamp)
                step = "participant"
                service.upsert_participant(
                    msg.sender_jid,
                    name=None if msg.is_from_me else msg.sender_name,
                    instance=msg.instance,
                    seen_at=seen_at,
                )
                step = "conversation"
                service.upsert_conversation(
                    msg.conversation_jid,
                    conversation_type=msg.conversation_type,
                    name=None if msg.is_group or msg.is_from_me else msg.sender_name,
                    instance=msg.instance,
                    message_at=seen_at,
                )
                db.refresh(record)
                db.expunge(record)
        except SQLAlchemyError as e:
            if step != "message":
                logger.error(
                    "Partial write for message %s: %s upsert failed",
                    msg.message_id,
                    step,
                )
            raise PersistenceError(f"Failed to persist message {msg.message_id}: {e}") from e

        logger.debug(
            "Saved message %s (%s, new=%s)", msg.message_id, msg.conversation_type, is_new
        )
        return PersistedMessage(record=record, normalized=msg, is_new=is_new)

    def _emit_events(self, persisted: PersistedMessage) -> None:
        msg = persisted.normalized
        self.event_bus.emit(
            MessageSaved(
                message_id=msg.message_id,
                conversation_jid=msg.conversation_jid,
                sender_jid=msg.sender_jid,
                timestamp=persisted.record.timestamp,
                is_new=persisted.is_new,
            )
        )
        if msg.content and msg.content.strip():
            self.event_bus.emit(MessageAnalyze(message_id=msg.message_id, content=msg.content))
        if msg.is_group and not msg.is_from_me:
            self.event_bus.emit(
                RelationshipUpdate(
                    conversation_jid=msg.conversation_jid,
                    sender_jid=msg.sender_jid,
                    timestamp=persisted.record.timestamp,
                )
            )
