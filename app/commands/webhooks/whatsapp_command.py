"""
Command to handle Evolution API (WhatsApp) webhook deliveries.

Validates the apikey header, routes messages.upsert to the message processor
and acknowledges everything else. Malformed payloads are acknowledged with
status "ignored" so the gateway does not keep retrying them. An envelope whose
`data` is a list is processed message by message.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from fastapi import HTTPException

from app.adapters.base import BasePlatformAdapter
from app.adapters.evolution import split_envelope
from app.config import Settings, get_settings
from app.core.message_processor import MessageProcessor
from app.exceptions import MalformedPayload, PersistenceError
from app.schemas.whatsapp import IGNORED_MESSAGE_TYPES, MESSAGES_UPSERT_EVENT


def _message_kinds(body: dict[str, Any]) -> set[str]:
    data = body.get("data")
    if not isinstance(data, dict):
        return set()
    kinds = set()
    if data.get("messageType"):
        kinds.add(data["messageType"])
    message = data.get("message")
    if isinstance(message, dict):
        kinds.update(message.keys())
    return kinds


class WhatsAppWebhookCommand:
    """
    Command to handle a WhatsApp webhook delivery.
    Validates the apikey header, persists messages.upsert through the processor.
    """

    def __init__(
        self,
        processor: MessageProcessor,
        adapter: BasePlatformAdapter,
        settings: Optional[Settings] = None,
    ) -> None:
        self.processor = processor
        self.adapter = adapter
        self.settings = settings or get_settings()
        self.logger = logging.getLogger(__name__)

    async def execute(
        self, headers: Mapping[str, str], body: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Execute the webhook: verify, filter by event, process the message(s).

        Args:
            headers: Request headers (for the apikey check).
            body: Raw webhook JSON object.

        Returns:
            dict: {"status": "ok", ...} when processed, {"status": "ignored", "reason": ...}
                for non-message events and malformed payloads. A list envelope
                answers {"status": ..., "results": [...]} with one entry per message.

        Raises:
            HTTPException: 401 on a bad apikey, 500 when the store is unavailable.
        """
        if not self.adapter.verify_webhook(
            self.settings.evolution_webhook_apikey, dict(headers)
        ):
            raise HTTPException(status_code=401, detail="Invalid webhook apikey")

        event = body.get("event")
        if event != MESSAGES_UPSERT_EVENT:
            self.logger.info("Ignoring webhook event %s", event)
            return {"status": "ignored", "reason": f"event {event} is not handled"}

        if not isinstance(body.get("data"), list):
            return await self._process_one(body)

        envelopes = split_envelope(body)
        if not envelopes:
            return {"status": "ignored", "reason": "Webhook payload has no message data"}
        self.logger.info("Processing envelope with %d messages", len(envelopes))
        results = [await self._process_one(envelope) for envelope in envelopes]
        processed = any(r["status"] == "ok" for r in results)
        return {"status": "ok" if processed else "ignored", "results": results}

    async def _process_one(self, envelope: dict[str, Any]) -> dict[str, Any]:
        kinds = _message_kinds(envelope) & IGNORED_MESSAGE_TYPES
        if kinds:
            return {"status": "ignored", "reason": f"{sorted(kinds)[0]} is not chat content"}

        try:
            persisted = await self.processor.process_inbound_message(envelope)
        except MalformedPayload as e:
            self.logger.warning("Malformed webhook payload: %s; payload=%s", e, e.payload)
            return {"status": "ignored", "reason": str(e)}
        except PersistenceError as e:
            # earlier messages of a list are stored; a redelivery replays them idempotently
            self.logger.error("Failed to persist webhook message: %s", e)
            raise HTTPException(status_code=500, detail="Failed to persist message") from e

        return {
            "status": "ok",
            "message_id": persisted.normalized.message_id,
            "is_new": persisted.is_new,
        }
