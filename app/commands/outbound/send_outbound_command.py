"""
Command to send an outbound WhatsApp message through the gateway.

Text goes to sendText, media (with optional caption) to sendMedia. Timeouts
and transient gateway errors are retried by the adapter; what is left after
retries is mapped to an HTTP error.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException

from app.adapters.base import BasePlatformAdapter
from app.exceptions import ExternalServiceTimeout, GatewayError
from app.schemas.whatsapp import OutboundSendResult, OutboundWhatsAppMessage

logger = logging.getLogger(__name__)


class SendOutboundCommand:
    """Command to send an outbound message via the WhatsApp adapter."""

    def __init__(self, adapter: BasePlatformAdapter) -> None:
        self.adapter = adapter

    async def execute(self, body: OutboundWhatsAppMessage) -> dict[str, Any]:
        """
        Send the outbound message.

        Returns:
            dict: {"success": True, "data": {"platform_message_id": ...}} on success.

        Raises:
            HTTPException: 504 if the gateway timed out, 502 if it failed to send.
        """
        try:
            result: OutboundSendResult = await self.adapter.send(body)
        except ExternalServiceTimeout as e:
            logger.error("Gateway timed out sending to %s: %s", body.jid, e)
            raise HTTPException(status_code=504, detail="Gateway timed out") from e
        except GatewayError as e:
            logger.error("Gateway failed sending to %s: %s", body.jid, e)
            raise HTTPException(
                status_code=502, detail="Platform API failed to send message"
            ) from e
        if not result.success:
            raise HTTPException(
                status_code=502,
                detail="Platform API failed to send message",
            )
        return {
            "success": True,
            "data": {"platform_message_id": result.platform_message_id},
        }
