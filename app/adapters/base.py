"""
Platform adapter interface.

Adapters encapsulate gateway-specific logic and expose a normalized
message format to the ingestion core.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from app.schemas.whatsapp import (
    NormalizedMessage,
    OutboundSendResult,
    OutboundWhatsAppMessage,
)


class BasePlatformAdapter(ABC):
    """Contract for platform adapters. New gateways implement this interface."""

    @abstractmethod
    def parse_webhook(self, raw_payload: dict[str, Any]) -> NormalizedMessage:
        """Parse raw webhook payload into a normalized message. Raise MalformedPayload if invalid."""
        ...

    @abstractmethod
    async def send(self, outbound: OutboundWhatsAppMessage) -> OutboundSendResult:
        """Send an outbound message via the gateway API. Return success and optional message_id."""
        ...

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """
        Verify webhook request (e.g. shared api key). Override if the gateway supports it.
        Return True if valid or verification not required; False to reject.
        """
        return True
