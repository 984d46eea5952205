"""
Evolution API (WhatsApp) platform adapter.

parse_webhook turns a messages.upsert envelope into a NormalizedMessage;
send_text/send_media call the gateway's REST API with a bounded timeout and
retries with exponential backoff.
"""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.adapters.base import BasePlatformAdapter
from app.exceptions import ExternalServiceTimeout, GatewayError, MalformedPayload
from app.infra.logging_config import get_logger
from app.schemas.whatsapp import (
    NormalizedMessage,
    OutboundSendResult,
    OutboundWhatsAppMessage,
    WhatsAppMessageData,
)

logger = get_logger("evolution_adapter")

SELF_JID = "me@whatsapp"
APIKEY_HEADER = "apikey"
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# message dict key -> media kind
MEDIA_KEYS: dict[str, str] = {
    "imageMessage": "image",
    "videoMessage": "video",
    "audioMessage": "audio",
    "documentMessage": "document",
    "stickerMessage": "sticker",
}


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ExternalServiceTimeout):
        return True
    if isinstance(exc, GatewayError):
        return exc.status_code is None or exc.status_code in RETRYABLE_STATUS_CODES
    return False


def extract_content(message: Optional[dict[str, Any]]) -> Optional[str]:
    """Best-effort text for a message: the text itself, a caption, or a [KIND] marker."""
    if not message:
        return None
    if message.get("conversation"):
        return message["conversation"]
    extended = message.get("extendedTextMessage") or {}
    if extended.get("text"):
        return extended["text"]
    for key in ("imageMessage", "videoMessage"):
        caption = (message.get(key) or {}).get("caption")
        if caption:
            return caption
    if message.get("audioMessage"):
        return "[AUDIO]"
    if message.get("documentMessage") is not None:
        file_name = message["documentMessage"].get("fileName") or "document"
        return f"[DOCUMENT: {file_name}]"
    if message.get("stickerMessage"):
        return "[STICKER]"
    location = message.get("locationMessage")
    if location:
        lat = location.get("degreesLatitude")
        lon = location.get("degreesLongitude")
        return f"[LOCATION: {lat}, {lon}]"
    if message.get("contactMessage"):
        return "[CONTACT]"
    return None


def extract_media_type(message: Optional[dict[str, Any]]) -> Optional[str]:
    if not message:
        return None
    for key, kind in MEDIA_KEYS.items():
        if message.get(key):
            return kind
    return None


def extract_quoted_message_id(message: Optional[dict[str, Any]]) -> Optional[str]:
    """The stanzaId of the quoted message, from whichever sub-message carries contextInfo."""
    if not message:
        return None
    for value in message.values():
        if isinstance(value, dict):
            stanza_id = (value.get("contextInfo") or {}).get("stanzaId")
            if stanza_id:
                return stanza_id
    return None


def split_envelope(raw_payload: dict[str, Any]) -> list[dict[str, Any]]:
    """One single-message envelope per entry when `data` is a list."""
    data = raw_payload.get("data")
    if isinstance(data, list):
        return [{**raw_payload, "data": item} for item in data]
    return [raw_payload]


def is_text_bearing(content: Optional[str]) -> bool:
    """True for real text; bracketed media markers are not worth analysing."""
    if not content or not content.strip():
        return False
    stripped = content.strip()
    return not (stripped.startswith("[") and stripped.endswith("]"))


class EvolutionAdapter(BasePlatformAdapter):
    """WhatsApp adapter for the Evolution API gateway."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        instance: str = "default",
        webhook_apikey: Optional[str] = None,
        timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._instance = instance
        self._webhook_apikey = webhook_apikey
        self._timeout = timeout_seconds
        self._max_attempts = max_attempts
        self._backoff_multiplier = backoff_multiplier
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers[APIKEY_HEADER] = self._api_key
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """Validate the `apikey` header if a webhook key is configured."""
        expected = secret or self._webhook_apikey
        if not expected:
            return True
        request_headers = request_headers or {}
        actual = None
        for key, value in request_headers.items():
            if key.lower() == APIKEY_HEADER:
                actual = value
                break
        return actual == expected

    def parse_webhook(self, raw_payload: dict[str, Any]) -> NormalizedMessage:
        """Parse a messages.upsert envelope into a normalized message."""
        data = raw_payload.get("data") if isinstance(raw_payload, dict) else None
        if isinstance(data, list):
            # one envelope per message; see split_envelope
            if len(data) > 1:
                raise MalformedPayload(
                    f"Envelope carries {len(data)} messages; split it first", raw_payload
                )
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise MalformedPayload("Webhook payload has no message data", raw_payload)
        try:
            parsed = WhatsAppMessageData.model_validate(data)
        except ValidationError as e:
            raise MalformedPayload(f"Invalid message data: {e}", raw_payload) from e

        key = parsed.key
        if not key.id:
            raise MalformedPayload("Message key has no id", raw_payload)
        if not key.remote_jid:
            raise MalformedPayload("Message key has no remoteJid", raw_payload)

        if key.participant:
            sender_jid = key.participant
        elif key.from_me:
            sender_jid = SELF_JID
        else:
            sender_jid = key.remote_jid

        message = parsed.message or {}
        media_type = extract_media_type(message)
        message_type = parsed.message_type or (
            next(iter(message.keys())) if message else "unknown"
        )
        return NormalizedMessage(
            message_id=key.id,
            instance=raw_payload.get("instance"),
            conversation_jid=key.remote_jid,
            sender_jid=sender_jid,
            sender_name=parsed.push_name,
            message_type=message_type,
            content=extract_content(message),
            timestamp=parsed.message_timestamp or int(time.time()),
            is_from_me=key.from_me,
            has_media=media_type is not None,
            media_type=media_type,
            quoted_message_id=extract_quoted_message_id(message),
        )

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, outbound: OutboundWhatsAppMessage) -> OutboundSendResult:
        if outbound.media_url:
            body = await self.send_media(outbound.jid, outbound.media_url, outbound.caption)
        else:
            body = await self.send_text(outbound.jid, outbound.text or "")
        key = body.get("key") if isinstance(body, dict) else None
        return OutboundSendResult(
            success=True,
            platform_message_id=(key or {}).get("id"),
        )

    async def send_text(self, jid: str, text: str) -> dict[str, Any]:
        return await self._post(
            f"/message/sendText/{self._instance}", {"number": jid, "text": text}
        )

    async def send_media(
        self, jid: str, media_url: str, caption: Optional[str] = None
    ) -> dict[str, Any]:
        return await self._post(
            f"/message/sendMedia/{self._instance}",
            {"number": jid, "mediaUrl": media_url, "caption": caption},
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_multiplier, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "Retrying gateway call %s (attempt %d/%d)",
                        path,
                        attempt.retry_state.attempt_number,
                        self._max_attempts,
                    )
                return await self._post_once(path, payload)
        raise GatewayError(f"Gateway call {path} did not run")  # pragma: no cover

    async def _post_once(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._get_client().post(path, json=payload)
        except httpx.TimeoutException as e:
            raise ExternalServiceTimeout(f"Gateway call {path} timed out") from e
        except httpx.TransportError as e:
            raise GatewayError(f"Gateway transport error: {e}") from e
        if resp.status_code >= 400:
            raise GatewayError(
                f"Gateway returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError:
            return {}
