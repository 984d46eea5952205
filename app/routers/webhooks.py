"""
Webhook routes for inbound WhatsApp updates.

The Evolution API gateway POSTs raw events here; we verify, persist and
return 200. Analytics run afterwards without holding up the response.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from app.commands.webhooks.whatsapp_command import WhatsAppWebhookCommand
from app.core.app_state import AppState
from app.routers.utils.dependencies import get_app_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


@router.post("/whatsapp")
async def whatsapp_webhook(
    request: Request,
    state: AppState = Depends(get_app_state),
) -> dict[str, Any]:
    """
    Receive Evolution API webhook events. messages.upsert is persisted; other
    events are acknowledged with status "ignored".
    Validates the apikey header if EVOLUTION_WEBHOOK_APIKEY is set.
    """
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("WhatsApp webhook invalid JSON: %s", e)
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    command = WhatsAppWebhookCommand(state.processor, state.adapter, state.settings)
    return await command.execute(request.headers, body)
