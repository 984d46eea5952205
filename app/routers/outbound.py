"""
Outbound API: send WhatsApp messages through the Evolution API gateway.

Internal consumers POST {jid, text} or {jid, media_url, caption}; we send
and return {"success": true, "data": {...}}.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from app.commands.outbound.send_outbound_command import SendOutboundCommand
from app.core.app_state import AppState
from app.routers.utils.dependencies import get_app_state
from app.schemas.whatsapp import OutboundWhatsAppMessage

router = APIRouter(prefix="/outbound", tags=["outbound"])


@router.post("/whatsapp", response_model=dict[str, Any])
async def send_whatsapp(
    body: OutboundWhatsAppMessage,
    state: AppState = Depends(get_app_state),
) -> dict[str, Any]:
    """Send a text or media message to a WhatsApp jid."""
    return await SendOutboundCommand(state.adapter).execute(body)
