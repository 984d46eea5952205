"""Webhook command handlers."""

from app.commands.webhooks.whatsapp_command import WhatsAppWebhookCommand

__all__ = ["WhatsAppWebhookCommand"]
