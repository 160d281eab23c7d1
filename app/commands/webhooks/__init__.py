"""Webhook command handlers."""

from app.commands.webhooks.waha_incoming_message_command import (
    ProcessWahaIncomingMessageCommand,
)

__all__ = ["ProcessWahaIncomingMessageCommand"]
