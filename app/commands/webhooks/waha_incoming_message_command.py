"""Command persisting an incoming WAHA message as a customer chat message."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.constants.waha import MessageDirection, SenderType
from app.exceptions import ValidationFault
from app.infra.logging_config import get_logger
from app.models.message import Message
from app.models.waha_session import WahaSession
from app.schemas.waha_webhook import WahaMessageData
from app.services.chat_session_service import ChatSessionService
from app.services.customer_service import CustomerService


class ProcessWahaIncomingMessageCommand:
    """
    Attach an incoming message to the customer's active chat session.

    Finds or creates the customer by phone, finds or opens the active chat session,
    stores the message with the gateway's native id in its metadata, and bumps the
    gateway session's receive counters. Only flushes; the caller owns the commit.
    """

    def __init__(self, db: Session, logger=None) -> None:
        self.db = db
        self.logger = logger or get_logger(__name__)

    def execute(
        self,
        data: WahaMessageData,
        organization_id: UUID,
        waha_session: Optional[WahaSession] = None,
    ) -> Message:
        if not data.customer_phone:
            raise ValidationFault("Incoming message has no sender phone number")

        customer, created = CustomerService(self.db).get_or_create_by_phone(
            organization_id, data.customer_phone, name=data.customer_name
        )
        if created:
            self.logger.info(
                "Customer created from WAHA message: org=%s customer=%s",
                organization_id,
                customer.id,
            )

        chat_sessions = ChatSessionService(self.db)
        chat_session = chat_sessions.get_or_open_active_session(
            organization_id, customer.id
        )
        now = datetime.now(timezone.utc)
        chat_session.last_activity_at = now

        message = Message(
            organization_id=organization_id,
            session_id=chat_session.id,
            sender_type=SenderType.CUSTOMER,
            sender_id=customer.id,
            sender_name=data.customer_name or customer.name,
            message_text=data.text,
            message_type=data.message_type,
            is_read=False,
            waha_session_name=data.session_name,
            metadata_={
                "waha_message_id": data.message_id,
                "whatsapp_message_id": data.waha_message_id,
                "phone_number": data.customer_phone,
                "timestamp": data.timestamp,
                "direction": MessageDirection.INCOMING.value,
                "from_me": False,
                "has_media": data.has_media,
                "media": data.media,
                "waha_session": data.session_name,
            },
        )
        self.db.add(message)

        if waha_session is not None:
            waha_session.total_messages_received = (
                waha_session.total_messages_received or 0
            ) + 1
            if data.has_media:
                waha_session.total_media_received = (
                    waha_session.total_media_received or 0
                ) + 1

        self.db.flush()
        self.logger.info(
            "Incoming WAHA message stored: org=%s chat_session=%s message_id=%s",
            organization_id,
            chat_session.id,
            data.message_id,
        )
        return message
