"""
Ingestion of WAHA webhook deliveries.

Deliveries are classified by event. Message events are extracted into a
WahaMessageData and routed by direction. Incoming messages are deduplicated
against the message table and the WebhookLog ledger. Outgoing echoes are matched
to the customer's active chat session and deduplicated by native id or by content
inside a short window. Both check-then-write sequences run under a row lock on
the organization. Every outcome is returned as a ServiceResult rather than raised.
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.commands.webhooks.waha_incoming_message_command import (
    ProcessWahaIncomingMessageCommand,
)
from app.config import Settings, get_settings
from app.constants.waha import (
    ACK_ONLY_EVENTS,
    MESSAGE_EVENTS,
    SESSION_STATUS_EVENT,
    WEBHOOK_TYPE_WAHA,
    MessageDirection,
    WebhookLogStatus,
)
from app.core.waha_payload import extract_message_data
from app.exceptions import ServiceFault, ValidationFault
from app.infra.logging_config import get_logger
from app.models.message import Message
from app.models.organization import Organization
from app.models.waha_session import WahaSession
from app.models.webhook_log import WebhookLog
from app.schemas.waha import ServiceResult
from app.schemas.waha_webhook import WahaMessageData
from app.services.chat_session_service import ChatSessionService, SenderInfo
from app.services.customer_service import CustomerService
from app.services.waha_sync_service import WahaSyncService

IncomingHandler = Callable[[WahaMessageData, UUID, Optional[WahaSession]], Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WahaWebhookService:
    def __init__(
        self,
        db: Session,
        sync_service: Optional[WahaSyncService] = None,
        incoming_handler: Optional[IncomingHandler] = None,
        settings: Optional[Settings] = None,
        logger=None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.logger = logger or get_logger(__name__)
        self._sync_service = sync_service
        self.incoming_handler = (
            incoming_handler
            or ProcessWahaIncomingMessageCommand(db, logger=self.logger).execute
        )

    @property
    def sync_service(self) -> WahaSyncService:
        if self._sync_service is None:
            self._sync_service = WahaSyncService(self.db, logger=self.logger)
        return self._sync_service

    # ------------------------------------------------------------------
    # Request-level checks
    # ------------------------------------------------------------------

    def validate_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """HMAC-SHA256 check of the raw body; always True when validation is disabled."""
        if not self.settings.waha_webhook_validate_signature:
            return True
        secret = self.settings.waha_webhook_secret
        if not signature or not secret:
            return False
        expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip())

    def resolve_session(self, session_name: Optional[str]) -> Optional[WahaSession]:
        """The single local session with this name; None if unknown or ambiguous."""
        if not session_name:
            return None
        matches = self.sync_service.find_sessions_by_name(session_name)
        if len(matches) > 1:
            self.logger.warning(
                "WAHA session name is used by several organizations: session=%s",
                session_name,
            )
            return None
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle_webhook_event(
        self,
        payload: dict[str, Any],
        organization_id: UUID,
        waha_session: Optional[WahaSession] = None,
    ) -> ServiceResult:
        event = payload.get("event")
        if event is not None and not isinstance(event, str):
            self.logger.warning(
                "WAHA webhook with malformed event field acknowledged: org=%s type=%s",
                organization_id,
                type(event).__name__,
            )
            return ServiceResult.ok("Event type not handled but acknowledged")
        if not event and "message" in payload and "session" in payload:
            event = "message"
        event = event or "unknown"

        try:
            if event in MESSAGE_EVENTS:
                return self.handle_message_event(payload, organization_id, waha_session)
            if event == SESSION_STATUS_EVENT:
                return self.handle_session_status_event(payload, organization_id)
            if event in ACK_ONLY_EVENTS:
                self.logger.info(
                    "WAHA %s event acknowledged: org=%s", event, organization_id
                )
                return ServiceResult.ok(f"Event {event} acknowledged")
        except (SQLAlchemyError, ServiceFault) as e:
            self.db.rollback()
            self.logger.error(
                "Failed to handle WAHA webhook event: event=%s org=%s error=%s",
                event,
                organization_id,
                e,
            )
            code = e.status_code if isinstance(e, ValidationFault) else 500
            return ServiceResult.fail("Failed to handle webhook event", code=code)

        self.logger.info(
            "Unhandled WAHA webhook event type: event=%s org=%s", event, organization_id
        )
        return ServiceResult.ok("Event type not handled but acknowledged")

    def handle_message_event(
        self,
        payload: dict[str, Any],
        organization_id: UUID,
        waha_session: Optional[WahaSession] = None,
    ) -> ServiceResult:
        data = self.extract_message_data(payload)
        if data is None:
            return ServiceResult.fail("Invalid message format", code=400)

        if data.from_me:
            self.logger.info(
                "Outgoing WAHA message: org=%s message_id=%s to=%s",
                organization_id,
                data.message_id,
                data.to,
            )
            message = self.save_outgoing_message(data, organization_id)
            return ServiceResult.ok(
                "Outgoing message processed",
                data={
                    "message_id": data.message_id,
                    "to": data.to,
                    "direction": MessageDirection.OUTGOING.value,
                    "stored": message is not None,
                },
            )

        self.logger.info(
            "Incoming WAHA message: org=%s message_id=%s from=%s",
            organization_id,
            data.message_id,
            data.from_,
        )
        return self.process_incoming_message(data, organization_id, waha_session)

    def handle_session_status_event(
        self, payload: dict[str, Any], organization_id: UUID
    ) -> ServiceResult:
        body = payload.get("payload") if isinstance(payload.get("payload"), dict) else payload
        status = body.get("status")
        session_name = payload.get("session") or body.get("name")
        if not (isinstance(status, str) and status) or not (
            isinstance(session_name, str) and session_name
        ):
            return ServiceResult.fail("Invalid session status payload", code=400)
        updated = self.sync_service.update_session_status(
            organization_id, session_name, status
        )
        self.logger.info(
            "WAHA session status event: org=%s session=%s status=%s updated=%s",
            organization_id,
            session_name,
            status,
            updated,
        )
        return ServiceResult.ok(
            "Session status updated" if updated else "Session not tracked locally",
            data={"session_name": session_name, "status": status, "updated": updated},
        )

    def extract_message_data(self, payload: dict[str, Any]) -> Optional[WahaMessageData]:
        data = extract_message_data(payload)
        if data is None:
            self.logger.warning("Unextractable WAHA message payload")
        return data

    # ------------------------------------------------------------------
    # Incoming path
    # ------------------------------------------------------------------

    def process_incoming_message(
        self,
        data: WahaMessageData,
        organization_id: UUID,
        waha_session: Optional[WahaSession] = None,
    ) -> ServiceResult:
        """
        Dedup, hand off, and record the delivery in the ledger in one transaction.

        A duplicate writes nothing. The ledger row is only committed together with
        the downstream handoff, so a failed handoff can be redelivered.
        """
        self._lock_organization(organization_id)
        if self.is_message_already_processed(data.message_id, organization_id):
            self.db.rollback()
            self.logger.warning(
                "WAHA webhook already processed, skipping duplicate: org=%s message_id=%s",
                organization_id,
                data.message_id,
            )
            return ServiceResult.fail(
                "Webhook already processed",
                data={
                    "message_id": data.message_id,
                    "from": data.from_,
                    "status": "duplicate",
                },
            )

        self.incoming_handler(data, organization_id, waha_session)
        self.db.add(
            WebhookLog(
                message_id=data.message_id,
                organization_id=organization_id,
                webhook_type=WEBHOOK_TYPE_WAHA,
                status=WebhookLogStatus.PROCESSED,
                payload=data.model_dump(mode="json", by_alias=True, exclude={"raw_data"}),
                processed_at=_now(),
            )
        )
        self.db.commit()
        return ServiceResult.ok(
            "Incoming message event processed",
            data={
                "message_id": data.message_id,
                "from": data.from_,
                "direction": MessageDirection.INCOMING.value,
            },
        )

    def is_message_already_processed(
        self, message_id: str, organization_id: UUID
    ) -> bool:
        existing = (
            self.db.query(Message.id)
            .filter(
                Message.organization_id == organization_id,
                Message.metadata_["waha_message_id"].as_string() == message_id,
            )
            .first()
        )
        if existing is not None:
            return True

        window_start = _now() - timedelta(
            minutes=self.settings.waha_incoming_dedup_minutes
        )
        recent = (
            self.db.query(WebhookLog.id)
            .filter(
                WebhookLog.message_id == message_id,
                WebhookLog.organization_id == organization_id,
                WebhookLog.status == WebhookLogStatus.PROCESSED,
                WebhookLog.created_at >= window_start,
            )
            .first()
        )
        return recent is not None

    # ------------------------------------------------------------------
    # Outgoing path
    # ------------------------------------------------------------------

    def save_outgoing_message(
        self, data: WahaMessageData, organization_id: UUID
    ) -> Optional[Message]:
        """
        Record a message our side sent, observed through the gateway echo.

        Returns None without writing when text or recipient is missing, when the
        customer or its active chat session cannot be found, or for a duplicate.
        """
        text, phone = data.text, data.to
        if not text or not phone:
            self.logger.warning(
                "Cannot save outgoing message, missing text or recipient: org=%s message_id=%s",
                organization_id,
                data.message_id,
            )
            return None

        customer = CustomerService(self.db).find_by_phone(organization_id, phone)
        if customer is None:
            self.logger.warning(
                "Customer not found for outgoing message: org=%s phone=%s",
                organization_id,
                phone,
            )
            return None

        chat_sessions = ChatSessionService(self.db)
        chat_session = chat_sessions.find_active_session(organization_id, customer.id)
        if chat_session is None:
            self.logger.warning(
                "Active chat session not found for outgoing message: org=%s customer=%s",
                organization_id,
                customer.id,
            )
            return None

        sender = chat_sessions.determine_sender(chat_session)

        self._lock_organization(organization_id)
        if self._is_duplicate_outgoing(data, organization_id, sender):
            self.db.rollback()
            self.logger.info(
                "Outgoing message is duplicate, skipping: org=%s message_id=%s",
                organization_id,
                data.message_id,
            )
            return None

        message = Message(
            organization_id=organization_id,
            session_id=chat_session.id,
            sender_type=sender.type,
            sender_id=sender.id,
            sender_name=sender.name,
            message_text=text,
            message_type=data.message_type,
            is_read=True,
            waha_session_name=data.session_name,
            metadata_={
                "waha_message_id": data.message_id,
                "whatsapp_message_id": data.waha_message_id,
                "phone_number": phone,
                "timestamp": data.timestamp,
                "raw_data": data.raw_data,
                "direction": MessageDirection.OUTGOING.value,
                "from_me": True,
                "waha_session": data.session_name,
            },
        )
        self.db.add(message)
        chat_session.last_activity_at = _now()
        self.db.commit()
        self.logger.info(
            "Outgoing message saved: org=%s chat_session=%s sender_type=%s message_id=%s",
            organization_id,
            chat_session.id,
            sender.type,
            data.message_id,
        )
        return message

    def _is_duplicate_outgoing(
        self, data: WahaMessageData, organization_id: UUID, sender: SenderInfo
    ) -> bool:
        if data.waha_message_id:
            by_id = (
                self.db.query(Message)
                .filter(
                    Message.organization_id == organization_id,
                    Message.metadata_["waha_message_id"].as_string()
                    == data.waha_message_id,
                )
                .with_for_update()
                .first()
            )
            if by_id is not None:
                return True

        window_start = _now() - timedelta(
            seconds=self.settings.waha_outgoing_dedup_seconds
        )
        by_content = (
            self.db.query(Message)
            .filter(
                Message.organization_id == organization_id,
                Message.message_text == data.text,
                Message.metadata_["phone_number"].as_string() == data.to,
                Message.sender_type == sender.type,
                Message.created_at >= window_start,
            )
            .with_for_update()
            .first()
        )
        return by_content is not None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def prune_webhook_logs(self, retention_days: Optional[int] = None) -> int:
        """Delete ledger rows older than the retention window; returns the count."""
        days = retention_days or self.settings.waha_webhook_log_retention_days
        cutoff = _now() - timedelta(days=days)
        deleted = (
            self.db.query(WebhookLog)
            .filter(WebhookLog.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        self.logger.info("Pruned %d WAHA webhook log rows older than %d days", deleted, days)
        return deleted

    def _lock_organization(self, organization_id: UUID) -> None:
        """Row lock serializing dedup check-then-write per organization."""
        (
            self.db.query(Organization.id)
            .filter(Organization.id == organization_id)
            .with_for_update()
            .first()
        )
