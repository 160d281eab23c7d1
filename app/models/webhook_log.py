"""WebhookLog model: ledger of processed webhook deliveries used for dedup."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Index, String, Uuid

from app.db import Base, JSONType
from app.models.mixins import utcnow


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    __table_args__ = (
        Index(
            "ix_webhook_logs_org_message_created",
            "organization_id",
            "message_id",
            "created_at",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    message_id = Column(String(255), nullable=False)
    organization_id = Column(Uuid, nullable=False)
    webhook_type = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False)
    payload = Column(JSONType, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
