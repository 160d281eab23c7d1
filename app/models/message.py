"""Message model: one chat message inside a ChatSession."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Text, Uuid

from app.db import Base, JSONType
from app.models.mixins import TimestampMixin


class Message(Base, TimestampMixin):
    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_org_session_created", "organization_id", "session_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    session_id = Column(
        Uuid, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False
    )
    sender_type = Column(String(16), nullable=False)  # 'bot' | 'agent' | 'customer'
    sender_id = Column(Uuid, nullable=True)
    sender_name = Column(String(255), nullable=True)
    message_text = Column(Text, nullable=True)
    message_type = Column(String(32), nullable=False, default="text")
    is_read = Column(Boolean, nullable=False, default=False)
    waha_session_name = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSONType, nullable=True, default=dict)
