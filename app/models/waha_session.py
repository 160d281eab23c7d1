"""
WahaSession model: local, tenant-scoped mirror of a WAHA gateway session.

session_name is the key shared with the gateway; it is unique per organization only,
so every lookup must also filter by organization_id.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.constants.waha import HealthStatus, SessionStatus
from app.db import Base, JSONType
from app.models.mixins import TimestampMixin


class WahaSession(Base, TimestampMixin):
    __tablename__ = "waha_sessions"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "session_name", name="uq_waha_sessions_org_session_name"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel_config_id = Column(
        Uuid, ForeignKey("channel_configs.id", ondelete="RESTRICT"), nullable=False
    )
    n8n_workflow_id = Column(
        Uuid, ForeignKey("n8n_workflows.id", ondelete="SET NULL"), nullable=True
    )
    session_name = Column(String(255), nullable=False, index=True)
    phone_number = Column(String(32), nullable=True)

    status = Column(String(32), nullable=False, default=SessionStatus.CONNECTING)
    is_authenticated = Column(Boolean, nullable=False, default=False)
    is_connected = Column(Boolean, nullable=False, default=False)
    health_status = Column(String(32), nullable=False, default=HealthStatus.UNKNOWN)
    last_health_check = Column(DateTime(timezone=True), nullable=True)
    battery_level = Column(Integer, nullable=True)
    config = Column(JSONType, nullable=True, default=dict)

    error_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    total_messages_sent = Column(Integer, nullable=False, default=0)
    total_messages_received = Column(Integer, nullable=False, default=0)
    total_media_sent = Column(Integer, nullable=False, default=0)
    total_media_received = Column(Integer, nullable=False, default=0)

    organization = relationship("Organization", back_populates="waha_sessions")
    channel_config = relationship("ChannelConfig")
    n8n_workflow = relationship("N8nWorkflow")
