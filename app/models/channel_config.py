"""ChannelConfig model: per-organization channel settings (one default per channel)."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import relationship

from app.db import Base, JSONType
from app.models.mixins import TimestampMixin


class ChannelConfig(Base, TimestampMixin):
    __tablename__ = "channel_configs"

    __table_args__ = (
        Index("ix_channel_configs_org_channel_default", "organization_id", "channel", "is_default"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    channel = Column(String(32), nullable=False, default="whatsapp")
    is_default = Column(Boolean, nullable=False, default=False)
    settings = Column(JSONType, nullable=True, default=dict)

    organization = relationship("Organization", back_populates="channel_configs")
