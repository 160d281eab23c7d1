"""Organization model: the tenant boundary for every WAHA resource."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, String, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import TimestampMixin


class Organization(Base, TimestampMixin):
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    org_code = Column(String(64), unique=True, nullable=False)

    waha_sessions = relationship(
        "WahaSession", back_populates="organization", cascade="all, delete-orphan"
    )
    channel_configs = relationship(
        "ChannelConfig", back_populates="organization", cascade="all, delete-orphan"
    )
