from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class BotPersonality(Base, TimestampMixin):
    """Bot persona that replies on behalf of an organization."""

    __tablename__ = "bot_personalities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default="active")
    is_default = Column(Boolean, nullable=False, default=False)
