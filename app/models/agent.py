from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class Agent(Base, TimestampMixin):
    """Human support agent."""

    __tablename__ = "agents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    display_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
