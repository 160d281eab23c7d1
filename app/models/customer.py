from __future__ import annotations

import uuid

from sqlalchemy import Column, ForeignKey, Index, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class Customer(Base, TimestampMixin):
    """End customer reachable over WhatsApp; phone is stored as received from the gateway."""

    __tablename__ = "customers"

    __table_args__ = (Index("ix_customers_org_phone", "organization_id", "phone"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=False)
