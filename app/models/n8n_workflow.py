"""N8nWorkflow model: local record of a workflow created in the N8N engine."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, String, Uuid

from app.db import Base, JSONType
from app.models.mixins import TimestampMixin


class N8nWorkflow(Base, TimestampMixin):
    __tablename__ = "n8n_workflows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    n8n_workflow_id = Column(String(64), nullable=True, index=True)  # remote id
    name = Column(String(255), nullable=False)
    label = Column(String(255), nullable=True)
    webhook_id = Column(String(512), nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    created_by_id = Column(Uuid, nullable=True)
    payload = Column(JSONType, nullable=True)
