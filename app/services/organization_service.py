"""Organization CRUD and provisioning."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.organization import Organization
from app.models.waha_session import WahaSession
from app.schemas.waha import OrganizationCreate
from app.services.channel_config_service import ChannelConfigService


class OrganizationService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_organization(self, organization_id: UUID) -> Optional[Organization]:
        return (
            self.db.query(Organization)
            .filter(Organization.id == organization_id)
            .first()
        )

    def create_organization(self, data: OrganizationCreate) -> Organization:
        """Create an organization together with its default WhatsApp channel config."""
        organization = Organization(**data.model_dump())
        self.db.add(organization)
        self.db.flush()
        ChannelConfigService(self.db).get_default_channel_config(organization.id)
        self.db.commit()
        self.db.refresh(organization)
        return organization

    def get_organization_ids_with_sessions(self) -> List[UUID]:
        rows = self.db.query(WahaSession.organization_id).distinct().all()
        return [row[0] for row in rows]
