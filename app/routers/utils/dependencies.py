from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.organization import Organization
from app.services.organization_service import OrganizationService
from app.services.waha_session_management_service import WahaSessionManagementService
from app.services.waha_sync_service import WahaSyncService
from app.services.waha_webhook_service import WahaWebhookService


def get_current_organization(
    x_organization_id: UUID = Header(..., alias="X-Organization-ID"),
    db: Session = Depends(get_db),
) -> Organization:
    """FastAPI dependency resolving the calling tenant from the X-Organization-ID header."""
    organization = OrganizationService(db).get_organization(x_organization_id)
    if organization is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return organization


def get_session_management_service(
    db: Session = Depends(get_db),
) -> WahaSessionManagementService:
    return WahaSessionManagementService(db)


def get_sync_service(db: Session = Depends(get_db)) -> WahaSyncService:
    return WahaSyncService(db)


def get_webhook_service(db: Session = Depends(get_db)) -> WahaWebhookService:
    return WahaWebhookService(db)
