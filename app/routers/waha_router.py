"""WAHA sessions API: sync, provision, lifecycle, QR codes, messaging."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from app.exceptions import RemoteFault
from app.infra.logging_config import get_logger
from app.models.organization import Organization
from app.routers.utils.dependencies import (
    get_current_organization,
    get_session_management_service,
    get_sync_service,
)
from app.schemas.waha import (
    SendMediaRequest,
    SendTextRequest,
    ServiceResult,
    SyncSummary,
    WahaSessionCreateRequest,
    WahaStartRequest,
)
from app.services.waha_session_management_service import WahaSessionManagementService
from app.services.waha_sync_service import WahaSyncService

logger = get_logger("routers.waha")

router = APIRouter(prefix="/waha/sessions", tags=["waha"])


def _unwrap(result: ServiceResult) -> dict[str, Any]:
    """Raise HTTPException for a failed result, else return its JSON body."""
    if not result.success:
        raise HTTPException(status_code=result.code or 500, detail=result.message)
    return result.model_dump(mode="json")


@router.get("", response_model=SyncSummary)
def sync_sessions(
    organization: Organization = Depends(get_current_organization),
    sync_service: WahaSyncService = Depends(get_sync_service),
) -> SyncSummary:
    """Reconcile the organization's sessions with the gateway and list them."""
    try:
        return sync_service.sync_sessions_for_organization(organization.id)
    except RemoteFault as e:
        logger.error("WAHA sync failed: org=%s error=%s", organization.id, e)
        raise HTTPException(
            status_code=e.status_code, detail="Failed to sync sessions with WAHA"
        ) from e


@router.post("", status_code=201)
def create_session(
    body: WahaSessionCreateRequest,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(
        service.create_session(organization.id, name=body.name, config=body.config)
    )


@router.get("/{session_id}")
def get_session(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.get_session(session_id, organization.id))


@router.post("/{session_id}/start")
def start_session(
    session_id: UUID,
    body: WahaStartRequest | None = None,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    config = body.config if body is not None else None
    return _unwrap(service.start_session(session_id, organization.id, config or None))


@router.post("/{session_id}/stop")
def stop_session(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.stop_session(session_id, organization.id))


@router.post("/{session_id}/sync-status")
def sync_session_status(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.sync_session_status(session_id, organization.id))


@router.get("/{session_id}/qr")
def get_qr_code(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.get_qr_code(session_id, organization.id))


@router.post("/{session_id}/regenerate-qr")
def regenerate_qr_code(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.regenerate_qr_code(session_id, organization.id))


@router.get("/{session_id}/health")
def get_session_health(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.get_session_health(session_id, organization.id))


@router.delete("/by-name/{session_name}")
def delete_session(
    session_name: str,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.delete_session(session_name, organization.id))


@router.post("/{session_id}/messages/text")
def send_text_message(
    session_id: UUID,
    body: SendTextRequest,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(
        service.send_text_message(session_id, organization.id, body.chat_id, body.text)
    )


@router.post("/{session_id}/messages/media")
def send_media_message(
    session_id: UUID,
    body: SendMediaRequest,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(
        service.send_media_message(
            session_id,
            organization.id,
            body.chat_id,
            body.url,
            body.mimetype,
            filename=body.filename,
            caption=body.caption,
        )
    )


@router.get("/{session_id}/messages")
def get_messages(
    session_id: UUID,
    chat_id: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=500),
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.get_messages(session_id, organization.id, chat_id, limit))


@router.get("/{session_id}/contacts")
def get_contacts(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.get_contacts(session_id, organization.id))


@router.get("/{session_id}/groups")
def get_groups(
    session_id: UUID,
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.get_groups(session_id, organization.id))


@router.get("/{session_id}/chats")
def get_chat_list(
    session_id: UUID,
    limit: int = Query(100, ge=1, le=500),
    organization: Organization = Depends(get_current_organization),
    service: WahaSessionManagementService = Depends(get_session_management_service),
) -> dict[str, Any]:
    return _unwrap(service.get_chat_list(session_id, organization.id, limit))
