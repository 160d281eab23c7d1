"""
Webhook routes for WAHA gateway deliveries.

The gateway POSTs events for a session here. The session name in the path
attributes the delivery to exactly one organization; every processed, duplicate
or acknowledged delivery answers 200 so the gateway does not retry it.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from app.config import get_settings
from app.infra.logging_config import get_logger
from app.routers.utils.dependencies import get_webhook_service
from app.services.waha_webhook_service import WahaWebhookService

logger = get_logger("routers.webhooks")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _read_payload(request: Request, service: WahaWebhookService) -> dict[str, Any]:
    raw_body = await request.body()
    signature = request.headers.get(get_settings().waha_webhook_signature_header)
    if not service.validate_signature(raw_body, signature):
        logger.warning("WAHA webhook signature mismatch: path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    try:
        body = json.loads(raw_body or b"null")
    except ValueError as e:
        logger.warning("WAHA webhook invalid JSON: %s", e)
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return body


@router.post("/waha/{session_name}")
async def waha_webhook(
    session_name: str,
    request: Request,
    service: WahaWebhookService = Depends(get_webhook_service),
) -> dict[str, Any]:
    """Receive a WAHA event for ``session_name`` and dispatch it by event type."""
    body = await _read_payload(request, service)
    waha_session = service.resolve_session(session_name)
    if waha_session is None:
        logger.warning("WAHA webhook for unknown session: session=%s", session_name)
        raise HTTPException(status_code=404, detail="Session not found")

    body.setdefault("session", session_name)
    result = service.handle_webhook_event(body, waha_session.organization_id, waha_session)
    if not result.success and result.code == 400:
        raise HTTPException(status_code=400, detail=result.message)
    return result.model_dump(mode="json")


@router.post("/waha/{session_name}/status")
async def waha_status_webhook(
    session_name: str,
    request: Request,
    service: WahaWebhookService = Depends(get_webhook_service),
) -> dict[str, Any]:
    """Apply a session status notification from the gateway."""
    body = await _read_payload(request, service)
    waha_session = service.resolve_session(session_name)
    if waha_session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    body["session"] = session_name
    result = service.handle_session_status_event(body, waha_session.organization_id)
    if not result.success:
        raise HTTPException(status_code=result.code or 500, detail=result.message)
    return result.model_dump(mode="json")
