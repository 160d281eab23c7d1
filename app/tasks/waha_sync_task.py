"""Celery tasks for WAHA session sync and webhook-ledger pruning."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from app.exceptions import RemoteFault
from app.infra.celery_app import celery_app
from app.infra.logging_config import (
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)
from app.services.organization_service import OrganizationService
from app.services.waha_sync_service import WahaSyncService
from app.services.waha_webhook_service import WahaWebhookService
from app.utils.db.db_session_helper import db_session

logger = get_logger("waha_sync")


@celery_app.task(
    name="app.tasks.waha_sync_task.sync_waha_sessions_for_organization_task"
)
def sync_waha_sessions_for_organization_task(organization_id_str: str) -> Optional[dict]:
    """
    Reconcile one organization's WAHA sessions with the gateway.
    Returns the created/updated/total counts, or None for an invalid id.
    """
    try:
        organization_id = UUID(organization_id_str)
    except ValueError:
        logger.warning("Invalid organization_id for WAHA sync: %s", organization_id_str)
        return None

    _, token = set_correlation_id()
    try:
        with db_session() as db:
            try:
                summary = WahaSyncService(db).sync_sessions_for_organization(
                    organization_id
                )
            except RemoteFault as e:
                logger.error(
                    "Scheduled WAHA sync failed: org=%s error=%s", organization_id, e
                )
                return None
        return {"total": summary.total, "created": summary.created, "updated": summary.updated}
    finally:
        reset_correlation_id(token)


@celery_app.task(name="app.tasks.waha_sync_task.sync_waha_sessions_all_task")
def sync_waha_sessions_all_task() -> int:
    """Enqueue a sync for every organization that has at least one local session."""
    with db_session() as db:
        organization_ids = OrganizationService(db).get_organization_ids_with_sessions()

    for organization_id in organization_ids:
        sync_waha_sessions_for_organization_task.delay(str(organization_id))

    logger.info("Enqueued WAHA sync for %d organizations", len(organization_ids))
    return len(organization_ids)


@celery_app.task(name="app.tasks.waha_sync_task.prune_waha_webhook_logs_task")
def prune_waha_webhook_logs_task(retention_days: Optional[int] = None) -> int:
    _, token = set_correlation_id()
    try:
        with db_session() as db:
            return WahaWebhookService(db).prune_webhook_logs(retention_days)
    finally:
        reset_correlation_id(token)
