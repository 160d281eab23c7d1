"""
Operator-driven lifecycle of WAHA sessions: provision, start, stop, delete, QR codes.

Every operation verifies that the session belongs to the calling organization first,
and returns a ServiceResult: a missing or foreign session is a 404, a double start a
409, and any gateway failure a generic 500 without the remote error body.
"""

from __future__ import annotations

import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.adapters.waha import WahaClient
from app.config import Settings, get_settings
from app.constants.n8n_workflow import build_waha_workflow_payload
from app.constants.waha import DEFAULT_WEBHOOK_EVENTS, WahaRemoteStatus
from app.core.metadata import flatten_metadata
from app.core.waha_status import (
    ConnectivityState,
    is_working,
    map_health_status,
    normalize_remote_status,
)
from app.exceptions import N8nError, RemoteFault, WahaError, WahaNotFoundError
from app.infra.logging_config import get_logger
from app.models.organization import Organization
from app.models.waha_session import WahaSession
from app.schemas.waha import ServiceResult, WahaSessionRead
from app.services.n8n_workflow_service import N8nWorkflowService
from app.services.organization_service import OrganizationService
from app.services.waha_sync_service import WahaSyncService

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def generate_session_name(organization_id: UUID | str, custom_name: Optional[str] = None) -> str:
    """``<org>_<cleaned custom name>_<8 hex>`` or ``<org>_session-<8 hex>``."""
    suffix = uuid.uuid4().hex[:8]
    clean = _NON_ALNUM.sub("", custom_name or "").lower()
    if clean:
        return f"{organization_id}_{clean}_{suffix}"
    return f"{organization_id}_session-{suffix}"


class WahaSessionManagementService:
    def __init__(
        self,
        db: Session,
        client: Optional[WahaClient] = None,
        sync_service: Optional[WahaSyncService] = None,
        n8n_workflow_service: Optional[N8nWorkflowService] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger=None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.logger = logger or get_logger(__name__)
        self.client = client or WahaClient(settings=self.settings)
        self.n8n_workflow_service = n8n_workflow_service or N8nWorkflowService(db)
        self.sync_service = sync_service or WahaSyncService(
            db,
            client=self.client,
            n8n_workflow_service=self.n8n_workflow_service,
            logger=self.logger,
        )
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def create_session(
        self,
        organization_id: UUID,
        name: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
        created_by: str = "System",
        created_by_id: Optional[UUID] = None,
    ) -> ServiceResult:
        """Create workflow, gateway session and local row for a new session."""
        organization = OrganizationService(self.db).get_organization(organization_id)
        if organization is None:
            return ServiceResult.fail("Organization not found", code=404)

        session_name = generate_session_name(organization_id, name)
        workflow = None
        webhook_id = None
        if self.settings.n8n_enabled:
            try:
                created = self.n8n_workflow_service.create_workflow_with_database(
                    build_waha_workflow_payload(str(organization_id), session_name),
                    organization_id,
                    user_id=created_by_id,
                    label=f"waha_{session_name}",
                )
                workflow, webhook_id = created["workflow"], created["webhook_id"]
            except N8nError as e:
                self.logger.warning(
                    "N8N workflow creation failed, using default webhook: org=%s session=%s error=%s",
                    organization_id,
                    session_name,
                    e,
                )

        session_config = self.build_session_config(
            organization, session_name, webhook_id, created_by, extra=config
        )
        try:
            remote = self.client.create_session(session_config)
        except WahaError as e:
            self.logger.error(
                "Failed to create WAHA session: org=%s session=%s error=%s",
                organization_id,
                session_name,
                e,
            )
            if workflow is not None:
                self._discard_workflow(workflow.id)
            return ServiceResult.fail("Failed to create session in WAHA", code=500)

        local = self.sync_service.create_or_update_local_session(
            organization_id,
            session_name,
            config=session_config["config"],
            n8n_workflow_id=workflow.id if workflow is not None else None,
        )
        webhook_url = (
            N8nWorkflowService.webhook_urls(webhook_id)["production"] if webhook_id else None
        )
        self.logger.info(
            "WAHA session created: org=%s session=%s id=%s",
            organization_id,
            session_name,
            local.id,
        )
        return ServiceResult.ok(
            "Session created successfully",
            data={
                "local_session_id": local.id,
                "organization_id": organization_id,
                "session_name": session_name,
                "n8n_workflow_id": workflow.id if workflow is not None else None,
                "webhook_id": webhook_id,
                "webhook_url": webhook_url,
                "status": local.status,
                "third_party_response": remote,
            },
        )

    def build_session_config(
        self,
        organization: Organization,
        session_name: str,
        webhook_id: Optional[str],
        created_by: str = "System",
        extra: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Gateway create-session body with organization metadata and webhooks."""
        extra = dict(extra or {})
        metadata = {
            "organization": {
                "id": organization.id,
                "name": organization.name,
                "code": organization.org_code,
            },
            "created_by": created_by,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "n8n_webhook_id": webhook_id,
        }
        user_metadata = extra.pop("metadata", None)
        if isinstance(user_metadata, dict):
            metadata = {**user_metadata, **metadata}

        config: dict[str, Any] = {
            "metadata": flatten_metadata(metadata),
            "proxy": None,
            "debug": False,
            "ignore": {"status": None, "groups": None, "channels": None},
            "noweb": {"store": {"enabled": True, "fullSync": False}},
            "webjs": {"tagsEventsOn": False},
        }
        config.update(extra)

        if webhook_id:
            urls = N8nWorkflowService.webhook_urls(webhook_id)
            config["webhooks"] = [
                self._webhook_entry(urls["test"]),
                self._webhook_entry(urls["production"]),
            ]
        elif self.settings.waha_default_webhook_url:
            config["webhooks"] = [self._webhook_entry(self.settings.waha_default_webhook_url)]

        return {"name": session_name, "start": True, "config": config}

    @staticmethod
    def _webhook_entry(url: str) -> dict[str, Any]:
        return {
            "url": url,
            "events": list(DEFAULT_WEBHOOK_EVENTS),
            "hmac": None,
            "retries": None,
            "customHeaders": None,
        }

    def _discard_workflow(self, workflow_id: UUID) -> None:
        try:
            self.n8n_workflow_service.delete_workflow_with_database(workflow_id)
        except N8nError as e:
            self.logger.error(
                "Failed to clean up N8N workflow %s after session create failure: %s",
                workflow_id,
                e,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_session(
        self,
        session_id: UUID,
        organization_id: UUID,
        config: Optional[dict[str, Any]] = None,
    ) -> ServiceResult:
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail(
                "Session not found. Please create the session first.", code=404
            )
        if session.is_connected and session.is_authenticated:
            return ServiceResult.fail("Session is already running and connected", code=409)

        name = session.session_name
        try:
            self.client.get_session_info(name)
        except WahaNotFoundError as e:
            self.logger.warning(
                "Session not found on WAHA server, cannot start: org=%s session=%s error=%s",
                organization_id,
                name,
                e,
            )
            return ServiceResult.fail(
                "Session not found on WAHA server. Please create the session first.",
                code=404,
            )
        except WahaError as e:
            self.logger.error(
                "Failed to check WAHA session before start: org=%s session=%s error=%s",
                organization_id,
                name,
                e,
            )
            return ServiceResult.fail(
                "Failed to check session status on WAHA server", code=500
            )

        self.sync_service.update_session_status(
            organization_id, name, WahaRemoteStatus.STARTING
        )
        try:
            self.client.start_session(name, config)
        except WahaError as e:
            self.logger.error(
                "Failed to start WAHA session: org=%s session=%s error=%s",
                organization_id,
                name,
                e,
            )
            self.sync_service.record_session_error(session, str(e))
            return ServiceResult.fail("Failed to start session", code=500)

        try:
            remote_status = (
                self.client.get_session_info(name).get("status")
                or WahaRemoteStatus.STARTING
            )
        except WahaError as e:
            self.logger.warning(
                "Could not refresh WAHA status after start: org=%s session=%s error=%s",
                organization_id,
                name,
                e,
            )
            remote_status = WahaRemoteStatus.STARTING
        self.sync_service.update_session_status(organization_id, name, remote_status)
        self.db.refresh(session)

        return ServiceResult.ok(
            "Session started successfully",
            data={
                "local_session_id": session.id,
                "organization_id": organization_id,
                "session_name": name,
                "status": session.status,
            },
        )

    def stop_session(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail("Session not found", code=404)

        try:
            result = self.client.stop_session(session.session_name)
        except WahaError as e:
            self.logger.error(
                "Failed to stop WAHA session: org=%s session=%s error=%s",
                organization_id,
                session.session_name,
                e,
            )
            self.sync_service.record_session_error(session, str(e))
            return ServiceResult.fail("Failed to stop session", code=500)

        self.sync_service.update_session_status(
            organization_id, session.session_name, WahaRemoteStatus.STOPPED
        )
        data = dict(result) if isinstance(result, dict) else {}
        data.update({"local_session_id": session.id, "organization_id": organization_id})
        return ServiceResult.ok("Session stopped successfully", data=data)

    def delete_session(self, session_name: str, organization_id: UUID) -> ServiceResult:
        try:
            deleted = self.sync_service.delete_session_for_organization(
                organization_id, session_name
            )
        except WahaError as e:
            self.logger.error(
                "Failed to delete WAHA session: org=%s session=%s error=%s",
                organization_id,
                session_name,
                e,
            )
            return ServiceResult.fail("Failed to delete session", code=500)

        if not deleted:
            return ServiceResult.fail("Session not found", code=404)
        return ServiceResult.ok(
            "Session deleted successfully", data={"organization_id": organization_id}
        )

    def sync_session_status(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail("Session not found", code=404)

        try:
            info = self.client.get_session_info(session.session_name)
        except WahaError as e:
            self.logger.error(
                "Failed to sync session status: org=%s session=%s error=%s",
                organization_id,
                session.session_name,
                e,
            )
            return ServiceResult.fail("Failed to sync session status", code=500)

        remote_status = info.get("status") if isinstance(info, dict) else None
        if not remote_status:
            return ServiceResult.fail(
                "Failed to get session status from WAHA server", code=500
            )

        self.sync_service.update_session_status(
            organization_id, session.session_name, remote_status
        )
        self.logger.info(
            "Session status synced from WAHA: org=%s session=%s status=%s",
            organization_id,
            session.session_name,
            remote_status,
        )
        working = is_working(remote_status)
        return ServiceResult.ok(
            "Session status synced successfully",
            data={
                "session_id": session.id,
                "session_name": session.session_name,
                "status": remote_status,
                "is_connected": working,
                "is_authenticated": working,
            },
        )

    def get_session(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail("Session not found", code=404)
        return ServiceResult.ok(
            "Session retrieved", data=WahaSessionRead.model_validate(session).model_dump()
        )

    def get_session_health(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        """Probe connectivity and refresh health_status / last_health_check."""
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail("Session not found", code=404)

        connectivity = self.client.check_connectivity(session.session_name)
        if connectivity.state == ConnectivityState.UNKNOWN:
            session.health_status = map_health_status({})
        else:
            session.health_status = map_health_status(
                {"status": connectivity.remote_status}
            )
            session.is_connected = connectivity.is_connected
            session.is_authenticated = connectivity.is_connected
        session.last_health_check = datetime.now(timezone.utc)
        self.db.commit()

        return ServiceResult.ok(
            "Session health checked",
            data={
                "session_id": session.id,
                "connectivity": connectivity.state.value,
                "remote_status": connectivity.remote_status,
                "reason": connectivity.reason,
                "health_status": session.health_status,
            },
        )

    # ------------------------------------------------------------------
    # QR codes
    # ------------------------------------------------------------------

    def get_qr_code(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail("Session not found", code=404)
        if session.is_connected and session.is_authenticated:
            return ServiceResult.ok(
                "Session is already connected",
                data={
                    "connected": True,
                    "status": session.status,
                    "phone_number": session.phone_number,
                    "message": "QR code is not needed as session is already connected",
                },
            )

        try:
            qr = self.client.get_qr_code(session.session_name)
        except WahaNotFoundError:
            return ServiceResult.ok(
                "QR code not available",
                data={
                    "connected": False,
                    "status": session.status,
                    "message": "QR code is not available. The session may still be connecting.",
                    "qr_code": None,
                },
            )
        except WahaError as e:
            self.logger.error(
                "Failed to get WAHA QR code: org=%s session=%s error=%s",
                organization_id,
                session.session_name,
                e,
            )
            return ServiceResult.fail("Failed to retrieve QR code", code=500)
        return ServiceResult.ok("QR code retrieved successfully", data=qr)

    def regenerate_qr_code(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        """
        Fetch a QR code, restarting the session once if the first fetch fails.

        A stopped session is started first. At most one restart and two QR fetches
        are made, each followed by a fixed grace period rather than polling.
        """
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail("Session not found", code=404)
        if session.is_connected and session.is_authenticated:
            return ServiceResult.ok(
                "Session is already connected",
                data={
                    "connected": True,
                    "status": session.status,
                    "message": "QR code regeneration is not needed.",
                },
            )

        try:
            self._ensure_session_is_running(session.session_name)
            qr = self._fetch_qr_code_with_restart(session.session_name)
        except RemoteFault as e:
            self.logger.error(
                "Failed to regenerate WAHA QR code: org=%s session=%s error=%s",
                organization_id,
                session.session_name,
                e,
            )
            return ServiceResult.fail(e.message, code=500)
        return ServiceResult.ok("QR code retrieved successfully", data=qr)

    def _ensure_session_is_running(self, session_name: str) -> None:
        try:
            info = self.client.get_session_info(session_name)
        except WahaError as e:
            raise RemoteFault(f"Failed to get session info: {e.message}") from e

        if normalize_remote_status(info.get("status")) != WahaRemoteStatus.STOPPED:
            return
        self.logger.info("Session %s is stopped, starting it", session_name)
        try:
            self.client.start_session(session_name)
        except WahaError as e:
            raise RemoteFault(f"Failed to start a stopped session: {e.message}") from e
        self._sleep(self.settings.waha_start_grace_seconds)

    def _fetch_qr_code_with_restart(self, session_name: str) -> dict[str, Any]:
        try:
            return self.client.get_qr_code(session_name)
        except WahaError as e:
            self.logger.warning(
                "Initial QR code fetch failed, restarting session %s: %s", session_name, e
            )

        try:
            self.client.restart_session(session_name)
        except WahaError as e:
            raise RemoteFault(
                f"Failed to restart session after QR fetch failure: {e.message}"
            ) from e
        self._sleep(self.settings.waha_restart_grace_seconds)

        try:
            return self.client.get_qr_code(session_name)
        except WahaError as e:
            raise RemoteFault("Failed to get QR code even after restarting session.") from e

    # ------------------------------------------------------------------
    # Messaging and directory passthroughs
    # ------------------------------------------------------------------

    def _call_for_session(
        self,
        session_id: UUID,
        organization_id: UUID,
        operation: str,
        call: Callable[[WahaSession], Any],
    ) -> ServiceResult:
        session = self.sync_service.verify_session_access_by_id(organization_id, session_id)
        if session is None:
            return ServiceResult.fail("Session not found", code=404)
        try:
            data = call(session)
        except WahaError as e:
            self.logger.error(
                "WAHA %s failed: org=%s session=%s error=%s",
                operation,
                organization_id,
                session.session_name,
                e,
            )
            self.sync_service.record_session_error(session, str(e))
            return ServiceResult.fail(f"Failed to {operation.replace('_', ' ')}", code=500)
        return ServiceResult.ok(f"{operation.replace('_', ' ').capitalize()} succeeded", data=data)

    def send_text_message(
        self, session_id: UUID, organization_id: UUID, chat_id: str, text: str
    ) -> ServiceResult:
        def call(session: WahaSession) -> Any:
            result = self.client.send_text(session.session_name, chat_id, text)
            self.sync_service.record_messages_sent(session, "text")
            return result

        return self._call_for_session(session_id, organization_id, "send_text_message", call)

    def send_media_message(
        self,
        session_id: UUID,
        organization_id: UUID,
        chat_id: str,
        url: str,
        mimetype: str,
        filename: Optional[str] = None,
        caption: Optional[str] = None,
    ) -> ServiceResult:
        def call(session: WahaSession) -> Any:
            result = self.client.send_media(
                session.session_name, chat_id, url, mimetype, filename, caption
            )
            self.sync_service.record_messages_sent(session, "media")
            return result

        return self._call_for_session(session_id, organization_id, "send_media_message", call)

    def get_messages(
        self, session_id: UUID, organization_id: UUID, chat_id: str, limit: int = 50
    ) -> ServiceResult:
        return self._call_for_session(
            session_id,
            organization_id,
            "get_messages",
            lambda s: self.client.get_messages(s.session_name, chat_id, limit),
        )

    def get_contacts(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        return self._call_for_session(
            session_id,
            organization_id,
            "get_contacts",
            lambda s: self.client.get_contacts(s.session_name),
        )

    def get_groups(self, session_id: UUID, organization_id: UUID) -> ServiceResult:
        return self._call_for_session(
            session_id,
            organization_id,
            "get_groups",
            lambda s: self.client.get_groups(s.session_name),
        )

    def get_chat_list(
        self, session_id: UUID, organization_id: UUID, limit: int = 100
    ) -> ServiceResult:
        return self._call_for_session(
            session_id,
            organization_id,
            "get_chat_list",
            lambda s: self.client.get_chat_list(s.session_name, limit),
        )
