"""
Reconciles local WahaSession rows with the sessions the WAHA gateway reports.

The gateway decides whether a session exists and is live; the local table is a
durable, organization-scoped cache of that state plus usage counters. Every query
and every update here filters by organization_id.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.adapters.waha import WahaClient
from app.constants.waha import (
    MEDIA_MESSAGE_TYPES,
    HealthStatus,
    SessionStatus,
    WahaRemoteStatus,
)
from app.core.waha_status import (
    extract_battery_level,
    extract_phone_number,
    is_working,
    map_health_status,
    map_waha_status,
)
from app.exceptions import N8nError, NotFoundFault, WahaError, WahaNotFoundError
from app.infra.logging_config import get_logger
from app.models.waha_session import WahaSession
from app.schemas.waha import SyncSummary
from app.services.channel_config_service import ChannelConfigService
from app.services.n8n_workflow_service import N8nWorkflowService

# Local fields that override the remote payload in merged rows
_MERGED_LOCAL_FIELDS = (
    "id",
    "organization_id",
    "session_name",
    "phone_number",
    "status",
    "is_authenticated",
    "is_connected",
    "health_status",
    "last_health_check",
    "error_count",
    "last_error",
    "total_messages_sent",
    "total_messages_received",
    "total_media_sent",
    "total_media_received",
    "n8n_workflow_id",
    "created_at",
    "updated_at",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Orchestrator-created names start with the owning organization id
_NAME_ORGANIZATION_PREFIX = re.compile(
    r"^([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})_"
)
METADATA_ORGANIZATION_KEY = "organization.id"


def remote_session_name(remote: dict[str, Any]) -> Optional[str]:
    name = remote.get("name") or remote.get("id")
    return str(name) if name else None


def remote_owner_hint(session_name: str, remote: dict[str, Any]) -> Optional[str]:
    """Organization id a gateway session was tagged with when it was created, if any."""
    config = remote.get("config")
    metadata = config.get("metadata") if isinstance(config, dict) else None
    if not isinstance(metadata, dict):
        metadata = remote.get("metadata")
    if isinstance(metadata, dict) and metadata.get(METADATA_ORGANIZATION_KEY):
        return str(metadata[METADATA_ORGANIZATION_KEY]).lower()
    match = _NAME_ORGANIZATION_PREFIX.match(session_name)
    return match.group(1).lower() if match else None


def normalize_session_list(response: Any) -> List[dict[str, Any]]:
    """Accept a bare list or a ``{"sessions": [...]}`` / ``{"data": [...]}`` envelope."""
    if isinstance(response, dict):
        response = response.get("sessions", response.get("data", []))
    if not isinstance(response, list):
        return []
    return [entry for entry in response if isinstance(entry, dict)]


class WahaSyncService:
    def __init__(
        self,
        db: Session,
        client: Optional[WahaClient] = None,
        channel_config_service: Optional[ChannelConfigService] = None,
        n8n_workflow_service: Optional[N8nWorkflowService] = None,
        logger=None,
    ) -> None:
        self.db = db
        self.client = client or WahaClient()
        self.channel_config_service = channel_config_service or ChannelConfigService(db)
        self._n8n_workflow_service = n8n_workflow_service
        self.logger = logger or get_logger(__name__)

    @property
    def n8n_workflow_service(self) -> N8nWorkflowService:
        if self._n8n_workflow_service is None:
            self._n8n_workflow_service = N8nWorkflowService(self.db)
        return self._n8n_workflow_service

    # ------------------------------------------------------------------
    # Tenant-scoped lookups
    # ------------------------------------------------------------------

    def _session_query(self, organization_id: UUID):
        return self.db.query(WahaSession).filter(
            WahaSession.organization_id == organization_id
        )

    def get_local_sessions(self, organization_id: UUID) -> List[WahaSession]:
        return self._session_query(organization_id).order_by(WahaSession.created_at).all()

    def verify_session_access(
        self, organization_id: UUID, session_name: str
    ) -> Optional[WahaSession]:
        """The organization's session named ``session_name``, or None."""
        return (
            self._session_query(organization_id)
            .filter(WahaSession.session_name == session_name)
            .first()
        )

    def verify_session_access_by_id(
        self, organization_id: UUID, session_id: UUID
    ) -> Optional[WahaSession]:
        return (
            self._session_query(organization_id)
            .filter(WahaSession.id == session_id)
            .first()
        )

    def find_sessions_by_name(self, session_name: str) -> List[WahaSession]:
        """All local sessions with this name, across organizations (webhook routing)."""
        return (
            self.db.query(WahaSession)
            .filter(WahaSession.session_name == session_name)
            .limit(2)
            .all()
        )

    def is_owned_elsewhere(
        self, organization_id: UUID, session_name: str, remote: dict[str, Any]
    ) -> bool:
        """True if another organization holds the name or the gateway tags it for one."""
        hint = remote_owner_hint(session_name, remote)
        if hint is not None and hint != str(organization_id).lower():
            return True
        other = (
            self.db.query(WahaSession.id)
            .filter(
                WahaSession.session_name == session_name,
                WahaSession.organization_id != organization_id,
            )
            .first()
        )
        return other is not None

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def sync_sessions_for_organization(self, organization_id: UUID) -> SyncSummary:
        """
        Reconcile every local session of the organization with the gateway.

        Remote sessions update or create local rows; a remote session that another
        organization owns or was tagged for is never imported. Local sessions the
        gateway no longer reports are marked disconnected. A failing entry is logged and skipped.
        Raises WahaError if the gateway session list cannot be fetched.
        """
        try:
            remote_sessions = normalize_session_list(self.client.get_sessions())
        except WahaError as e:
            self.logger.error(
                "Failed to fetch WAHA sessions: org=%s error=%s", organization_id, e
            )
            raise

        local_by_name = {
            s.session_name: s for s in self.get_local_sessions(organization_id)
        }
        merged: List[dict[str, Any]] = []
        seen: set[str] = set()
        created = updated = 0

        for remote in remote_sessions:
            name = remote_session_name(remote)
            if not name:
                self.logger.warning(
                    "Skipping WAHA session without a name: org=%s", organization_id
                )
                continue
            seen.add(name)
            local = local_by_name.get(name)
            if local is None and self.is_owned_elsewhere(organization_id, name, remote):
                self.logger.info(
                    "Skipping WAHA session owned by another organization: org=%s session=%s",
                    organization_id,
                    name,
                )
                continue
            try:
                if local is not None:
                    self._apply_remote_state(local, remote)
                    self.db.commit()
                    updated += 1
                else:
                    local = self._create_local_session(organization_id, name, remote)
                    self.db.commit()
                    local_by_name[name] = local
                    created += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                self.logger.error(
                    "Failed to sync WAHA session: org=%s session=%s error=%s",
                    organization_id,
                    name,
                    e,
                )
                continue
            merged.append(self.merge_session_data(local, remote))

        for name, local in local_by_name.items():
            if name in seen:
                continue
            try:
                self._mark_disconnected(local)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                self.logger.error(
                    "Failed to mark WAHA session disconnected: org=%s session=%s error=%s",
                    organization_id,
                    name,
                    e,
                )
                continue
            self.logger.info(
                "WAHA session missing on gateway, marked disconnected: org=%s session=%s",
                organization_id,
                name,
            )
            merged.append(
                self.merge_session_data(
                    local, {"name": name, "status": WahaRemoteStatus.NOT_WORKING.value}
                )
            )

        self.logger.info(
            "WAHA sessions synced: org=%s total=%d created=%d updated=%d",
            organization_id,
            len(merged),
            created,
            updated,
        )
        return SyncSummary(
            sessions=merged,
            organization_id=organization_id,
            total=len(merged),
            created=created,
            updated=updated,
        )

    def sync_session(self, organization_id: UUID, session_name: str) -> WahaSession:
        """Refresh (or create) one local session from the gateway's session info."""
        try:
            remote = self.client.get_session_info(session_name)
        except WahaError as e:
            self.logger.error(
                "Failed to sync WAHA session: org=%s session=%s error=%s",
                organization_id,
                session_name,
                e,
            )
            raise

        local = self.verify_session_access(organization_id, session_name)
        if local is not None:
            self._apply_remote_state(local, remote)
        elif self.is_owned_elsewhere(organization_id, session_name, remote):
            raise NotFoundFault("Session not found")
        else:
            local = self._create_local_session(organization_id, session_name, remote)
        self.db.commit()
        self.db.refresh(local)
        self.logger.info(
            "WAHA session synced: org=%s session=%s id=%s",
            organization_id,
            session_name,
            local.id,
        )
        return local

    def create_or_update_local_session(
        self,
        organization_id: UUID,
        session_name: str,
        config: Optional[dict[str, Any]] = None,
        n8n_workflow_id: Optional[UUID] = None,
    ) -> WahaSession:
        """Local row for a freshly provisioned session, in ``connecting`` state."""
        session = self.verify_session_access(organization_id, session_name)
        if session is None:
            channel_config = self.channel_config_service.get_default_channel_config(
                organization_id
            )
            session = WahaSession(
                organization_id=organization_id,
                session_name=session_name,
                channel_config_id=channel_config.id,
                error_count=0,
                total_messages_sent=0,
                total_messages_received=0,
                total_media_sent=0,
                total_media_received=0,
            )
            self.db.add(session)
        session.status = SessionStatus.CONNECTING
        session.is_authenticated = False
        session.is_connected = False
        session.health_status = HealthStatus.UNKNOWN
        if config is not None:
            session.config = config
        if n8n_workflow_id is not None:
            session.n8n_workflow_id = n8n_workflow_id
        self.db.commit()
        self.db.refresh(session)
        return session

    def update_session_status(
        self, organization_id: UUID, session_name: str, remote_status: Any
    ) -> bool:
        """Apply a gateway status to the local row. False if the session is not found."""
        session = self.verify_session_access(organization_id, session_name)
        if session is None:
            return False
        working = is_working(remote_status)
        session.status = map_waha_status(remote_status)
        session.is_connected = working
        session.is_authenticated = working
        session.last_health_check = _now()
        self.db.commit()
        return True

    def delete_session_for_organization(
        self, organization_id: UUID, session_name: str
    ) -> bool:
        """
        Delete a session on the gateway, then its workflow and local row.

        Returns False if the organization has no such session. Gateway errors other
        than "not found" propagate and leave the local row in place.
        """
        session = self.verify_session_access(organization_id, session_name)
        if session is None:
            return False

        try:
            result = self.client.delete_session(session_name)
        except WahaNotFoundError:
            self.logger.warning(
                "WAHA session already absent on gateway: org=%s session=%s",
                organization_id,
                session_name,
            )
            result = {"success": True}

        if not result.get("success"):
            raise WahaError("Gateway did not confirm deletion", operation="delete_session")

        workflow_id = session.n8n_workflow_id
        if workflow_id is not None:
            try:
                self.n8n_workflow_service.delete_workflow_with_database(workflow_id)
            except N8nError as e:
                self.logger.error(
                    "Failed to delete N8N workflow: org=%s session=%s workflow=%s error=%s",
                    organization_id,
                    session_name,
                    workflow_id,
                    e,
                )

        self.db.delete(session)
        self.db.commit()
        self.logger.info(
            "WAHA session deleted: org=%s session=%s", organization_id, session_name
        )
        return True

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def record_session_error(self, session: WahaSession, error: str) -> None:
        session.error_count = (session.error_count or 0) + 1
        session.last_error = error[:2000]
        self.db.commit()

    def record_messages_sent(self, session: WahaSession, message_type: str = "text") -> None:
        session.total_messages_sent = (session.total_messages_sent or 0) + 1
        if message_type in MEDIA_MESSAGE_TYPES:
            session.total_media_sent = (session.total_media_sent or 0) + 1
        self.db.commit()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply_remote_state(self, session: WahaSession, remote: dict[str, Any]) -> None:
        remote_status = remote.get("status")
        working = is_working(remote_status)
        session.phone_number = extract_phone_number(remote) or session.phone_number
        session.status = (
            map_waha_status(remote_status) if remote_status is not None else session.status
        )
        session.is_connected = working
        session.is_authenticated = working
        session.health_status = map_health_status(remote)
        battery = extract_battery_level(remote)
        if battery is not None:
            session.battery_level = battery
        session.last_health_check = _now()

    def _create_local_session(
        self, organization_id: UUID, session_name: str, remote: dict[str, Any]
    ) -> WahaSession:
        channel_config = self.channel_config_service.get_default_channel_config(
            organization_id
        )
        session = WahaSession(
            organization_id=organization_id,
            channel_config_id=channel_config.id,
            session_name=session_name,
            error_count=0,
            total_messages_sent=0,
            total_messages_received=0,
            total_media_sent=0,
            total_media_received=0,
        )
        self._apply_remote_state(session, remote)
        if remote.get("status") is None:
            session.status = map_waha_status(None)
        self.db.add(session)
        self.db.flush()
        self.logger.info(
            "Local WAHA session created: org=%s session=%s status=%s",
            organization_id,
            session_name,
            session.status,
        )
        return session

    def _mark_disconnected(self, session: WahaSession) -> None:
        session.status = SessionStatus.DISCONNECTED
        session.is_connected = False
        session.is_authenticated = False
        session.last_health_check = _now()

    @staticmethod
    def merge_session_data(
        session: WahaSession, remote: dict[str, Any]
    ) -> dict[str, Any]:
        """Remote payload overlaid with local fields."""
        local = {field: getattr(session, field) for field in _MERGED_LOCAL_FIELDS}
        return {**remote, **local}

