"""N8N workflow lifecycle mirrored in the n8n_workflows table."""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.adapters.n8n import N8nClient
from app.config import get_settings
from app.exceptions import N8nError
from app.infra.logging_config import get_logger
from app.models.n8n_workflow import N8nWorkflow


class N8nWorkflowService:
    def __init__(self, db: Session, client: Optional[N8nClient] = None, logger=None) -> None:
        self.db = db
        self.client = client or N8nClient()
        self.logger = logger or get_logger(__name__)

    def get_workflow(self, workflow_id: UUID) -> Optional[N8nWorkflow]:
        return self.db.query(N8nWorkflow).filter(N8nWorkflow.id == workflow_id).first()

    def create_workflow_with_database(
        self,
        payload: dict[str, Any],
        organization_id: UUID,
        user_id: Optional[UUID] = None,
        label: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create the workflow in N8N, activate it, and record it locally.

        Returns ``{"workflow": N8nWorkflow, "webhook_id": str | None}``.
        Raises N8nError when the engine rejects the workflow.
        """
        remote = self.client.create_workflow(payload)
        remote_id = remote.get("id")
        if not remote_id:
            raise N8nError("N8N did not return a workflow id")

        try:
            self.client.activate_workflow(str(remote_id))
            active = True
        except N8nError as e:
            self.logger.warning(
                "Could not activate N8N workflow %s: %s", remote_id, e
            )
            active = False

        webhook_id = _first_webhook_id(remote) or _first_webhook_id(payload)
        workflow = N8nWorkflow(
            organization_id=organization_id,
            n8n_workflow_id=str(remote_id),
            name=remote.get("name") or payload.get("name") or label or str(remote_id),
            label=label,
            webhook_id=webhook_id,
            is_active=active,
            created_by_id=user_id,
            payload=payload,
        )
        self.db.add(workflow)
        self.db.commit()
        self.db.refresh(workflow)
        self.logger.info(
            "N8N workflow created: org=%s workflow=%s webhook_id=%s",
            organization_id,
            workflow.id,
            webhook_id,
        )
        return {"workflow": workflow, "webhook_id": webhook_id}

    def delete_workflow_with_database(self, workflow_id: UUID) -> dict[str, Any]:
        """Delete the workflow from N8N, then its local row."""
        workflow = self.get_workflow(workflow_id)
        if workflow is None:
            return {"success": False, "message": "Workflow not found"}

        if workflow.n8n_workflow_id:
            self.client.delete_workflow(workflow.n8n_workflow_id)
        self.db.delete(workflow)
        self.db.commit()
        self.logger.info("N8N workflow deleted: workflow=%s", workflow_id)
        return {"success": True}

    @staticmethod
    def webhook_urls(webhook_id: str) -> dict[str, str]:
        """Test and production webhook URLs for a WAHA trigger node."""
        base = get_settings().n8n_base_url.rstrip("/")
        return {
            "test": f"{base}/webhook-test/{webhook_id}/waha",
            "production": f"{base}/webhook/{webhook_id}/waha",
        }


def _first_webhook_id(workflow: dict[str, Any]) -> Optional[str]:
    nodes = workflow.get("nodes") or []
    if nodes and isinstance(nodes[0], dict):
        return nodes[0].get("webhookId")
    return None
