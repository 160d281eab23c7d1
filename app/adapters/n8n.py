"""HTTP client for the N8N public REST API."""

from __future__ import annotations

from typing import Any, Optional

import requests

from app.config import Settings, get_settings
from app.exceptions import N8nError
from app.infra.logging_config import get_logger

logger = get_logger("n8n_client")

WORKFLOWS_PATH = "/api/v1/workflows"


class N8nClient:
    """Creates, activates and deletes workflows in an N8N instance."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.base_url = (base_url or settings.n8n_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.n8n_api_key
        self.timeout = timeout if timeout is not None else settings.n8n_timeout_seconds
        self._http = http or requests.Session()

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-N8N-API-KEY"] = self.api_key
        try:
            resp = self._http.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise N8nError(f"N8N request failed: {e}") from e

        if resp.status_code >= 400:
            logger.warning(
                "N8N %s %s returned HTTP %s", method, path, resp.status_code
            )
            raise N8nError(f"N8N returned HTTP {resp.status_code}")
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise N8nError(f"Invalid JSON from N8N: {e}") from e

    def create_workflow(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", WORKFLOWS_PATH, json=payload)

    def activate_workflow(self, workflow_id: str) -> dict[str, Any]:
        return self._request("POST", f"{WORKFLOWS_PATH}/{workflow_id}/activate")

    def delete_workflow(self, workflow_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"{WORKFLOWS_PATH}/{workflow_id}")
