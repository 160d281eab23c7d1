"""Template for the per-session N8N workflow receiving WAHA events."""

from __future__ import annotations

import copy
from typing import Any

ORGANIZATION_PLACEHOLDER = "organization_id_(count001)"

WAHA_WORKFLOW_TEMPLATE: dict[str, Any] = {
    "name": f"WAHA Inbox - {ORGANIZATION_PLACEHOLDER}",
    "nodes": [
        {
            "parameters": {"path": "waha", "httpMethod": "POST", "options": {}},
            "name": "WAHA Trigger",
            "type": "n8n-nodes-base.webhook",
            "typeVersion": 2,
            "position": [0, 0],
            "webhookId": ORGANIZATION_PLACEHOLDER,
        },
        {
            "parameters": {
                "method": "POST",
                "url": "={{ $env.WAHAGATE_API_URL }}/webhooks/waha/{{ $json.body.session }}",
                "sendBody": True,
                "specifyBody": "json",
                "jsonBody": "={{ JSON.stringify($json.body) }}",
                "options": {},
            },
            "name": "Forward to Inbox",
            "type": "n8n-nodes-base.httpRequest",
            "typeVersion": 4,
            "position": [240, 0],
        },
    ],
    "connections": {
        "WAHA Trigger": {
            "main": [[{"node": "Forward to Inbox", "type": "main", "index": 0}]]
        }
    },
    "settings": {"executionOrder": "v1"},
}


def build_waha_workflow_payload(organization_id: str, session_name: str) -> dict[str, Any]:
    """Return a workflow payload bound to one organization and session."""
    payload = copy.deepcopy(WAHA_WORKFLOW_TEMPLATE)
    payload["name"] = payload["name"].replace(ORGANIZATION_PLACEHOLDER, organization_id)
    payload["nodes"][0]["webhookId"] = f"{organization_id}_{session_name}"
    return payload
