"""HTTP clients for the WAHA gateway and the N8N workflow engine."""

from app.adapters.n8n import N8nClient
from app.adapters.waha import SessionConnectivity, WahaClient

__all__ = ["N8nClient", "SessionConnectivity", "WahaClient"]
