from app.services.waha_session_management_service import WahaSessionManagementService
from app.services.waha_sync_service import WahaSyncService
from app.services.waha_webhook_service import WahaWebhookService

__all__ = [
    "WahaSessionManagementService",
    "WahaSyncService",
    "WahaWebhookService",
]
