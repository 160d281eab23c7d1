# Import celery app first
from app.infra.celery_app import celery_app

# Initialize logging configuration for Celery workers
from app.infra.logging_config import LoggingConfig
from app.tasks.waha_sync_task import (
    prune_waha_webhook_logs_task,
    sync_waha_sessions_all_task,
    sync_waha_sessions_for_organization_task,
)

LoggingConfig.setup()

__all__ = [
    "celery_app",
    "prune_waha_webhook_logs_task",
    "sync_waha_sessions_all_task",
    "sync_waha_sessions_for_organization_task",
]
