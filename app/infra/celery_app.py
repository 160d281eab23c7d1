from celery import Celery

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "wahagate",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.waha_sync_task"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "sync-waha-sessions": {
            "task": "app.tasks.waha_sync_task.sync_waha_sessions_all_task",
            "schedule": float(settings.waha_sync_interval_seconds),
        },
        "prune-waha-webhook-logs": {
            "task": "app.tasks.waha_sync_task.prune_waha_webhook_logs_task",
            "schedule": 24 * 60 * 60.0,
        },
    },
)
