from fastapi import APIRouter

from app.config import get_settings
from app.schemas.system import (
    AppGroup,
    DatabaseGroup,
    GeneralGroup,
    N8nGroup,
    SystemSettingsGrouped,
    WahaGroup,
)

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


@router.get("/settings", response_model=SystemSettingsGrouped)
def get_system_settings() -> SystemSettingsGrouped:
    """Return grouped, non-sensitive system configuration settings for troubleshooting."""
    s = get_settings()

    # Host and driver only, never credentials
    url_obj = s.database_url_obj
    database_group = DatabaseGroup(
        database_host=url_obj.host,
        database_driver=url_obj.get_backend_name(),
        pool_size=s.database_pool_size,
        max_overflow=s.database_max_overflow,
    )

    return SystemSettingsGrouped(
        app=AppGroup(
            name=s.app_name,
            environment=s.environment,
            log_level=s.log_level,
            port=s.port,
        ),
        database=database_group,
        general=GeneralGroup(is_production=s.is_production),
        waha=WahaGroup(
            base_url=s.waha_base_url,
            api_key_configured=bool(s.waha_api_key),
            timeout_seconds=s.waha_timeout_seconds,
            retry_attempts=s.waha_retry_attempts,
            validate_signature=s.waha_webhook_validate_signature,
            default_webhook_url=s.waha_default_webhook_url,
            incoming_dedup_minutes=s.waha_incoming_dedup_minutes,
            outgoing_dedup_seconds=s.waha_outgoing_dedup_seconds,
            webhook_log_retention_days=s.waha_webhook_log_retention_days,
        ),
        n8n=N8nGroup(
            enabled=s.n8n_enabled,
            base_url=s.n8n_base_url,
            api_key_configured=bool(s.n8n_api_key),
        ),
    )
