from typing import Optional

from pydantic import BaseModel


class AppGroup(BaseModel):
    name: str
    environment: str
    log_level: str
    port: int


class DatabaseGroup(BaseModel):
    database_host: Optional[str] = None
    database_driver: Optional[str] = None
    pool_size: int
    max_overflow: int


class GeneralGroup(BaseModel):
    is_production: bool


class WahaGroup(BaseModel):
    base_url: str
    api_key_configured: bool
    timeout_seconds: float
    retry_attempts: int
    validate_signature: bool
    default_webhook_url: Optional[str] = None
    incoming_dedup_minutes: int
    outgoing_dedup_seconds: int
    webhook_log_retention_days: int


class N8nGroup(BaseModel):
    enabled: bool
    base_url: str
    api_key_configured: bool


class SystemSettingsGrouped(BaseModel):
    app: AppGroup
    database: DatabaseGroup
    general: GeneralGroup
    waha: WahaGroup
    n8n: N8nGroup
