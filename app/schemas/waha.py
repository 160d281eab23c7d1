"""Pydantic schemas for WAHA sessions and service results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ServiceResult(BaseModel):
    """Outcome of a service operation: success flag, message, optional code and data."""

    success: bool
    message: str
    code: Optional[int] = None
    data: Optional[Any] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ServiceResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, code: Optional[int] = None, data: Any = None) -> "ServiceResult":
        return cls(success=False, message=message, code=code, data=data)


class SyncSummary(BaseModel):
    """Result of reconciling an organization's sessions with the gateway."""

    sessions: list[dict[str, Any]] = Field(default_factory=list)
    organization_id: UUID
    total: int = 0
    created: int = 0
    updated: int = 0


class WahaSessionRead(BaseModel):
    id: UUID
    organization_id: UUID
    channel_config_id: UUID
    n8n_workflow_id: Optional[UUID] = None
    session_name: str
    phone_number: Optional[str] = None
    status: str
    is_authenticated: bool
    is_connected: bool
    health_status: str
    last_health_check: Optional[datetime] = None
    error_count: int = 0
    last_error: Optional[str] = None
    total_messages_sent: int = 0
    total_messages_received: int = 0
    total_media_sent: int = 0
    total_media_received: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WahaSessionCreateRequest(BaseModel):
    """Request body for provisioning a session."""

    name: Optional[str] = Field(None, max_length=64)
    config: dict[str, Any] = Field(default_factory=dict)


class WahaStartRequest(BaseModel):
    config: dict[str, Any] = Field(default_factory=dict)


class SendTextRequest(BaseModel):
    chat_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


class SendMediaRequest(BaseModel):
    chat_id: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    mimetype: str = "image/jpeg"
    filename: Optional[str] = None
    caption: Optional[str] = None


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    org_code: str = Field(..., min_length=1, max_length=64)
