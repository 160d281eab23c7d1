"""
WAHA webhook payload schemas.

The gateway delivers messages in two shapes. The standard shape carries the
message under ``payload``; the legacy shape carries it under ``message`` next to a
top-level ``session``. Each shape is a separate model, and ``kind`` identifies which
one a delivery matched.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class StandardWebhookPayload(BaseModel):
    """``{"event": "message", "session": ..., "payload": {...}}``"""

    kind: Literal["standard"] = "standard"
    event: str
    session: Optional[str] = None
    id: Optional[str] = None
    me: Optional[dict[str, Any]] = None
    environment: Optional[dict[str, Any]] = None
    payload: dict[str, Any]

    model_config = {"extra": "allow"}


class LegacyWebhookPayload(BaseModel):
    """``{"session": ..., "message": {...}}``"""

    kind: Literal["legacy"] = "legacy"
    event: Optional[str] = None
    session: str
    message: dict[str, Any]

    model_config = {"extra": "allow"}


class WahaMessageData(BaseModel):
    """Normalized message extracted from either payload shape."""

    message_id: str
    waha_message_id: Optional[str] = None
    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    text: Optional[str] = None
    message_type: str = "text"
    timestamp: Optional[int] = None
    session_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    from_me: bool = False
    source: Optional[str] = None
    participant: Optional[str] = None
    has_media: bool = False
    media: Optional[dict[str, Any]] = None
    ack: Optional[int] = None
    ack_name: Optional[str] = None
    author: Optional[str] = None
    location: Optional[dict[str, Any]] = None
    v_cards: list[Any] = Field(default_factory=list)
    reply_to: Optional[Any] = None
    me: Optional[dict[str, Any]] = None
    environment: Optional[dict[str, Any]] = None
    waha_event_id: Optional[str] = None
    raw_data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}
