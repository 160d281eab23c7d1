"""
Resolution and extraction of WAHA webhook message payloads.

``resolve_message_payload`` decides once which payload shape a delivery uses;
after that each shape has its own extractor and nothing downstream inspects the
raw dictionary again.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from app.constants.waha import MESSAGE_EVENTS, WHATSAPP_CHAT_SUFFIX
from app.schemas.waha_webhook import (
    LegacyWebhookPayload,
    StandardWebhookPayload,
    WahaMessageData,
)

WebhookMessagePayload = Union[StandardWebhookPayload, LegacyWebhookPayload]

_MIME_PREFIX_TYPES = (
    ("image/", "image"),
    ("video/", "video"),
    ("audio/", "audio"),
    ("application/", "document"),
)


def resolve_message_payload(raw: Mapping[str, Any]) -> Optional[WebhookMessagePayload]:
    """Return the matching payload variant, or None if the body fits neither shape."""
    event = raw.get("event")
    if isinstance(event, str) and event in MESSAGE_EVENTS and isinstance(raw.get("payload"), Mapping):
        try:
            return StandardWebhookPayload.model_validate(raw)
        except ValidationError:
            return None
    if isinstance(raw.get("message"), Mapping) and raw.get("session"):
        try:
            return LegacyWebhookPayload.model_validate(raw)
        except ValidationError:
            return None
    return None


def _message_id(raw_id: Any) -> Optional[str]:
    if isinstance(raw_id, Mapping):
        serialized = raw_id.get("_serialized")
        return str(serialized) if serialized else None
    if raw_id in (None, ""):
        return None
    return str(raw_id)


def _timestamp(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def strip_chat_suffix(chat_id: Optional[str]) -> Optional[str]:
    if not chat_id:
        return None
    return chat_id.replace(WHATSAPP_CHAT_SUFFIX, "")


def determine_message_type(message: Mapping[str, Any]) -> str:
    """Classify by media mimetype first, then location, vCards, empty body, text."""
    if message.get("hasMedia"):
        media = message.get("media")
        mimetype = media.get("mimetype") if isinstance(media, Mapping) else None
        if isinstance(mimetype, str):
            for prefix, message_type in _MIME_PREFIX_TYPES:
                if mimetype.startswith(prefix):
                    return message_type
        return "media"
    if message.get("location") is not None:
        return "location"
    if message.get("vCards"):
        return "contact"
    if "body" in message and message.get("body") is not None and not message["body"]:
        return "system"
    return "text"


def extract_customer_name(message: Mapping[str, Any]) -> Optional[str]:
    contact = message.get("contact")
    if isinstance(contact, Mapping) and contact.get("name"):
        return contact["name"]
    for key in ("author", "pushName"):
        if message.get(key):
            return message[key]
    data = message.get("_data")
    if isinstance(data, Mapping) and data.get("notifyName"):
        return data["notifyName"]
    media = message.get("media")
    if isinstance(media, Mapping):
        media_data = media.get("_data")
        if isinstance(media_data, Mapping) and media_data.get("notifyName"):
            return media_data["notifyName"]
    return None


def extract_standard(payload: StandardWebhookPayload) -> WahaMessageData:
    message = payload.payload
    native_id = _message_id(message.get("id"))
    sender = message.get("from")
    return WahaMessageData(
        message_id=native_id or str(uuid.uuid4()),
        waha_message_id=native_id,
        from_=sender,
        to=message.get("to"),
        text=message.get("body"),
        message_type=determine_message_type(message),
        timestamp=_timestamp(message.get("timestamp")),
        session_name=payload.session,
        customer_phone=strip_chat_suffix(sender),
        customer_name=extract_customer_name(message),
        from_me=bool(message.get("fromMe", False)),
        source=message.get("source") or "unknown",
        participant=message.get("participant"),
        has_media=bool(message.get("hasMedia", False)),
        media=message.get("media"),
        ack=message.get("ack", -1),
        ack_name=message.get("ackName"),
        author=message.get("author"),
        location=message.get("location"),
        v_cards=message.get("vCards") or [],
        reply_to=message.get("replyTo"),
        me=payload.me,
        environment=payload.environment,
        waha_event_id=payload.id,
        raw_data=payload.model_dump(exclude={"kind"}),
    )


def extract_legacy(payload: LegacyWebhookPayload) -> WahaMessageData:
    message = payload.message
    native_id = _message_id(message.get("id"))
    sender = message.get("from")
    text_obj = message.get("text")
    text = text_obj.get("body") if isinstance(text_obj, Mapping) else None
    if text is None:
        text = message.get("body")
    contact = message.get("contact")
    return WahaMessageData(
        message_id=native_id or str(uuid.uuid4()),
        waha_message_id=native_id,
        from_=sender,
        to=message.get("to"),
        text=text,
        message_type=message.get("type") or "text",
        timestamp=_timestamp(message.get("timestamp")),
        session_name=payload.session,
        customer_phone=strip_chat_suffix(sender),
        customer_name=contact.get("name") if isinstance(contact, Mapping) else None,
        from_me=bool(message.get("fromMe", False)),
        raw_data=payload.model_dump(exclude={"kind"}),
    )


def extract_message_data(raw: Mapping[str, Any]) -> Optional[WahaMessageData]:
    """Extract a normalized message, or None when the payload is not a message."""
    resolved = resolve_message_payload(raw)
    if resolved is None:
        return None
    try:
        if isinstance(resolved, StandardWebhookPayload):
            return extract_standard(resolved)
        return extract_legacy(resolved)
    except ValidationError:
        # a field of the right name but the wrong type (e.g. location as a string)
        return None
