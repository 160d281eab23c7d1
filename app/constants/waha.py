"""Status vocabularies and event names for the WAHA integration."""

from enum import StrEnum


class WahaRemoteStatus(StrEnum):
    """Session status as reported by the WAHA gateway."""

    WORKING = "WORKING"
    NOT_WORKING = "NOT_WORKING"
    STARTING = "STARTING"
    SCAN_QR_CODE = "SCAN_QR_CODE"
    STOPPED = "STOPPED"
    FAILED = "FAILED"


class SessionStatus(StrEnum):
    """Local session status."""

    WORKING = "working"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class SenderType(StrEnum):
    BOT = "bot"
    AGENT = "agent"
    CUSTOMER = "customer"


class MessageDirection(StrEnum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class WebhookLogStatus(StrEnum):
    PROCESSED = "processed"
    FAILED = "failed"


WEBHOOK_TYPE_WAHA = "whatsapp_waha"
WHATSAPP_CHAT_SUFFIX = "@c.us"
LOW_BATTERY_THRESHOLD = 20
SYSTEM_BOT_NAME = "System Bot"

MESSAGE_EVENTS = frozenset({"message", "message.any"})
SESSION_STATUS_EVENT = "session.status"

# Delivered by the gateway, acknowledged but not persisted
ACK_ONLY_EVENTS = frozenset(
    {
        "message.reaction",
        "message.ack",
        "message.revoked",
        "message.edited",
        "group.v2.join",
        "group.v2.leave",
        "group.v2.update",
        "group.v2.participants",
        "chat.archive",
        "presence.update",
        "poll.vote",
        "call.received",
        "call.accepted",
        "call.rejected",
    }
)

DEFAULT_WEBHOOK_EVENTS = ["message", "session.status"]
MEDIA_MESSAGE_TYPES = frozenset({"image", "video", "audio", "document", "media"})
