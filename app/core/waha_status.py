"""Pure mappings from WAHA session payloads to local session state."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping, Optional

from app.constants.waha import (
    LOW_BATTERY_THRESHOLD,
    WHATSAPP_CHAT_SUFFIX,
    HealthStatus,
    SessionStatus,
    WahaRemoteStatus,
)

_ME_ID_PATTERN = re.compile(r"^(\d+)@c\.us$")

_STATUS_MAP = {
    WahaRemoteStatus.WORKING: SessionStatus.WORKING,
    WahaRemoteStatus.NOT_WORKING: SessionStatus.DISCONNECTED,
    WahaRemoteStatus.STARTING: SessionStatus.CONNECTING,
    WahaRemoteStatus.SCAN_QR_CODE: SessionStatus.CONNECTING,
    WahaRemoteStatus.STOPPED: SessionStatus.DISCONNECTED,
    WahaRemoteStatus.FAILED: SessionStatus.ERROR,
}


def normalize_remote_status(remote_status: Any) -> str:
    """Uppercase, stripped remote status; '' for missing values."""
    if remote_status is None:
        return ""
    return str(remote_status).strip().upper()


def is_working(remote_status: Any) -> bool:
    return normalize_remote_status(remote_status) == WahaRemoteStatus.WORKING


def map_waha_status(remote_status: Any) -> SessionStatus:
    """Map a gateway status to the local status. Unknown values map to connecting."""
    return _STATUS_MAP.get(
        normalize_remote_status(remote_status), SessionStatus.CONNECTING
    )


def extract_battery_level(remote: Mapping[str, Any]) -> Optional[int]:
    battery = remote.get("battery")
    if isinstance(battery, Mapping):
        battery = battery.get("level", battery.get("battery"))
    if battery is None:
        return None
    try:
        return int(battery)
    except (TypeError, ValueError):
        return None


def map_health_status(remote: Mapping[str, Any]) -> HealthStatus:
    """Derive health from the remote status and battery level."""
    status = normalize_remote_status(remote.get("status"))
    if status == WahaRemoteStatus.WORKING:
        battery = extract_battery_level(remote)
        if battery is not None and battery < LOW_BATTERY_THRESHOLD:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY
    if status in (WahaRemoteStatus.NOT_WORKING, WahaRemoteStatus.FAILED):
        return HealthStatus.CRITICAL
    return HealthStatus.UNKNOWN


def _with_plus(number: str) -> str:
    return number if number.startswith("+") else f"+{number}"


def extract_phone_number(remote: Mapping[str, Any]) -> Optional[str]:
    """
    Phone number of the account paired with a session.

    Prefers ``me.id`` ("<digits>@c.us"), falls back to a flat ``phone`` field.
    Returns None when neither is present.
    """
    me = remote.get("me")
    if isinstance(me, Mapping):
        me_id = me.get("id")
        if isinstance(me_id, str):
            match = _ME_ID_PATTERN.match(me_id)
            if match:
                return _with_plus(match.group(1))

    phone = remote.get("phone")
    if phone:
        cleaned = str(phone).replace(WHATSAPP_CHAT_SUFFIX, "").strip()
        if cleaned:
            return _with_plus(cleaned)
    return None


class ConnectivityState(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SessionConnectivity:
    """Connectivity of a gateway session; ``reason`` explains an unknown state."""

    state: ConnectivityState
    remote_status: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectivityState.CONNECTED

    @classmethod
    def from_remote(cls, remote: Mapping[str, Any]) -> "SessionConnectivity":
        status = normalize_remote_status(remote.get("status"))
        if status == WahaRemoteStatus.WORKING:
            return cls(ConnectivityState.CONNECTED, remote_status=status)
        return cls(ConnectivityState.DISCONNECTED, remote_status=status or None)

    @classmethod
    def unknown(cls, reason: str) -> "SessionConnectivity":
        return cls(ConnectivityState.UNKNOWN, reason=reason)
