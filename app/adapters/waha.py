"""HTTP client for the WAHA WhatsApp gateway REST API."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

import requests

from app.config import Settings, get_settings
from app.core.waha_status import SessionConnectivity
from app.exceptions import (
    WahaAuthError,
    WahaConflictError,
    WahaConnectionError,
    WahaError,
    WahaNotFoundError,
    WahaRateLimitError,
    WahaServerError,
    WahaValidationError,
)
from app.infra.logging_config import get_logger

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})

_STATUS_ERRORS: dict[int, type[WahaError]] = {
    400: WahaValidationError,
    401: WahaAuthError,
    403: WahaAuthError,
    404: WahaNotFoundError,
    409: WahaConflictError,
    422: WahaValidationError,
    429: WahaRateLimitError,
}


class WahaClient:
    """
    Thin RPC wrapper over the gateway API.

    Every method either returns the decoded JSON body or raises a WahaError subclass.
    Network failures, 429 and 5xx responses are retried up to ``retry_attempts`` times.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        http: Optional[requests.Session] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger=None,
    ) -> None:
        settings = settings or get_settings()
        self.base_url = (base_url or settings.waha_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.waha_api_key
        self.timeout = timeout if timeout is not None else settings.waha_timeout_seconds
        self.retry_attempts = (
            retry_attempts if retry_attempts is not None else settings.waha_retry_attempts
        )
        self.backoff_seconds = (
            backoff_seconds
            if backoff_seconds is not None
            else settings.waha_retry_backoff_seconds
        )
        self._http = http or requests.Session()
        self._sleep = sleep
        self.logger = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        attempts = self.retry_attempts + 1

        for attempt in range(1, attempts + 1):
            try:
                resp = self._http.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                error: WahaError = WahaConnectionError(str(e), operation=operation)
                self.logger.warning(
                    "WAHA %s failed (attempt %d/%d): %s", operation, attempt, attempts, e
                )
            else:
                if resp.status_code not in RETRYABLE_STATUS:
                    if resp.status_code >= 400:
                        raise self._error_for(resp, operation)
                    return self._decode(resp)
                error = self._error_for(resp, operation)
                self.logger.warning(
                    "WAHA %s returned HTTP %s (attempt %d/%d)",
                    operation,
                    resp.status_code,
                    attempt,
                    attempts,
                )

            if attempt == attempts:
                raise error
            self._sleep(self.backoff_seconds * attempt)

    @staticmethod
    def _decode(resp: requests.Response) -> Any:
        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {"data": resp.text}

    @staticmethod
    def _error_for(resp: requests.Response, operation: str) -> WahaError:
        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text[:500] if resp.text else None
        message = ""
        if isinstance(payload, dict):
            message = str(payload.get("message") or payload.get("error") or "")
        elif isinstance(payload, str):
            message = payload
        if resp.status_code >= 500:
            error_cls: type[WahaError] = WahaServerError
        else:
            error_cls = _STATUS_ERRORS.get(resp.status_code, WahaError)
        return error_cls(
            message or f"HTTP {resp.status_code}",
            operation=operation,
            http_status=resp.status_code,
            payload=payload,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_sessions(self, include_stopped: bool = True) -> Any:
        params = {"all": "true"} if include_stopped else None
        return self._request("GET", "/api/sessions", "get_sessions", params=params)

    def get_session_info(self, session_name: str) -> dict[str, Any]:
        return self._request(
            "GET", f"/api/sessions/{session_name}", "get_session_info"
        )

    def create_session(self, session_config: dict[str, Any]) -> dict[str, Any]:
        return self._request(
            "POST", "/api/sessions", "create_session", json=session_config
        )

    def start_session(
        self, session_name: str, config: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """Start a session. A session that is already running counts as started."""
        body = {"config": config} if config else None
        try:
            return self._request(
                "POST", f"/api/sessions/{session_name}/start", "start_session", json=body
            )
        except (WahaValidationError, WahaConflictError) as e:
            if e.http_status == 422 or "already started" in e.message.lower():
                self.logger.info("WAHA session %s already started", session_name)
                return self.get_session_info(session_name)
            raise

    def stop_session(self, session_name: str) -> dict[str, Any]:
        return self._request(
            "POST", f"/api/sessions/{session_name}/stop", "stop_session"
        )

    def restart_session(self, session_name: str) -> dict[str, Any]:
        return self._request(
            "POST", f"/api/sessions/{session_name}/restart", "restart_session"
        )

    def delete_session(self, session_name: str) -> dict[str, Any]:
        result = self._request(
            "DELETE", f"/api/sessions/{session_name}", "delete_session"
        )
        if isinstance(result, dict) and "success" not in result:
            result = {**result, "success": True}
        return result

    def get_qr_code(self, session_name: str) -> dict[str, Any]:
        """QR code as ``{"mimetype", "data"}``; raises WahaNotFoundError if unavailable."""
        result = self._request(
            "GET",
            f"/api/{session_name}/auth/qr",
            "get_qr_code",
            params={"format": "image"},
        )
        if not isinstance(result, dict) or not result.get("data"):
            raise WahaNotFoundError(
                "QR code not available", operation="get_qr_code", payload=result
            )
        return result

    def check_connectivity(self, session_name: str) -> SessionConnectivity:
        """Connected / disconnected as reported by the gateway, or unknown with a reason."""
        try:
            info = self.get_session_info(session_name)
        except WahaNotFoundError:
            return SessionConnectivity.unknown("session not found on gateway")
        except WahaError as e:
            return SessionConnectivity.unknown(str(e))
        return SessionConnectivity.from_remote(info)

    # ------------------------------------------------------------------
    # Messaging and directory
    # ------------------------------------------------------------------

    def send_text(self, session_name: str, chat_id: str, text: str) -> dict[str, Any]:
        return self._request(
            "POST",
            "/api/sendText",
            "send_text",
            json={"session": session_name, "chatId": chat_id, "text": text},
        )

    def send_media(
        self,
        session_name: str,
        chat_id: str,
        url: str,
        mimetype: str,
        filename: Optional[str] = None,
        caption: Optional[str] = None,
    ) -> dict[str, Any]:
        if mimetype.startswith("image/"):
            path, operation = "/api/sendImage", "send_image"
        else:
            path, operation = "/api/sendFile", "send_file"
        body: dict[str, Any] = {
            "session": session_name,
            "chatId": chat_id,
            "file": {"url": url, "mimetype": mimetype, "filename": filename},
        }
        if caption:
            body["caption"] = caption
        return self._request("POST", path, operation, json=body)

    def get_messages(
        self, session_name: str, chat_id: str, limit: int = 50
    ) -> Any:
        return self._request(
            "GET",
            f"/api/{session_name}/chats/{chat_id}/messages",
            "get_messages",
            params={"limit": limit, "downloadMedia": "false"},
        )

    def get_contacts(self, session_name: str) -> Any:
        return self._request(
            "GET", "/api/contacts/all", "get_contacts", params={"session": session_name}
        )

    def get_groups(self, session_name: str) -> Any:
        return self._request("GET", f"/api/{session_name}/groups", "get_groups")

    def get_chat_list(self, session_name: str, limit: int = 100) -> Any:
        return self._request(
            "GET", f"/api/{session_name}/chats", "get_chat_list", params={"limit": limit}
        )
