"""Fault taxonomy shared by services, adapters and routers."""

from __future__ import annotations

from typing import Any, Optional


class ServiceFault(Exception):
    """Base class for faults surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundFault(ServiceFault):
    status_code = 404


class ConflictFault(ServiceFault):
    status_code = 409


class ValidationFault(ServiceFault):
    status_code = 400


class PersistenceFault(ServiceFault):
    status_code = 500


class RemoteFault(ServiceFault):
    """A third-party service call failed."""

    status_code = 502


class WahaError(RemoteFault):
    """Error returned by (or while talking to) the WAHA gateway."""

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        http_status: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.http_status = http_status
        self.payload = payload

    def __str__(self) -> str:
        if self.http_status is not None:
            return f"{self.operation}: HTTP {self.http_status}: {self.message}"
        return f"{self.operation}: {self.message}" if self.operation else self.message


class WahaNotFoundError(WahaError):
    pass


class WahaAuthError(WahaError):
    pass


class WahaValidationError(WahaError):
    pass


class WahaConflictError(WahaError):
    pass


class WahaRateLimitError(WahaError):
    pass


class WahaServerError(WahaError):
    pass


class WahaConnectionError(WahaError):
    """Network failure or timeout; no HTTP response was received."""


class N8nError(RemoteFault):
    """Error returned by the N8N workflow engine."""
