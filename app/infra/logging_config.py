"""Logging setup with a per-request correlation id."""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar, Token
from typing import Optional

from app.config import get_settings

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s correlation_id=%(correlation_id)s %(message)s"
)
ROOT_LOGGER_NAME = "wahagate"

_CORRELATION_ID: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def set_correlation_id(value: Optional[str] = None) -> tuple[str, Token]:
    """Bind a correlation id to the current context; generates one if empty."""
    cid = (value or "").strip() or uuid.uuid4().hex
    return cid, _CORRELATION_ID.set(cid)


def reset_correlation_id(token: Token) -> None:
    _CORRELATION_ID.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Stamps every record with the current correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _CORRELATION_ID.get() or "-"
        return True


class LoggingConfig:
    """Configures the application logger tree once per process."""

    _configured = False

    @classmethod
    def setup(cls, level: Optional[str] = None) -> None:
        if cls._configured:
            return
        level_name = (level or get_settings().log_level or "INFO").upper()
        lvl = getattr(logging, level_name, logging.INFO)

        handler = logging.StreamHandler()
        handler.setLevel(lvl)
        handler.addFilter(CorrelationIdFilter())
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(lvl)
        root.addHandler(handler)
        root.propagate = False
        cls._configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the application namespace."""
    LoggingConfig.setup()
    if name.startswith(ROOT_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
