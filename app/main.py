"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI, Request

from app.config import get_settings
from app.infra.logging_config import (
    LoggingConfig,
    reset_correlation_id,
    set_correlation_id,
)
from app.routers import system, waha_router, webhooks

REQUEST_ID_HEADER = "X-Request-ID"


def create_app() -> FastAPI:
    settings = get_settings()
    LoggingConfig.setup(settings.log_level)

    app = FastAPI(title=settings.app_name)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        cid, token = set_correlation_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(system.router)
    app.include_router(waha_router.router)
    app.include_router(webhooks.router)
    return app


app = create_app()
