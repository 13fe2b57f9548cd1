"""
FastAPI application entry point.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from filedash.config import Settings, get_settings
from filedash.dependencies import Backends, build_backends
from filedash.errors import (
    ConflictError,
    DashboardError,
    InvalidCredentialsError,
    NotFoundError,
    StorageFault,
    ValidationError,
)
from filedash.routes import router

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (ValidationError, 422),
    (InvalidCredentialsError, 401),
    (StorageFault, 503),
)


def status_code_for(exc: DashboardError) -> int:
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_cls):
            return status_code
    return 400


async def dashboard_error_handler(request: Request, exc: DashboardError):
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        content["rule"] = exc.rule
    return JSONResponse(status_code=status_code_for(exc), content=content)


def create_app(
    settings: Optional[Settings] = None, backends: Optional[Backends] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = FastAPI(title="filedash", version="0.1.0")
    app.state.settings = settings
    app.state.backends = backends or build_backends(settings)
    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    logger.info(
        "Backends: preferences=%s storage=%s",
        app.state.backends.preferences.__class__.__name__,
        app.state.backends.storage.__class__.__name__,
    )
    return app


app = create_app()
