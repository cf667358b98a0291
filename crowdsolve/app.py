"""
FastAPI application entry point for the CrowdSolve backend.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crowdsolve.config import Settings, get_settings
from crowdsolve.dependencies import Backends, build_backends
from crowdsolve.errors import CrowdSolveError
from crowdsolve.routes import health_router, router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CrowdSolveError)
    async def handle_crowdsolve_error(request: Request, exc: CrowdSolveError):
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.detail
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"message": "Invalid request body"})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})


def create_app(
    settings: Optional[Settings] = None, backends: Optional[Backends] = None
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, version=settings.app_version)
    app.state.backends = backends or build_backends(settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
