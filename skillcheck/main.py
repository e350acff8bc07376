"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config.settings import settings
from .controllers import assessments
from .database import dispose_engine, init_models
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware
from .services.retention import get_retention_manager
from .views import HealthResponse

logger = logging.getLogger(__name__)

ROOT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CHANNEL_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"

PIPELINE_LOGGER = "skillcheck.pipelines.assessment"
TRANSCRIPT_LOGGER = "skillcheck.logs.transcript"
MIDDLEWARE_LOGGER = "skillcheck.middleware.structured"

# Third-party loggers that only matter when they warn.
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "httpx", "httpcore", "sqlalchemy.engine")


def _rotating_handler(path: str, max_bytes: int, fmt: str) -> RotatingFileHandler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _stdout_handler(fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _configure_logging() -> None:
    """Wire the root logger plus the three dedicated channels.

    Request summaries go to stdout only. Pipeline steps additionally land in
    their own rotating file, and transcripts (which contain worker speech)
    are kept out of the main log entirely.
    """

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(_stdout_handler(ROOT_FORMAT))
    root_logger.addHandler(_rotating_handler(settings.log_file, 1_000_000, ROOT_FORMAT))
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    channels = (
        (MIDDLEWARE_LOGGER, _stdout_handler("%(message)s"), False),
        (PIPELINE_LOGGER, _rotating_handler(settings.pipeline_log_file, 500_000, CHANNEL_FORMAT), True),
        (TRANSCRIPT_LOGGER, _rotating_handler(settings.transcript_log_file, 500_000, CHANNEL_FORMAT), False),
    )
    for name, handler, propagate in channels:
        channel = logging.getLogger(name)
        channel.handlers.clear()
        channel.addHandler(handler)
        channel.setLevel(logging.INFO)
        channel.propagate = propagate

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    _configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        description="Automated skill verification for recorded worker answers",
    )

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    app.include_router(assessments.router)

    @app.get("/health", include_in_schema=False, response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""

        return HealthResponse(
            status="healthy",
            service=settings.app_name,
            version=settings.app_version,
        )

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error("Unhandled error on %s %s: %r", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        await init_models()
        get_retention_manager().start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await get_retention_manager().stop()
        await dispose_engine()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "skillcheck.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
