"""
FastAPI Application Entrypoint
------------------------------

Wires the artifact service: versioned document store, resumable stream bridge,
stream records and the document-kind handler registry.

- Telemetry (structured logging + Sentry) is initialised at import time, before
  anything else logs.
- Services are built in `lifespan` and held on `app.state`; routes resolve them
  through `utils.service_deps`.
- `STREAM_STORE_URL` selects durable (resumable) streams. Without it the bridge runs
  in pass-through mode, which is logged and reported by `/health`.

Usage:
- Local development: `python main.py` or `uvicorn main:app --reload`.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config import settings
from utils.bootstrap import init_telemetry

init_telemetry(
    app_name=settings.APP_NAME,
    app_version=settings.APP_VERSION,
    environment=settings.ENV,
    sentry_dsn=settings.SENTRY_DSN,
)

import sentry_sdk  # noqa: E402

from db import async_engine, check_db_connection, init_db  # noqa: E402
from routes.documents import router as documents_router  # noqa: E402
from routes.streams import router as streams_router  # noqa: E402
from schemas.common import HealthStatus  # noqa: E402
from services.document_store import DocumentStore  # noqa: E402
from services.kind_handlers import HandlerConfigurationError, build_handler_registry  # noqa: E402
from services.stream_bridge import StreamBridge  # noqa: E402
from services.stream_log import StreamLog, create_stream_log  # noqa: E402
from services.stream_records import StreamRecordStore  # noqa: E402
from utils.middlewares import setup_middlewares  # noqa: E402
from utils.response_utils import build_envelope  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(
    engine: Optional[AsyncEngine] = None,
    stream_log: Optional[StreamLog] = None,
    create_tables: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    `engine` and `stream_log` default to the configured database and
    `STREAM_STORE_URL`; tests pass their own.
    """
    db_engine = engine or async_engine
    create_tables = settings.CREATE_TABLES_ON_STARTUP if create_tables is None else create_tables

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.db_available = True
        if create_tables:
            try:
                await init_db(db_engine)
            except Exception as exc:
                logger.critical(f"Database initialisation failed: {exc}", exc_info=True)
                app.state.db_available = False

        session_factory = async_sessionmaker(
            bind=db_engine, class_=AsyncSession, expire_on_commit=False
        )
        log = stream_log if stream_log is not None else create_stream_log(settings.STREAM_STORE_URL)

        app.state.engine = db_engine
        app.state.document_store = DocumentStore(session_factory)
        app.state.stream_records = StreamRecordStore(session_factory)
        app.state.handler_registry = build_handler_registry()
        app.state.bridge = StreamBridge(log)

        logger.info(
            f"{settings.APP_NAME} v{settings.APP_VERSION} started "
            f"(env={settings.ENV}, streams={app.state.bridge.mode.value})"
        )
        try:
            yield
        finally:
            await app.state.bridge.aclose()
            logger.info("Application shutdown complete.")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    setup_middlewares(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials="*" not in settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Stream-Id", "X-Stream-Mode"],
    )

    app.include_router(documents_router, prefix="/api/document", tags=["documents"])
    app.include_router(streams_router, tags=["streams"])

    @app.get("/health", response_model=HealthStatus)
    async def health_check(request: Request) -> HealthStatus:
        db_ok = await check_db_connection(request.app.state.engine)
        return HealthStatus(
            status="healthy" if db_ok else "degraded",
            db_available=db_ok,
            stream_mode=request.app.state.bridge.mode.value,
            environment=settings.ENV,
            app_name=settings.APP_NAME,
            version=settings.APP_VERSION,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        rid = getattr(request.state, "request_id", "n/a")
        logger.warning("[%s] HTTPException %s: %s", rid, exc.status_code, exc.detail)

        if exc.status_code >= 500:
            with sentry_sdk.new_scope() as scope:
                scope.set_tag("http_status", exc.status_code)
                scope.set_extra("path", request.url.path)
                sentry_sdk.capture_exception(exc)

        payload = build_envelope({"detail": exc.detail}, str(exc.detail), success=False)
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(HandlerConfigurationError)
    async def handler_configuration_exception_handler(
        request: Request, exc: HandlerConfigurationError
    ) -> JSONResponse:
        logger.error(f"Handler configuration error on {request.url.path}: {exc}", exc_info=exc)
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("error.kind", "configuration")
            scope.set_extra("path", request.url.path)
            sentry_sdk.capture_exception(exc)

        payload = build_envelope(
            {"detail": "Internal server error", "retryable": True},
            "Internal server error",
            success=False,
        )
        return JSONResponse(status_code=500, content=payload)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        rid = getattr(request.state, "request_id", "n/a")
        logger.error("[%s] Unhandled exception: %s", rid, exc, exc_info=True)

        with sentry_sdk.new_scope() as scope:
            scope.set_extra("path", request.url.path)
            scope.set_extra("query_params", dict(request.query_params))
            sentry_sdk.capture_exception(exc)

        detail_msg = (
            f"{type(exc).__name__}: {exc}"
            if settings.ENV.lower() != "production"
            else "Internal server error"
        )
        payload = build_envelope({"detail": detail_msg}, "Internal server error", success=False)
        return JSONResponse(status_code=500, content=payload)

    return app


app = create_app()


# Uvicorn Entry
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level="debug" if settings.DEBUG else "info",
    )
